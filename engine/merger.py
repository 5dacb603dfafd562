# GPL-3.0
from typing import List

from domain.models import TextBlock, TextRegion

from .config import DEFAULT_OVERLAP_THRESHOLD
from .geometry import coverage_ratio, union_bbox


def _combine(group: List[TextRegion]) -> TextBlock:
    head = group[0]
    confidences = [r.confidence for r in group if r.confidence is not None]
    return TextBlock(
        text=" ".join(r.text for r in group),
        bbox=union_bbox(r.bbox for r in group),
        sources=tuple(group),
        language=head.language,
        confidence=min(confidences) if confidences else None,
    )


def merge_overlapping(
    regions: List[TextRegion],
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> List[TextBlock]:
    """Greedy, order-dependent merge of overlapping OCR regions.

    Each pass takes the first region left in the pool and absorbs every
    remaining region whose intersection with it covers more than
    ``overlap_threshold`` of *its* area. Absorbed regions leave the pool; the
    merged block is emitted and never re-enters the pool.
    """
    pool = list(regions)
    blocks: List[TextBlock] = []

    while pool:
        current = pool.pop(0)
        overlapping = [
            r for r in pool
            if coverage_ratio(current.bbox, r.bbox) > overlap_threshold
        ]

        if not overlapping:
            blocks.append(TextBlock.from_region(current))
            continue

        consumed = {id(r) for r in overlapping}
        pool = [r for r in pool if id(r) not in consumed]
        blocks.append(_combine([current] + overlapping))

    return blocks
