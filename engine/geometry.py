from typing import Iterable

from shapely.geometry import box

from domain.models import BoundingBox


def to_polygon(bbox: BoundingBox):
    return box(bbox.left, bbox.top, bbox.right, bbox.bottom)


def intersection_area(a: BoundingBox, b: BoundingBox) -> float:
    if a.is_empty or b.is_empty:
        return 0.0
    return to_polygon(a).intersection(to_polygon(b)).area


def coverage_ratio(a: BoundingBox, b: BoundingBox) -> float:
    """Fraction of ``a``'s area covered by its intersection with ``b``.

    Not symmetric: ``coverage_ratio(a, b)`` and ``coverage_ratio(b, a)`` differ
    whenever the two boxes have different areas.
    """
    area = a.area
    if area <= 0:
        return 0.0
    ratio = intersection_area(a, b) / area
    return min(max(ratio, 0.0), 1.0)


def union_bbox(boxes: Iterable[BoundingBox]) -> BoundingBox:
    boxes = list(boxes)
    if not boxes:
        raise ValueError("union_bbox() needs at least one box")
    return BoundingBox(
        left=min(b.left for b in boxes),
        top=min(b.top for b in boxes),
        right=max(b.right for b in boxes),
        bottom=max(b.bottom for b in boxes),
    )
