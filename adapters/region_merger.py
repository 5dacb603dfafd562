from __future__ import annotations

from typing import List

from domain.models import TextBlock, TextRegion
from engine.config import DEFAULT_OVERLAP_THRESHOLD
from engine.merger import merge_overlapping


class OverlapRegionMerger:

    def __init__(self, overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD):
        self._overlap_threshold = overlap_threshold

    @property
    def overlap_threshold(self) -> float:
        return self._overlap_threshold

    def merge(self, regions: List[TextRegion]) -> List[TextBlock]:
        return merge_overlapping(regions, self._overlap_threshold)
