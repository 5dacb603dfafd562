"""Tests for region geometry and the greedy overlap merge."""

import pytest

from adapters.region_merger import OverlapRegionMerger
from domain.models import BoundingBox, TextBlock
from engine.geometry import coverage_ratio, intersection_area, union_bbox
from engine.merger import merge_overlapping

from conftest import region


class TestGeometry:
    def test_intersection_area(self):
        a = BoundingBox(0, 0, 100, 100)
        b = BoundingBox(50, 50, 150, 150)
        assert intersection_area(a, b) == pytest.approx(2500)

    def test_disjoint_boxes_do_not_intersect(self):
        assert intersection_area(BoundingBox(0, 0, 10, 10), BoundingBox(20, 20, 30, 30)) == 0

    def test_coverage_is_relative_to_first_box(self):
        small = BoundingBox(0, 0, 10, 10)
        large = BoundingBox(0, 0, 100, 100)
        assert coverage_ratio(small, large) == pytest.approx(1.0)
        assert coverage_ratio(large, small) == pytest.approx(0.01)

    def test_zero_area_box_has_no_coverage(self):
        flat = BoundingBox(10, 10, 10, 50)
        assert flat.area == 0
        assert coverage_ratio(flat, BoundingBox(0, 0, 100, 100)) == 0.0
        assert coverage_ratio(BoundingBox(0, 0, 100, 100), flat) == 0.0

    def test_union_bbox(self):
        merged = union_bbox([BoundingBox(10, 20, 30, 40), BoundingBox(5, 25, 50, 35)])
        assert merged == BoundingBox(5, 20, 50, 40)

    def test_union_of_nothing_is_an_error(self):
        with pytest.raises(ValueError):
            union_bbox([])


class TestMergeOverlapping:
    def test_empty_input(self):
        assert merge_overlapping([]) == []

    def test_disjoint_regions_pass_through_in_order(self):
        regions = [
            region("一", 0, 0, 10, 10),
            region("二", 100, 100, 120, 120),
            region("三", 200, 0, 230, 30),
        ]
        blocks = merge_overlapping(regions)

        assert [b.text for b in blocks] == ["一", "二", "三"]
        assert [b.bbox for b in blocks] == [r.bbox for r in regions]
        assert all(len(b.sources) == 1 for b in blocks)

    def test_overlapping_regions_merge_into_union(self):
        a = region("A", 0, 0, 100, 100)
        b = region("B", 10, 10, 90, 90)

        blocks = merge_overlapping([a, b], overlap_threshold=0.5)

        assert len(blocks) == 1
        assert blocks[0].text == "A B"
        assert blocks[0].bbox == BoundingBox(0, 0, 100, 100)
        assert blocks[0].sources == (a, b)

    def test_merge_depends_on_which_region_comes_first(self):
        wide = region("wide", 40, 0, 200, 100)
        square = region("square", 0, 0, 100, 100)

        # 60% of the square is covered, but only 37.5% of the wide box
        assert len(merge_overlapping([square, wide], overlap_threshold=0.5)) == 1
        assert len(merge_overlapping([wide, square], overlap_threshold=0.5)) == 2

    def test_coverage_must_exceed_threshold(self):
        a = region("A", 0, 0, 100, 100)
        half = region("B", 50, 0, 150, 100)
        assert len(merge_overlapping([a, half], overlap_threshold=0.5)) == 2
        assert len(merge_overlapping([a, half], overlap_threshold=0.49)) == 1

    def test_merged_block_is_not_merged_again(self):
        a = region("A", 0, 0, 100, 100)
        b = region("B", 40, 0, 140, 100)
        # covers 57% of the A+B union, but only 40% of A
        c = region("C", 60, 0, 160, 100)

        blocks = merge_overlapping([a, b, c], overlap_threshold=0.5)

        assert [blk.text for blk in blocks] == ["A B", "C"]

    def test_each_region_lands_in_exactly_one_block(self):
        regions = [
            region("a", 0, 0, 50, 50),
            region("b", 5, 5, 45, 45),
            region("c", 200, 200, 240, 240),
            region("d", 205, 205, 235, 235),
            region("e", 400, 0, 420, 20),
        ]
        blocks = merge_overlapping(regions)
        sources = [s for blk in blocks for s in blk.sources]
        assert sorted(s.text for s in sources) == ["a", "b", "c", "d", "e"]
        assert all(blk.bbox.contains(s.bbox) for blk in blocks for s in blk.sources)

    def test_merged_block_keeps_lowest_confidence(self):
        a = region("A", 0, 0, 100, 100, language="ja", confidence=0.9)
        b = region("B", 0, 0, 100, 100, confidence=0.4)
        (block,) = merge_overlapping([a, b])
        assert block.confidence == pytest.approx(0.4)
        assert block.language == "ja"

    def test_threshold_one_never_merges(self):
        a = region("A", 0, 0, 100, 100)
        b = region("B", 0, 0, 100, 100)
        assert len(merge_overlapping([a, b], overlap_threshold=1.0)) == 2


class TestOverlapRegionMerger:
    def test_uses_configured_threshold(self):
        merger = OverlapRegionMerger(overlap_threshold=0.9)
        a = region("A", 0, 0, 100, 100)
        b = region("B", 10, 10, 90, 90)

        assert merger.overlap_threshold == 0.9
        assert len(merger.merge([a, b])) == 2
        assert len(OverlapRegionMerger(0.5).merge([a, b])) == 1


class TestTextBlock:
    def test_font_size_comes_from_first_source(self):
        block = TextBlock.from_region(region("こんにちは", 0, 0, 100, 24))
        assert block.estimate_font_size() == 24

    def test_translated_font_size_for_english_is_clamped(self):
        block = TextBlock.from_region(region("こんにちは", 0, 0, 100, 20))
        block.translated_text = "Hello there, how are you doing today?"
        assert block.estimate_translated_font_size("en") == pytest.approx(20 * 0.5)

        block.translated_text = "Hi"
        assert block.estimate_translated_font_size("en") == pytest.approx(20 * 1.2)

    def test_translated_font_size_unchanged_for_korean(self):
        block = TextBlock.from_region(region("こんにちは", 0, 0, 100, 20))
        block.translated_text = "안녕하세요 여러분"
        assert block.estimate_translated_font_size("ko") == 20

    def test_detects_japanese_text(self):
        assert TextBlock.from_region(region("ありがとう", 0, 0, 1, 1)).is_japanese_text()
        assert TextBlock.from_region(region("漢字", 0, 0, 1, 1)).is_japanese_text()
        assert not TextBlock.from_region(region("thanks", 0, 0, 1, 1)).is_japanese_text()
