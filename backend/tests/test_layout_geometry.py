"""Tests for layout_geometry.py."""

from __future__ import annotations

from layout_geometry import center_offsets, coverage, edge_gaps, inner_box, is_near
from scene_graph import SceneNode


def _make_parent(**overrides) -> SceneNode:
    props = dict(id="p", type="FRAME", width=400, height=800)
    props.update(overrides)
    return SceneNode(**props)


def _make_child(x, y, width, height) -> SceneNode:
    return SceneNode(id="c", type="RECTANGLE", x=x, y=y, width=width, height=height)


class TestInnerBox:
    def test_subtracts_padding(self):
        box = inner_box(_make_parent(padding_left=16, padding_right=24, padding_top=8, padding_bottom=12))
        assert (box.width, box.height) == (360, 780)
        assert (box.padding_left, box.padding_top) == (16, 8)

    def test_no_padding(self):
        box = inner_box(_make_parent())
        assert (box.width, box.height) == (400, 800)


class TestEdgeGaps:
    def test_gaps_are_measured_inside_padding(self):
        box = inner_box(_make_parent(padding_left=20, padding_top=20, padding_right=20, padding_bottom=20))
        gaps = edge_gaps(_make_child(x=30, y=40, width=100, height=50), box)
        assert gaps.left == 10
        assert gaps.top == 20
        assert gaps.right == 360 - 110
        assert gaps.bottom == 760 - 70

    def test_center_offsets(self):
        box = inner_box(_make_parent())
        h, v = center_offsets(_make_child(x=150, y=395, width=100, height=20), box)
        assert h == 0
        assert v == 5


class TestThresholds:
    def test_is_near_is_strict_and_non_negative(self):
        assert is_near(0, 400, 0.15)
        assert is_near(59.9, 400, 0.15)
        assert not is_near(60, 400, 0.15)
        assert not is_near(-1, 400, 0.15)

    def test_coverage(self):
        assert coverage(300, 400) == 0.75
        assert coverage(10, 0) is None
        assert coverage(10, -5) is None
