"""Tests for layout_analysis.py - constraint / layout-intent heuristics."""

from __future__ import annotations

import pytest

from layout_analysis import (
    LayoutIssueKind,
    check_layout,
    detect_centered_not_center,
    detect_edge_family,
    has_default_values,
)
from layout_config import LayoutChecks, LayoutConfig
from scene_graph import Constraints


def _make_screen(document, **props):
    defaults = dict(name="Screen", width=400, height=800)
    defaults.update(props)
    return document.create_frame(**defaults)


def _make_rect(document, parent, name="Box", **props):
    return document.create_node("RECTANGLE", parent=parent, name=name, **props)


def _kinds(issues, node):
    return [i.kind for i in issues if i.node_id == node.id]


def _issue(issues, node, kind):
    return next(i for i in issues if i.node_id == node.id and i.kind == kind)


# ─── Edge family ───────────────────────────────────────────────────────────

class TestCornerAndEdges:
    def test_bottom_right_corner_not_pinned(self, document):
        screen = _make_screen(document)
        badge = _make_rect(document, screen, "Badge", x=350, y=750, width=40, height=40)

        issues = check_layout(document)

        assert _kinds(issues, badge) == [LayoutIssueKind.CORNER_CONSTRAINT_MISMATCH]
        issue = issues[0]
        assert issue.severity == "high"
        assert issue.actual == "H: MIN, V: MIN"
        assert issue.expected == "H: RIGHT, V: BOTTOM"
        assert issue.parent_id == screen.id

    def test_pinned_corner_is_clean(self, document):
        screen = _make_screen(document)
        _make_rect(document, screen, "Badge", x=350, y=750, width=40, height=40,
                   constraints=Constraints(horizontal="MAX", vertical="MAX"))
        assert check_layout(document) == []

    def test_right_edge_only(self, document):
        screen = _make_screen(document)
        button = _make_rect(document, screen, "Close", x=350, y=300, width=40, height=40)

        issues = check_layout(document)

        assert _kinds(issues, button) == [LayoutIssueKind.EDGE_CONSTRAINT_MISMATCH]
        issue = issues[0]
        assert issue.actual == "H: MIN"
        assert issue.expected == "H: RIGHT"

    def test_bottom_edge_only(self, document):
        screen = _make_screen(document)
        bar = _make_rect(document, screen, "Bar", x=100, y=760, width=100, height=40)
        issue = _issue(check_layout(document), bar, LayoutIssueKind.EDGE_CONSTRAINT_MISMATCH)
        assert issue.expected == "V: BOTTOM"

    def test_stretch_counts_as_anchored(self, document):
        screen = _make_screen(document)
        button = _make_rect(document, screen, "Close", x=350, y=300, width=40, height=40,
                            constraints=Constraints(horizontal="STRETCH"))
        assert LayoutIssueKind.EDGE_CONSTRAINT_MISMATCH not in _kinds(check_layout(document), button)

    def test_spanning_both_edges_wants_stretch(self, document):
        screen = _make_screen(document)
        header = _make_rect(document, screen, "Header", x=10, y=300, width=380, height=40)

        issues = check_layout(document)
        kinds = _kinds(issues, header)

        assert kinds[0] == LayoutIssueKind.BOTH_EDGES_NOT_STRETCH
        assert _issue(issues, header, LayoutIssueKind.BOTH_EDGES_NOT_STRETCH).expected == "H: STRETCH"
        assert LayoutIssueKind.WIDE_NOT_FILL in kinds

    def test_full_width_bottom_bar_is_a_corner(self, document):
        screen = _make_screen(document)
        tab_bar = _make_rect(document, screen, "Tab bar", x=0, y=740, width=400, height=60,
                             constraints=Constraints(horizontal="CENTER", vertical="MIN"))

        issues = check_layout(document)

        assert LayoutIssueKind.CORNER_CONSTRAINT_MISMATCH in _kinds(issues, tab_bar)
        issue = _issue(issues, tab_bar, LayoutIssueKind.CORNER_CONSTRAINT_MISMATCH)
        assert issue.actual == "H: CENTER, V: MIN"
        assert issue.expected == "H: RIGHT, V: BOTTOM"

    def test_stretching_bottom_bar_keeps_its_stretch(self, document):
        screen = _make_screen(document)
        tab_bar = _make_rect(document, screen, "Tab bar", x=0, y=740, width=400, height=60,
                             constraints=Constraints(horizontal="STRETCH", vertical="MIN"))
        issue = detect_edge_family(document, tab_bar, screen, LayoutConfig())
        assert issue.kind == LayoutIssueKind.CORNER_CONSTRAINT_MISMATCH
        assert issue.expected == "H: STRETCH, V: BOTTOM"

    def test_pinned_stretching_bottom_bar_is_clean(self, document):
        screen = _make_screen(document)
        tab_bar = _make_rect(document, screen, "Tab bar", x=0, y=740, width=400, height=60,
                             constraints=Constraints(horizontal="STRETCH", vertical="MAX"))
        assert detect_edge_family(document, tab_bar, screen, LayoutConfig()) is None

    def test_toggles_disable_edge_family(self, document):
        screen = _make_screen(document)
        badge = _make_rect(document, screen, "Badge", x=350, y=750, width=40, height=40)
        cfg = LayoutConfig(checks=LayoutChecks(corner_constraint=False, edge_constraint=False))
        parent = document.parent_of(badge)
        assert detect_edge_family(document, badge, parent, cfg) is None

    def test_corner_toggle_off_falls_back_to_single_edge(self, document):
        screen = _make_screen(document)
        badge = _make_rect(document, screen, "Badge", x=350, y=750, width=40, height=40)
        cfg = LayoutConfig(checks=LayoutChecks(corner_constraint=False))
        issue = detect_edge_family(document, badge, screen, cfg)
        assert issue.kind == LayoutIssueKind.EDGE_CONSTRAINT_MISMATCH
        assert issue.expected == "H: RIGHT"

    def test_padding_shifts_edges(self, document):
        screen = _make_screen(document, padding_right=100)
        # 10px from the outer edge but far from the padded content edge
        _make_rect(document, screen, "Rect", x=350, y=300, width=40, height=40)
        assert check_layout(document) == []


# ─── Fill detectors ────────────────────────────────────────────────────────

class TestFillDetectors:
    def test_wide_auto_layout_child_on_main_axis(self, document):
        row = _make_screen(document, name="Row", width=400, height=100, layout_mode="HORIZONTAL")
        field = _make_rect(document, row, "Field", width=300, height=40)

        issue = _issue(check_layout(document), field, LayoutIssueKind.WIDE_NOT_FILL)

        assert issue.severity == "medium"
        assert issue.expected == "layoutGrow: 1 (Fill)"

    def test_tall_auto_layout_child_on_cross_axis(self, document):
        row = _make_screen(document, name="Row", width=400, height=100, layout_mode="HORIZONTAL")
        side = _make_rect(document, row, "Side", width=40, height=100)

        issue = _issue(check_layout(document), side, LayoutIssueKind.TALL_NOT_FILL)

        assert issue.expected == "layoutAlign: STRETCH"
        assert issue.actual == "layoutAlign: INHERIT"

    def test_tall_free_child_wants_vertical_stretch(self, document):
        screen = _make_screen(document)
        column = _make_rect(document, screen, "Column", x=150, y=100, width=100, height=600)
        issue = _issue(check_layout(document), column, LayoutIssueKind.TALL_NOT_FILL)
        assert issue.expected == "V: STRETCH"

    def test_growing_child_is_clean(self, document):
        row = _make_screen(document, name="Row", width=400, height=100, layout_mode="HORIZONTAL")
        field = _make_rect(document, row, "Field", width=300, height=40, layout_grow=1)
        assert LayoutIssueKind.WIDE_NOT_FILL not in _kinds(check_layout(document), field)

    def test_full_bleed_background(self, document):
        screen = _make_screen(document)
        background = _make_rect(document, screen, "Background", x=0, y=0, width=400, height=800)

        issue = _issue(check_layout(document), background, LayoutIssueKind.FULL_BLEED_NOT_STRETCH)

        assert issue.expected == "H: SCALE, V: SCALE"
        assert issue.actual == "H: MIN, V: MIN"

    def test_full_bleed_skipped_when_one_axis_stretches(self, document):
        screen = _make_screen(document)
        background = _make_rect(document, screen, "Background", x=0, y=0, width=400, height=800,
                                constraints=Constraints(horizontal="SCALE"))
        assert LayoutIssueKind.FULL_BLEED_NOT_STRETCH not in _kinds(check_layout(document), background)


# ─── Centring ──────────────────────────────────────────────────────────────

class TestCentered:
    def test_both_axes_can_fire(self, document):
        screen = _make_screen(document)
        logo = _make_rect(document, screen, "Logo", x=150, y=350, width=100, height=100)

        issues = check_layout(document)

        assert _kinds(issues, logo) == [
            LayoutIssueKind.CENTERED_H_NOT_CENTER,
            LayoutIssueKind.CENTERED_V_NOT_CENTER,
        ]
        assert issues[0].expected == "H: CENTER"
        assert issues[1].expected == "V: CENTER"

    def test_tolerance(self, document):
        screen = _make_screen(document)
        logo = _make_rect(document, screen, "Logo", x=160, y=350, width=100, height=100)
        found = detect_centered_not_center(document, logo, screen, LayoutConfig(center_tolerance_px=8))
        assert [i.kind for i in found] == [LayoutIssueKind.CENTERED_V_NOT_CENTER]
        found = detect_centered_not_center(document, logo, screen, LayoutConfig(center_tolerance_px=12))
        assert len(found) == 2

    def test_center_constraint_is_clean(self, document):
        screen = _make_screen(document)
        _make_rect(document, screen, "Logo", x=150, y=350, width=100, height=100,
                   constraints=Constraints(horizontal="CENTER", vertical="CENTER"))
        assert check_layout(document) == []


# ─── Sibling fill ──────────────────────────────────────────────────────────

class TestSiblingFill:
    def test_widest_fixed_child_in_row(self, document):
        row = _make_screen(document, name="Toolbar", width=600, height=100, layout_mode="HORIZONTAL")
        search = _make_rect(document, row, "Search", width=400, height=40)
        _make_rect(document, row, "Icon", width=100, height=40)
        _make_rect(document, row, "Avatar", width=50, height=40)

        issues = check_layout(document)

        issue = _issue(issues, search, LayoutIssueKind.SIBLING_FILL_CANDIDATE)
        assert issue.parent_id == row.id
        assert issue.expected == "layoutGrow: 1 (Fill)"
        assert [i.kind for i in issues].count(LayoutIssueKind.SIBLING_FILL_CANDIDATE) == 1

    def test_vertical_stack_is_ignored(self, document):
        column = _make_screen(document, name="Stack", width=600, height=400, layout_mode="VERTICAL")
        _make_rect(document, column, "Wide", width=400, height=40)
        _make_rect(document, column, "Narrow", width=100, height=40)
        kinds = [i.kind for i in check_layout(document)]
        assert LayoutIssueKind.SIBLING_FILL_CANDIDATE not in kinds

    def test_similar_widths_are_ignored(self, document):
        row = _make_screen(document, name="Tabs", width=600, height=100, layout_mode="HORIZONTAL")
        _make_rect(document, row, "A", width=200, height=40)
        _make_rect(document, row, "B", width=180, height=40)
        kinds = [i.kind for i in check_layout(document)]
        assert LayoutIssueKind.SIBLING_FILL_CANDIDATE not in kinds


# ─── Scan driver ───────────────────────────────────────────────────────────

class TestCheckLayout:
    def test_only_defaults_skips_touched_nodes(self, document):
        screen = _make_screen(document)
        touched = _make_rect(document, screen, "Touched", x=350, y=750, width=40, height=40,
                             constraints=Constraints(horizontal="CENTER", vertical="MIN"))
        untouched = _make_rect(document, screen, "Untouched", x=10, y=750, width=40, height=40)

        everything = check_layout(document)
        defaults_only = check_layout(document, config=LayoutConfig(only_defaults=True))

        assert _kinds(everything, touched)
        assert _kinds(defaults_only, touched) == []
        assert _kinds(defaults_only, untouched) == _kinds(everything, untouched)

    def test_has_default_values(self, document):
        screen = _make_screen(document)
        row = _make_screen(document, name="Row", layout_mode="HORIZONTAL")
        free = _make_rect(document, screen, "Free")
        child = _make_rect(document, row, "Child")
        assert has_default_values(document, free)
        assert has_default_values(document, child)
        free.constraints = Constraints(horizontal="MAX")
        child.layout_align = "STRETCH"
        assert not has_default_values(document, free)
        assert not has_default_values(document, child)

    def test_duplicate_roots_are_deduplicated(self, document, page):
        screen = _make_screen(document)
        _make_rect(document, screen, "Badge", x=350, y=750, width=40, height=40)
        once = check_layout(document, [page])
        twice = check_layout(document, [page, page])
        assert len(twice) == len(once) == 1

    def test_only_frame_and_component_parents_are_inspected(self, document):
        group = document.create_node("GROUP", name="Group", width=400, height=800)
        _make_rect(document, group, "Badge", x=350, y=750, width=40, height=40)
        assert check_layout(document) == []

    def test_zero_size_parent_is_skipped(self, document):
        screen = _make_screen(document, width=0, height=0)
        _make_rect(document, screen, "Dot", width=0, height=0)
        assert check_layout(document) == []

    def test_payload_shape(self, document):
        screen = _make_screen(document)
        _make_rect(document, screen, "Badge", x=350, y=750, width=40, height=40)
        payload = check_layout(document)[0].to_payload()
        assert payload["kind"] == "corner_constraint_mismatch"
        assert set(payload) >= {"nodeId", "nodeName", "nodeType", "parentId", "parentName",
                                "severity", "description", "suggestion", "actual", "expected"}
