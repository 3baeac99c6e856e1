"""Tests for component_scanner.py - structural fingerprints and candidate groups."""

from __future__ import annotations

import pytest

from component_scanner import (
    NodeSnapshot,
    build_fingerprint,
    derive_label,
    round_half_up,
    scan_component_candidates,
    snap,
    snapshot_node,
)


def _make_card(document, parent=None, name="Card", x=0, y=0, title="Title",
               leaf="RECTANGLE", width=200, icon_first=False):
    card = document.create_frame(parent=parent, name=name, x=x, y=y, width=width, height=100)

    def add_title():
        document.create_text(title, parent=card, name="title", x=10, y=10, width=100, height=20)

    def add_icon():
        document.create_node(leaf, parent=card, name="icon", x=150, y=10, width=40, height=40)

    for step in ((add_icon, add_title) if icon_first else (add_title, add_icon)):
        step()
    return card


def _make_snapshot(name, width=200, height=100) -> NodeSnapshot:
    return NodeSnapshot(id=name, name=name, type="FRAME", width=width, height=height)


# ─── Rounding ──────────────────────────────────────────────────────────────

class TestSnapping:
    @pytest.mark.parametrize("value,expected", [(2.5, 3), (2.4, 2), (-2.5, -2), (0, 0)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    @pytest.mark.parametrize("value,expected", [(100, 100), (101, 100), (102, 104), (98, 100), (1.9, 0)])
    def test_snap_to_grid(self, value, expected):
        assert snap(value) == expected


# ─── Fingerprints ──────────────────────────────────────────────────────────

class TestFingerprint:
    def test_format(self, document):
        card = _make_card(document)
        assert build_fingerprint(document, card) == "FRAME:200x100[RECTANGLE:40x40,TEXT:100x20]"

    def test_identical_structure_gives_identical_fingerprint(self, document):
        a = _make_card(document, name="A")
        b = _make_card(document, name="B", icon_first=True, title="Other text")
        c = _make_card(document, name="C", width=201)
        assert build_fingerprint(document, a) == build_fingerprint(document, b) == build_fingerprint(document, c)

    def test_leaf_type_change_changes_fingerprint(self, document):
        a = _make_card(document, name="A")
        b = _make_card(document, name="B", leaf="ELLIPSE")
        assert build_fingerprint(document, a) != build_fingerprint(document, b)

    def test_size_outside_grid_changes_fingerprint(self, document):
        a = _make_card(document, name="A")
        b = _make_card(document, name="B", width=210)
        assert build_fingerprint(document, a) != build_fingerprint(document, b)

    def test_depth_cap(self, document):
        card = _make_card(document)
        assert build_fingerprint(document, card, max_depth=0) == "FRAME:200x100"
        outer = document.create_frame(name="Outer", width=400, height=400)
        inner = document.create_frame(parent=outer, name="Inner", width=100, height=100)
        document.create_node("RECTANGLE", parent=inner, width=10, height=10)
        assert build_fingerprint(document, outer, max_depth=1) == "FRAME:400x400[FRAME:100x100]"


# ─── Snapshots & labels ────────────────────────────────────────────────────

class TestSnapshots:
    def test_snapshot_captures_geometry(self, document):
        board = document.create_frame(name="Board", x=100, y=50, width=800, height=600)
        card = _make_card(document, parent=board, x=10, y=20)
        snap_ = snapshot_node(document, card)
        assert (snap_.absolute_x, snap_.absolute_y) == (110, 70)
        assert (snap_.relative_x, snap_.relative_y) == (10, 20)
        assert snap_.parent_id == board.id
        assert snap_.parent_name == "Board"
        assert snap_.page_name == "Page 1"
        assert snap_.inside_protected is False

    def test_snapshot_is_frozen(self):
        with pytest.raises(Exception):
            _make_snapshot("x").name = "y"

    @pytest.mark.parametrize("names,label", [
        (["Card 1", "Card 2", "Card 3"], "card"),
        (["Card Hover", "Card Default"], "card"),
        (["button_1", "button_2"], "button"),
        (["Alpha", "Beta"], "200×100 frame"),
    ])
    def test_derive_label(self, names, label):
        assert derive_label([_make_snapshot(n) for n in names]) == label


# ─── Scan ──────────────────────────────────────────────────────────────────

class TestScan:
    def test_groups_sorted_by_size_then_label(self, document):
        for i in range(3):
            _make_card(document, name=f"Card {i + 1}", x=i * 250, title=f"T{i}")
        for name in ("Tile A", "Tile B"):
            tile = document.create_frame(name=name, width=100, height=100)
            document.create_node("RECTANGLE", parent=tile, width=50, height=50)

        groups = scan_component_candidates(document)

        assert [len(g.nodes) for g in groups] == [3, 2]
        cards, tiles = groups
        assert cards.label == "card"
        assert [n.name for n in cards.nodes] == ["Card 1", "Card 2", "Card 3"]
        assert cards.pages == ["Page 1"]
        assert cards.has_diffs is True
        assert len(cards.diffs) == 2
        assert tiles.label == "100×100 frame"
        assert tiles.has_diffs is False

    def test_singletons_and_leafless_frames_are_ignored(self, document):
        _make_card(document, name="Only")
        document.create_frame(name="Empty A", width=50, height=50)
        document.create_frame(name="Empty B", width=50, height=50)
        assert scan_component_candidates(document) == []

    def test_protected_subtrees_are_skipped_by_default(self, document):
        library = document.create_component(name="Library", width=800, height=400)
        _make_card(document, parent=library, name="Card 1")
        _make_card(document, parent=library, name="Card 2", x=250)

        assert scan_component_candidates(document) == []

        groups = scan_component_candidates(document, include_protected=True)
        assert len(groups) == 1
        assert all(n.inside_protected for n in groups[0].nodes)

    def test_groups_span_pages(self, document, page):
        archive = document.create_page("Archive")
        _make_card(document, parent=page, name="Card 1")
        _make_card(document, parent=archive, name="Card 2")

        groups = scan_component_candidates(document)
        assert groups[0].pages == ["Page 1", "Archive"]
        assert scan_component_candidates(document, [page]) == []

    def test_payload_is_camel_case(self, document):
        _make_card(document, name="Card 1")
        _make_card(document, name="Card 2")
        payload = scan_component_candidates(document)[0].to_payload()
        assert set(payload) == {"fingerprint", "label", "nodes", "pages", "hasDiffs", "diffs"}
        assert "absoluteX" in payload["nodes"][0]
