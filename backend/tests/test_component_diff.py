"""Tests for component_diff.py - text/fill diffs and override application."""

from __future__ import annotations

from component_diff import (
    DiffEntry,
    TextDiff,
    apply_overrides,
    compute_diffs,
    diff_against_master,
    fills_equal,
    rgb_to_hex,
    text_leaves,
)
from component_scanner import snapshot_node


def _solid(r, g, b, opacity=1.0) -> dict:
    return {"type": "SOLID", "color": {"r": r, "g": g, "b": b}, "opacity": opacity}


def _make_card(document, label="A", fills=None, parent=None):
    card = document.create_frame(parent=parent, name="Card", width=200, height=100, fills=fills or [])
    document.create_text(label, parent=card, name="label", width=100, height=20)
    return card


# ─── Fill comparison ───────────────────────────────────────────────────────

class TestFills:
    def test_rgb_to_hex(self):
        assert rgb_to_hex(1, 0.5, 0) == "#ff8000"
        assert rgb_to_hex(0, 0, 0) == "#000000"
        assert rgb_to_hex(1.2, -0.1, 1) == "#ff00ff"

    def test_tolerance(self):
        assert fills_equal([_solid(1, 0, 0)], [_solid(0.995, 0, 0)])
        assert not fills_equal([_solid(1, 0, 0)], [_solid(0.9, 0, 0)])
        assert not fills_equal([_solid(1, 0, 0, 1.0)], [_solid(1, 0, 0, 0.5)])

    def test_length_and_type(self):
        assert not fills_equal([_solid(1, 0, 0)], [])
        assert not fills_equal([_solid(1, 0, 0)], [{"type": "GRADIENT_LINEAR"}])
        # Non-solid paints are compared by type only
        assert fills_equal([{"type": "IMAGE", "imageHash": "a"}], [{"type": "IMAGE", "imageHash": "b"}])


# ─── Diff computation ──────────────────────────────────────────────────────

class TestDiff:
    def test_text_difference(self, document):
        master = _make_card(document, "A")
        other = _make_card(document, "B")
        entry = diff_against_master(document, master, other)
        assert entry.text_diffs == [TextDiff(child_name="label", value="B")]
        assert entry.raw_fills is None
        assert entry.has_changes

    def test_identical_members_have_no_changes(self, document):
        master = _make_card(document, "A", fills=[_solid(1, 1, 1)])
        other = _make_card(document, "A", fills=[_solid(1, 1, 1)])
        entry = diff_against_master(document, master, other)
        assert not entry.has_changes
        assert entry.fill_diffs == []

    def test_fill_difference_carries_whole_array(self, document):
        master = _make_card(document, fills=[_solid(1, 0, 0)])
        other = _make_card(document, fills=[_solid(0, 0, 1, 0.5), {"type": "IMAGE"}])
        entry = diff_against_master(document, master, other)
        assert entry.raw_fills == other.fills
        assert entry.raw_fills is not other.fills
        assert len(entry.fill_diffs) == 1
        assert entry.fill_diffs[0].hex == "#0000ff"
        assert entry.fill_diffs[0].a == 0.5

    def test_first_text_layer_with_a_name_wins(self, document):
        card = document.create_frame(name="Card")
        first = document.create_text("one", parent=card, name="label")
        document.create_text("two", parent=card, name="label")
        assert text_leaves(document, card)["label"] is first

    def test_text_without_master_counterpart_is_ignored(self, document):
        master = _make_card(document, "A")
        other = _make_card(document, "A")
        document.create_text("extra", parent=other, name="subtitle")
        assert diff_against_master(document, master, other).text_diffs == []

    def test_compute_diffs_against_first_member(self, document):
        cards = [_make_card(document, label) for label in ("A", "A", "C")]
        snapshots = [snapshot_node(document, c) for c in cards]
        document.remove(cards[1])

        diffs = compute_diffs(document, snapshots)

        assert [d.node_id for d in diffs] == [cards[1].id, cards[2].id]
        assert not diffs[0].has_changes
        assert diffs[1].text_diffs[0].value == "C"
        assert compute_diffs(document, snapshots[:1]) == []


# ─── Overrides ─────────────────────────────────────────────────────────────

class TestApplyOverrides:
    def test_diff_round_trip_through_instance(self, document, page):
        master = document.create_component(name="Card", width=200, height=100)
        document.create_text("A", parent=master, name="label")
        candidate = _make_card(document, "B")

        entry = diff_against_master(document, master, candidate)
        assert entry.text_diffs == [TextDiff(child_name="label", value="B")]

        instance = document.create_instance(master, parent=page)
        assert apply_overrides(document, instance, entry) == 1
        assert text_leaves(document, instance)["label"].characters == "B"
        # The definition is untouched
        assert text_leaves(document, master)["label"].characters == "A"

    def test_fill_override(self, document, page):
        master = document.create_component(name="Card", fills=[_solid(1, 0, 0)])
        instance = document.create_instance(master, parent=page)
        entry = DiffEntry(node_id="x", raw_fills=[_solid(0, 1, 0)])
        assert apply_overrides(document, instance, entry) == 1
        assert instance.fills == [_solid(0, 1, 0)]
        assert master.fills == [_solid(1, 0, 0)]

    def test_missing_layer_and_none_diff(self, document, page):
        master = document.create_component(name="Card")
        instance = document.create_instance(master, parent=page)
        entry = DiffEntry(node_id="x", text_diffs=[TextDiff(child_name="nope", value="Z")])
        assert apply_overrides(document, instance, entry) == 0
        assert apply_overrides(document, instance, None) == 0

    def test_payload_aliases(self):
        entry = DiffEntry.model_validate({
            "nodeId": "1:2",
            "textDiffs": [{"childName": "label", "value": "B"}],
            "rawFills": None,
        })
        assert entry.text_diffs[0].child_name == "label"
        assert entry.model_dump(by_alias=True)["textDiffs"][0]["childName"] == "label"
