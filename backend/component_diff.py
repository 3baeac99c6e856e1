"""
Component Diff - Content differences between group members and the master

Text leaves are matched by layer name, fills are compared per solid paint with
a small tolerance. Any fill mismatch carries the member's whole fill array as
the override; gradients and images are compared by type only.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field

from scene_graph import CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

FILL_TOLERANCE = 0.01


class TextDiff(CamelModel):
    child_name: str
    value: str


class FillDiff(CamelModel):
    fill_index: int
    hex: str
    r: float
    g: float
    b: float
    a: float


class DiffEntry(CamelModel):
    node_id: str
    node_name: str = ""
    text_diffs: List[TextDiff] = Field(default_factory=list)
    fill_diffs: List[FillDiff] = Field(default_factory=list)
    # Full fill array to restore on the instance; None when fills match the master
    raw_fills: Optional[List[Dict[str, Any]]] = None

    @property
    def has_changes(self) -> bool:
        return bool(self.text_diffs) or self.raw_fills is not None


def rgb_to_hex(r: float, g: float, b: float) -> str:
    def channel(v: float) -> str:
        return f"{max(0, min(255, int(v * 255 + 0.5))):02x}"
    return f"#{channel(r)}{channel(g)}{channel(b)}"


def _color(paint: Dict[str, Any]) -> Dict[str, float]:
    return paint.get("color") or {}


def fills_equal(a: Sequence[Dict[str, Any]], b: Sequence[Dict[str, Any]],
                tolerance: float = FILL_TOLERANCE) -> bool:
    if len(a) != len(b):
        return False
    for fa, fb in zip(a, b):
        if fa.get("type") != fb.get("type"):
            return False
        if fa.get("type") != "SOLID":
            continue
        ca, cb = _color(fa), _color(fb)
        for channel in ("r", "g", "b"):
            if abs(ca.get(channel, 0) - cb.get(channel, 0)) > tolerance:
                return False
        if abs(fa.get("opacity", 1) - fb.get("opacity", 1)) > tolerance:
            return False
    return True


def text_leaves(document: Document, root: SceneNode) -> Dict[str, SceneNode]:
    """TEXT descendants keyed by name; the first layer with a given name wins."""
    leaves: Dict[str, SceneNode] = {}
    for node in document.find_all(root, lambda n: n.type == "TEXT"):
        leaves.setdefault(node.name, node)
    return leaves


def diff_against_master(document: Document, master: SceneNode, node: SceneNode) -> DiffEntry:
    master_texts = text_leaves(document, master)
    text_diffs = []
    for name, leaf in text_leaves(document, node).items():
        master_leaf = master_texts.get(name)
        if master_leaf is not None and (master_leaf.characters or "") != (leaf.characters or ""):
            text_diffs.append(TextDiff(child_name=name, value=leaf.characters or ""))

    fill_diffs = []
    raw_fills = None
    if not fills_equal(master.fills or [], node.fills or []):
        raw_fills = copy.deepcopy(node.fills or [])
        for index, paint in enumerate(raw_fills):
            if paint.get("type") != "SOLID":
                continue
            color = _color(paint)
            r, g, b = color.get("r", 0), color.get("g", 0), color.get("b", 0)
            fill_diffs.append(FillDiff(
                fill_index=index, hex=rgb_to_hex(r, g, b),
                r=r, g=g, b=b, a=paint.get("opacity", 1),
            ))

    return DiffEntry(node_id=node.id, node_name=node.name, text_diffs=text_diffs,
                     fill_diffs=fill_diffs, raw_fills=raw_fills)


def compute_diffs(document: Document, members: Sequence[Any]) -> List[DiffEntry]:
    """Diff members[1:] against members[0]. Members are snapshots with `id`/`name`."""
    if len(members) < 2:
        return []
    master = document.get_node(members[0].id)
    if master is None:
        return []

    diffs = []
    for member in members[1:]:
        node = document.get_node(member.id)
        if node is None:
            diffs.append(DiffEntry(node_id=member.id, node_name=member.name))
            continue
        diffs.append(diff_against_master(document, master, node))
    return diffs


def apply_overrides(document: Document, instance: SceneNode, diff: Optional[DiffEntry]) -> int:
    """Write a member's text and fill differences onto its replacement instance."""
    if diff is None:
        return 0
    applied = 0
    if diff.text_diffs:
        leaves = text_leaves(document, instance)
        for text_diff in diff.text_diffs:
            target = leaves.get(text_diff.child_name)
            if target is None:
                logger.debug(f"⚠️ No text layer '{text_diff.child_name}' in instance {instance.id}")
                continue
            document.set_characters(target, text_diff.value)
            applied += 1
    if diff.raw_fills is not None:
        instance.fills = copy.deepcopy(diff.raw_fills)
        applied += 1
    return applied
