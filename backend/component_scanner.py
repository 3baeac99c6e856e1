"""
Component Scanner - Structural fingerprinting of frames and groups

Every FRAME/GROUP with at least one child gets a fingerprint built from its
type, its size snapped to a 4px grid and the sorted fingerprints of its
children (depth-capped). Nodes sharing a fingerprint form a ComponentGroup:
candidates for extraction into one reusable component.

Group members are captured as NodeSnapshot values, never live nodes, since the
converter mutates the tree while it walks the list.
"""

import logging
import math
import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from pydantic import ConfigDict, Field

from component_diff import DiffEntry, compute_diffs
from scene_graph import PROTECTED_TYPES, CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

SNAP = 4
MAX_DEPTH = 4
CANDIDATE_TYPES = frozenset({"FRAME", "GROUP"})

_TRAILING_NUMBER = re.compile(r"[\s_\-]?\d+$")
_TRAILING_STATE = re.compile(
    r"[\s_\-]+(default|hover|pressed|active|disabled|selected|focus|normal)$", re.IGNORECASE
)


class NodeSnapshot(CamelModel):
    """Value capture of a group member taken at scan time."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    type: str = ""
    width: float = 0.0
    height: float = 0.0
    absolute_x: float = 0.0
    absolute_y: float = 0.0
    relative_x: float = 0.0
    relative_y: float = 0.0
    parent_id: str = ""
    parent_name: str = ""
    page_name: str = ""
    inside_protected: bool = False


class ComponentGroup(CamelModel):
    fingerprint: str
    label: str
    # nodes[0] is the master
    nodes: List[NodeSnapshot]
    pages: List[str] = Field(default_factory=list)
    has_diffs: bool = False
    diffs: List[DiffEntry] = Field(default_factory=list)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def snap(value: float, grid: int = SNAP) -> int:
    return round_half_up(value / grid) * grid


def build_fingerprint(document: Document, node: SceneNode, depth: int = 0,
                      grid: int = SNAP, max_depth: int = MAX_DEPTH) -> str:
    base = f"{node.type}:{snap(node.width or 0, grid)}x{snap(node.height or 0, grid)}"
    if depth >= max_depth or not node.children:
        return base
    child_prints = sorted(
        build_fingerprint(document, child, depth + 1, grid, max_depth)
        for child in document.children_of(node)
    )
    return f"{base}[{','.join(child_prints)}]"


def snapshot_node(document: Document, node: SceneNode, page_name: Optional[str] = None) -> NodeSnapshot:
    parent = document.parent_of(node)
    abs_x, abs_y = document.absolute_position(node)
    if page_name is None:
        page = document.page_of(node)
        page_name = page.name if page is not None else ""
    return NodeSnapshot(
        id=node.id,
        name=node.name or "",
        type=node.type,
        width=node.width,
        height=node.height,
        absolute_x=abs_x,
        absolute_y=abs_y,
        relative_x=node.x,
        relative_y=node.y,
        parent_id=parent.id if parent is not None else "",
        parent_name=parent.name if parent is not None else "",
        page_name=page_name,
        inside_protected=document.is_inside_protected(node),
    )


def derive_label(nodes: List[NodeSnapshot]) -> str:
    """Shared base name of the members, or a "W×H frame" fallback."""
    names = [n.name.strip().lower() for n in nodes]
    base = _TRAILING_NUMBER.sub("", names[0])
    base = _TRAILING_STATE.sub("", base).strip()

    if base:
        numbered = re.compile(rf"^{re.escape(base)}[\s_\-]?\d+$")
        if all(
            n == base or n.startswith((base + " ", base + "_", base + "-")) or numbered.match(n)
            for n in names
        ):
            return base

    first = nodes[0]
    return f"{round_half_up(first.width)}×{round_half_up(first.height)} frame"


def scan_component_candidates(document: Document, pages: Optional[Iterable[SceneNode]] = None,
                              include_protected: bool = False) -> List[ComponentGroup]:
    """Group structurally identical frames/groups across `pages` (all pages by default).

    Component and instance subtrees are skipped unless `include_protected` is set.
    """
    roots = list(pages) if pages is not None else document.pages
    buckets: "OrderedDict[str, List[NodeSnapshot]]" = OrderedDict()

    def scan(node: SceneNode, page_name: str, inside: bool) -> None:
        if node.type in CANDIDATE_TYPES and node.children and (include_protected or not inside):
            fingerprint = build_fingerprint(document, node)
            buckets.setdefault(fingerprint, []).append(snapshot_node(document, node, page_name))

        if node.type in PROTECTED_TYPES:
            if not include_protected:
                return
            inside = True
        for child in document.children_of(node):
            scan(child, page_name, inside)

    for page in roots:
        scan(page, page.name, document.is_inside_protected(page))

    groups: List[ComponentGroup] = []
    for fingerprint, members in buckets.items():
        if len(members) < 2:
            continue
        diffs = compute_diffs(document, members)
        groups.append(ComponentGroup(
            fingerprint=fingerprint,
            label=derive_label(members),
            nodes=members,
            pages=list(dict.fromkeys(m.page_name for m in members)),
            has_diffs=any(d.has_changes for d in diffs),
            diffs=diffs,
        ))

    groups.sort(key=lambda g: (-len(g.nodes), g.label.casefold()))
    logger.info(f"🧩 Component scan found {len(groups)} group(s) across {len(roots)} root(s)")
    return groups
