"""
Component Candidates - Repeating sibling frames worth turning into components

Two lightweight heuristics over direct siblings, reported by analyze_document:
- same base name ("button_1", "Button 2", "button-hover" all become "button");
- same size (within SIZE_TOLERANCE) and same non-zero child count.

This is the quick analysis-tab hint. The structural fingerprint scan in
component_scanner is what the conversion flow uses.
"""

import logging
import re
from typing import Dict, Iterable, List, Sequence

from scene_graph import CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

CANDIDATE_TYPES = frozenset({"FRAME", "GROUP", "COMPONENT"})
SIZE_TOLERANCE = 0.1

_TRAILING_NUMBER = re.compile(r"[\s_\-]?\d+$")
_STATE_SUFFIX = re.compile(
    r"[\s_\-]+(default|hover|pressed|active|disabled|selected|focus|normal)$",
    re.IGNORECASE,
)


class ComponentCandidate(CamelModel):
    group_name: str
    node_ids: List[str]
    node_names: List[str]
    reason: str
    parent_id: str
    parent_name: str


def base_name(name: str) -> str:
    """Strip a trailing number, then a trailing state word; lower-cased."""
    stripped = _TRAILING_NUMBER.sub("", name or "", count=1)
    stripped = _STATE_SUFFIX.sub("", stripped, count=1)
    return stripped.strip().lower()


def sizes_similar(a: SceneNode, b: SceneNode, tolerance: float = SIZE_TOLERANCE) -> bool:
    w_diff = abs(a.width - b.width) / max(a.width, b.width, 1)
    h_diff = abs(a.height - b.height) / max(a.height, b.height, 1)
    return w_diff <= tolerance and h_diff <= tolerance


def _child_count(node: SceneNode) -> int:
    return len(node.children or [])


def _overlaps(found: List[ComponentCandidate], parent: SceneNode, group: Sequence[SceneNode]) -> bool:
    ids = {n.id for n in group}
    return any(c.parent_id == parent.id and ids.intersection(c.node_ids) for c in found)


def _by_name(parent: SceneNode, eligible: List[SceneNode], found: List[ComponentCandidate]) -> None:
    groups: Dict[str, List[SceneNode]] = {}
    for child in eligible:
        base = base_name(child.name)
        if base:
            groups.setdefault(base, []).append(child)

    for base, group in groups.items():
        if len(group) < 2 or _overlaps(found, parent, group):
            continue
        found.append(ComponentCandidate(
            group_name=base,
            node_ids=[n.id for n in group],
            node_names=[n.name for n in group],
            reason=f'{len(group)} similar nodes named "{base}" - component candidate',
            parent_id=parent.id,
            parent_name=parent.name,
        ))


def _by_structure(parent: SceneNode, eligible: List[SceneNode], found: List[ComponentCandidate]) -> None:
    processed: set[str] = set()
    for i, a in enumerate(eligible):
        if a.id in processed:
            continue
        a_base = base_name(a.name)
        similar = [a]
        for b in eligible[i + 1:]:
            if b.id in processed:
                continue
            # Pairs sharing a base name belong to the name heuristic
            if a_base and a_base == base_name(b.name):
                continue
            if sizes_similar(a, b) and _child_count(a) == _child_count(b) > 0:
                similar.append(b)
                processed.add(b.id)

        if len(similar) < 2:
            continue
        processed.add(a.id)
        if _overlaps(found, parent, similar):
            continue
        size = f"{round(a.width)}×{round(a.height)}"
        found.append(ComponentCandidate(
            group_name=f"{size} structure",
            node_ids=[n.id for n in similar],
            node_names=[n.name for n in similar],
            reason=f"{len(similar)} nodes share the same size ({size}) and structure - component candidate",
            parent_id=parent.id,
            parent_name=parent.name,
        ))


def find_component_candidates(document: Document, roots: Iterable[SceneNode]) -> List[ComponentCandidate]:
    found: List[ComponentCandidate] = []
    for root in roots:
        for node in document.walk(root):
            children = document.children_of(node)
            eligible = [c for c in children if c.type in CANDIDATE_TYPES]
            if len(eligible) < 2:
                continue
            _by_name(node, eligible, found)
            _by_structure(node, eligible, found)
    logger.debug(f"🔎 Candidate scan found {len(found)} repeating group(s)")
    return found
