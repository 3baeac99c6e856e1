"""
Layout Analysis - Constraint / layout-intent heuristics

Infers a node's intended responsive behaviour from where it sits inside its
parent and flags mismatches against the constraints or auto-layout sizing it
actually declares. Scans are read-only; nodes that cannot be classified are
skipped rather than raising.
"""

import logging
from enum import Enum
from typing import Callable, Iterable, List, Literal, Optional

from layout_config import DEFAULT_LAYOUT_CONFIG, LayoutConfig
from layout_geometry import center_offsets, coverage, edge_gaps, inner_box, is_near
from scene_graph import CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)


class LayoutIssueKind(str, Enum):
    CORNER_CONSTRAINT_MISMATCH = "corner_constraint_mismatch"
    EDGE_CONSTRAINT_MISMATCH = "edge_constraint_mismatch"
    BOTH_EDGES_NOT_STRETCH = "both_edges_not_stretch"
    WIDE_NOT_FILL = "wide_not_fill"
    TALL_NOT_FILL = "tall_not_fill"
    CENTERED_H_NOT_CENTER = "centered_h_not_center"
    CENTERED_V_NOT_CENTER = "centered_v_not_center"
    SIBLING_FILL_CANDIDATE = "sibling_fill_candidate"
    FULL_BLEED_NOT_STRETCH = "full_bleed_not_stretch"


class LayoutIssue(CamelModel):
    node_id: str
    node_name: str
    node_type: str
    parent_id: str
    parent_name: str
    kind: LayoutIssueKind
    severity: Literal["high", "medium"]
    description: str
    suggestion: str
    actual: str
    expected: str


# Parents whose box model drives constraint behaviour
LAYOUT_PARENT_TYPES = frozenset({"FRAME", "COMPONENT"})

# Types ignored when comparing widths in an auto-layout row
SIBLING_FILL_EXCLUDED = frozenset({"VECTOR", "BOOLEAN_OPERATION"})

_STRETCHY = ("STRETCH", "SCALE")

# Friendly anchor names used in `expected` strings
_H_ANCHOR = {"MIN": "LEFT", "MAX": "RIGHT"}
_V_ANCHOR = {"MIN": "TOP", "MAX": "BOTTOM"}


# ─── Helpers ───────────────────────────────────────────────────────────────

def _layout_parent(document: Document, node: SceneNode) -> Optional[SceneNode]:
    parent = document.parent_of(node)
    if parent is None or parent.type not in LAYOUT_PARENT_TYPES:
        return None
    return parent


def _is_auto_layout_child(document: Document, node: SceneNode) -> bool:
    parent = document.parent_of(node)
    return parent is not None and parent.is_auto_layout


def _h(node: SceneNode) -> str:
    return node.constraints.horizontal if node.constraints else "MIN"


def _v(node: SceneNode) -> str:
    return node.constraints.vertical if node.constraints else "MIN"


def has_default_values(document: Document, node: SceneNode) -> bool:
    """True when the designer never touched the node's resize behaviour."""
    if _is_auto_layout_child(document, node):
        return node.layout_grow == 0 and node.layout_align == "INHERIT"
    if node.constraints is not None:
        return node.constraints.horizontal == "MIN" and node.constraints.vertical == "MIN"
    return True


def _issue(node: SceneNode, parent: SceneNode, kind: LayoutIssueKind, severity: str,
           description: str, suggestion: str, actual: str, expected: str) -> LayoutIssue:
    return LayoutIssue(
        node_id=node.id, node_name=node.name, node_type=node.type,
        parent_id=parent.id, parent_name=parent.name,
        kind=kind, severity=severity,
        description=description, suggestion=suggestion,
        actual=actual, expected=expected,
    )


# ─── Detectors ─────────────────────────────────────────────────────────────

def detect_edge_family(document: Document, node: SceneNode, parent: SceneNode,
                       cfg: LayoutConfig) -> Optional[LayoutIssue]:
    """Corner, both-edges and single-edge checks; first match wins."""
    checks = cfg.checks
    if not checks.corner_constraint and not checks.edge_constraint:
        return None
    if _is_auto_layout_child(document, node) or node.constraints is None:
        return None

    box = inner_box(parent)
    if box.width <= 0 or box.height <= 0:
        return None

    gaps = edge_gaps(node, box)
    prox = cfg.edge_proximity_ratio
    near_left = is_near(gaps.left, box.width, prox)
    near_right = is_near(gaps.right, box.width, prox)
    near_top = is_near(gaps.top, box.height, prox)
    near_bottom = is_near(gaps.bottom, box.height, prox)
    hc, vc = _h(node), _v(node)

    if checks.corner_constraint:
        corners = (
            (near_right and near_bottom, "MAX", "MAX"),
            (near_right and near_top, "MAX", "MIN"),
            (near_left and near_bottom, "MIN", "MAX"),
            (near_left and near_top, "MIN", "MIN"),
        )
        for near, h_anchor, v_anchor in corners:
            if not near:
                continue
            # A stretching axis already follows both of its edges
            h_ok = hc == h_anchor or hc in _STRETCHY
            v_ok = vc == v_anchor or vc in _STRETCHY
            if h_ok and v_ok:
                break
            h_expected = hc if hc in _STRETCHY else _H_ANCHOR[h_anchor]
            v_expected = vc if vc in _STRETCHY else _V_ANCHOR[v_anchor]
            corner = f"{_V_ANCHOR[v_anchor].lower()}-{_H_ANCHOR[h_anchor].lower()}"
            return _issue(
                node, parent, LayoutIssueKind.CORNER_CONSTRAINT_MISMATCH, "high",
                f'"{node.name}" sits in the {corner} corner but is not pinned there',
                f"Set horizontal constraint to {h_expected} and vertical to {v_expected}",
                f"H: {hc}, V: {vc}",
                f"H: {h_expected}, V: {v_expected}",
            )

    if not checks.edge_constraint:
        return None

    if near_left and near_right and hc not in _STRETCHY:
        return _issue(
            node, parent, LayoutIssueKind.BOTH_EDGES_NOT_STRETCH, "high",
            f'"{node.name}" spans from left ({round(gaps.left)}px) to right ({round(gaps.right)}px) edge but won\'t stretch on resize',
            "Set horizontal constraint to LEFT & RIGHT (STRETCH) so it fills the width on all screen sizes",
            f"H: {hc}",
            "H: STRETCH",
        )
    if near_top and near_bottom and vc not in _STRETCHY:
        return _issue(
            node, parent, LayoutIssueKind.BOTH_EDGES_NOT_STRETCH, "high",
            f'"{node.name}" spans from top ({round(gaps.top)}px) to bottom ({round(gaps.bottom)}px) edge but won\'t stretch on resize',
            "Set vertical constraint to TOP & BOTTOM (STRETCH) so it fills the height on all screen sizes",
            f"V: {vc}",
            "V: STRETCH",
        )

    single_edges = (
        ("H", near_right and not near_left, hc, "MAX", "right", gaps.right),
        ("H", near_left and not near_right, hc, "MIN", "left", gaps.left),
        ("V", near_bottom and not near_top, vc, "MAX", "bottom", gaps.bottom),
        ("V", near_top and not near_bottom, vc, "MIN", "top", gaps.top),
    )
    for axis, near, current, anchor, edge, gap in single_edges:
        if not near or current in (anchor, "STRETCH"):
            continue
        friendly = (_H_ANCHOR if axis == "H" else _V_ANCHOR)[anchor]
        axis_word = "horizontal" if axis == "H" else "vertical"
        return _issue(
            node, parent, LayoutIssueKind.EDGE_CONSTRAINT_MISMATCH, "high",
            f'"{node.name}" is close to the {edge} edge ({round(gap)}px gap) but constrained to {current}',
            f"Set {axis_word} constraint to {friendly} so it stays anchored when the screen resizes",
            f"{axis}: {current}",
            f"{axis}: {friendly}",
        )
    return None


def _detect_fill(document: Document, node: SceneNode, parent: SceneNode, cfg: LayoutConfig,
                 horizontal: bool) -> Optional[LayoutIssue]:
    if not cfg.checks.wide_tall:
        return None
    box = inner_box(parent)
    ratio = coverage(node.width if horizontal else node.height, box.width if horizontal else box.height)
    if ratio is None or ratio < cfg.fill_ratio:
        return None

    kind = LayoutIssueKind.WIDE_NOT_FILL if horizontal else LayoutIssueKind.TALL_NOT_FILL
    dimension = "width" if horizontal else "height"
    pct = round(ratio * 100)

    if _is_auto_layout_child(document, node):
        # Main axis fills via layoutGrow, cross axis via layoutAlign
        main_axis = "HORIZONTAL" if horizontal else "VERTICAL"
        if parent.layout_mode == main_axis:
            if node.layout_grow != 0:
                return None
            return _issue(
                node, parent, kind, "medium",
                f'"{node.name}" takes {pct}% of the container {dimension} but has layoutGrow = 0 (Fixed)',
                "Set to Fill container (layoutGrow = 1) so it expands when siblings are added",
                "layoutGrow: 0 (Fixed)",
                "layoutGrow: 1 (Fill)",
            )
        if node.layout_align == "STRETCH":
            return None
        return _issue(
            node, parent, kind, "medium",
            f'"{node.name}" spans {pct}% of the container {dimension} but layoutAlign is not STRETCH',
            f"Set layoutAlign to STRETCH so it fills the container {dimension}",
            f"layoutAlign: {node.layout_align}",
            "layoutAlign: STRETCH",
        )

    if node.constraints is None:
        return None
    axis = "H" if horizontal else "V"
    current = _h(node) if horizontal else _v(node)
    if current in _STRETCHY:
        return None
    axis_word = "horizontal" if horizontal else "vertical"
    return _issue(
        node, parent, kind, "medium",
        f'"{node.name}" covers {pct}% of parent {dimension} but {axis_word} constraint is not SCALE/STRETCH',
        f"Set {axis_word} constraint to STRETCH (or SCALE) to fill on resize",
        f"{axis}: {current}",
        f"{axis}: STRETCH",
    )


def detect_wide_not_fill(document: Document, node: SceneNode, parent: SceneNode,
                         cfg: LayoutConfig) -> Optional[LayoutIssue]:
    return _detect_fill(document, node, parent, cfg, horizontal=True)


def detect_tall_not_fill(document: Document, node: SceneNode, parent: SceneNode,
                         cfg: LayoutConfig) -> Optional[LayoutIssue]:
    return _detect_fill(document, node, parent, cfg, horizontal=False)


def detect_full_bleed_not_stretch(document: Document, node: SceneNode, parent: SceneNode,
                                  cfg: LayoutConfig) -> Optional[LayoutIssue]:
    if not cfg.checks.full_bleed:
        return None
    if _is_auto_layout_child(document, node) or node.constraints is None:
        return None

    box = inner_box(parent)
    w_ratio = coverage(node.width, box.width)
    h_ratio = coverage(node.height, box.height)
    if w_ratio is None or h_ratio is None:
        return None
    if w_ratio < cfg.full_bleed_ratio or h_ratio < cfg.full_bleed_ratio:
        return None

    hc, vc = _h(node), _v(node)
    if hc in _STRETCHY or vc in _STRETCHY:
        return None
    return _issue(
        node, parent, LayoutIssueKind.FULL_BLEED_NOT_STRETCH, "medium",
        f'"{node.name}" covers {round(w_ratio * 100)}% × {round(h_ratio * 100)}% of its parent but won\'t stretch on resize',
        "Set both constraints to SCALE (or LEFT & RIGHT + TOP & BOTTOM) so it fills the container on all screen sizes",
        f"H: {hc}, V: {vc}",
        "H: SCALE, V: SCALE",
    )


def detect_centered_not_center(document: Document, node: SceneNode, parent: SceneNode,
                               cfg: LayoutConfig) -> List[LayoutIssue]:
    """Horizontal and vertical centring are independent kinds; both may fire."""
    if not cfg.checks.centered_not_center:
        return []
    if _is_auto_layout_child(document, node) or node.constraints is None:
        return []

    box = inner_box(parent)
    if box.width <= 0 or box.height <= 0:
        return []

    off_h, off_v = center_offsets(node, box)
    tol = cfg.center_tolerance_px
    allowed = ("CENTER",) + _STRETCHY
    issues = []
    hc, vc = _h(node), _v(node)

    if off_h <= tol and hc not in allowed:
        issues.append(_issue(
            node, parent, LayoutIssueKind.CENTERED_H_NOT_CENTER, "medium",
            f'"{node.name}" is horizontally centred ({round(off_h)}px off) but constraint is {hc}',
            "Set horizontal constraint to CENTER so it stays centred on all screen widths",
            f"H: {hc}",
            "H: CENTER",
        ))
    if off_v <= tol and vc not in allowed:
        issues.append(_issue(
            node, parent, LayoutIssueKind.CENTERED_V_NOT_CENTER, "medium",
            f'"{node.name}" is vertically centred ({round(off_v)}px off) but constraint is {vc}',
            "Set vertical constraint to CENTER so it stays centred on all screen heights",
            f"V: {vc}",
            "V: CENTER",
        ))
    return issues


def detect_sibling_fill_candidates(document: Document, container: SceneNode,
                                   cfg: LayoutConfig) -> List[LayoutIssue]:
    """Widest fixed child dominating a horizontal auto-layout row."""
    if not cfg.checks.sibling_fill or container.layout_mode != "HORIZONTAL":
        return []
    row = [c for c in document.children_of(container) if c.type not in SIBLING_FILL_EXCLUDED]
    if len(row) < 2:
        return []

    total = sum(c.width for c in row)
    widest = max(c.width for c in row)
    if total <= 0:
        return []

    issues = []
    for child in row:
        if child.width != widest or child.width / total < 0.5 or child.layout_grow != 0:
            continue
        if cfg.only_defaults and not has_default_values(document, child):
            continue
        if not any(c is not child and c.width < child.width * 0.6 for c in row):
            continue
        issues.append(_issue(
            child, container, LayoutIssueKind.SIBLING_FILL_CANDIDATE, "high",
            f'"{child.name}" is the widest item ({round(child.width)}px, {round(child.width / total * 100)}% of row) in an Auto Layout row but is Fixed',
            "Set to Fill container (layoutGrow = 1) so smaller siblings stay fixed while this one expands",
            "layoutGrow: 0 (Fixed)",
            "layoutGrow: 1 (Fill)",
        ))
    return issues


# Per-node detectors in priority order
_NODE_DETECTORS: List[Callable[..., object]] = [
    detect_edge_family,
    detect_wide_not_fill,
    detect_tall_not_fill,
    detect_full_bleed_not_stretch,
    detect_centered_not_center,
]


# ─── Entry point ───────────────────────────────────────────────────────────

def check_layout(document: Document, pages: Optional[Iterable[SceneNode]] = None,
                 config: Optional[LayoutConfig] = None) -> List[LayoutIssue]:
    """Scan every node under `pages` (all pages by default) and return deduplicated issues."""
    cfg = config or DEFAULT_LAYOUT_CONFIG
    roots = list(pages) if pages is not None else document.pages
    issues: List[LayoutIssue] = []
    seen: set[tuple[str, LayoutIssueKind]] = set()

    def add(found) -> None:
        if found is None:
            return
        for issue in found if isinstance(found, list) else [found]:
            key = (issue.node_id, issue.kind)
            if key in seen:
                continue
            seen.add(key)
            issues.append(issue)

    scanned = 0
    for root in roots:
        for node in document.walk(root):
            if node.type in ("PAGE", "DOCUMENT"):
                continue
            scanned += 1
            parent = _layout_parent(document, node)
            if parent is not None and not (cfg.only_defaults and not has_default_values(document, node)):
                for detector in _NODE_DETECTORS:
                    add(detector(document, node, parent, cfg))
            if node.type in LAYOUT_PARENT_TYPES:
                add(detect_sibling_fill_candidates(document, node, cfg))

    logger.info(f"🔎 Layout scan checked {scanned} nodes, found {len(issues)} issue(s)")
    return issues
