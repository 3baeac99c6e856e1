"""
Layout Fix - Applies the correction implied by a LayoutIssue

Each issue kind maps to one handler. Handlers read the issue's `expected`
field ("H: RIGHT, V: BOTTOM", "layoutGrow: 1 (Fill)", ...) and write the
matching constraint or auto-layout flag. Re-applying a fix is a no-op that
still succeeds.
"""

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from errors import NodeNotFoundError, RequestValidationError, UnsupportedNodeError
from layout_analysis import LayoutIssue, LayoutIssueKind
from scene_graph import CamelModel, Constraints, Document, SceneNode

logger = logging.getLogger(__name__)


class LayoutFixResult(CamelModel):
    node_id: str
    node_name: str
    kind: LayoutIssueKind
    success: bool
    detail: str = ""
    error: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# ─── Mini-grammar ─────────────────────────────────────────────────────────────

_VALID_CONSTRAINTS = ("MIN", "CENTER", "MAX", "STRETCH", "SCALE")
_FRIENDLY = {"LEFT": "MIN", "TOP": "MIN", "RIGHT": "MAX", "BOTTOM": "MAX"}
_AXIS_PATTERN = re.compile(r"\b([HV]):\s*([A-Za-z_]+)")


def parse_constraint_value(raw: str) -> str:
    value = raw.strip().upper()
    if value in _VALID_CONSTRAINTS:
        return value
    if value in _FRIENDLY:
        return _FRIENDLY[value]
    raise RequestValidationError(f"Unrecognised constraint value '{raw}'")


def parse_expected_constraints(expected: str) -> Tuple[Optional[str], Optional[str]]:
    """Parse "H: X, V: Y" (either axis optional) into constraint values."""
    horizontal = vertical = None
    for axis, raw in _AXIS_PATTERN.findall(expected or ""):
        if axis == "H" and horizontal is None:
            horizontal = parse_constraint_value(raw)
        elif axis == "V" and vertical is None:
            vertical = parse_constraint_value(raw)
    if horizontal is None and vertical is None:
        raise RequestValidationError(f"No constraint found in expected value '{expected}'")
    return horizontal, vertical


# ─── Handlers ────────────────────────────────────────────────────────────────

def _require_constraints(node: SceneNode) -> Constraints:
    if node.constraints is None:
        raise UnsupportedNodeError(
            f"{node.type} '{node.name}' has no constraints property",
            details={"node_id": node.id},
        )
    return node.constraints


def _set_constraints(document: Document, node: SceneNode, issue: LayoutIssue) -> str:
    current = _require_constraints(node)
    horizontal, vertical = parse_expected_constraints(issue.expected)
    updated = Constraints(
        horizontal=horizontal or current.horizontal,
        vertical=vertical or current.vertical,
    )
    if updated == current:
        return f"Constraints already H: {current.horizontal}, V: {current.vertical}"
    node.constraints = updated
    return f"Set constraints to H: {updated.horizontal}, V: {updated.vertical}"


def _set_grow(document: Document, node: SceneNode) -> str:
    if node.layout_grow == 1:
        return "layoutGrow already 1 (Fill container)"
    node.layout_grow = 1
    parent = document.parent_of(node)
    if parent is not None:
        document.reflow(parent)
    return "Set layoutGrow = 1 (Fill container)"


def _set_align_stretch(document: Document, node: SceneNode) -> str:
    if node.layout_align == "STRETCH":
        return "layoutAlign already STRETCH"
    node.layout_align = "STRETCH"
    parent = document.parent_of(node)
    if parent is not None:
        document.reflow(parent)
    return "Set layoutAlign = STRETCH"


def _fill(document: Document, node: SceneNode, issue: LayoutIssue) -> str:
    if "layoutGrow" in issue.expected:
        return _set_grow(document, node)
    if "layoutAlign" in issue.expected:
        return _set_align_stretch(document, node)
    return _set_constraints(document, node, issue)


def _sibling_fill(document: Document, node: SceneNode, issue: LayoutIssue) -> str:
    return _set_grow(document, node)


_FIX_HANDLERS: Dict[LayoutIssueKind, Callable[[Document, SceneNode, LayoutIssue], str]] = {
    LayoutIssueKind.CORNER_CONSTRAINT_MISMATCH: _set_constraints,
    LayoutIssueKind.EDGE_CONSTRAINT_MISMATCH: _set_constraints,
    LayoutIssueKind.BOTH_EDGES_NOT_STRETCH: _set_constraints,
    LayoutIssueKind.WIDE_NOT_FILL: _fill,
    LayoutIssueKind.TALL_NOT_FILL: _fill,
    LayoutIssueKind.CENTERED_H_NOT_CENTER: _set_constraints,
    LayoutIssueKind.CENTERED_V_NOT_CENTER: _set_constraints,
    LayoutIssueKind.SIBLING_FILL_CANDIDATE: _sibling_fill,
    LayoutIssueKind.FULL_BLEED_NOT_STRETCH: _set_constraints,
}

# Every kind needs a handler
_missing = set(LayoutIssueKind) - set(_FIX_HANDLERS)
if _missing:
    raise RuntimeError(f"Layout fix handlers missing for: {sorted(k.value for k in _missing)}")


# ─── Public API ──────────────────────────────────────────────────────────────

def fix_layout_issue(document: Document, issue: LayoutIssue) -> LayoutFixResult:
    """Apply one fix; failures come back as an unsuccessful result."""
    try:
        node = document.get_node(issue.node_id)
        if node is None:
            raise NodeNotFoundError(issue.node_id)
        detail = _FIX_HANDLERS[issue.kind](document, node, issue)
        logger.info(f"🛠️ {issue.kind.value} on '{issue.node_name}': {detail}")
        return LayoutFixResult(node_id=issue.node_id, node_name=issue.node_name, kind=issue.kind,
                               success=True, detail=detail)
    except Exception as e:
        logger.warning(f"❌ Layout fix {issue.kind.value} failed for '{issue.node_name}': {e}")
        return LayoutFixResult(node_id=issue.node_id, node_name=issue.node_name, kind=issue.kind,
                               success=False, error=str(e))


def fix_all_layout_issues(document: Document, issues: Iterable[LayoutIssue]) -> List[LayoutFixResult]:
    """Sequential, in input order; one failure never stops the rest."""
    results = [fix_layout_issue(document, issue) for issue in issues]
    fixed = sum(1 for r in results if r.success)
    logger.info(f"✅ Layout fix batch: {fixed} fixed, {len(results) - fixed} failed")
    return results
