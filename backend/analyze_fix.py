"""
Analyze Fix - One-shot fixers for naming, cleanup and safe-area issues

Each fixer raises when there is nothing to fix (name already ASCII, already
in the target case, ...) so batch results distinguish "already fine" from
"fixed".
"""

import logging
import re
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from errors import NodeNotFoundError, RequestValidationError, UnsupportedNodeError
from naming_analysis import CASE_STYLES, TRANSLITERATION_PATTERN, transliterate
from safe_area import add_safe_area
from scene_graph import CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)


class AnalyzeIssueKind(str, Enum):
    NON_ASCII_CHARS = "non_ascii_chars"
    CASE_INCONSISTENCY = "case_inconsistency"
    EMPTY_FRAME = "empty_frame"
    ZERO_SIZE = "zero_size"
    MISSING_SAFEAREA_FRAME = "missing_safearea_frame"


class AnalyzeIssue(CamelModel):
    node_id: str
    node_name: str = ""
    node_type: str = ""
    kind: AnalyzeIssueKind
    suggestion: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None


class AnalyzeFixResult(CamelModel):
    node_id: str
    node_name: str
    kind: AnalyzeIssueKind
    success: bool
    detail: str = ""
    error: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# ─── Case conversion ────────────────────────────────────────────────────────

def split_words(name: str) -> List[str]:
    """Split on camel/Pascal boundaries, acronym runs, underscores, hyphens and spaces."""
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", name)
    spaced = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", spaced)
    spaced = re.sub(r"[_\-\s]+", " ", spaced)
    return spaced.split()


def convert_case(name: str, target_case: str) -> str:
    words = split_words(name)
    if not words:
        return name
    if target_case == "snake_case":
        return "_".join(w.lower() for w in words)
    if target_case == "kebab-case":
        return "-".join(w.lower() for w in words)
    if target_case == "camelCase":
        return words[0].lower() + "".join(w[:1].upper() + w[1:].lower() for w in words[1:])
    if target_case == "PascalCase":
        return "".join(w[:1].upper() + w[1:].lower() for w in words)
    raise RequestValidationError(f"Unknown case style '{target_case}'")


def _target_case(issue: AnalyzeIssue) -> str:
    if not issue.suggestion:
        raise RequestValidationError("No suggestion provided for case fix")
    target = re.sub(r"^Convert to\s*", "", issue.suggestion, flags=re.IGNORECASE).strip()
    if target not in CASE_STYLES:
        raise RequestValidationError(f"Unknown case style '{target}'")
    return target


# ─── Fix handlers ───────────────────────────────────────────────────────────

def _fix_non_ascii(document: Document, node: SceneNode, issue: AnalyzeIssue) -> str:
    old_name = node.name
    if not TRANSLITERATION_PATTERN.search(old_name):
        raise UnsupportedNodeError("No characters to transliterate found")
    node.name = transliterate(old_name)
    return f'Renamed "{old_name}" → "{node.name}"'


def _fix_case(document: Document, node: SceneNode, issue: AnalyzeIssue) -> str:
    target = _target_case(issue)
    old_name = node.name
    new_name = convert_case(old_name, target)
    if new_name == old_name:
        raise UnsupportedNodeError("Name is already in target case")
    node.name = new_name
    return f'Renamed "{old_name}" → "{new_name}" ({target})'


def _fix_empty_frame(document: Document, node: SceneNode, issue: AnalyzeIssue) -> str:
    if node.children:
        raise UnsupportedNodeError(f'"{node.name}" is no longer empty')
    name = node.name
    document.remove(node)
    return f'Removed empty {node.type.lower()} "{name}"'


def _fix_zero_size(document: Document, node: SceneNode, issue: AnalyzeIssue) -> str:
    if node.width != 0 and node.height != 0:
        raise UnsupportedNodeError(f'"{node.name}" no longer has a zero dimension')
    name = node.name
    document.remove(node)
    return f'Removed zero-size object "{name}"'


def _fix_safe_area(document: Document, node: SceneNode, issue: AnalyzeIssue) -> str:
    wrapped = len(node.children or [])
    add_safe_area(document, node)
    return f'Created "safearea" frame ({round(node.width)}×{round(node.height)}), wrapped {wrapped} child(ren)'


_FIX_HANDLERS: Dict[AnalyzeIssueKind, Callable[[Document, SceneNode, AnalyzeIssue], str]] = {
    AnalyzeIssueKind.NON_ASCII_CHARS: _fix_non_ascii,
    AnalyzeIssueKind.CASE_INCONSISTENCY: _fix_case,
    AnalyzeIssueKind.EMPTY_FRAME: _fix_empty_frame,
    AnalyzeIssueKind.ZERO_SIZE: _fix_zero_size,
    AnalyzeIssueKind.MISSING_SAFEAREA_FRAME: _fix_safe_area,
}

_missing = set(AnalyzeIssueKind) - set(_FIX_HANDLERS)
if _missing:
    raise RuntimeError(f"Analyze fix handlers missing for: {sorted(k.value for k in _missing)}")


# ─── Public API ─────────────────────────────────────────────────────────────

def fix_analyze_issue(document: Document, issue: AnalyzeIssue) -> AnalyzeFixResult:
    try:
        node = document.get_node(issue.node_id)
        if node is None:
            raise NodeNotFoundError(issue.node_id)
        detail = _FIX_HANDLERS[issue.kind](document, node, issue)
        logger.info(f"🛠️ {issue.kind.value}: {detail}")
        return AnalyzeFixResult(node_id=issue.node_id, node_name=issue.node_name, kind=issue.kind,
                                success=True, detail=detail)
    except Exception as e:
        logger.warning(f"❌ Fix {issue.kind.value} failed for '{issue.node_name}': {e}")
        return AnalyzeFixResult(node_id=issue.node_id, node_name=issue.node_name, kind=issue.kind,
                                success=False, error=str(e))


def fix_all_analyze_issues(document: Document, issues: Iterable[AnalyzeIssue]) -> List[AnalyzeFixResult]:
    results = [fix_analyze_issue(document, issue) for issue in issues]
    fixed = sum(1 for r in results if r.success)
    logger.info(f"✅ Analyze fix batch: {fixed} fixed, {len(results) - fixed} failed")
    return results
