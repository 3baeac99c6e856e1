"""
Analysis - Document-wide naming, component-candidate, cleanup and safe-area scan
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from cleanup_analysis import CleanupChecks, check_cleanup
from component_candidates import find_component_candidates
from errors import RequestValidationError
from naming_analysis import check_naming
from safe_area import check_safe_area
from scene_graph import Document, SceneNode

logger = logging.getLogger(__name__)

Scope = Literal["current", "all"]


def pages_for_scope(document: Document, scope: str) -> List[SceneNode]:
    if scope == "all":
        return document.pages
    if scope == "current":
        return [document.current_page]
    raise RequestValidationError(f"Unknown scope '{scope}' (expected 'current' or 'all')")


def count_nodes(document: Document, pages: List[SceneNode]) -> int:
    """Every node below the given pages, pages themselves excluded."""
    return sum(1 for page in pages for node in document.walk(page) if node is not page)


def analyze_document(document: Document, scope: Scope = "current",
                     cleanup_checks: Optional[CleanupChecks] = None) -> Dict[str, Any]:
    pages = pages_for_scope(document, scope)

    naming = check_naming(document, pages)
    candidates = find_component_candidates(document, pages)
    cleanup = check_cleanup(document, pages, cleanup_checks)
    safe_area = check_safe_area(document, pages)
    scanned = count_nodes(document, pages)
    total = len(naming) + len(candidates) + len(cleanup) + len(safe_area)

    logger.info(f"🔎 Analyzed {scanned} nodes on {len(pages)} page(s): {total} issue(s)")
    return {
        "namingIssues": [i.to_payload() for i in naming],
        "componentCandidates": [c.to_payload() for c in candidates],
        "cleanupIssues": [i.to_payload() for i in cleanup],
        "safeAreaIssues": [i.to_payload() for i in safe_area],
        "totalIssues": total,
        "scannedNodes": scanned,
    }
