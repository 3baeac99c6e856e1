"""
Cleanup Analysis - Empty containers and zero-size layers
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional

from scene_graph import CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

CLEANUP_CONTAINER_TYPES = frozenset({"FRAME", "GROUP", "COMPONENT", "COMPONENT_SET", "SECTION"})

SIZED_TYPES = frozenset({
    "FRAME", "GROUP", "RECTANGLE", "ELLIPSE", "POLYGON", "STAR", "VECTOR", "TEXT",
    "LINE", "COMPONENT", "INSTANCE", "BOOLEAN_OPERATION", "SLICE",
})


class CleanupIssueKind(str, Enum):
    EMPTY_FRAME = "empty_frame"
    ZERO_SIZE = "zero_size"


class CleanupChecks(CamelModel):
    empty_frames: bool = True
    zero_size: bool = True


class CleanupIssue(CamelModel):
    node_id: str
    node_name: str
    node_type: str
    kind: CleanupIssueKind
    description: str
    suggestion: str
    width: float
    height: float


def check_cleanup(document: Document, roots: Iterable[SceneNode],
                  checks: Optional[CleanupChecks] = None) -> List[CleanupIssue]:
    checks = checks or CleanupChecks()
    issues: List[CleanupIssue] = []
    for root in roots:
        for node in document.walk(root):
            if node.type in ("PAGE", "DOCUMENT"):
                continue
            if checks.empty_frames and node.type in CLEANUP_CONTAINER_TYPES and node.children == []:
                issues.append(CleanupIssue(
                    node_id=node.id, node_name=node.name, node_type=node.type,
                    kind=CleanupIssueKind.EMPTY_FRAME,
                    description=f'"{node.name}" is an empty {node.type.lower()} with no children',
                    suggestion="Remove this empty container or add content to it",
                    width=node.width, height=node.height,
                ))
            if checks.zero_size and node.type in SIZED_TYPES and (node.width == 0 or node.height == 0):
                issues.append(CleanupIssue(
                    node_id=node.id, node_name=node.name, node_type=node.type,
                    kind=CleanupIssueKind.ZERO_SIZE,
                    description=f'"{node.name}" has zero dimensions ({node.width:g}×{node.height:g})',
                    suggestion="Remove this invisible object or give it a valid size",
                    width=node.width, height=node.height,
                ))
    return issues
