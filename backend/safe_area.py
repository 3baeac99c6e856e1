"""
Safe Area - Detect mobile-screen frames without a "safearea" wrapper and add one.

The wrapper is a transparent, non-clipping FRAME the size of the screen that
becomes the screen's only child, holding the original children in z-order.
"""

import logging
from typing import Iterable, List

from errors import UnsupportedNodeError
from scene_graph import CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

SAFE_AREA_NAME = "safearea"
SAFE_AREA_TYPES = frozenset({"FRAME", "COMPONENT"})

# Portrait phone screens
MOBILE_WIDTH_MIN = 320
MOBILE_WIDTH_MAX = 430
MOBILE_HEIGHT_MIN = 580


class SafeAreaIssue(CamelModel):
    node_id: str
    node_name: str
    node_type: str
    width: int
    height: int
    issue: str = "missing_safearea_frame"
    description: str
    suggestion: str


def is_screen_candidate(node: SceneNode) -> bool:
    return (
        node.type in SAFE_AREA_TYPES
        and MOBILE_WIDTH_MIN <= node.width <= MOBILE_WIDTH_MAX
        and node.height >= MOBILE_HEIGHT_MIN
    )


def has_safe_area(document: Document, node: SceneNode) -> bool:
    return any("safe" in child.name.lower() for child in document.children_of(node))


def check_safe_area(document: Document, roots: Iterable[SceneNode]) -> List[SafeAreaIssue]:
    issues: List[SafeAreaIssue] = []

    def scan(node: SceneNode) -> None:
        if is_screen_candidate(node):
            if has_safe_area(document, node):
                # Screen already wrapped; nothing below it is reported
                return
            w, h = round(node.width), round(node.height)
            issues.append(SafeAreaIssue(
                node_id=node.id, node_name=node.name, node_type=node.type,
                width=w, height=h,
                description=f'"{node.name}" ({w}×{h}) has no "{SAFE_AREA_NAME}" child frame',
                suggestion=f'Wrap its children in a fullscreen "{SAFE_AREA_NAME}" frame',
            ))
        for child in document.children_of(node):
            scan(child)

    for root in roots:
        scan(root)
    return issues


def add_safe_area(document: Document, node: SceneNode) -> SceneNode:
    """Wrap every child of `node` in a new safe-area frame; returns the frame."""
    if node.type not in SAFE_AREA_TYPES:
        raise UnsupportedNodeError(
            f"Only FRAME and COMPONENT nodes are supported (got {node.type})",
            details={"node_id": node.id},
        )
    if has_safe_area(document, node):
        raise UnsupportedNodeError(
            f'Safe area frame already exists inside "{node.name}"',
            details={"node_id": node.id},
        )

    existing = list(node.children)
    wrapper = document.create_frame(
        parent=node,
        name=SAFE_AREA_NAME,
        width=node.width,
        height=node.height,
        fills=[],
        clips_content=False,
    )
    if node.is_auto_layout:
        wrapper.layout_sizing_horizontal = "FILL"
        wrapper.layout_sizing_vertical = "FILL"
        wrapper.layout_grow = 1
        wrapper.layout_align = "STRETCH"
        document.reflow(node)
    else:
        document.set_position(wrapper, 0, 0)

    for index, child_id in enumerate(existing):
        document.insert_child(wrapper, index, document.require_node(child_id))

    logger.info(f"🛠️ Wrapped {len(existing)} child(ren) of '{node.name}' in '{SAFE_AREA_NAME}'")
    return wrapper
