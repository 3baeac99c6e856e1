"""
Layout Geometry - Padding-aware box math for constraint heuristics

Pure functions over SceneNode values. Nothing here mutates or raises; missing
padding simply counts as zero.
"""

from dataclasses import dataclass
from typing import Optional

from scene_graph import SceneNode


@dataclass(frozen=True)
class InnerBox:
    width: float
    height: float
    padding_left: float
    padding_top: float


@dataclass(frozen=True)
class EdgeGaps:
    left: float
    right: float
    top: float
    bottom: float


def _padding(node: SceneNode, attr: str) -> float:
    return float(getattr(node, attr, 0.0) or 0.0)


def inner_box(container: SceneNode) -> InnerBox:
    """Content area of a container: its size minus paddings on each side."""
    pl = _padding(container, "padding_left")
    pr = _padding(container, "padding_right")
    pt = _padding(container, "padding_top")
    pb = _padding(container, "padding_bottom")
    return InnerBox(
        width=container.width - pl - pr,
        height=container.height - pt - pb,
        padding_left=pl,
        padding_top=pt,
    )


def edge_gaps(node: SceneNode, box: InnerBox) -> EdgeGaps:
    # Node x/y are relative to the container's outer box
    nx = node.x - box.padding_left
    ny = node.y - box.padding_top
    return EdgeGaps(
        left=nx,
        right=box.width - (nx + node.width),
        top=ny,
        bottom=box.height - (ny + node.height),
    )


def center_offsets(node: SceneNode, box: InnerBox) -> tuple[float, float]:
    """Absolute distance of the node's midpoint from the content midpoint (h, v)."""
    nx = node.x - box.padding_left
    ny = node.y - box.padding_top
    return (
        abs(nx + node.width / 2 - box.width / 2),
        abs(ny + node.height / 2 - box.height / 2),
    )


def is_near(gap: float, extent: float, ratio: float) -> bool:
    """A non-negative gap below ratio × extent counts as touching that edge."""
    return 0 <= gap < extent * ratio


def coverage(size: float, extent: float) -> Optional[float]:
    if extent <= 0:
        return None
    return size / extent
