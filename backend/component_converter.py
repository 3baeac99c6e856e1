"""
Component Converter - Turns a fingerprint group into one component + instances

Per request:
  1. The master (nodeIds[0]) becomes a component placed to the right of all
     canvas content touched by the batch, masters stacked top to bottom.
  2. Every member slot, the master's included, is refilled with an instance of
     that component at the member's original parent, z-order and x/y.
  3. Members that differed from the master get their text/fill overrides back.

Layers inside a COMPONENT tree cannot be moved out of it, so a master living
there is cloned onto the page first and the component is built from the clone.
Layers inside an INSTANCE are read-only and are reported per item.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import Field

from component_diff import DiffEntry, apply_overrides
from component_scanner import NodeSnapshot, snapshot_node
from errors import (
    NodeNotFoundError,
    OrganizerError,
    ProtectedTreeError,
    RequestValidationError,
    UnsupportedNodeError,
)
from scene_graph import FRAME_LIKE_TYPES, CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

OFFSET_PX = 500
MASTER_STACK_GAP = 40
CONVERTIBLE_TYPES = frozenset({"FRAME", "GROUP", "RECTANGLE", "ELLIPSE", "VECTOR"})

_SHARED_VISUAL_FIELDS = ("opacity", "blend_mode", "effects")
_PAINT_FIELDS = ("fills", "strokes", "stroke_weight")
_CORNER_FIELDS = (
    "corner_radius", "top_left_radius", "top_right_radius", "bottom_left_radius", "bottom_right_radius",
)
_AUTO_LAYOUT_FIELDS = (
    "layout_mode", "primary_axis_sizing_mode", "counter_axis_sizing_mode",
    "primary_axis_align_items", "counter_axis_align_items", "item_spacing",
    "padding_left", "padding_right", "padding_top", "padding_bottom", "item_reverse_z_index",
)


class ConvertRequest(CamelModel):
    fingerprint: str = ""
    label: str = ""
    # node_ids[0] is the master; every id ends up as an instance
    node_ids: List[str]
    node_snapshots: List[NodeSnapshot] = Field(default_factory=list)
    diffs: List[DiffEntry] = Field(default_factory=list)
    component_name: Optional[str] = None


class ItemFailure(CamelModel):
    node_id: str
    code: str
    message: str


class ConvertResult(CamelModel):
    fingerprint: str = ""
    label: str = ""
    component_id: Optional[str] = None
    component_name: str = ""
    master_node_id: str = ""
    instance_ids: List[str] = Field(default_factory=list)
    instance_count: int = 0
    success_count: int = 0
    overrides_applied: int = 0
    errors: List[str] = Field(default_factory=list)
    failures: List[ItemFailure] = Field(default_factory=list)

    def record_failure(self, node_id: str, exc: Exception, prefix: Optional[str] = None) -> None:
        code = exc.code if isinstance(exc, OrganizerError) else "unexpected_error"
        label = prefix or f"Node {node_id}"
        self.errors.append(f"{label}: {exc}")
        self.failures.append(ItemFailure(node_id=node_id, code=code, message=str(exc)))


@dataclass(frozen=True)
class Slot:
    """Where a member sat before conversion."""

    parent_id: Optional[str]
    index: int
    x: float
    y: float
    absolute_x: float
    absolute_y: float


# ─── Shared extraction helpers ────────────────────────────────────────────────

def capture_slot(document: Document, node: SceneNode) -> Slot:
    abs_x, abs_y = document.absolute_position(node)
    return Slot(
        parent_id=node.parent_id,
        index=document.index_in_parent(node),
        x=node.x,
        y=node.y,
        absolute_x=abs_x,
        absolute_y=abs_y,
    )


def copy_definition_metadata(source: SceneNode, definition: SceneNode) -> None:
    """Copy paint, effects, radii and the auto-layout box model onto `definition`.

    Runs before any child arrives so the definition's own layout rules apply to
    incoming children, not to an empty container.
    """
    for attr in _SHARED_VISUAL_FIELDS:
        setattr(definition, attr, copy.deepcopy(getattr(source, attr)))
    if source.constraints is not None:
        definition.constraints = source.constraints.model_copy()
    if source.type == "GROUP":
        definition.fills = []
        definition.clips_content = False
        return

    for attr in _PAINT_FIELDS + _CORNER_FIELDS:
        setattr(definition, attr, copy.deepcopy(getattr(source, attr)))
    if source.type in FRAME_LIKE_TYPES:
        definition.clips_content = source.clips_content
        if source.is_auto_layout:
            for attr in _AUTO_LAYOUT_FIELDS:
                setattr(definition, attr, getattr(source, attr))
    else:
        definition.clips_content = False


def _relock_size(document: Document, source: SceneNode, definition: SceneNode) -> None:
    if not source.is_auto_layout:
        document.resize(definition, source.width, source.height)
        return
    horizontal = source.layout_mode == "HORIZONTAL"
    width_fixed = (source.primary_axis_sizing_mode if horizontal else source.counter_axis_sizing_mode) == "FIXED"
    height_fixed = (source.counter_axis_sizing_mode if horizontal else source.primary_axis_sizing_mode) == "FIXED"
    if width_fixed or height_fixed:
        document.resize(
            definition,
            source.width if width_fixed else definition.width,
            source.height if height_fixed else definition.height,
        )


def populate_definition(document: Document, source: SceneNode, definition: SceneNode,
                        moved: List[Tuple[str, int, float, float]], wrap_leaf: bool = False) -> None:
    """Bring `source`'s content into `definition`.

    GROUP children are cloned (an emptied group deletes itself); other
    containers have their children moved, with each move logged in `moved`
    so a failure can put them back.
    """
    if source.children is None:
        if wrap_leaf:
            leaf = document.clone(source, parent=definition)
            document.set_position(leaf, 0, 0)
        return

    children = document.children_of(source)
    if source.type == "GROUP":
        for child in children:
            document.clone(child, parent=definition)
        return

    for index, child in enumerate(children):
        moved.append((child.id, index, child.x, child.y))
        document.append_child(definition, child)
        document.set_position(child, moved[-1][2], moved[-1][3])


def _restore_moved(document: Document, source: SceneNode, moved: List[Tuple[str, int, float, float]]) -> None:
    # Moved children now live in a component tree and cannot be moved out; copies go back instead
    for child_id, index, x, y in moved:
        child = document.get_node(child_id)
        if child is None or not document.exists(source):
            continue
        restored = document.clone(child, parent=source)
        document.insert_child(source, index, restored)
        document.set_position(restored, x, y)


def extract_to_definition(document: Document, source: SceneNode, page: SceneNode,
                          name: Optional[str] = None, wrap_leaf: bool = False) -> SceneNode:
    """Build a new COMPONENT on `page` reproducing `source`. The source stays in place.

    Any failure moves children back to `source` and deletes the partial component.
    """
    if source.type not in CONVERTIBLE_TYPES:
        raise UnsupportedNodeError(
            f"Cannot convert {source.type} to COMPONENT",
            details={"node_id": source.id},
        )

    definition = document.create_component(parent=page, name=name or source.name or "Component")
    moved: List[Tuple[str, int, float, float]] = []
    try:
        if not (wrap_leaf and source.children is None):
            copy_definition_metadata(source, definition)
        document.resize(definition, source.width, source.height)
        populate_definition(document, source, definition, moved, wrap_leaf=wrap_leaf)
        _relock_size(document, source, definition)
    except Exception:
        logger.warning(f"❌ Rolling back partial component for '{source.name}'")
        _restore_moved(document, source, moved)
        if document.exists(definition):
            document.remove(definition)
        raise
    return definition


def extract_from_protected(document: Document, source: SceneNode, page: SceneNode,
                           name: Optional[str] = None, wrap_leaf: bool = False) -> SceneNode:
    """Clone `source` out of its protected tree and build the component from the clone."""
    escaped = document.clone(source, parent=page)
    try:
        return extract_to_definition(document, escaped, page, name=name or source.name, wrap_leaf=wrap_leaf)
    finally:
        if document.exists(escaped):
            document.remove(escaped)


def build_definition(document: Document, node: SceneNode, page: SceneNode,
                     name: Optional[str] = None, wrap_leaf: bool = False) -> Tuple[SceneNode, bool]:
    """Return (definition, consumed) where `consumed` means `node` itself became the definition."""
    if node.type == "COMPONENT":
        if document.is_inside_protected(node):
            duplicate = document.clone(node, parent=page)
            if name:
                duplicate.name = name
            return duplicate, False
        document.append_child(page, node)
        if name:
            node.name = name
        return node, True
    if document.is_inside_protected(node):
        return extract_from_protected(document, node, page, name=name, wrap_leaf=wrap_leaf), False
    return extract_to_definition(document, node, page, name=name, wrap_leaf=wrap_leaf), False


def place_instance(document: Document, definition: SceneNode, slot: Slot,
                   original: Optional[SceneNode], page: SceneNode) -> SceneNode:
    """Put an instance of `definition` where `original` sat, then remove `original`."""
    if original is not None and document.is_inside_instance(original):
        raise ProtectedTreeError(
            f"'{original.name}' is inside an instance and cannot be replaced",
            details={"node_id": original.id},
        )

    parent = document.get_node(slot.parent_id)
    nested_in_definition = parent is not None and (
        parent.id == definition.id or any(a.id == definition.id for a in document.ancestors(parent))
    )
    instance = document.create_instance(definition, parent=page)
    try:
        if document.accepts_children(parent) and not nested_in_definition:
            live_index = document.index_in_parent(original) if original is not None and document.exists(original) else -1
            index = live_index if live_index >= 0 else slot.index
            document.insert_child(parent, index if index >= 0 else len(parent.children), instance)
            document.set_position(instance, slot.x, slot.y)
        else:
            document.set_position(instance, slot.absolute_x, slot.absolute_y)
        if original is not None and document.exists(original) and original is not definition:
            document.remove(original)
    except Exception:
        if document.exists(instance):
            document.remove(instance)
        raise
    return instance


# ─── Batch conversion ─────────────────────────────────────────────────────────

def _validate(request: ConvertRequest) -> None:
    if len(request.node_ids) < 2:
        raise RequestValidationError("A component group needs at least 2 nodes")
    if len(set(request.node_ids)) != len(request.node_ids):
        raise RequestValidationError("A component group cannot list the same node twice")


def _placement_origin(document: Document, requests: List[ConvertRequest]) -> Tuple[float, float]:
    """Rightmost edge and first top across every member of every request."""
    boxes: List[Tuple[float, float, float]] = []
    for request in requests:
        by_id = {s.id: s for s in request.node_snapshots}
        for node_id in request.node_ids:
            snap = by_id.get(node_id)
            if snap is None:
                live = document.get_node(node_id)
                if live is None:
                    continue
                snap = snapshot_node(document, live)
            boxes.append((snap.absolute_x, snap.absolute_y, snap.width))
    if not boxes:
        return 0.0, 0.0
    max_right = max(x + w for x, _, w in boxes)
    return max_right + OFFSET_PX, boxes[0][1]


def _convert_request(document: Document, request: ConvertRequest, cursor: Dict[str, float]) -> ConvertResult:
    result = ConvertResult(
        fingerprint=request.fingerprint,
        label=request.label,
        master_node_id=request.node_ids[0] if request.node_ids else "",
    )
    try:
        _validate(request)
    except RequestValidationError as e:
        result.record_failure(result.master_node_id, e, prefix="Request")
        return result

    # Everything needed later is captured before the first mutation
    snapshots: Dict[str, NodeSnapshot] = {s.id: s for s in request.node_snapshots}
    slots: Dict[str, Slot] = {}
    for node_id in request.node_ids:
        live = document.get_node(node_id)
        if live is None:
            continue
        snapshots.setdefault(node_id, snapshot_node(document, live))
        slots[node_id] = capture_slot(document, live)
    diffs = {d.node_id: d for d in request.diffs}

    master_id = request.node_ids[0]
    try:
        master = document.get_node(master_id)
        if master is None:
            raise NodeNotFoundError(master_id, f"Master node {master_id} not found")
        page = document.page_of(master) or document.current_page
        definition, consumed = build_definition(document, master, page, name=request.component_name)
    except Exception as e:
        logger.error(f"❌ Could not build component for '{request.label or master_id}': {e}")
        result.record_failure(master_id, e, prefix="Master")
        return result

    document.set_position(definition, cursor["x"], cursor["y"])
    cursor["y"] += definition.height + MASTER_STACK_GAP
    result.component_id = definition.id
    result.component_name = definition.name
    result.success_count += 1
    logger.info(f"🧩 Component '{definition.name}' ready at ({definition.x:.0f}, {definition.y:.0f})")

    for position, node_id in enumerate(request.node_ids):
        is_master = position == 0
        try:
            if is_master:
                original = None if consumed else document.get_node(master_id)
            else:
                original = document.get_node(node_id)
                if original is None:
                    raise NodeNotFoundError(node_id)
                if original.type == "COMPONENT":
                    raise UnsupportedNodeError(
                        f"'{original.name}' is already a component",
                        details={"node_id": node_id},
                    )
                if original.type not in CONVERTIBLE_TYPES:
                    raise UnsupportedNodeError(
                        f"Cannot replace {original.type} '{original.name}' with an instance",
                        details={"node_id": node_id},
                    )
            instance = place_instance(document, definition, slots[node_id], original, page)
            if not is_master:
                result.overrides_applied += apply_overrides(document, instance, diffs.get(node_id))
            result.instance_ids.append(instance.id)
            result.instance_count += 1
            result.success_count += 1
        except Exception as e:
            logger.warning(f"❌ Could not replace {node_id} with an instance: {e}")
            result.record_failure(node_id, e, prefix="Master slot" if is_master else None)

    logger.info(
        f"✅ '{definition.name}': {result.instance_count}/{len(request.node_ids)} instance(s), "
        f"{result.overrides_applied} override(s)"
    )
    return result


def convert_groups(document: Document, requests: Iterable[Any]) -> List[ConvertResult]:
    """Convert each request in order; a failing request never affects the others."""
    parsed = [r if isinstance(r, ConvertRequest) else ConvertRequest.model_validate(r) for r in requests]
    origin_x, origin_y = _placement_origin(document, parsed)
    cursor = {"x": origin_x, "y": origin_y}
    return [_convert_request(document, request, cursor) for request in parsed]
