"""
Variant Combiner - Merge heterogeneous selections into one component set

Each selected node becomes a variant component named "<property>=Default",
"<property>=Variant2", ... ; the components are merged with the host's
combine_as_variants primitive and every original is replaced by an instance of
its own variant.

Components are built from copies, so nothing the user selected is touched
until the set exists. A failure before that point leaves the document exactly
as it was.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from pydantic import Field

from component_converter import CONVERTIBLE_TYPES, Slot, capture_slot, extract_from_protected, place_instance
from errors import HostPrimitiveError, RequestValidationError, UnsupportedNodeError
from scene_graph import PAGE, CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

VARIANT_OFFSET_PX = 500
DEFAULT_PROPERTY_NAME = "State"
VARIANT_TYPES = CONVERTIBLE_TYPES | {"COMPONENT"}


class CombineRequest(CamelModel):
    node_ids: List[str] = Field(default_factory=list)
    component_set_name: Optional[str] = None
    property_name: Optional[str] = None


class CombineResult(CamelModel):
    success: bool = False
    component_set_id: Optional[str] = None
    component_set_name: str = ""
    variant_count: int = 0
    instance_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


@dataclass
class _Entry:
    node_id: str
    name: str
    variant_name: str
    slot: Slot
    definition: Optional[SceneNode] = None
    # Existing free component moved into the set as-is
    reused: bool = False


def variant_label(index: int) -> str:
    return "Default" if index == 0 else f"Variant{index + 1}"


def _top_level_ancestor(document: Document, node: SceneNode) -> Optional[SceneNode]:
    """The page child containing `node`, or None when `node` sits directly on the page."""
    parent = document.parent_of(node)
    if parent is None or parent.type == PAGE:
        return None
    cursor = parent
    while True:
        above = document.parent_of(cursor)
        if above is None:
            return None
        if above.type == PAGE:
            return cursor
        cursor = above


def _placement(document: Document, first: SceneNode, page: SceneNode) -> Tuple[float, float]:
    anchor = _top_level_ancestor(document, first)
    if anchor is not None:
        ax, ay = document.absolute_position(anchor)
        return ax, ay + anchor.height + VARIANT_OFFSET_PX

    content = document.children_of(page)
    if not content:
        return 0.0, 0.0
    max_right = max(child.x + child.width for child in content)
    return max_right + VARIANT_OFFSET_PX, content[0].y


def _build_variant(document: Document, node: SceneNode, page: SceneNode, name: str) -> Tuple[SceneNode, bool]:
    if node.type == "COMPONENT" and not document.is_inside_protected(node):
        document.append_child(page, node)
        node.name = name
        return node, True
    if node.type == "COMPONENT":
        duplicate = document.clone(node, parent=page)
        duplicate.name = name
        return duplicate, False
    # Always from a copy, which also escapes any enclosing component tree
    return extract_from_protected(document, node, page, name=name, wrap_leaf=True), False


def _discard(document: Document, entries: List[_Entry]) -> None:
    """Undo phase one: delete built components and put reused ones back."""
    for entry in reversed(entries):
        definition = entry.definition
        if definition is None or not document.exists(definition):
            continue
        if entry.reused:
            parent = document.get_node(entry.slot.parent_id)
            if parent is not None:
                document.insert_child(parent, entry.slot.index, definition)
                document.set_position(definition, entry.slot.x, entry.slot.y)
            definition.name = entry.name
        else:
            document.remove(definition)
        entry.definition = None


def combine_as_variants(document: Document, request: Any) -> CombineResult:
    req = request if isinstance(request, CombineRequest) else CombineRequest.model_validate(request)
    result = CombineResult()
    property_name = req.property_name or DEFAULT_PROPERTY_NAME

    if len(req.node_ids) < 2:
        error = RequestValidationError("At least 2 nodes are required to combine as variants")
        result.errors.append(str(error))
        return result

    # Phase 0: resolve and snapshot, no mutation
    entries: List[_Entry] = []
    for index, node_id in enumerate(req.node_ids):
        node = document.get_node(node_id)
        if node is None:
            result.errors.append(f"Node {node_id} not found (skipped)")
            continue
        if any(e.node_id == node_id for e in entries):
            result.errors.append(f"Node {node_id} listed twice (skipped)")
            continue
        if node.type not in VARIANT_TYPES:
            result.errors.append(f'Cannot convert node type "{node.type}" to a component (skipped)')
            continue
        if document.is_inside_instance(node):
            result.errors.append(f'"{node.name or node_id}" is inside an instance (skipped), detach it first')
            continue
        entries.append(_Entry(
            node_id=node_id,
            name=node.name or "Component",
            variant_name=variant_label(index),
            slot=capture_slot(document, node),
        ))

    if len(entries) < 2:
        result.errors.append("Not enough valid nodes to create a variant set (need at least 2)")
        return result

    first = document.require_node(entries[0].node_id)
    page = document.page_of(first) or document.current_page
    place_x, place_y = _placement(document, first, page)
    set_name = req.component_set_name or entries[0].name

    # Phase 1: build one component per entry
    for entry in entries:
        node = document.get_node(entry.node_id)
        try:
            if node is None:
                raise UnsupportedNodeError(f"Node {entry.node_id} disappeared before conversion")
            entry.definition, entry.reused = _build_variant(
                document, node, page, f"{property_name}={entry.variant_name}"
            )
        except Exception as e:
            result.errors.append(f"Convert failed for {entry.node_id}: {e}")

    built = [e for e in entries if e.definition is not None]
    if len(built) < 2:
        _discard(document, entries)
        result.errors.append("Conversion failed: not enough components created")
        return result

    # Phase 2: merge
    try:
        component_set = document.combine_as_variants([e.definition for e in built], page)
    except Exception as e:
        _discard(document, entries)
        error = e if isinstance(e, HostPrimitiveError) else HostPrimitiveError(str(e))
        result.errors.append(f"combine_as_variants failed: {error}")
        return result

    component_set.name = set_name
    document.set_position(component_set, place_x, place_y)
    result.success = True
    result.component_set_id = component_set.id
    result.component_set_name = component_set.name
    result.variant_count = len(built)
    logger.info(f"🧩 Component set '{set_name}' created with {len(built)} variant(s)")

    # Phase 3: swap every original for an instance of its own variant
    for entry in built:
        original = None if entry.reused else document.get_node(entry.node_id)
        try:
            instance = place_instance(document, entry.definition, entry.slot, original, page)
            result.instance_ids.append(instance.id)
        except Exception as e:
            result.errors.append(f'Instance placement failed for variant "{entry.variant_name}": {e}')

    return result
