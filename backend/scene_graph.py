"""
Scene Graph - In-process host document model

This module provides the document the organizer analyses and rewrites: an
arena of scene nodes addressed by stable string ids. Ownership lives in each
container's ordered child-id list; the parent link is a plain id used for
navigation and z-order lookups, never an object reference.

The Document enforces the host rules the transform engines have to work around:
- nothing inside an INSTANCE tree can be inserted, removed or moved;
- a layer inside a COMPONENT tree cannot be moved out of that tree;
- a GROUP left without children deletes itself;
- auto-layout containers re-flow their children whenever the child list changes.
"""

import copy
import itertools
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from errors import (
    HostPrimitiveError,
    NodeNotFoundError,
    ProtectedTreeError,
    RequestValidationError,
    UnsupportedNodeError,
)

logger = logging.getLogger(__name__)


# ============================================
# ============ NODE TYPE TABLES ==============
# ============================================

DOCUMENT = "DOCUMENT"
PAGE = "PAGE"

CONTAINER_TYPES = frozenset({
    "DOCUMENT", "PAGE", "FRAME", "GROUP", "COMPONENT", "COMPONENT_SET",
    "INSTANCE", "SECTION", "BOOLEAN_OPERATION",
})

# Types that carry the frame box model (auto-layout, padding, clip, radii)
FRAME_LIKE_TYPES = frozenset({"FRAME", "COMPONENT", "COMPONENT_SET", "INSTANCE"})

# Types that expose a `constraints` member
CONSTRAINED_TYPES = frozenset({
    "FRAME", "COMPONENT", "COMPONENT_SET", "INSTANCE", "RECTANGLE", "ELLIPSE",
    "POLYGON", "STAR", "VECTOR", "LINE", "TEXT", "BOOLEAN_OPERATION",
})

# Roots of trees where the host restricts structural edits
PROTECTED_TYPES = frozenset({"COMPONENT", "INSTANCE"})

ConstraintType = Literal["MIN", "CENTER", "MAX", "STRETCH", "SCALE"]


class CamelModel(BaseModel):
    """Wire model: snake_case attributes, camelCase keys in requests and replies."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Constraints(BaseModel):
    model_config = ConfigDict(extra='forbid')
    horizontal: ConstraintType = "MIN"
    vertical: ConstraintType = "MIN"


@dataclass
class SceneNode:
    """One arena record. `children` is None on types that cannot hold children."""

    id: str
    type: str
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    parent_id: Optional[str] = None
    children: Optional[List[str]] = None
    visible: bool = True
    locked: bool = False
    opacity: float = 1.0
    blend_mode: str = "PASS_THROUGH"
    fills: List[Dict[str, Any]] = field(default_factory=list)
    strokes: List[Dict[str, Any]] = field(default_factory=list)
    stroke_weight: float = 0.0
    effects: List[Dict[str, Any]] = field(default_factory=list)
    corner_radius: float = 0.0
    top_left_radius: Optional[float] = None
    top_right_radius: Optional[float] = None
    bottom_left_radius: Optional[float] = None
    bottom_right_radius: Optional[float] = None
    clips_content: bool = False
    # Auto-layout container fields
    layout_mode: str = "NONE"
    primary_axis_sizing_mode: str = "FIXED"
    counter_axis_sizing_mode: str = "FIXED"
    primary_axis_align_items: str = "MIN"
    counter_axis_align_items: str = "MIN"
    item_spacing: float = 0.0
    padding_left: float = 0.0
    padding_right: float = 0.0
    padding_top: float = 0.0
    padding_bottom: float = 0.0
    item_reverse_z_index: bool = False
    # Auto-layout child fields
    layout_grow: float = 0.0
    layout_align: str = "INHERIT"
    layout_positioning: str = "AUTO"
    layout_sizing_horizontal: str = "FIXED"
    layout_sizing_vertical: str = "FIXED"
    constraints: Optional[Constraints] = None
    characters: Optional[str] = None
    main_component_id: Optional[str] = None

    @property
    def has_children(self) -> bool:
        return self.children is not None

    @property
    def is_auto_layout(self) -> bool:
        return self.layout_mode not in ("NONE", "", None)


# camelCase snapshot key -> dataclass field name
_SNAPSHOT_KEYS: Dict[str, str] = {
    to_camel(f.name): f.name for f in fields(SceneNode) if f.name not in ("parent_id", "children")
}


# ============================================
# ================ DOCUMENT ==================
# ============================================

class Document:
    """Arena-backed scene tree plus the host's mutation primitives."""

    def __init__(self, name: str = "Untitled", id_prefix: str = "1") -> None:
        self._id_prefix = id_prefix
        self._ids = itertools.count(1)
        self.nodes: Dict[str, SceneNode] = {}
        self.root = self._register(SceneNode(id="0:0", type=DOCUMENT, name=name, children=[]))
        self.current_page_id: Optional[str] = None

    # --- Lookup -------------------------------------------------------------

    def get_node(self, node_id: Optional[str]) -> Optional[SceneNode]:
        """findNodeById: returns None once the node has been removed."""
        if not node_id:
            return None
        return self.nodes.get(node_id)

    def require_node(self, node_id: str) -> SceneNode:
        node = self.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def exists(self, node: Optional[SceneNode]) -> bool:
        return node is not None and self.nodes.get(node.id) is node

    def parent_of(self, node: SceneNode) -> Optional[SceneNode]:
        return self.get_node(node.parent_id)

    def children_of(self, node: SceneNode) -> List[SceneNode]:
        if not node.children:
            return []
        return [self.nodes[child_id] for child_id in node.children]

    def index_in_parent(self, node: SceneNode) -> int:
        parent = self.parent_of(node)
        if parent is None or not parent.children:
            return -1
        return parent.children.index(node.id)

    def ancestors(self, node: SceneNode) -> Iterator[SceneNode]:
        """Strict ancestors, nearest first."""
        current = self.parent_of(node)
        while current is not None:
            yield current
            current = self.parent_of(current)

    def walk(self, node: SceneNode) -> Iterator[SceneNode]:
        """Pre-order traversal including `node`, children in z-order."""
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            if current.children:
                stack.extend(self.nodes[c] for c in reversed(current.children))

    def find_all(self, node: SceneNode, predicate: Callable[[SceneNode], bool]) -> List[SceneNode]:
        """Descendants of `node` (excluding itself) matching `predicate`."""
        return [n for n in self.walk(node) if n is not node and predicate(n)]

    def page_of(self, node: SceneNode) -> Optional[SceneNode]:
        if node.type == PAGE:
            return node
        for ancestor in self.ancestors(node):
            if ancestor.type == PAGE:
                return ancestor
        return None

    @property
    def pages(self) -> List[SceneNode]:
        return self.children_of(self.root)

    @property
    def current_page(self) -> SceneNode:
        page = self.get_node(self.current_page_id)
        if page is None:
            existing = self.pages
            page = existing[0] if existing else self.create_page("Page 1")
            self.current_page_id = page.id
        return page

    def absolute_position(self, node: SceneNode) -> Tuple[float, float]:
        """Canvas coordinates derived from the ancestor chain (pages sit at 0,0)."""
        ax, ay = node.x, node.y
        for ancestor in self.ancestors(node):
            if ancestor.type in (PAGE, DOCUMENT):
                break
            ax += ancestor.x
            ay += ancestor.y
        return ax, ay

    def is_inside_protected(self, node: SceneNode) -> bool:
        """True if the node has a COMPONENT or INSTANCE ancestor."""
        return any(a.type in PROTECTED_TYPES for a in self.ancestors(node))

    def is_inside_instance(self, node: SceneNode) -> bool:
        return any(a.type == "INSTANCE" for a in self.ancestors(node))

    def accepts_children(self, node: Optional[SceneNode]) -> bool:
        if node is None or not self.exists(node) or node.children is None:
            return False
        return node.type != "INSTANCE" and not self.is_inside_instance(node)

    # --- Creation -----------------------------------------------------------

    def create_page(self, name: str = "Page") -> SceneNode:
        page = self._register(SceneNode(id=self._new_id(), type=PAGE, name=name, children=[]))
        self._attach(self.root, page, len(self.root.children))
        if self.current_page_id is None:
            self.current_page_id = page.id
        return page

    def create_node(self, node_type: str, parent: Optional[SceneNode] = None,
                    index: Optional[int] = None, **props: Any) -> SceneNode:
        """Create a node and insert it into `parent` (the current page by default)."""
        if node_type in (DOCUMENT, PAGE):
            raise UnsupportedNodeError(f"Use create_page() to create a {node_type}")
        node = SceneNode(
            id=self._new_id(),
            type=node_type,
            children=[] if node_type in CONTAINER_TYPES else None,
            **props,
        )
        if node.constraints is None and node_type in CONSTRAINED_TYPES:
            node.constraints = Constraints()
        self._register(node)
        target = parent if parent is not None else self.current_page
        try:
            self.insert_child(target, len(target.children or []) if index is None else index, node)
        except Exception:
            self.nodes.pop(node.id, None)
            raise
        return node

    def create_frame(self, parent: Optional[SceneNode] = None, **props: Any) -> SceneNode:
        return self.create_node("FRAME", parent=parent, **props)

    def create_component(self, parent: Optional[SceneNode] = None, **props: Any) -> SceneNode:
        return self.create_node("COMPONENT", parent=parent, **props)

    def create_text(self, characters: str, parent: Optional[SceneNode] = None, **props: Any) -> SceneNode:
        props.setdefault("name", characters)
        return self.create_node("TEXT", parent=parent, characters=characters, **props)

    def create_instance(self, definition: SceneNode, parent: Optional[SceneNode] = None) -> SceneNode:
        """Stamp a linked copy of a COMPONENT; sublayers keep their names for overrides."""
        if definition.type != "COMPONENT" or not self.exists(definition):
            raise UnsupportedNodeError(
                f"Cannot create an instance of {definition.type} '{definition.name}'",
                details={"node_id": definition.id},
            )
        instance = self._copy_subtree(definition)
        instance.type = "INSTANCE"
        instance.main_component_id = definition.id
        target = parent if parent is not None else self.current_page
        self._insert_or_discard(target, instance)
        return instance

    def clone(self, node: SceneNode, parent: Optional[SceneNode] = None) -> SceneNode:
        """Deep copy of `node` with fresh ids, appended to `parent` (current page by default)."""
        if not self.exists(node):
            raise NodeNotFoundError(node.id)
        duplicate = self._copy_subtree(node)
        target = parent if parent is not None else self.current_page
        self._insert_or_discard(target, duplicate)
        return duplicate

    # --- Structural mutation ------------------------------------------------

    def append_child(self, parent: SceneNode, child: SceneNode) -> None:
        self.insert_child(parent, len(parent.children or []), child)

    def insert_child(self, parent: SceneNode, index: int, child: SceneNode) -> None:
        """Reparent `child` so it ends up at `index` in `parent`'s child list."""
        self._check_accepts(parent, child)
        if child.id == parent.id or any(a.id == child.id for a in self.ancestors(parent)):
            raise HostPrimitiveError(f"Cannot insert '{child.name}' into its own subtree")

        old_parent = self.parent_of(child)
        if old_parent is not None:
            self._check_can_move(child, parent)
            old_parent.children.remove(child.id)

        self._attach(parent, child, index)

        if old_parent is not None and old_parent.id != parent.id:
            self._after_child_removed(old_parent)

    def remove(self, node: SceneNode) -> None:
        if node.type == DOCUMENT:
            raise UnsupportedNodeError("The document root cannot be removed")
        if not self.exists(node):
            raise NodeNotFoundError(node.id)
        if self.is_inside_instance(node):
            raise ProtectedTreeError(
                f"Cannot remove '{node.name}': layers inside an instance are read-only",
                details={"node_id": node.id},
            )

        parent = self.parent_of(node)
        doomed = [n.id for n in self.walk(node)]
        if parent is not None:
            parent.children.remove(node.id)
        for node_id in doomed:
            del self.nodes[node_id]
        node.parent_id = None

        if node.id == self.current_page_id:
            self.current_page_id = None
        if parent is not None:
            self._after_child_removed(parent)

    def resize(self, node: SceneNode, width: float, height: float) -> None:
        node.width = max(0.0, float(width))
        node.height = max(0.0, float(height))
        if node.is_auto_layout:
            self._relayout(node)
        parent = self.parent_of(node)
        if parent is not None and parent.is_auto_layout:
            self._relayout(parent)

    def set_position(self, node: SceneNode, x: float, y: float) -> None:
        """Auto-layout managed children ignore explicit positions, as the host does."""
        parent = self.parent_of(node)
        if parent is not None and parent.is_auto_layout and node.layout_positioning != "ABSOLUTE":
            return
        node.x = float(x)
        node.y = float(y)

    def reflow(self, node: SceneNode) -> None:
        """Re-run auto-layout on `node` after a child's grow/align flags changed."""
        self._relayout(node)

    def set_characters(self, node: SceneNode, value: str) -> None:
        if node.type != "TEXT":
            raise UnsupportedNodeError(f"{node.type} '{node.name}' has no text content")
        node.characters = value

    def combine_as_variants(self, components: List[SceneNode], parent: Optional[SceneNode] = None) -> SceneNode:
        """Merge COMPONENT nodes into a single COMPONENT_SET family."""
        if not components:
            raise HostPrimitiveError("combine_as_variants requires at least one component")
        if len({c.id for c in components}) != len(components):
            raise HostPrimitiveError("combine_as_variants received the same component twice")
        for comp in components:
            if comp.type != "COMPONENT" or not self.exists(comp):
                raise HostPrimitiveError(
                    f"Only live COMPONENT nodes can be combined (got {comp.type} '{comp.name}')",
                    details={"node_id": comp.id},
                )

        component_set = self.create_node("COMPONENT_SET", parent=parent, name=components[0].name)
        gap = 20.0
        cursor_x = gap
        tallest = 0.0
        for comp in components:
            self.append_child(component_set, comp)
            comp.x, comp.y = cursor_x, gap
            cursor_x += comp.width + gap
            tallest = max(tallest, comp.height)
        self.resize(component_set, cursor_x, tallest + 2 * gap)
        return component_set

    # --- Snapshot IO --------------------------------------------------------

    @classmethod
    def from_snapshot(cls, payload: Dict[str, Any]) -> "Document":
        """Build a Document from the plugin's REST-like camelCase node tree."""
        tree = payload.get("document", payload) if isinstance(payload, dict) else None
        if not isinstance(tree, dict) or "type" not in tree:
            raise RequestValidationError("Snapshot must contain a node tree with a 'type'")

        doc = cls(name=str(tree.get("name", "Untitled")))
        if tree["type"] == DOCUMENT:
            doc.root.id = str(tree.get("id", doc.root.id))
            doc.nodes = {doc.root.id: doc.root}
            top_level = tree.get("children") or []
        elif tree["type"] == PAGE:
            top_level = [tree]
        else:
            raise RequestValidationError(f"Snapshot root must be DOCUMENT or PAGE (got {tree['type']})")

        for page_payload in top_level:
            page = doc._load_node(page_payload)
            doc._attach(doc.root, page, len(doc.root.children))

        current = payload.get("currentPageId") if isinstance(payload, dict) else None
        doc.current_page_id = current if current in doc.nodes else None
        logger.info(f"📥 Loaded snapshot with {len(doc.nodes)} nodes across {len(doc.root.children)} page(s)")
        return doc

    def to_snapshot(self) -> Dict[str, Any]:
        return {"document": self.node_to_dict(self.root), "currentPageId": self.current_page.id}

    def node_to_dict(self, node: SceneNode) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key, attr in _SNAPSHOT_KEYS.items():
            value = getattr(node, attr)
            if value is None:
                continue
            data[key] = value.model_dump() if isinstance(value, BaseModel) else copy.deepcopy(value)
        if node.children is not None:
            data["children"] = [self.node_to_dict(child) for child in self.children_of(node)]
        return data

    # --- Internals ----------------------------------------------------------

    def _new_id(self) -> str:
        while True:
            candidate = f"{self._id_prefix}:{next(self._ids)}"
            if candidate not in self.nodes:
                return candidate

    def _register(self, node: SceneNode) -> SceneNode:
        self.nodes[node.id] = node
        return node

    def _load_node(self, data: Dict[str, Any]) -> SceneNode:
        node_type = str(data.get("type", ""))
        node_id = str(data.get("id") or self._new_id())
        if node_id in self.nodes:
            raise RequestValidationError(f"Duplicate node id in snapshot: {node_id}")

        props: Dict[str, Any] = {}
        for key, value in data.items():
            attr = _SNAPSHOT_KEYS.get(key)
            if attr is None or attr in ("id", "type"):
                continue
            if attr == "constraints" and isinstance(value, dict):
                value = Constraints(**value)
            props[attr] = value

        node = SceneNode(id=node_id, type=node_type, **props)
        if node.constraints is None and node_type in CONSTRAINED_TYPES:
            node.constraints = Constraints()
        raw_children = data.get("children")
        node.children = [] if (raw_children is not None or node_type in CONTAINER_TYPES) else None
        self._register(node)
        for child_data in raw_children or []:
            child = self._load_node(child_data)
            child.parent_id = node.id
            node.children.append(child.id)
        return node

    def _copy_subtree(self, source: SceneNode) -> SceneNode:
        duplicate = copy.deepcopy(source)
        duplicate.id = self._new_id()
        duplicate.parent_id = None
        duplicate.children = [] if source.children is not None else None
        self._register(duplicate)
        for child in self.children_of(source):
            child_copy = self._copy_subtree(child)
            child_copy.parent_id = duplicate.id
            duplicate.children.append(child_copy.id)
        return duplicate

    def _insert_or_discard(self, parent: SceneNode, detached: SceneNode) -> None:
        try:
            self.insert_child(parent, len(parent.children or []), detached)
        except Exception:
            for node in list(self.walk(detached)):
                self.nodes.pop(node.id, None)
            raise

    def _attach(self, parent: SceneNode, child: SceneNode, index: int) -> None:
        index = max(0, min(index, len(parent.children)))
        parent.children.insert(index, child.id)
        child.parent_id = parent.id
        self._relayout(parent)

    def _check_accepts(self, parent: SceneNode, child: SceneNode) -> None:
        if not self.exists(parent):
            raise NodeNotFoundError(parent.id)
        if parent.children is None:
            raise UnsupportedNodeError(
                f"{parent.type} '{parent.name}' cannot have children",
                details={"node_id": parent.id},
            )
        if parent.type == "INSTANCE" or self.is_inside_instance(parent):
            raise ProtectedTreeError(
                f"Cannot insert into '{parent.name}': instance layers are read-only",
                details={"node_id": parent.id},
            )
        if (parent.type == DOCUMENT) != (child.type == PAGE):
            raise UnsupportedNodeError(f"A {child.type} cannot be placed inside a {parent.type}")
        if parent.type == "COMPONENT_SET" and child.type != "COMPONENT":
            raise UnsupportedNodeError("A component set can only contain components")

    def _check_can_move(self, child: SceneNode, new_parent: SceneNode) -> None:
        if self.is_inside_instance(child):
            raise ProtectedTreeError(
                f"Cannot move '{child.name}' out of an instance",
                details={"node_id": child.id},
            )
        owner = next((a for a in self.ancestors(child) if a.type == "COMPONENT"), None)
        if owner is None:
            return
        if new_parent.id == owner.id or any(a.id == owner.id for a in self.ancestors(new_parent)):
            return
        raise ProtectedTreeError(
            f"Cannot move '{child.name}' out of component '{owner.name}'",
            details={"node_id": child.id, "component_id": owner.id},
        )

    def _after_child_removed(self, parent: SceneNode) -> None:
        if parent.type == "GROUP" and not parent.children and self.exists(parent):
            logger.debug(f"🫥 Group '{parent.name}' emptied and was deleted by the host")
            self.remove(parent)
            return
        self._relayout(parent)

    def _relayout(self, frame: SceneNode) -> None:
        """Re-flow an auto-layout container's children along its axis."""
        if not frame.is_auto_layout or not frame.children:
            return
        horizontal = frame.layout_mode == "HORIZONTAL"
        flow = [c for c in self.children_of(frame) if c.layout_positioning != "ABSOLUTE" and c.visible]
        if not flow:
            return

        lead = frame.padding_left if horizontal else frame.padding_top
        trail = frame.padding_right if horizontal else frame.padding_bottom
        cross_lead = frame.padding_top if horizontal else frame.padding_left
        cross_trail = frame.padding_bottom if horizontal else frame.padding_right
        main_size = frame.width if horizontal else frame.height
        cross_inner = (frame.height if horizontal else frame.width) - cross_lead - cross_trail
        spacing = frame.item_spacing * (len(flow) - 1)

        growers = [c for c in flow if c.layout_grow > 0]
        if growers and frame.primary_axis_sizing_mode == "FIXED":
            fixed = sum((c.width if horizontal else c.height) for c in flow if c.layout_grow <= 0)
            share = max(0.0, (main_size - lead - trail - spacing - fixed) / len(growers))
            for child in growers:
                if horizontal:
                    child.width = share
                else:
                    child.height = share

        cursor = lead
        cross_max = 0.0
        for child in flow:
            if child.layout_align == "STRETCH" and cross_inner > 0:
                if horizontal:
                    child.height = cross_inner
                else:
                    child.width = cross_inner
            if horizontal:
                child.x, child.y = cursor, cross_lead
                cursor += child.width + frame.item_spacing
                cross_max = max(cross_max, child.height)
            else:
                child.x, child.y = cross_lead, cursor
                cursor += child.height + frame.item_spacing
                cross_max = max(cross_max, child.width)
        main_extent = cursor - frame.item_spacing + trail

        if frame.primary_axis_sizing_mode == "AUTO":
            if horizontal:
                frame.width = main_extent
            else:
                frame.height = main_extent
        if frame.counter_axis_sizing_mode == "AUTO":
            if horizontal:
                frame.height = cross_max + cross_lead + cross_trail
            else:
                frame.width = cross_max + cross_lead + cross_trail
