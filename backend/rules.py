"""
Rules - Preview and apply a batch of edit rules

A rule set is what the plugin's edit tab builds from the user's choices:

    {"rename": [{"id", "name"}], "makeComponent": [{"id"}], "addSafeArea": [{"id"}]}

preview_rules() only reads the document. apply_rules() runs renames, then
component conversions, then safe-area wrappers; every rule is independent, so
a failing rule is reported on its own item and the others still run.
"""

import logging
from typing import Any, List, Optional, Union

from pydantic import Field

from component_converter import CONVERTIBLE_TYPES, capture_slot, extract_to_definition
from errors import NodeNotFoundError, ProtectedTreeError, UnsupportedNodeError
from safe_area import SAFE_AREA_NAME, SAFE_AREA_TYPES, add_safe_area, has_safe_area
from scene_graph import DOCUMENT, CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)


class RenameRule(CamelModel):
    id: str
    name: str


class NodeRule(CamelModel):
    id: str


class RuleSet(CamelModel):
    rename: List[RenameRule] = Field(default_factory=list)
    make_component: List[NodeRule] = Field(default_factory=list)
    add_safe_area: List[NodeRule] = Field(default_factory=list)


# ─── Preview models ─────────────────────────────────────────────────────────

class RenamePreview(CamelModel):
    node_id: str
    old_name: str = "?"
    new_name: str
    node_type: str = "UNKNOWN"
    found: bool = False


class MakeComponentPreview(CamelModel):
    node_id: str
    node_name: str = "?"
    node_type: str = "UNKNOWN"
    found: bool = False
    convertible: bool = False
    reason: str = "Node not found"


class SafeAreaPreview(CamelModel):
    node_id: str
    node_name: str = "?"
    node_type: str = "UNKNOWN"
    found: bool = False
    applicable: bool = False
    child_count: int = 0
    reason: str = "Node not found"


class RulePreview(CamelModel):
    renames: List[RenamePreview] = Field(default_factory=list)
    make_components: List[MakeComponentPreview] = Field(default_factory=list)
    safe_areas: List[SafeAreaPreview] = Field(default_factory=list)
    total_changes: int = 0


# ─── Apply models ───────────────────────────────────────────────────────────

class RenameResult(CamelModel):
    node_id: str
    old_name: str = "?"
    new_name: str
    success: bool = False
    error: Optional[str] = None


class MakeComponentResult(CamelModel):
    node_id: str
    node_name: str = "?"
    new_component_id: Optional[str] = None
    success: bool = False
    error: Optional[str] = None


class SafeAreaResult(CamelModel):
    node_id: str
    node_name: str = "?"
    success: bool = False
    safe_area_frame_id: Optional[str] = None
    changes: Optional[str] = None
    error: Optional[str] = None


class RuleApplyResult(CamelModel):
    renames: List[RenameResult] = Field(default_factory=list)
    make_components: List[MakeComponentResult] = Field(default_factory=list)
    safe_areas: List[SafeAreaResult] = Field(default_factory=list)
    success_count: int = 0
    fail_count: int = 0

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def _parse(rules: Union[RuleSet, dict, None]) -> RuleSet:
    if isinstance(rules, RuleSet):
        return rules
    return RuleSet.model_validate(rules or {})


def _require(document: Document, node_id: str) -> SceneNode:
    node = document.get_node(node_id)
    if node is None:
        raise NodeNotFoundError(node_id)
    return node


# ─── Preview ────────────────────────────────────────────────────────────────

def _preview_rename(document: Document, rule: RenameRule) -> RenamePreview:
    node = document.get_node(rule.id)
    if node is None:
        return RenamePreview(node_id=rule.id, new_name=rule.name)
    return RenamePreview(node_id=rule.id, old_name=node.name, new_name=rule.name,
                         node_type=node.type, found=True)


def _preview_make_component(document: Document, rule: NodeRule) -> MakeComponentPreview:
    node = document.get_node(rule.id)
    if node is None:
        return MakeComponentPreview(node_id=rule.id)
    convertible = node.type in CONVERTIBLE_TYPES
    if convertible and document.is_inside_protected(node):
        convertible = False
        reason = f'"{node.name}" sits inside a component or instance and cannot become a component'
    elif convertible:
        reason = f"{node.type} → COMPONENT conversion will be applied"
    else:
        reason = f"{node.type} type cannot be converted to a component"
    return MakeComponentPreview(node_id=rule.id, node_name=node.name, node_type=node.type,
                                found=True, convertible=convertible, reason=reason)


def _preview_safe_area(document: Document, rule: NodeRule) -> SafeAreaPreview:
    node = document.get_node(rule.id)
    if node is None:
        return SafeAreaPreview(node_id=rule.id)
    preview = SafeAreaPreview(node_id=rule.id, node_name=node.name, node_type=node.type, found=True)
    if node.type not in SAFE_AREA_TYPES:
        preview.reason = f"Only FRAME and COMPONENT nodes are supported (got {node.type})"
        return preview
    preview.child_count = len(node.children or [])
    if has_safe_area(document, node):
        preview.reason = f'"{SAFE_AREA_NAME}" frame already exists inside "{node.name}"'
        return preview
    preview.applicable = True
    preview.reason = (
        f'A fullscreen "{SAFE_AREA_NAME}" frame will wrap {preview.child_count} '
        f'child(ren) inside "{node.name}"'
    )
    return preview


def preview_rules(document: Document, rules: Union[RuleSet, dict, None]) -> RulePreview:
    """Describe what apply_rules() would do, without touching the document."""
    rule_set = _parse(rules)
    preview = RulePreview(
        renames=[_preview_rename(document, r) for r in rule_set.rename],
        make_components=[_preview_make_component(document, r) for r in rule_set.make_component],
        safe_areas=[_preview_safe_area(document, r) for r in rule_set.add_safe_area],
    )
    preview.total_changes = len(preview.renames) + len(preview.make_components) + len(preview.safe_areas)
    logger.info(f"👀 Rule preview: {preview.total_changes} change(s)")
    return preview


# ─── Apply ──────────────────────────────────────────────────────────────────

def _apply_rename(document: Document, rule: RenameRule) -> RenameResult:
    result = RenameResult(node_id=rule.id, new_name=rule.name)
    try:
        node = _require(document, rule.id)
        result.old_name = node.name
        node.name = rule.name
        result.success = True
        logger.info(f'🛠️ Renamed "{result.old_name}" → "{rule.name}"')
    except Exception as e:
        logger.warning(f"❌ Rename of {rule.id} failed: {e}")
        result.error = str(e)
    return result


def make_component_in_place(document: Document, node: SceneNode) -> SceneNode:
    """Replace `node` with a COMPONENT holding its content, at the same index and position."""
    if node.type not in CONVERTIBLE_TYPES:
        raise UnsupportedNodeError(f"{node.type} type cannot be converted", details={"node_id": node.id})
    parent = document.parent_of(node)
    if parent is None or parent.type == DOCUMENT:
        raise UnsupportedNodeError("No valid parent node", details={"node_id": node.id})
    if document.is_inside_protected(node):
        raise ProtectedTreeError(
            f"'{node.name}' sits inside a component or instance and cannot become a component",
            details={"node_id": node.id},
        )

    slot = capture_slot(document, node)
    definition = extract_to_definition(document, node, parent, wrap_leaf=True)
    document.insert_child(parent, document.index_in_parent(node), definition)
    document.set_position(definition, slot.x, slot.y)
    if document.exists(node):
        document.remove(node)
    return definition


def _apply_make_component(document: Document, rule: NodeRule) -> MakeComponentResult:
    result = MakeComponentResult(node_id=rule.id)
    try:
        node = _require(document, rule.id)
        result.node_name = node.name
        definition = make_component_in_place(document, node)
        result.new_component_id = definition.id
        result.success = True
        logger.info(f"🧩 '{node.name}' converted to component {definition.id}")
    except Exception as e:
        logger.warning(f"❌ Make-component for {rule.id} failed: {e}")
        result.error = str(e)
    return result


def _apply_safe_area(document: Document, rule: NodeRule) -> SafeAreaResult:
    result = SafeAreaResult(node_id=rule.id)
    try:
        node = _require(document, rule.id)
        result.node_name = node.name
        wrapped = len(node.children or [])
        frame = add_safe_area(document, node)
        result.safe_area_frame_id = frame.id
        result.changes = (
            f'"{SAFE_AREA_NAME}" frame created ({round(node.width)}×{round(node.height)}), '
            f"wrapped {wrapped} child(ren)"
        )
        result.success = True
    except Exception as e:
        logger.warning(f"❌ Safe area for {rule.id} failed: {e}")
        result.error = str(e)
    return result


def apply_rules(document: Document, rules: Union[RuleSet, dict, None]) -> RuleApplyResult:
    rule_set = _parse(rules)
    result = RuleApplyResult(
        renames=[_apply_rename(document, r) for r in rule_set.rename],
        make_components=[_apply_make_component(document, r) for r in rule_set.make_component],
        safe_areas=[_apply_safe_area(document, r) for r in rule_set.add_safe_area],
    )
    outcomes: List[Any] = [*result.renames, *result.make_components, *result.safe_areas]
    result.success_count = sum(1 for o in outcomes if o.success)
    result.fail_count = len(outcomes) - result.success_count
    logger.info(f"✅ Rules applied: {result.success_count} succeeded, {result.fail_count} failed")
    return result
