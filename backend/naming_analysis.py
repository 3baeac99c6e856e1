"""
Naming Analysis - Default names, transliteration-needed characters and
sibling case-style consistency.
"""

import logging
import re
from collections import Counter
from enum import Enum
from typing import Iterable, List, Optional

from scene_graph import CamelModel, Document, SceneNode

logger = logging.getLogger(__name__)

# "Frame 12", "Rectangle 3", ... as assigned by the host on creation
DEFAULT_NAME_PATTERN = re.compile(
    r"^(Frame|Rectangle|Group|Ellipse|Line|Vector|Text|Image|Component|Instance"
    r"|Polygon|Star|BooleanOperation|Slice|Section)\s+\d+$",
    re.IGNORECASE,
)

TRANSLITERATION_MAP = {
    "ç": "c", "Ç": "C",
    "ğ": "g", "Ğ": "G",
    "ı": "i", "İ": "I",
    "ö": "o", "Ö": "O",
    "ş": "s", "Ş": "S",
    "ü": "u", "Ü": "U",
    "ä": "a", "Ä": "A",
    "â": "a", "Â": "A",
    "î": "i", "Î": "I",
    "û": "u", "Û": "U",
    "é": "e", "É": "E",
    "è": "e", "È": "E",
    "ñ": "n", "Ñ": "N",
    "ß": "ss",
}

TRANSLITERATION_PATTERN = re.compile("[" + "".join(TRANSLITERATION_MAP) + "]")

CASE_STYLES = ("snake_case", "camelCase", "PascalCase", "kebab-case")


class NamingIssueKind(str, Enum):
    DEFAULT_NAME = "default_name"
    NON_ASCII_CHARS = "non_ascii_chars"
    CASE_INCONSISTENCY = "case_inconsistency"


class NamingIssue(CamelModel):
    node_id: str
    node_name: str
    node_type: str
    issue: NamingIssueKind
    description: str
    suggestion: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def is_default_name(name: str) -> bool:
    return bool(DEFAULT_NAME_PATTERN.match(name or ""))


def transliterate(name: str) -> str:
    return TRANSLITERATION_PATTERN.sub(lambda m: TRANSLITERATION_MAP[m.group(0)], name)


def detect_case(name: str) -> str:
    """Classify a name as one of CASE_STYLES, or "none"."""
    clean = re.sub(r"[^a-zA-Z0-9_\-]", "", name or "")
    if not clean:
        return "none"
    if "_" in clean:
        return "snake_case"
    if "-" in clean:
        return "kebab-case"
    if clean[0] == clean[0].upper() and re.search(r"[a-z]", clean):
        return "PascalCase"
    if clean[0] == clean[0].lower() and re.search(r"[A-Z]", clean):
        return "camelCase"
    return "none"


def _case_issues(document: Document, container: SceneNode) -> List[NamingIssue]:
    styled = [
        (child, detect_case(child.name))
        for child in document.children_of(container)
        if child.type != "TEXT"
    ]
    styled = [(child, style) for child, style in styled if style != "none"]
    if len(styled) < 2:
        return []

    counts = Counter(style for _, style in styled)
    if len(counts) < 2:
        return []
    dominant = counts.most_common(1)[0][0]

    return [
        NamingIssue(
            node_id=child.id, node_name=child.name, node_type=child.type,
            issue=NamingIssueKind.CASE_INCONSISTENCY,
            description=f'"{child.name}" uses a different case style than its siblings ({style} vs {dominant})',
            suggestion=f"Convert to {dominant}",
        )
        for child, style in styled
        if style != dominant and not is_default_name(child.name)
    ]


def check_naming(document: Document, roots: Iterable[SceneNode]) -> List[NamingIssue]:
    issues: List[NamingIssue] = []
    for root in roots:
        for node in document.walk(root):
            if node.type not in ("PAGE", "DOCUMENT"):
                if is_default_name(node.name):
                    issues.append(NamingIssue(
                        node_id=node.id, node_name=node.name, node_type=node.type,
                        issue=NamingIssueKind.DEFAULT_NAME,
                        description=f'"{node.name}" is using a default layer name',
                        suggestion="Give it a meaningful name, e.g. 'btn_primary', 'card_user'",
                    ))
                if TRANSLITERATION_PATTERN.search(node.name or ""):
                    issues.append(NamingIssue(
                        node_id=node.id, node_name=node.name, node_type=node.type,
                        issue=NamingIssueKind.NON_ASCII_CHARS,
                        description=f'"{node.name}" contains non-ASCII characters',
                        suggestion=f'Use ASCII equivalents: "{transliterate(node.name)}"',
                    ))
            if node.children and len(node.children) > 1:
                issues.extend(_case_issues(document, node))
    logger.debug(f"🔎 Naming scan found {len(issues)} issue(s)")
    return issues
