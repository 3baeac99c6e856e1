"""
Organizer Errors - Structured exception taxonomy

Every error raised by the host model or the analysis/transform engines carries
a structured payload so per-item results can report a code the UI can act on.
Expected payload shape: { code: str, message: str, details?: dict }
"""

from typing import Any, Dict


class OrganizerError(Exception):
    """Base class for all structured organizer failures."""

    default_code = "organizer_error"

    def __init__(self, payload: Any, details: Dict[str, Any] | None = None):
        # Normalize payload and capture canonical fields
        if isinstance(payload, dict):
            self.code: str = str(payload.get("code", self.default_code))
            self.message: str = str(payload.get("message", ""))
            self.details: Dict[str, Any] = payload.get("details", {}) or {}
        else:
            self.code = self.default_code
            self.message = str(payload)
            self.details = details or {}

        self.payload = {"code": self.code, "message": self.message, "details": self.details}

        # Exception text is simply the structured message (or the code when empty)
        super().__init__(self.message if self.message else self.code)


class NodeNotFoundError(OrganizerError):
    """A referenced node id no longer resolves (deleted since the scan)."""

    default_code = "node_not_found"

    def __init__(self, node_id: str, message: str | None = None):
        super().__init__(
            message or f"Node {node_id} not found (may have been deleted)",
            details={"node_id": node_id},
        )
        self.node_id = node_id


class UnsupportedNodeError(OrganizerError):
    """The node type or state cannot support the requested operation."""

    default_code = "unsupported_node"


class ProtectedTreeError(OrganizerError):
    """The host forbids this structural mutation inside a definition/instance tree."""

    default_code = "protected_tree"


class HostPrimitiveError(OrganizerError):
    """A host create/merge/remove primitive rejected its input."""

    default_code = "host_primitive_failed"


class RequestValidationError(OrganizerError):
    """Insufficient or malformed input; raised before any mutation happens."""

    default_code = "validation_failed"
