"""
Figma Communicator - RPC Communication Layer

Request/response calls from the organizer service to the Figma plugin over the
bridge WebSocket. The organizer only needs a few plugin-side commands (client
storage reads and writes); everything that touches the document happens
in-process on the snapshot the plugin posts.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Dict, Optional

from errors import OrganizerError

logger = logging.getLogger(__name__)


class ToolExecutionError(OrganizerError):
    """
    The plugin reported a failure for a tool_call.

    Expected payload shape: { code: str, message: str, details?: dict }
    """

    default_code = "unknown_plugin_error"

    def __init__(self, payload: Any, command: str | None = None, params: Dict[str, Any] | None = None):
        self.command = command
        self.params = params
        super().__init__(payload)


class FigmaCommunicator:
    """
    Handles RPC communication with the Figma plugin.

    This class manages:
    - Sending tool_call messages to the plugin
    - Tracking pending requests with unique IDs
    - Resolving futures when tool_response messages arrive
    """

    def __init__(self, websocket, timeout: float = 30.0):
        self.websocket = websocket
        self.timeout = timeout
        self.pending_requests: Dict[str, asyncio.Future] = {}
        self.request_timestamps: Dict[str, float] = {}
        self.request_meta: Dict[str, Dict[str, Any]] = {}

    def generate_id(self) -> str:
        return str(uuid.uuid4())

    async def send_command(self, command: str, params: Dict[str, Any] = None) -> Any:
        """
        Send a command to the Figma plugin and wait for the response.

        Raises:
            asyncio.TimeoutError: If the plugin does not answer within `timeout`
            ToolExecutionError: If the plugin returns an error
        """
        if not self.websocket:
            raise RuntimeError("WebSocket connection not available")

        request_id = self.generate_id()
        message = {
            "type": "tool_call",
            "id": request_id,
            "command": command,
            "params": params or {},
        }

        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future
        self.request_timestamps[request_id] = time.time()
        self.request_meta[request_id] = {"command": command, "params": params or {}}

        try:
            logger.info(f"🚀 Sending tool_call: {command} with ID: {request_id}")
            await self.websocket.send(json.dumps(message))
            return await asyncio.wait_for(future, timeout=self.timeout)

        except asyncio.TimeoutError:
            self.pending_requests.pop(request_id, None)
            start_time = self.request_timestamps.pop(request_id, None)
            self.request_meta.pop(request_id, None)
            elapsed = time.time() - start_time if start_time else self.timeout
            logger.error(f"⏰ Tool call {command} (ID: {request_id}) timed out after {elapsed:.3f}s (limit: {self.timeout}s)")
            raise asyncio.TimeoutError(f"Tool call '{command}' timed out after {elapsed:.1f} seconds")

        except Exception as e:
            self.pending_requests.pop(request_id, None)
            self.request_timestamps.pop(request_id, None)
            self.request_meta.pop(request_id, None)
            logger.error(f"Tool call {command} (ID: {request_id}) failed: {e}")
            raise

    def handle_tool_response(self, message: Dict[str, Any]) -> None:
        """Resolve the pending future matching a tool_response message."""
        request_id = message.get("id")
        if not request_id:
            logger.warning("❌ Received tool_response without ID")
            return

        future = self.pending_requests.pop(request_id, None)
        start_time = self.request_timestamps.pop(request_id, None)
        meta = self.request_meta.pop(request_id, None) or {}
        command = meta.get("command")
        params = meta.get("params")

        if future is None:
            logger.warning(f"❌ Received tool_response for unknown ID: {request_id}")
            return
        if future.done():
            logger.debug(f"⚠️ Future already completed for {request_id}")
            return

        elapsed = time.time() - start_time if start_time else 0

        if "error" in message:
            error_val = message.get("error")
            logger.error(f"❌ Tool call {request_id} failed after {elapsed:.3f}s: {error_val}")
            # `error` is either an object or a JSON-encoded object
            try:
                payload = error_val if isinstance(error_val, dict) else json.loads(error_val)
                if not isinstance(payload, dict):
                    raise TypeError("Parsed error is not an object")
            except (TypeError, ValueError):
                payload = {"code": "unknown_plugin_error", "message": str(error_val)}
            future.set_exception(ToolExecutionError(payload, command=command, params=params))
            return

        result = message.get("result", {})
        if isinstance(result, dict) and result.get("success") is False:
            err_text = result.get("message") or "Tool reported failure"
            logger.error(f"❌ Tool call {request_id} reported failure after {elapsed:.3f}s: {err_text}")
            future.set_exception(ToolExecutionError(
                {"code": "plugin_reported_failure", "message": str(err_text), "details": {"result": result}},
                command=command, params=params,
            ))
            return

        logger.info(f"✅ Tool call {request_id} completed successfully after {elapsed:.3f}s")
        future.set_result(result)

    def cleanup_pending_requests(self) -> None:
        """Cancel all pending requests (called on disconnect/shutdown)."""
        for request_id, future in self.pending_requests.items():
            if not future.done():
                future.cancel()
                logger.info(f"Cancelled pending request: {request_id}")
        self.pending_requests.clear()
        self.request_timestamps.clear()
        self.request_meta.clear()

    async def client_storage_get(self, key: str) -> Any:
        result = await self.send_command("client_storage_get", {"key": key})
        return result.get("value") if isinstance(result, dict) else None

    async def client_storage_set(self, key: str, value: Any) -> None:
        await self.send_command("client_storage_set", {"key": key, "value": value})


# Global communicator instance (set by main.py)
_communicator: Optional[FigmaCommunicator] = None


def set_communicator(communicator: Optional[FigmaCommunicator]) -> None:
    global _communicator
    _communicator = communicator


def get_communicator() -> FigmaCommunicator:
    if _communicator is None:
        raise RuntimeError("Communicator not initialized. Call set_communicator() first.")
    return _communicator


async def send_command(command: str, params: Dict[str, Any] = None) -> Any:
    """Send a command using the global communicator."""
    return await get_communicator().send_command(command, params)
