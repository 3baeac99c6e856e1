import json
import os
import sys
import signal
import logging
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from dotenv import load_dotenv
from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection

# Load environment variables from .env file
load_dotenv()

from analysis import analyze_document, pages_for_scope
from analyze_fix import AnalyzeIssue, fix_all_analyze_issues, fix_analyze_issue
from cleanup_analysis import CleanupChecks
from component_converter import convert_groups
from component_scanner import scan_component_candidates
from errors import OrganizerError, RequestValidationError
from figma_communicator import FigmaCommunicator, set_communicator
from layout_analysis import LayoutIssue, check_layout
from layout_config import LayoutConfig, LayoutConfigStore, merge_with_defaults
from layout_fix import fix_all_layout_issues, fix_layout_issue
from rules import apply_rules, preview_rules
from scene_graph import Document
from variant_combiner import combine_as_variants

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='[%(asctime)s] [organizer] [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%dT%H:%M:%S'
)
logger = logging.getLogger(__name__)

# Message type constants to avoid stringly-typed conditionals
MESSAGE_TYPE_JOIN = "join"
MESSAGE_TYPE_PING = "ping"
MESSAGE_TYPE_PONG = "pong"
MESSAGE_TYPE_SYSTEM = "system"
MESSAGE_TYPE_TOOL_RESPONSE = "tool_response"
MESSAGE_TYPE_ERROR = "error"

MESSAGE_TYPE_DOCUMENT_SNAPSHOT = "document_snapshot"
MESSAGE_TYPE_ANALYZE_DOCUMENT = "analyze_document"
MESSAGE_TYPE_ANALYZE_LAYOUT = "analyze_layout"
MESSAGE_TYPE_FIX_LAYOUT_ISSUE = "fix_layout_issue"
MESSAGE_TYPE_FIX_ALL_LAYOUT_ISSUES = "fix_all_layout_issues"
MESSAGE_TYPE_FIX_ANALYZE_ISSUE = "fix_analyze_issue"
MESSAGE_TYPE_FIX_ALL_ANALYZE_ISSUES = "fix_all_analyze_issues"
MESSAGE_TYPE_SCAN_COMPONENTS = "scan_components"
MESSAGE_TYPE_CONVERT_COMPONENTS = "convert_components"
MESSAGE_TYPE_COMBINE_AS_VARIANTS = "combine_as_variants"
MESSAGE_TYPE_PREVIEW_RULES = "preview_rules"
MESSAGE_TYPE_APPLY_RULES = "apply_rules"
MESSAGE_TYPE_LOAD_LAYOUT_CONFIG = "load_layout_config"
MESSAGE_TYPE_SAVE_LAYOUT_CONFIG = "save_layout_config"
MESSAGE_TYPE_RESET_LAYOUT_CONFIG = "reset_layout_config"

# Requests whose reply carries the rewritten document
MUTATING_REQUESTS = frozenset({
    MESSAGE_TYPE_FIX_LAYOUT_ISSUE,
    MESSAGE_TYPE_FIX_ALL_LAYOUT_ISSUES,
    MESSAGE_TYPE_FIX_ANALYZE_ISSUE,
    MESSAGE_TYPE_FIX_ALL_ANALYZE_ISSUES,
    MESSAGE_TYPE_CONVERT_COMPONENTS,
    MESSAGE_TYPE_COMBINE_AS_VARIANTS,
    MESSAGE_TYPE_APPLY_RULES,
})

RequestHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


def _batch_summary(results) -> Dict[str, Any]:
    fixed = sum(1 for r in results if r.success)
    return {
        "results": [r.to_payload() for r in results],
        "fixed": fixed,
        "failed": len(results) - fixed,
    }


def error_payload(exc: Exception) -> Dict[str, Any]:
    """Structured {code, message, details} for any request failure."""
    if isinstance(exc, OrganizerError):
        return exc.payload
    if isinstance(exc, ValidationError):
        return {"code": "validation_failed", "message": str(exc), "details": {"errors": exc.error_count()}}
    return {"code": "unexpected_error", "message": str(exc), "details": {}}


class OrganizerService:
    def __init__(self, bridge_url: str, channel: str, rpc_timeout: float = 30.0):
        self.bridge_url = bridge_url
        self.channel = channel
        self.rpc_timeout = rpc_timeout
        self.websocket: Optional[ClientConnection] = None
        self.running = True
        self.reconnect_delay = 1  # Start with 1 second
        self.max_reconnect_delay = 30  # Max 30 seconds
        self._keep_alive_task = None
        self._background_tasks: set[asyncio.Task] = set()
        # One request at a time: every engine mutates the same document
        self._request_lock = asyncio.Lock()

        self.communicator: Optional[FigmaCommunicator] = None
        self.config_store: Optional[LayoutConfigStore] = None
        self.document: Optional[Document] = None
        self.layout_config = LayoutConfig()

        self.request_handlers: Dict[str, RequestHandler] = {
            MESSAGE_TYPE_DOCUMENT_SNAPSHOT: self._handle_document_snapshot,
            MESSAGE_TYPE_ANALYZE_DOCUMENT: self._handle_analyze_document,
            MESSAGE_TYPE_ANALYZE_LAYOUT: self._handle_analyze_layout,
            MESSAGE_TYPE_FIX_LAYOUT_ISSUE: self._handle_fix_layout_issue,
            MESSAGE_TYPE_FIX_ALL_LAYOUT_ISSUES: self._handle_fix_all_layout_issues,
            MESSAGE_TYPE_FIX_ANALYZE_ISSUE: self._handle_fix_analyze_issue,
            MESSAGE_TYPE_FIX_ALL_ANALYZE_ISSUES: self._handle_fix_all_analyze_issues,
            MESSAGE_TYPE_SCAN_COMPONENTS: self._handle_scan_components,
            MESSAGE_TYPE_CONVERT_COMPONENTS: self._handle_convert_components,
            MESSAGE_TYPE_COMBINE_AS_VARIANTS: self._handle_combine_as_variants,
            MESSAGE_TYPE_PREVIEW_RULES: self._handle_preview_rules,
            MESSAGE_TYPE_APPLY_RULES: self._handle_apply_rules,
            MESSAGE_TYPE_LOAD_LAYOUT_CONFIG: self._handle_load_layout_config,
            MESSAGE_TYPE_SAVE_LAYOUT_CONFIG: self._handle_save_layout_config,
            MESSAGE_TYPE_RESET_LAYOUT_CONFIG: self._handle_reset_layout_config,
        }

    async def _send_json(self, payload: Dict[str, Any]) -> None:
        """Safely send a JSON-serializable payload over the websocket if connected."""
        if not self.websocket:
            raise RuntimeError("WebSocket not connected")
        await self.websocket.send(json.dumps(payload))

    def attach_communicator(self, communicator: FigmaCommunicator) -> None:
        self.communicator = communicator
        self.config_store = LayoutConfigStore(communicator)
        set_communicator(communicator)

    async def connect(self) -> bool:
        """Connect to the bridge and join as organizer"""
        try:
            logger.info(f"Connecting to bridge at {self.bridge_url}")
            # Document snapshots can be large
            self.websocket = await websockets.connect(self.bridge_url, max_size=None)

            await self._send_json({
                "type": MESSAGE_TYPE_JOIN,
                "role": "agent",
                "channel": self.channel
            })
            logger.info(f"Sent join message for channel: {self.channel}")

            await self._send_json({"type": MESSAGE_TYPE_PING})
            logger.info("🏓 Sent ping message to test WebSocket bidirectional communication")

            self._keep_alive_task = asyncio.create_task(self._websocket_keep_alive())
            logger.info("💓 Started WebSocket keep-alive mechanism")

            self.attach_communicator(FigmaCommunicator(self.websocket, timeout=self.rpc_timeout))
            logger.info(f"Initialized FigmaCommunicator for plugin calls (timeout: {self.rpc_timeout}s)")

            # Reset reconnect delay on successful connection
            self.reconnect_delay = 1
            return True

        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            return False

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Route one bridge message; organizer requests run in a background task."""
        msg_type = message.get("type")
        logger.info(f"🔍 Raw message received - Type: '{msg_type}', Keys: {list(message.keys())}")

        if msg_type in self.request_handlers:
            # Requests may await plugin RPCs whose replies arrive through this same loop
            task = asyncio.create_task(self._run_request(message))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
            return

        handlers = {
            MESSAGE_TYPE_SYSTEM: self._handle_system,
            MESSAGE_TYPE_PING: self._handle_ping,
            MESSAGE_TYPE_PONG: self._handle_pong,
            MESSAGE_TYPE_TOOL_RESPONSE: self._handle_tool_response,
            MESSAGE_TYPE_ERROR: self._handle_bridge_error,
        }
        handler = handlers.get(msg_type, self._handle_unknown)
        await handler(message)

    async def _run_request(self, message: Dict[str, Any]) -> None:
        reply = await self.dispatch(message)
        try:
            await self._send_json(reply)
        except Exception as e:
            logger.error(f"❌ Could not send {reply.get('type')}: {e}")

    async def dispatch(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Run one organizer request and build its `<type>_result` reply."""
        msg_type = message.get("type")
        reply: Dict[str, Any] = {"type": f"{msg_type}_result"}
        if message.get("requestId") is not None:
            reply["requestId"] = message["requestId"]

        handler = self.request_handlers.get(msg_type)
        if handler is None:
            reply.update(success=False, error={"code": "unknown_request", "message": f"Unknown request '{msg_type}'", "details": {}})
            return reply

        async with self._request_lock:
            try:
                if message.get("snapshot") is not None and msg_type != MESSAGE_TYPE_DOCUMENT_SNAPSHOT:
                    self.document = Document.from_snapshot(message["snapshot"])
                data = await handler(message.get("params") or {})
                reply.update(success=True, data=data)
                if msg_type in MUTATING_REQUESTS and self.document is not None:
                    reply["snapshot"] = self.document.to_snapshot()
            except Exception as e:
                logger.error(f"❌ {msg_type} failed: {e}")
                reply.update(success=False, error=error_payload(e))
        return reply

    def _require_document(self) -> Document:
        if self.document is None:
            raise RequestValidationError("No document loaded; send a document_snapshot first")
        return self.document

    # ─── Organizer requests ──────────────────────────────────────────────────

    async def _handle_document_snapshot(self, params: Dict[str, Any]) -> Dict[str, Any]:
        snapshot = params.get("snapshot", params)
        self.document = Document.from_snapshot(snapshot)
        return {"nodeCount": len(self.document.nodes), "pageCount": len(self.document.pages)}

    async def _handle_analyze_document(self, params: Dict[str, Any]) -> Dict[str, Any]:
        checks = CleanupChecks.model_validate(params.get("cleanupChecks") or {})
        return analyze_document(self._require_document(), params.get("scope", "current"), checks)

    async def _handle_analyze_layout(self, params: Dict[str, Any]) -> Dict[str, Any]:
        document = self._require_document()
        config = merge_with_defaults(params["config"]) if params.get("config") else self.layout_config
        issues = check_layout(document, pages_for_scope(document, params.get("scope", "current")), config)
        return {"issues": [i.to_payload() for i in issues], "count": len(issues)}

    async def _handle_fix_layout_issue(self, params: Dict[str, Any]) -> Dict[str, Any]:
        issue = LayoutIssue.model_validate(params.get("issue") or {})
        return fix_layout_issue(self._require_document(), issue).to_payload()

    async def _handle_fix_all_layout_issues(self, params: Dict[str, Any]) -> Dict[str, Any]:
        issues = [LayoutIssue.model_validate(raw) for raw in params.get("issues") or []]
        return _batch_summary(fix_all_layout_issues(self._require_document(), issues))

    async def _handle_fix_analyze_issue(self, params: Dict[str, Any]) -> Dict[str, Any]:
        issue = AnalyzeIssue.model_validate(params.get("issue") or {})
        return fix_analyze_issue(self._require_document(), issue).to_payload()

    async def _handle_fix_all_analyze_issues(self, params: Dict[str, Any]) -> Dict[str, Any]:
        issues = [AnalyzeIssue.model_validate(raw) for raw in params.get("issues") or []]
        return _batch_summary(fix_all_analyze_issues(self._require_document(), issues))

    async def _handle_scan_components(self, params: Dict[str, Any]) -> Dict[str, Any]:
        document = self._require_document()
        groups = scan_component_candidates(
            document,
            pages_for_scope(document, params.get("scope", "current")),
            include_protected=bool(params.get("includeProtected", False)),
        )
        return {"groups": [g.to_payload() for g in groups], "count": len(groups)}

    async def _handle_convert_components(self, params: Dict[str, Any]) -> Dict[str, Any]:
        results = convert_groups(self._require_document(), params.get("groups") or [])
        return {
            "results": [r.to_payload() for r in results],
            "componentsCreated": sum(1 for r in results if r.component_id),
            "instancesCreated": sum(r.instance_count for r in results),
        }

    async def _handle_combine_as_variants(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return combine_as_variants(self._require_document(), params).to_payload()

    async def _handle_preview_rules(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return preview_rules(self._require_document(), params.get("rules")).to_payload()

    async def _handle_apply_rules(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return apply_rules(self._require_document(), params.get("rules")).to_payload()

    def _require_store(self) -> LayoutConfigStore:
        if self.config_store is None:
            raise RuntimeError("Plugin connection not available for client storage")
        return self.config_store

    async def _handle_load_layout_config(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.layout_config = await self._require_store().load()
        return self.layout_config.to_payload()

    async def _handle_save_layout_config(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.layout_config = await self._require_store().save(params.get("config") or {})
        return self.layout_config.to_payload()

    async def _handle_reset_layout_config(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.layout_config = await self._require_store().reset()
        return self.layout_config.to_payload()

    # ─── Bridge messages ─────────────────────────────────────────────────────

    async def _handle_system(self, message: Dict[str, Any]) -> None:
        sys_msg = message.get('message')
        logger.info(f"🔧 System message: {sys_msg}")
        if isinstance(sys_msg, str) and 'disconnected' in sys_msg.lower() and 'plugin' in sys_msg.lower():
            if self.communicator:
                self.communicator.cleanup_pending_requests()

    async def _handle_ping(self, _: Dict[str, Any]) -> None:
        await self._send_json({"type": MESSAGE_TYPE_PONG})

    async def _handle_pong(self, _: Dict[str, Any]) -> None:
        logger.info("🏓 Received pong response - WebSocket bidirectional communication WORKING!")

    async def _handle_tool_response(self, message: Dict[str, Any]) -> None:
        logger.info(f"📨 Received tool_response: {message.get('id', 'no-id')}")
        if self.communicator:
            self.communicator.handle_tool_response(message)
        else:
            logger.warning("Received tool_response but communicator not initialized")

    async def _handle_bridge_error(self, message: Dict[str, Any]) -> None:
        error_msg = message.get("message", "Unknown error")
        logger.error(f"Bridge error: {error_msg}")

    async def _handle_unknown(self, message: Dict[str, Any]) -> None:
        msg_type = message.get("type")
        logger.debug(f"Ignoring unknown message type: {msg_type}")

    # ─── Connection lifecycle ────────────────────────────────────────────────

    async def listen(self) -> None:
        """Listen for messages from the bridge"""
        try:
            logger.info("🎧 Starting to listen for messages from bridge")
            while self.running and self.websocket:
                try:
                    raw_message = await self.websocket.recv()
                except asyncio.CancelledError:
                    logger.info("🛑 Listen loop cancelled")
                    break
                except Exception as e:
                    logger.error(f"❌ Error receiving message: {e}")
                    break

                if not raw_message:
                    logger.warning("📡 Received empty WebSocket message")
                    continue

                logger.debug(f"📡 Raw WebSocket message received: {raw_message[:200]}...")
                try:
                    await self.handle_message(json.loads(raw_message))
                except json.JSONDecodeError as e:
                    logger.error(f"❌ Failed to decode message: {e}, Raw: {raw_message[:200]}")
                except Exception as e:
                    logger.error(f"❌ Error handling message: {e}")
        except Exception as e:
            logger.error(f"❌ Error in listen loop: {e}")

    async def _websocket_keep_alive(self, interval: int = 30) -> None:
        """Keep WebSocket connection alive with periodic pings"""
        try:
            while self.running and self.websocket:
                await asyncio.sleep(interval)
                if not self.websocket:
                    break
                try:
                    pong_waiter = await self.websocket.ping()
                    await asyncio.wait_for(pong_waiter, timeout=10)
                    logger.debug("💓 WebSocket keep-alive ping successful")
                except asyncio.TimeoutError:
                    logger.warning("💔 WebSocket keep-alive ping timed out")
                    break
                except Exception as e:
                    logger.error(f"💔 WebSocket keep-alive ping failed: {e}")
                    break
        except asyncio.CancelledError:
            logger.debug("💓 WebSocket keep-alive task cancelled")

    async def run_with_reconnect(self) -> None:
        """Main loop with reconnection logic"""
        while self.running:
            try:
                if await self.connect():
                    logger.info("🌉 Connected to bridge successfully")
                    await self.listen()
                else:
                    logger.warning("Failed to connect to bridge")
            except Exception as e:
                logger.error(f"Unexpected error: {e}")

            if self.communicator:
                self.communicator.cleanup_pending_requests()

            if self.running:
                logger.info(f"Reconnecting in {self.reconnect_delay} seconds...")
                await asyncio.sleep(self.reconnect_delay)
                # Exponential backoff up to max delay
                self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    def shutdown(self) -> None:
        """Graceful shutdown"""
        logger.info("Shutting down organizer")
        self.running = False

        if self._keep_alive_task and not self._keep_alive_task.done():
            self._keep_alive_task.cancel()
            logger.debug("💓 Cancelled WebSocket keep-alive task")

        if self.communicator:
            self.communicator.cleanup_pending_requests()
            logger.info("Cleaned up pending plugin calls")

        self.websocket = None


def get_config(argv=None):
    """Get configuration from environment variables or CLI args"""
    bridge_url = os.getenv("BRIDGE_URL", "ws://localhost:3055")
    channel = os.getenv("ORGANIZER_CHANNEL")
    rpc_timeout = float(os.getenv("PLUGIN_RPC_TIMEOUT", "30.0"))

    for arg in (sys.argv[1:] if argv is None else argv):
        if arg.startswith("--channel="):
            channel = arg.split("=", 1)[1]
        elif arg.startswith("--bridge-url="):
            bridge_url = arg.split("=", 1)[1]

    # Use a fixed default channel for simplicity
    if not channel:
        channel = "fixma-organizer-default"
        logger.info(f"No channel specified, using default: {channel}")

    return bridge_url, channel, rpc_timeout


def main():
    bridge_url, channel, rpc_timeout = get_config()

    logger.info("Starting Fixma organizer service")
    logger.info(f"Bridge URL: {bridge_url}")
    logger.info(f"Channel: {channel}")

    service = OrganizerService(bridge_url, channel, rpc_timeout)

    # Handle shutdown signals
    def signal_handler(signum, frame):
        logger.info("Received shutdown signal")
        service.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        asyncio.run(service.run_with_reconnect())
    except KeyboardInterrupt:
        logger.info("Organizer interrupted")
    finally:
        service.shutdown()


if __name__ == "__main__":
    main()
