"""Shared fixtures for the organizer tests.

Provides:
- A fresh in-process Document with one page
- FakeCommunicator: client-storage double for the layout config store
- FakeWebSocket: records outgoing frames for communicator / service tests
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from scene_graph import Document, SceneNode


class FakeCommunicator:
    """In-memory stand-in for FigmaCommunicator's client storage calls."""

    def __init__(self, storage: Dict[str, Any] | None = None, fail_reads: bool = False):
        self.storage: Dict[str, Any] = dict(storage or {})
        self.fail_reads = fail_reads
        self.writes: List[tuple[str, Any]] = []

    async def client_storage_get(self, key: str) -> Any:
        if self.fail_reads:
            raise TimeoutError("plugin did not answer")
        return self.storage.get(key)

    async def client_storage_set(self, key: str, value: Any) -> None:
        self.writes.append((key, value))
        self.storage[key] = value

    def cleanup_pending_requests(self) -> None:
        pass


class FakeWebSocket:
    def __init__(self):
        self.sent: List[str] = []

    async def send(self, data: str) -> None:
        self.sent.append(data)

    def messages(self) -> List[Dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]


@pytest.fixture
def document() -> Document:
    doc = Document(name="Test file")
    doc.create_page("Page 1")
    return doc


@pytest.fixture
def page(document: Document) -> SceneNode:
    return document.current_page


@pytest.fixture
def fake_communicator() -> FakeCommunicator:
    return FakeCommunicator()


@pytest.fixture
def fake_websocket() -> FakeWebSocket:
    return FakeWebSocket()
