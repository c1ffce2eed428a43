from __future__ import annotations

import random
from collections.abc import Generator, Iterable
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from hexsync.codes import CodeGenerator
from hexsync.config import Settings
from hexsync.gateway import ProtocolGateway
from hexsync.protocol import Event
from hexsync.room_store import RoomStore
from hexsync.sessions import SessionRegistry


class RecordingOutbox:
    """Outbox that remembers every delivery instead of sending it anywhere."""

    def __init__(self) -> None:
        self.deliveries: list[tuple[frozenset[str], dict[str, Any]]] = []

    def deliver(self, recipients: Iterable[str], event: Event) -> None:
        self.deliveries.append((frozenset(recipients), event.to_wire()))

    def events_for(self, connection_id: str) -> list[dict[str, Any]]:
        return [event for recipients, event in self.deliveries if connection_id in recipients]

    def types_for(self, connection_id: str) -> list[str]:
        return [event["type"] for event in self.events_for(connection_id)]

    def clear(self) -> None:
        self.deliveries.clear()


@pytest.fixture()
def store() -> RoomStore:
    # Seeded so failures reproduce.
    return RoomStore(CodeGenerator(rng=random.Random(1234)))


@pytest.fixture()
def outbox() -> RecordingOutbox:
    return RecordingOutbox()


@pytest.fixture()
def gateway(store: RoomStore, outbox: RecordingOutbox) -> ProtocolGateway:
    return ProtocolGateway(store=store, sessions=SessionRegistry(), outbox=outbox, clock=lambda: 1_700_000_000_000)


@pytest.fixture()
def client(tmp_path: Path) -> Generator[TestClient, None, None]:
    """TestClient over a fresh app; every test gets its own rooms."""

    from hexsync.main import create_app

    app = create_app(Settings(static_dir=tmp_path / "no-static-client"))
    with TestClient(app) as c:
        yield c
