"""
Protocol Gateway: inbound commands -> RoomStore/SessionRegistry -> outbound events.

Transport-agnostic. The websocket layer calls `connect`, `handle_raw` and
`disconnect`; everything the clients should see is pushed to an `Outbox`.

Events that describe a room change are handed to the outbox from inside the
room's critical section (via the store's `notify` callbacks), so every member
receives a room's events in exactly the order the room applied them.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from hexsync.errors import CodeGenerationExhausted, RoomNotFound
from hexsync.fsm import ConnectionFSM
from hexsync.protocol import (
    CellUpdated,
    Chat,
    ChatMessage,
    Command,
    Connected,
    CreateRoom,
    ErrorCode,
    Event,
    JoinRoom,
    LeaveRoom,
    MemberJoined,
    MemberLeft,
    MutateCell,
    RoomCreated,
    RoomError,
    RoomJoined,
    RoomLeft,
    parse_command,
)
from hexsync.room_store import RoomStore
from hexsync.sessions import SessionRegistry

logger = logging.getLogger(__name__)


class Outbox(Protocol):
    """Where the gateway drops events. Must not block: it runs under room locks."""

    def deliver(self, recipients: Iterable[str], event: Event) -> None: ...


def _now_ms() -> int:
    return int(datetime.now(tz=UTC).timestamp() * 1000)


class ProtocolGateway:
    def __init__(
        self,
        *,
        store: RoomStore,
        sessions: SessionRegistry,
        outbox: Outbox,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self._outbox = outbox
        self._clock = clock
        self._connections: dict[str, ConnectionFSM] = {}
        self._lock = threading.Lock()

    # ---------- connection lifecycle ---------- #

    def connect(self, connection_id: str) -> None:
        with self._lock:
            if connection_id in self._connections:
                raise ValueError(f"Connection {connection_id} is already registered")
            self._connections[connection_id] = ConnectionFSM(connection_id)
        self.sessions.on_connect(connection_id)
        logger.info(f"Connection {connection_id} established")
        self._reply(connection_id, Connected(connection_id=connection_id))

    def disconnect(self, connection_id: str) -> list[str]:
        """Drop the connection from every room it joined; returns the codes it left."""

        with self._lock:
            fsm = self._connections.pop(connection_id, None)
        if fsm is None:
            return []
        fsm.disconnect()

        codes = self.sessions.on_disconnect(connection_id)

        def _member_left(code: str, remaining: frozenset[str]) -> None:
            self._outbox.deliver(remaining, MemberLeft(room_code=code, connection_id=connection_id))

        departures = self.store.remove_connection(connection_id, codes, notify=_member_left)
        logger.info(f"Connection {connection_id} disconnected, left rooms {[d.code for d in departures]}")
        return [d.code for d in departures]

    def connection_state(self, connection_id: str) -> str | None:
        with self._lock:
            fsm = self._connections.get(connection_id)
        return None if fsm is None else str(fsm.current_state.value)

    # ---------- inbound ---------- #

    def handle_raw(self, connection_id: str, raw: str | bytes | Mapping[str, Any]) -> None:
        """Parse one frame and dispatch it; malformed frames get an error reply."""

        try:
            command = parse_command(raw)
        except ValidationError as e:
            logger.debug(f"Invalid message from {connection_id}: {e}")
            self._reply(
                connection_id,
                RoomError(code=ErrorCode.invalid_message, message=_summarize(e)),
            )
            return
        self.handle(connection_id, command)

    def handle(self, connection_id: str, command: Command) -> None:
        with self._lock:
            fsm = self._connections.get(connection_id)
        if fsm is None or not fsm.accepts_commands:
            logger.warning(f"Ignoring {command.type} from unknown connection {connection_id}")
            return

        if isinstance(command, CreateRoom):
            self._create_room(fsm)
        elif isinstance(command, JoinRoom):
            self._join_room(fsm, command)
        elif isinstance(command, MutateCell):
            self._mutate_cell(fsm, command)
        elif isinstance(command, Chat):
            self._chat(fsm, command)
        elif isinstance(command, LeaveRoom):
            self._leave_room(fsm, command)
        else:  # pragma: no cover - the discriminated union is exhaustive
            raise TypeError(f"Unhandled command: {command!r}")

    # ---------- handlers ---------- #

    def _create_room(self, fsm: ConnectionFSM) -> None:
        cid = fsm.connection_id
        try:
            code = self.store.create_room(cid)
        except CodeGenerationExhausted as e:
            logger.error(f"Room creation failed for {cid}: {e}")
            self._reply(cid, RoomError(code=ErrorCode.room_code_unavailable, message="Could not allocate a room code, try again"))
            return

        self._joined(fsm, code)
        # Sole member, nothing to broadcast.
        self._reply(cid, RoomCreated(room_code=code))

    def _join_room(self, fsm: ConnectionFSM, command: JoinRoom) -> None:
        cid = fsm.connection_id
        code = command.room_code

        def _room_joined(cells: dict[str, dict[str, Any]], others: frozenset[str]) -> None:
            self._reply(cid, RoomJoined(room_code=code, cells=cells))
            if others:
                self._outbox.deliver(others, MemberJoined(room_code=code, connection_id=cid))

        try:
            self.store.join_room(code, cid, notify=_room_joined)
        except RoomNotFound as e:
            logger.info(f"Connection {cid} tried to join missing room {code}")
            self._reply(cid, RoomError(code=ErrorCode.room_not_found, message=str(e), room_code=code))
            return

        self._joined(fsm, code)

    def _mutate_cell(self, fsm: ConnectionFSM, command: MutateCell) -> None:
        event = CellUpdated(
            room_code=command.room_code,
            cell_id=command.cell_id,
            partial_state=command.partial_state,
        )

        def _cell_updated(members: frozenset[str]) -> None:
            self._outbox.deliver(members, event)

        applied = self.store.update_hex_state(
            command.room_code,
            command.cell_id,
            command.partial_state,
            notify=_cell_updated,
        )
        if not applied:
            logger.debug(f"Stale mutation from {fsm.connection_id} for room {command.room_code} dropped")

    def _chat(self, fsm: ConnectionFSM, command: Chat) -> None:
        def _chat_message(members: frozenset[str]) -> None:
            # Stamped inside the room lock so timestamps follow delivery order.
            event = ChatMessage(
                room_code=command.room_code,
                sender_id=fsm.connection_id,
                text=command.text,
                timestamp=self._clock(),
            )
            self._outbox.deliver(members, event)

        if not self.store.publish(command.room_code, _chat_message):
            logger.debug(f"Stale chat from {fsm.connection_id} for room {command.room_code} dropped")

    def _leave_room(self, fsm: ConnectionFSM, command: LeaveRoom) -> None:
        cid = fsm.connection_id
        code = command.room_code

        def _member_left(remaining: frozenset[str]) -> None:
            self._outbox.deliver(remaining, MemberLeft(room_code=code, connection_id=cid))

        departure = self.store.leave_room(code, cid, notify=_member_left)
        self.sessions.on_leave(cid, code)
        if departure is None:
            logger.debug(f"Connection {cid} is not in room {code}, nothing to leave")
        elif not self.sessions.rooms_of(cid) and fsm.joined.is_active:
            fsm.leave_last()
        self._reply(cid, RoomLeft(room_code=code))

    # ---------- helpers ---------- #

    def _joined(self, fsm: ConnectionFSM, code: str) -> None:
        self.sessions.on_join(fsm.connection_id, code)
        if fsm.unjoined.is_active:
            fsm.join()

    def _reply(self, connection_id: str, event: Event) -> None:
        self._outbox.deliver((connection_id,), event)


def _summarize(error: ValidationError) -> str:
    first = error.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "message"
    return f"{loc}: {first.get('msg', 'invalid')}"
