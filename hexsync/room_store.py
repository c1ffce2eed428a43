"""
Room Store: the registry of live rooms keyed by room code.

Responsibilities:
1. Create rooms (fresh code + owner as sole member)
2. Route join / mutate / leave to the right Room
3. Drop rooms the moment their membership hits zero

Locking:
- `self._lock` guards only the code -> Room dict (insert / delete / lookup)
- each Room has its own lock for members and cells
- the registry lock is never held while a room lock is taken, so a busy
  room never blocks lookups for unrelated rooms
"""
from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from hexsync.codes import CodeGenerator
from hexsync.errors import RoomNotFound, StaleRoomMutation
from hexsync.room import CellState, Departure, JoinNotify, Notify, Room

logger = logging.getLogger(__name__)

# Like Notify, but told which room the members belong to.
RoomNotify = Callable[[str, frozenset[str]], None]


class RoomStore:
    """In-memory room registry. Construct one per process (or per test)."""

    def __init__(self, code_generator: CodeGenerator | None = None) -> None:
        self._codes = code_generator or CodeGenerator()
        self._rooms: dict[str, Room] = {}
        self._lock = threading.Lock()

    def create_room(self, owner_connection_id: str) -> str:
        """
        Create a room with `owner_connection_id` as its only member.

        Code generation and insertion happen under the registry lock so no two
        live rooms can share a code.

        Raises:
            CodeGenerationExhausted: every draw collided with a live room
        """
        with self._lock:
            code = self._codes.generate(lambda c: c in self._rooms)
            self._rooms[code] = Room(code, owner_connection_id)

        logger.info(f"Created room {code} for connection {owner_connection_id}")
        return code

    def get_room(self, code: str) -> Room | None:
        with self._lock:
            return self._rooms.get(code)

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return sorted(self._rooms.values(), key=lambda r: r.code)

    def join_room(self, code: str, connection_id: str, *, notify: JoinNotify | None = None) -> dict[str, CellState]:
        """
        Add `connection_id` to room `code` and return a copy of its cells.

        Raises:
            RoomNotFound: no live room has this code (including one destroyed
                between lookup and join)
        """
        room = self.get_room(code)
        if room is None:
            raise RoomNotFound(code)

        snapshot = room.join(connection_id, notify=notify)
        logger.info(f"Connection {connection_id} joined room {code}")
        return snapshot

    def update_hex_state(
        self,
        code: str,
        cell_id: str,
        partial_state: Mapping[str, Any],
        *,
        notify: Notify | None = None,
        strict: bool = False,
    ) -> bool:
        """Merge `partial_state` into the cell. False when the room is gone.

        With `strict=True` a missing or closed room raises `StaleRoomMutation`
        instead.
        """

        room = self.get_room(code)
        if room is None:
            if strict:
                raise StaleRoomMutation(code)
            logger.debug(f"Dropping update for cell {cell_id} in missing room {code}")
            return False
        applied = room.update_cell(cell_id, partial_state, notify=notify)
        if not applied:
            if strict:
                raise StaleRoomMutation(code)
            logger.debug(f"Dropping update for cell {cell_id} in closed room {code}")
        return applied

    def publish(self, code: str, notify: Notify, *, strict: bool = False) -> bool:
        room = self.get_room(code)
        published = room is not None and room.publish(notify)
        if not published and strict:
            raise StaleRoomMutation(code)
        return published

    def leave_room(self, code: str, connection_id: str, *, notify: Notify | None = None) -> Departure | None:
        room = self.get_room(code)
        if room is None:
            return None

        departure = room.leave(connection_id, notify=notify)
        if departure is not None and departure.destroyed:
            self._discard(room)
        return departure

    def remove_connection(
        self,
        connection_id: str,
        room_codes: Iterable[str] | None = None,
        *,
        notify: RoomNotify | None = None,
    ) -> list[Departure]:
        """
        Remove a connection from every room it belongs to.

        `room_codes` normally comes from the session registry; without it every
        live room is scanned. Rooms left empty are destroyed. `notify` is
        called as notify(code, remaining_members) once per surviving room.
        """
        if room_codes is None:
            codes = [room.code for room in self.list_rooms()]
        else:
            codes = sorted(set(room_codes))

        departures: list[Departure] = []
        for code in codes:
            room_notify = functools.partial(notify, code) if notify is not None else None
            departure = self.leave_room(code, connection_id, notify=room_notify)
            if departure is not None:
                departures.append(departure)
        return departures

    def _discard(self, room: Room) -> None:
        with self._lock:
            # A closed room is never re-registered, so identity is enough.
            if self._rooms.get(room.code) is room:
                del self._rooms[room.code]
        logger.info(f"Destroyed empty room {room.code}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def __contains__(self, code: object) -> bool:
        with self._lock:
            return code in self._rooms
