from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from hexsync.errors import RoomNotFound

CellState = dict[str, Any]

# Called with a snapshot of the relevant member ids while the room lock is held.
Notify = Callable[[frozenset[str]], None]
# Called on join with (cells snapshot, members to tell about the newcomer),
# also under the room lock. The second set is empty when nobody new arrived.
JoinNotify = Callable[[dict[str, CellState], frozenset[str]], None]


def merge_cell_state(current: Mapping[str, Any] | None, partial: Mapping[str, Any]) -> CellState:
    """Top-level additive merge: keys in `partial` win, keys absent from it survive.

    Nested values are replaced whole, never deep-merged. The result shares no
    mutable objects with either argument.
    """

    merged: CellState = copy.deepcopy(dict(current)) if current else {}
    merged.update(copy.deepcopy(dict(partial)))
    return merged


@dataclass(frozen=True, slots=True)
class Departure:
    """Result of a connection leaving one room."""

    code: str
    connection_id: str
    remaining_members: frozenset[str]
    destroyed: bool


class Room:
    """One room: membership plus the authoritative cell map.

    All reads and writes of `members`/`cells` happen under `self._lock`.
    A room becomes `closed` the instant its last member leaves; a closed room
    refuses every further operation, even from callers that still hold a
    reference obtained before the store dropped it.
    """

    def __init__(self, code: str, owner_id: str) -> None:
        self.code = code
        self._members: set[str] = {owner_id}
        self._cells: dict[str, CellState] = {}
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def members(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._members)

    def snapshot(self) -> dict[str, CellState]:
        with self._lock:
            return copy.deepcopy(self._cells)

    def join(self, connection_id: str, *, notify: JoinNotify | None = None) -> dict[str, CellState]:
        """Add a member and return a deep copy of the cells.

        `notify` receives its own copy of the snapshot plus the other members, so
        the joiner can be sent the snapshot before any later update. A re-join by
        a current member resends the snapshot with no one to notify.
        """

        with self._lock:
            if self._closed:
                raise RoomNotFound(self.code)
            if connection_id in self._members:
                others: frozenset[str] = frozenset()
            else:
                others = frozenset(self._members)
            self._members.add(connection_id)
            snapshot = copy.deepcopy(self._cells)
            if notify is not None:
                notify(copy.deepcopy(snapshot), others)
            return snapshot

    def leave(self, connection_id: str, *, notify: Notify | None = None) -> Departure | None:
        """Remove a member; the room closes when nobody is left. `notify` gets the remaining members."""

        with self._lock:
            if self._closed or connection_id not in self._members:
                return None
            self._members.discard(connection_id)
            remaining = frozenset(self._members)
            if not remaining:
                self._closed = True
                # State goes with the room.
                self._cells.clear()
            elif notify is not None:
                notify(remaining)
            return Departure(
                code=self.code,
                connection_id=connection_id,
                remaining_members=remaining,
                destroyed=not remaining,
            )

    def update_cell(self, cell_id: str, partial: Mapping[str, Any], *, notify: Notify | None = None) -> bool:
        """Merge `partial` into `cells[cell_id]`; False if the room is closed. `notify` gets all members."""

        with self._lock:
            if self._closed:
                return False
            self._cells[cell_id] = merge_cell_state(self._cells.get(cell_id), partial)
            if notify is not None:
                notify(frozenset(self._members))
            return True

    def publish(self, notify: Notify) -> bool:
        """Run `notify` with all members without touching state; False if closed."""

        with self._lock:
            if self._closed:
                return False
            notify(frozenset(self._members))
            return True

    def __repr__(self) -> str:
        return f"Room(code={self.code!r}, members={len(self._members)}, cells={len(self._cells)})"
