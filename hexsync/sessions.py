from __future__ import annotations

import threading

from hexsync.errors import UnknownConnection


class SessionRegistry:
    """Connection id -> codes of the rooms that connection has joined.

    Lets a disconnect clean up in O(rooms joined) instead of scanning every
    room. The gateway updates it in lockstep with the RoomStore.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def on_connect(self, connection_id: str) -> None:
        with self._lock:
            self._sessions.setdefault(connection_id, set())

    def on_join(self, connection_id: str, code: str) -> None:
        with self._lock:
            rooms = self._sessions.get(connection_id)
            if rooms is None:
                raise UnknownConnection(connection_id)
            rooms.add(code)

    def on_leave(self, connection_id: str, code: str) -> None:
        with self._lock:
            rooms = self._sessions.get(connection_id)
            if rooms is None:
                raise UnknownConnection(connection_id)
            rooms.discard(code)

    def on_disconnect(self, connection_id: str) -> list[str]:
        """Forget the connection; returns the codes it still belonged to."""

        with self._lock:
            rooms = self._sessions.pop(connection_id, set())
        return sorted(rooms)

    def rooms_of(self, connection_id: str) -> frozenset[str]:
        with self._lock:
            return frozenset(self._sessions.get(connection_id, ()))

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
