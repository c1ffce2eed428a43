"""
Domain exceptions.

Every error here is scoped to a single request; the gateway turns the
recoverable ones into `room_error` replies and never lets them escape into
another room's handling.
"""
from __future__ import annotations


class HexSyncError(Exception):
    """Base class for all room/state synchronization errors."""


# ============ Room errors ============

class RoomNotFound(HexSyncError):
    """Join against a code with no live room."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Room {code} not found")


class StaleRoomMutation(HexSyncError):
    """Mutation or chat aimed at a room that no longer exists.

    The gateway drops these silently; the type exists so callers of the store
    that prefer exceptions over a `False` return have something to raise.
    """

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Room {code} no longer exists")


# ============ Code generation errors ============

class CodeGenerationExhausted(HexSyncError):
    """No free room code found within the retry cap."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"No free room code after {attempts} attempts")


# ============ Session errors ============

class UnknownConnection(HexSyncError):
    """Session bookkeeping for a connection that never connected or already left."""

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} is not registered")