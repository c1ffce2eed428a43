"""
Wire protocol: typed inbound commands and outbound events.

Every websocket text frame carries one JSON object with a `type` field.
Inbound field names are snake_case; the camelCase names used by the legacy
browser client (`roomCode`, `hexId`, `action`, `message`) are accepted too.
Outbound events are always snake_case.
"""
from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ErrorCode(StrEnum):
    room_not_found = "room_not_found"
    room_code_unavailable = "room_code_unavailable"
    invalid_message = "invalid_message"


# ============ Inbound commands ============

class _Command(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class _RoomCommand(_Command):
    room_code: str = Field(..., min_length=1, validation_alias=AliasChoices("room_code", "roomCode"))

    @field_validator("room_code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        # People type codes by hand; match the generator's upper-case alphabet.
        code = v.strip().upper()
        if not code:
            raise ValueError("room_code must not be blank")
        return code


class CreateRoom(_Command):
    type: Literal["create_room"]


class JoinRoom(_RoomCommand):
    type: Literal["join_room"]


class LeaveRoom(_RoomCommand):
    type: Literal["leave_room"]


class MutateCell(_RoomCommand):
    type: Literal["mutate_cell"]
    cell_id: str = Field(..., min_length=1, validation_alias=AliasChoices("cell_id", "cellId", "hexId"))
    partial_state: dict[str, Any] = Field(
        ...,
        validation_alias=AliasChoices("partial_state", "partialState", "action"),
    )


class Chat(_RoomCommand):
    type: Literal["chat"]
    text: str = Field(..., min_length=1, max_length=2000, validation_alias=AliasChoices("text", "message"))


Command = Annotated[
    Union[CreateRoom, JoinRoom, LeaveRoom, MutateCell, Chat],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(raw: str | bytes | Mapping[str, Any]) -> Command:
    """Validate one inbound frame. Raises pydantic.ValidationError on anything malformed."""

    if isinstance(raw, (str, bytes)):
        return _command_adapter.validate_json(raw)
    return _command_adapter.validate_python(dict(raw))


# ============ Outbound events ============

class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Connected(_Event):
    type: Literal["connected"] = "connected"
    connection_id: str


class RoomCreated(_Event):
    type: Literal["room_created"] = "room_created"
    room_code: str


class RoomJoined(_Event):
    type: Literal["room_joined"] = "room_joined"
    room_code: str
    cells: dict[str, dict[str, Any]]


class RoomLeft(_Event):
    type: Literal["room_left"] = "room_left"
    room_code: str


class MemberJoined(_Event):
    type: Literal["member_joined"] = "member_joined"
    room_code: str
    connection_id: str


class MemberLeft(_Event):
    type: Literal["member_left"] = "member_left"
    room_code: str
    connection_id: str


class CellUpdated(_Event):
    type: Literal["cell_updated"] = "cell_updated"
    room_code: str
    cell_id: str
    partial_state: dict[str, Any]


class ChatMessage(_Event):
    type: Literal["chat_message"] = "chat_message"
    room_code: str
    sender_id: str
    text: str
    # Milliseconds since the epoch, stamped by the server.
    timestamp: int


class RoomError(_Event):
    type: Literal["room_error"] = "room_error"
    code: ErrorCode
    message: str
    room_code: str | None = None


Event = Union[
    Connected,
    RoomCreated,
    RoomJoined,
    RoomLeft,
    MemberJoined,
    MemberLeft,
    CellUpdated,
    ChatMessage,
    RoomError,
]
