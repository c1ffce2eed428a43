from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RoomSummary(BaseModel):
    room_code: str
    member_count: int
    cell_count: int


class RoomListResponse(BaseModel):
    rooms: list[RoomSummary] = Field(default_factory=list)


class RoomDetailResponse(BaseModel):
    room_code: str
    members: list[str]
    # Point-in-time copy; not a live view.
    cells: dict[str, dict[str, Any]]
