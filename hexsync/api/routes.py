from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status

from hexsync.api.deps import get_gateway, get_hub, get_store
from hexsync.api.models import RoomDetailResponse, RoomListResponse, RoomSummary
from hexsync.gateway import ProtocolGateway
from hexsync.room_store import RoomStore
from hexsync.websocket_hub import ConnectionHub

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def room_events_ws(
    websocket: WebSocket,
    gateway: ProtocolGateway = Depends(get_gateway),
    hub: ConnectionHub = Depends(get_hub),
) -> None:
    connection_id = str(uuid4())
    await hub.connect(connection_id, websocket)
    gateway.connect(connection_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket {connection_id} closed by client")
                break
            # Text and binary frames both carry one JSON command.
            data = message.get("text")
            if data is None:
                data = message.get("bytes")
            if data is None:
                continue
            gateway.handle_raw(connection_id, data)
    finally:
        gateway.disconnect(connection_id)
        await hub.disconnect(connection_id)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms_route(store: RoomStore = Depends(get_store)) -> RoomListResponse:
    """Debug endpoint: live rooms with member and cell counts."""

    rooms: list[RoomSummary] = []
    for room in store.list_rooms():
        rooms.append(
            RoomSummary(
                room_code=room.code,
                member_count=len(room.members),
                cell_count=len(room.snapshot()),
            )
        )
    return RoomListResponse(rooms=rooms)


@router.get("/rooms/{code}", response_model=RoomDetailResponse)
async def get_room_route(code: str, store: RoomStore = Depends(get_store)) -> RoomDetailResponse:
    room = store.get_room(code.strip().upper())
    if room is None or room.closed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return RoomDetailResponse(room_code=room.code, members=sorted(room.members), cells=room.snapshot())
