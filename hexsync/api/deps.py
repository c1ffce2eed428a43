from __future__ import annotations

from starlette.requests import HTTPConnection

from hexsync.gateway import ProtocolGateway
from hexsync.room_store import RoomStore
from hexsync.websocket_hub import ConnectionHub


# Components live on app.state (built once by create_app), so the same
# dependencies serve both HTTP requests and websockets.

def get_gateway(conn: HTTPConnection) -> ProtocolGateway:
    return conn.app.state.gateway


def get_hub(conn: HTTPConnection) -> ConnectionHub:
    return conn.app.state.hub


def get_store(conn: HTTPConnection) -> RoomStore:
    return conn.app.state.store
