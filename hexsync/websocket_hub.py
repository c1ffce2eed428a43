from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from fastapi import WebSocket, status

from hexsync.config import DEFAULT_OUTBOX_MAX_QUEUE
from hexsync.protocol import Event

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Peer:
    websocket: WebSocket
    queue: asyncio.Queue[dict[str, object]]
    writer: asyncio.Task[None] | None = None


class ConnectionHub:
    """In-process WebSocket fan-out keyed by connection id.

    Contract:
      - `connect(connection_id, websocket)` accepts the socket and starts its writer task.
      - `deliver(recipients, event)` is the gateway's outbox: it only enqueues,
        so it is safe to call while a room lock is held.
      - each connection has exactly one writer draining its queue in FIFO
        order, so per-recipient ordering equals enqueue ordering.
      - a connection whose queue reaches `max_queue` pending events is evicted
        and its socket closed; the reader side then runs the normal cleanup.

    Must be used from the event loop thread that owns the sockets.
    """

    def __init__(self, max_queue: int = DEFAULT_OUTBOX_MAX_QUEUE) -> None:
        if max_queue < 1:
            raise ValueError("max_queue must be >= 1")
        self._max_queue = max_queue
        self._peers: dict[str, _Peer] = {}
        self._closing: set[asyncio.Task[None]] = set()

    async def connect(self, connection_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        peer = _Peer(websocket=websocket, queue=asyncio.Queue(maxsize=self._max_queue))
        peer.writer = asyncio.create_task(self._write_loop(connection_id, peer), name=f"ws-writer-{connection_id}")
        self._peers[connection_id] = peer

    async def disconnect(self, connection_id: str) -> None:
        peer = self._peers.pop(connection_id, None)
        if peer is None or peer.writer is None:
            return
        peer.writer.cancel()
        try:
            await peer.writer
        except asyncio.CancelledError:
            pass

    def deliver(self, recipients: Iterable[str], event: Event) -> None:
        payload = event.to_wire()
        for connection_id in recipients:
            peer = self._peers.get(connection_id)
            if peer is None:
                continue
            try:
                peer.queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning(f"Outbound queue for {connection_id} is full ({self._max_queue}), dropping connection")
                self._evict(connection_id, peer)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._peers

    def __len__(self) -> int:
        return len(self._peers)

    def _evict(self, connection_id: str, peer: _Peer) -> None:
        self._peers.pop(connection_id, None)
        if peer.writer is not None:
            peer.writer.cancel()
        task = asyncio.create_task(self._close(connection_id, peer.websocket), name=f"ws-close-{connection_id}")
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close(self, connection_id: str, websocket: WebSocket) -> None:
        try:
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        except Exception as e:
            logger.warning(f"Closing slow connection {connection_id} failed: {e}")

    async def _write_loop(self, connection_id: str, peer: _Peer) -> None:
        while True:
            payload = await peer.queue.get()
            try:
                await peer.websocket.send_json(payload)
            except Exception as e:
                # The reader side notices the disconnect and runs cleanup.
                logger.warning(f"Send to {connection_id} failed, stopping writer: {e}")
                self._peers.pop(connection_id, None)
                return
