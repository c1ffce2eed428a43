from __future__ import annotations

import asyncio
from typing import Any, cast

import pytest
from fastapi import WebSocket

from hexsync.protocol import ChatMessage
from hexsync.websocket_hub import ConnectionHub


class FakeSocket:
    def __init__(self, *, stalled: bool = False) -> None:
        self.stalled = stalled
        self.accepted = False
        self.sent: list[dict[str, Any]] = []
        self.close_code: int | None = None
        self._never = asyncio.Event()

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.stalled:
            await self._never.wait()
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code


def _chat(n: int) -> ChatMessage:
    return ChatMessage(room_code="AB12C", sender_id="c0", text=f"msg {n}", timestamp=n)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_deliver_preserves_order_per_connection() -> None:
    hub = ConnectionHub(max_queue=2)
    ws = FakeSocket()
    await hub.connect("c1", cast(WebSocket, ws))
    assert ws.accepted

    for n in range(5):
        hub.deliver(["c1", "unknown"], _chat(n))
        await _settle()

    assert [m["text"] for m in ws.sent] == [f"msg {n}" for n in range(5)]
    assert "c1" in hub

    await hub.disconnect("c1")
    assert len(hub) == 0


@pytest.mark.asyncio
async def test_stalled_connection_is_evicted_when_queue_fills() -> None:
    hub = ConnectionHub(max_queue=2)
    slow = FakeSocket(stalled=True)
    fast = FakeSocket()
    await hub.connect("slow", cast(WebSocket, slow))
    await hub.connect("fast", cast(WebSocket, fast))

    for n in range(4):
        hub.deliver(["slow"], _chat(n))
    await _settle()

    assert "slow" not in hub
    assert slow.close_code == 1013
    assert slow.sent == []

    hub.deliver(["slow", "fast"], _chat(99))
    await _settle()
    assert [m["text"] for m in fast.sent] == ["msg 99"]

    # Reader-side cleanup after eviction is a no-op.
    await hub.disconnect("slow")
    await hub.disconnect("fast")


def test_queue_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ConnectionHub(max_queue=0)
