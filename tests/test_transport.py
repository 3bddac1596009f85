"""Tests for the broadcast transport."""
import asyncio
import json
import random

import pytest
from websockets.exceptions import ConnectionClosedOK

from hushroom import protocol
from hushroom.transport import Broadcaster


class RecordingSocket:
    """Stands in for a websockets connection and records decoded frames."""

    def __init__(self, jitter=None):
        self.frames = []
        self._jitter = jitter

    async def send(self, frame):
        if self._jitter:
            for _ in range(self._jitter.randrange(3)):
                await asyncio.sleep(0)
        self.frames.append(json.loads(frame))

    def events(self):
        return [frame["type"] for frame in self.frames]


class ClosedSocket:
    def __init__(self):
        self.attempts = 0

    async def send(self, frame):
        self.attempts += 1
        raise ConnectionClosedOK(None, None)


@pytest.mark.asyncio
async def test_broadcast_scopes():
    broadcaster = Broadcaster()
    sockets = {name: RecordingSocket() for name in "ABC"}
    for name, socket in sockets.items():
        broadcaster.attach(name, socket)

    broadcaster.broadcast_all(protocol.USER_COUNT, {"count": 3})
    broadcaster.broadcast_except("A", protocol.USER_JOINED, {"id": "A"})
    broadcaster.send("B", protocol.ERROR, {"message": "nope"})
    await broadcaster.close()

    assert sockets["A"].events() == [protocol.USER_COUNT]
    assert sockets["B"].events() == [protocol.USER_COUNT, protocol.USER_JOINED, protocol.ERROR]
    assert sockets["C"].events() == [protocol.USER_COUNT, protocol.USER_JOINED]
    assert sockets["B"].frames[-1] == {"type": "error", "payload": {"message": "nope"}}


@pytest.mark.asyncio
async def test_per_connection_order_is_preserved():
    broadcaster = Broadcaster()
    rng = random.Random(99)
    receivers = [RecordingSocket(jitter=rng) for _ in range(4)]
    for index, socket in enumerate(receivers):
        broadcaster.attach(f"R{index}", socket)

    for n in range(50):
        broadcaster.broadcast_all(protocol.USER_COUNT, {"count": n})
        await asyncio.sleep(0)
    await broadcaster.close()

    for socket in receivers:
        assert [frame["payload"]["count"] for frame in socket.frames] == list(range(50))


@pytest.mark.asyncio
async def test_closed_connection_does_not_block_others():
    broadcaster = Broadcaster()
    dead = ClosedSocket()
    alive = RecordingSocket()
    broadcaster.attach("dead", dead)
    broadcaster.attach("alive", alive)

    broadcaster.broadcast_all(protocol.USER_COUNT, {"count": 2})
    broadcaster.broadcast_all(protocol.USER_COUNT, {"count": 2})
    await broadcaster.close()

    # The first failure stops the dead connection's writer; later frames are dropped.
    assert dead.attempts == 1
    assert len(alive.frames) == 2


@pytest.mark.asyncio
async def test_detach_is_idempotent_and_stops_delivery():
    broadcaster = Broadcaster()
    socket = RecordingSocket()
    broadcaster.attach("A", socket)
    broadcaster.broadcast_all(protocol.USER_COUNT, {"count": 1})

    outbox = broadcaster.detach("A")
    assert broadcaster.detach("A") is None
    broadcaster.broadcast_all(protocol.USER_COUNT, {"count": 0})
    broadcaster.send("A", protocol.ERROR, {"message": "late"})
    await outbox.task

    assert [frame["payload"] for frame in socket.frames] == [{"count": 1}]
    assert len(broadcaster) == 0


@pytest.mark.asyncio
async def test_deliver_routes_outbounds():
    broadcaster = Broadcaster()
    a, b = RecordingSocket(), RecordingSocket()
    broadcaster.attach("A", a)
    broadcaster.attach("B", b)

    broadcaster.deliver([
        protocol.to_all(protocol.CHAT_MESSAGE, {"message": "hi"}),
        protocol.to_all_except("A", protocol.USER_TYPING, {"isTyping": True}),
        protocol.to_only("A", protocol.ERROR, {"message": "Message too long"}),
    ])
    await broadcaster.close()

    assert a.events() == [protocol.CHAT_MESSAGE, protocol.ERROR]
    assert b.events() == [protocol.CHAT_MESSAGE, protocol.USER_TYPING]


class FlakySocket(RecordingSocket):
    """Fails its first send with a non-close error, then behaves."""

    def __init__(self):
        super().__init__()
        self.failures = 0

    async def send(self, frame):
        if self.failures == 0:
            self.failures += 1
            raise RuntimeError("write buffer exploded")
        await super().send(frame)


class StalledSocket:
    """Never finishes a send, like a client that stopped reading."""

    def __init__(self):
        self.sent = 0
        self.closed_with = None

    async def send(self, frame):
        self.sent += 1
        await asyncio.Event().wait()

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)


@pytest.mark.asyncio
async def test_send_error_does_not_stop_delivery():
    broadcaster = Broadcaster()
    flaky = FlakySocket()
    steady = RecordingSocket()
    broadcaster.attach("flaky", flaky)
    broadcaster.attach("steady", steady)

    for n in range(3):
        broadcaster.broadcast_all(protocol.USER_COUNT, {"count": n})
    await broadcaster.close()

    assert flaky.failures == 1
    assert [frame["payload"]["count"] for frame in flaky.frames] == [1, 2]
    assert [frame["payload"]["count"] for frame in steady.frames] == [0, 1, 2]


@pytest.mark.asyncio
async def test_outbox_overflow_disconnects_slow_client():
    broadcaster = Broadcaster(outbox_limit=2)
    stalled = StalledSocket()
    steady = RecordingSocket()
    broadcaster.attach("stalled", stalled)
    broadcaster.attach("steady", steady)

    # The stalled writer holds frame 0 in send; frames 1 and 2 fill its queue; frame 3 overflows it.
    for n in range(4):
        broadcaster.broadcast_all(protocol.USER_COUNT, {"count": n})
        for _ in range(3):
            await asyncio.sleep(0)

    assert broadcaster.connection_ids() == ["steady"]
    await broadcaster.close()

    assert stalled.sent == 1
    assert stalled.closed_with == (1008, "Outbound queue overflow")
    assert [frame["payload"]["count"] for frame in steady.frames] == [0, 1, 2, 3]
