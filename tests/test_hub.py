"""Tests for the broadcast hub: fan-out, head-drop, slow peers, pings."""
import asyncio
import time
from datetime import datetime, timedelta, timezone

from chatrelay.core.schemas import MessageOut
from chatrelay.core.websocket.hub import BroadcastHub
from chatrelay.core.websocket.session import Session

from conftest import FakeWebSocket, wait_until

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _msg(i: int, name: str = "al") -> MessageOut:
    return MessageOut(name=name, message=f"m{i}", time=T0 + timedelta(seconds=i))


async def _connect(hub: BroadcastHub, **ws_kwargs):
    ws = FakeWebSocket(**ws_kwargs)
    session = Session(ws, write_timeout=0.5)
    session.mark_open()
    await hub.registry.register(session)
    return session, ws


def test_submit_head_drops_oldest_when_full():
    async def scenario():
        hub = BroadcastHub(capacity=3, ping_interval=60)
        session, ws = await _connect(hub)
        for i in range(5):
            hub.submit(_msg(i))
        assert hub.queue_depth == 3
        assert hub.metrics.get("dropped_queue_full") == 2
        hub.start()
        try:
            assert await wait_until(lambda: len(ws.sent) == 3)
        finally:
            await hub.stop()
        return [frame["message"] for frame in ws.sent]

    assert asyncio.run(scenario()) == ["m2", "m3", "m4"]


def test_broadcast_reaches_every_session_once_in_order():
    async def scenario():
        hub = BroadcastHub(capacity=128, ping_interval=60)
        peers = [await _connect(hub) for _ in range(3)]
        hub.start()
        try:
            for i in range(20):
                hub.submit(_msg(i))
            assert await wait_until(lambda: all(len(ws.sent) == 20 for _, ws in peers))
        finally:
            await hub.stop()
        return [[f["message"] for f in ws.sent] for _, ws in peers]

    expected = [f"m{i}" for i in range(20)]
    for received in asyncio.run(scenario()):
        assert received == expected


def test_frame_shape_on_the_wire():
    async def scenario():
        hub = BroadcastHub(ping_interval=60)
        _, ws = await _connect(hub)
        await hub.broadcast(_msg(0))
        return ws.sent[0]

    frame = asyncio.run(scenario())
    assert set(frame) == {"name", "message", "time"}
    parsed = datetime.fromisoformat(frame["time"].replace("Z", "+00:00"))
    assert parsed == T0


def test_failed_write_drops_only_that_peer():
    async def scenario():
        hub = BroadcastHub(ping_interval=60)
        bad, bad_ws = await _connect(hub, fail_send=True)
        good, good_ws = await _connect(hub)
        delivered = await hub.broadcast(_msg(0))
        assert delivered == 1
        assert bad not in hub.registry
        assert good in hub.registry
        assert await wait_until(lambda: bad_ws.close_calls == 1)
        await hub.broadcast(_msg(1))
        return good_ws.sent, bad_ws.sent, hub.metrics.get("write_failures")

    good_sent, bad_sent, failures = asyncio.run(scenario())
    assert [f["message"] for f in good_sent] == ["m0", "m1"]
    assert bad_sent == []
    assert failures == 1


def test_slow_peer_does_not_delay_healthy_peer():
    async def scenario():
        hub = BroadcastHub(ping_interval=60)
        slow_ws = FakeWebSocket(block_send=True)
        slow = Session(slow_ws, write_timeout=1.0)
        fast_ws = FakeWebSocket()
        fast = Session(fast_ws, write_timeout=1.0)
        for s in (slow, fast):
            s.mark_open()
            await hub.registry.register(s)
        hub.start()
        try:
            started = time.monotonic()
            hub.submit(_msg(0))
            assert await wait_until(lambda: len(fast_ws.sent) == 1, timeout=0.5)
            fast_latency = time.monotonic() - started
            # Slow peer misses its write deadline and is dropped
            assert await wait_until(lambda: slow not in hub.registry, timeout=3.0)
            hub.submit(_msg(1))
            assert await wait_until(lambda: len(fast_ws.sent) == 2)
        finally:
            await hub.stop()
        return fast_latency, slow_ws.sent

    fast_latency, slow_sent = asyncio.run(scenario())
    assert fast_latency < 0.5
    assert slow_sent == []


def test_ping_tick_reaches_sessions_and_drops_failures():
    async def scenario():
        hub = BroadcastHub(ping_interval=0.05)
        ok, ok_ws = await _connect(hub)
        dead, _ = await _connect(hub, fail_send=True)
        hub.start()
        try:
            assert await wait_until(lambda: len(ok_ws.sent) >= 1)
            assert await wait_until(lambda: dead not in hub.registry)
        finally:
            await hub.stop()
        return ok_ws.sent[0], ok in hub.registry, hub.metrics.get("ping_failures")

    frame, still_registered, ping_failures = asyncio.run(scenario())
    assert frame == {"type": "ping", "payload": "ping"}
    assert still_registered
    assert ping_failures == 1


def test_broadcast_with_no_sessions_is_a_noop():
    async def scenario():
        hub = BroadcastHub(ping_interval=60)
        return await hub.broadcast(_msg(0)), await hub.ping_all()

    assert asyncio.run(scenario()) == (0, 0)


def test_start_is_idempotent_and_stop_cancels():
    async def scenario():
        hub = BroadcastHub(ping_interval=60)
        hub.start()
        first = hub._task
        hub.start()
        assert hub._task is first
        assert hub.running
        await hub.stop()
        return hub.running

    assert asyncio.run(scenario()) is False


def test_stop_waits_for_background_closes():
    async def scenario():
        hub = BroadcastHub(ping_interval=60)
        hung_ws = FakeWebSocket(fail_send=True)

        async def never_closes(code=1000, reason=None):
            await asyncio.Event().wait()

        hung_ws.close = never_closes
        session = Session(hung_ws, write_timeout=30.0)
        session.mark_open()
        await hub.registry.register(session)
        hub.start()
        await hub.broadcast(_msg(0))
        closers = list(hub._closers)
        assert closers
        await hub.stop()
        return all(task.done() for task in closers)

    assert asyncio.run(scenario()) is True
