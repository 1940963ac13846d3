"""
Broadcast hub: bounded queue of accepted messages plus a single dispatcher.

The dispatcher is the only writer on every socket. It waits on either the
queue or the next ping tick, fans each message out to a registry snapshot with
a per-write deadline, and drops any recipient whose write fails. Submitting
never blocks: on a full queue the oldest queued message is discarded.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from chatrelay.core.observability.metrics import HubMetrics
from chatrelay.core.schemas import MessageOut
from chatrelay.core.websocket.manager import ConnectionRegistry
from chatrelay.core.websocket.session import Session

logger = logging.getLogger(__name__)

QUEUE_CAPACITY = 128
PING_INTERVAL = 25.0  # seconds

# Close code sent to a peer dropped for a failed write
WRITE_FAILED_CLOSE = 1011


class BroadcastHub:
    """Process-scoped coordinator; built once by the app and shared by all sessions."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        capacity: int = QUEUE_CAPACITY,
        ping_interval: float = PING_INTERVAL,
        metrics: Optional[HubMetrics] = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.registry = registry or ConnectionRegistry()
        self.metrics = metrics or HubMetrics()
        self.capacity = capacity
        self.ping_interval = ping_interval
        self._queue: "asyncio.Queue[MessageOut]" = asyncio.Queue(maxsize=capacity)
        self._task: Optional[asyncio.Task] = None
        self._closers: Set[asyncio.Task] = set()

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, msg: MessageOut) -> None:
        """Enqueue without blocking; evicts the oldest queued message when full."""
        if self._queue.full():
            dropped = self._queue.get_nowait()
            self.metrics.incr("dropped_queue_full")
            logger.warning(
                "Broadcast queue full (%s); dropped oldest message from %r", self.capacity, dropped.name
            )
        self._queue.put_nowait(msg)
        self.metrics.incr("accepted")

    def start(self) -> None:
        """Start the dispatcher on the running loop. Idempotent."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="chatrelay-dispatcher")
        logger.info("Broadcast hub started (capacity=%s, ping every %ss)", self.capacity, self.ping_interval)

    async def stop(self) -> None:
        """Cancel the dispatcher; queued messages are discarded."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        closers = list(self._closers)
        for closer in closers:
            closer.cancel()
        await asyncio.gather(*closers, return_exceptions=True)
        self.metrics.log_summary()
        logger.info("Broadcast hub stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.ping_interval
        while True:
            timeout = next_tick - loop.time()
            if timeout <= 0:
                next_tick = loop.time() + self.ping_interval
                try:
                    await self.ping_all()
                except Exception as e:
                    logger.exception("Ping round failed: %s", e)
                continue
            try:
                msg = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                continue
            try:
                await self.broadcast(msg)
            except Exception as e:
                logger.exception("Broadcast failed: %s", e)

    async def broadcast(self, msg: MessageOut) -> int:
        """Write msg to every registered session concurrently. Returns deliveries."""
        sessions = await self.registry.snapshot()
        if not sessions:
            return 0
        frame = msg.to_wire()
        results = await asyncio.gather(*(self._deliver(s, frame) for s in sessions))
        delivered = sum(1 for ok in results if ok)
        self.metrics.incr("broadcast", delivered)
        return delivered

    async def ping_all(self) -> int:
        """Send a ping control frame to every session. Returns pings written."""
        sessions = await self.registry.snapshot()
        if not sessions:
            return 0
        results = await asyncio.gather(*(self._ping(s) for s in sessions))
        sent = sum(1 for ok in results if ok)
        self.metrics.incr("pings_sent", sent)
        return sent

    async def _deliver(self, session: Session, frame: Dict[str, Any]) -> bool:
        try:
            await session.send_json(frame)
            return True
        except Exception as e:
            self.metrics.incr("write_failures")
            logger.warning("Write to session %s failed (%s); dropping peer", session.id, str(e) or type(e).__name__)
            await self._drop(session)
            return False

    async def _ping(self, session: Session) -> bool:
        try:
            await session.send_ping()
            return True
        except Exception as e:
            self.metrics.incr("ping_failures")
            logger.info("Ping to session %s failed (%s); dropping peer", session.id, str(e) or type(e).__name__)
            await self._drop(session)
            return False

    async def _drop(self, session: Session) -> None:
        # Remove now so the next snapshot skips it; the close itself may hang on a
        # stuck peer and runs in the background.
        await self.registry.discard(session)
        task = asyncio.create_task(self.registry.unregister(session, code=WRITE_FAILED_CLOSE))
        self._closers.add(task)
        task.add_done_callback(self._closers.discard)
