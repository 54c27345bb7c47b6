import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotSubscription(Generic[T]):
    """Standing query re-run on every bus notification for one channel.

    ``fetch`` returns a full snapshot; ``on_update`` receives it. Refresh
    requests go through a queue with room for a single pending item, so
    overlapping notifications collapse into one refresh and two snapshots
    of the same subscription are never processed at the same time.
    """

    def __init__(
        self,
        bus,
        channel: str,
        fetch: Callable[[], Awaitable[T]],
        on_update: Callable[[T], Any],
    ) -> None:
        self._bus = bus
        self._channel = channel
        self._fetch = fetch
        self._on_update = on_update
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._bus_sub = None
        self._tasks: List[asyncio.Task] = []
        self._closed = False
        self.latest: Optional[T] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> "SnapshotSubscription[T]":
        # register on the bus before the first fetch so no write slips in between
        self._bus_sub = await self._bus.subscribe(self._channel, self._on_notify)
        self._tasks = [
            asyncio.create_task(self._bus_sub.run()),
            asyncio.create_task(self._consume()),
        ]
        self.request_refresh()
        logger.debug("Subscription on %s started", self._channel)
        return self

    async def _on_notify(self, message: str) -> None:
        self.request_refresh()

    def request_refresh(self) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass  # a refresh is already pending

    async def _consume(self) -> None:
        while not self._closed:
            await self._queue.get()
            try:
                snapshot = await self._fetch()
            except Exception:
                logger.exception("Snapshot query for %s failed", self._channel)
                continue
            if self._closed:
                return
            self.latest = snapshot
            try:
                result = self._on_update(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Subscriber callback for %s failed", self._channel)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._bus_sub is not None:
            await self._bus_sub.cancel()
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        self.latest = None
        logger.debug("Subscription on %s closed", self._channel)
