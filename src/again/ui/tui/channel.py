"""Run event channel: ordered multi-producer, single-consumer queue.

Producers on the event loop thread enqueue directly; producers on other
threads are marshalled through ``loop.call_soon_threadsafe`` so the queue
itself is only ever touched from the loop thread. FIFO order per producer
is the queue's order.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from datetime import datetime

from .events import Origin, OutputChunk, RunEvent

__all__ = ["LiveSink", "RunEventChannel"]

logger = logging.getLogger(__name__)


class RunEventChannel:
    """Transport between run producers and the presenter's render loop."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[RunEvent] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None
        self._closed = False

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach the consuming loop; called by the render loop on startup."""
        self._loop = loop
        self._loop_thread = threading.get_ident()
        self._closed = False

    @property
    def bound(self) -> bool:
        return self._loop is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop accepting events; later sends are dropped."""
        self._closed = True

    def send(self, event: RunEvent) -> bool:
        """Enqueue an event from any thread.

        Returns:
            False if the event was dropped (channel closed or loop gone)
        """
        if self._closed:
            return False

        loop = self._loop
        if loop is None or threading.get_ident() == self._loop_thread:
            self._queue.put_nowait(event)
            return True

        try:
            loop.call_soon_threadsafe(self._put_unless_closed, event)
        except RuntimeError:
            # Loop already closed
            logger.debug(f"Dropping {type(event).__name__}: event loop is closed")
            return False
        return True

    def _put_unless_closed(self, event: RunEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def receive(self) -> RunEvent:
        return await self._queue.get()

    def receive_nowait(self) -> RunEvent | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


class LiveSink:
    """Live output sink for one run and one stream.

    Holds only a weak reference to the channel: the presenter owns the
    channel, sinks never keep it alive. Writes after the presenter is gone
    are accepted and dropped.
    """

    def __init__(self, channel: RunEventChannel, run_id: int, origin: Origin) -> None:
        self._channel = weakref.ref(channel)
        self.run_id = run_id
        self.origin = origin

    def write(self, data: bytes) -> int:
        channel = self._channel()
        if channel is not None and data:
            channel.send(OutputChunk(self.run_id, self.origin, bytes(data), datetime.now()))
        return len(data)
