from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable, Protocol

from panel_relay.models.events import SSEEvent
from panel_relay.models.research import ResearchSession
from panel_relay.services import streaming

logger = logging.getLogger(__name__)


class Sink(Protocol):
    async def write(self, event: SSEEvent) -> None: ...


class SinkWriter:
    """Write classified records downstream in arrival order.

    The terminal ``research-complete`` record is built purely from the
    accumulated session and can be written at most once.
    """

    def __init__(self, sink: Sink):
        self.sink = sink
        self.written = 0
        self.completed = False

    async def write(self, event: SSEEvent) -> None:
        if self.completed:
            raise RuntimeError("Cannot write after the terminal snapshot was emitted")
        await self.sink.write(event)
        self.written += 1

    async def write_all(self, events: Iterable[SSEEvent]) -> None:
        for event in events:
            await self.write(event)

    async def complete(self, session: ResearchSession) -> SSEEvent:
        snapshot = streaming.research_complete(session)
        await self.write(snapshot)
        self.completed = True
        logger.debug("Terminal snapshot written after %d records", self.written)
        return snapshot


class CollectingSink:
    """Sink that keeps every record in memory."""

    def __init__(self) -> None:
        self.events: list[SSEEvent] = []

    async def write(self, event: SSEEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.event.value for event in self.events]


_CLOSED = object()


class QueueSink:
    """Bounded hand-off between the pipeline and an HTTP response generator.

    ``write`` blocks while the queue is full, so a slow client applies
    backpressure to the upstream read loop.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def write(self, event: SSEEvent) -> None:
        await self._queue.put(event)

    async def close(self) -> None:
        await self._queue.put(_CLOSED)

    async def events(self) -> AsyncIterator[SSEEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
