from __future__ import annotations

import asyncio
import contextlib
import time
from typing import AsyncIterable, Callable

import httpx

from panel_relay.config import settings
from panel_relay.models.research import ResearchSession, SessionError
from panel_relay.services import logger as log_service
from panel_relay.services import streaming
from panel_relay.services.reconciler import Reconciler
from panel_relay.services.sink import Sink, SinkWriter
from panel_relay.services.upstream import UpstreamError
from panel_relay.stream.detector import detect, parse_line
from panel_relay.stream.framer import LineFramer
from panel_relay.stream.normalizer import normalize


FATAL_ERRORS = (UpstreamError, httpx.HTTPError, OSError, TimeoutError)


class StallWatchdog:
    """Report, without interrupting, a stream that has stopped producing events."""

    def __init__(
        self,
        threshold_seconds: float,
        on_stall: Callable[[float], None],
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold_seconds = threshold_seconds
        self.on_stall = on_stall
        self.clock = clock
        self.last_activity = clock()
        self._last_report: float | None = None

    def touch(self) -> None:
        self.last_activity = self.clock()
        self._last_report = None

    def idle_seconds(self) -> float:
        return self.clock() - self.last_activity

    def check(self) -> bool:
        """Report a stall at most once per threshold interval."""
        now = self.clock()
        idle = now - self.last_activity
        if idle <= self.threshold_seconds:
            return False
        if self._last_report is not None and now - self._last_report < self.threshold_seconds:
            return False
        self._last_report = now
        self.on_stall(idle)
        return True

    async def watch(self) -> None:
        interval = max(self.threshold_seconds / 2, 0.05)
        while True:
            await asyncio.sleep(interval)
            self.check()


class ResearchStreamPipeline:
    """Turn one upstream research byte stream into normalized sink records.

    Flow per line: frame -> parse -> detect -> normalize -> reconcile ->
    write. Each line is fully reconciled and written before the next one is
    read, so the session needs no locking. A normal end of stream writes one
    ``research-complete`` snapshot; a connection failure or the hard timeout
    writes one transient ``error`` record instead.
    """

    def __init__(
        self,
        topic: str,
        sink: Sink,
        *,
        timeout_seconds: float | None = None,
        stall_threshold_seconds: float | None = None,
        text_stream_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = ResearchSession(topic=topic)
        self.timeout_seconds = (
            settings.stream_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.reconciler = Reconciler(
            self.session,
            text_stream_id=text_stream_id or settings.text_stream_id,
        )
        self.writer = SinkWriter(sink)
        self.framer = LineFramer()
        self.watchdog = StallWatchdog(
            settings.stall_threshold_seconds
            if stall_threshold_seconds is None
            else stall_threshold_seconds,
            self._report_stall,
            clock=clock,
        )

    async def run(self, source: AsyncIterable[bytes]) -> ResearchSession:
        await self.writer.write(streaming.research_state(self.session))

        self.watchdog.touch()
        watch_task = asyncio.create_task(self.watchdog.watch())
        try:
            async with asyncio.timeout(self.timeout_seconds):
                async for chunk in source:
                    await self._process_lines(self.framer.feed(chunk))
                    self.watchdog.check()
                await self._process_lines(self.framer.flush())
        except FATAL_ERRORS as exc:
            await self._fail(exc)
            return self.session
        finally:
            watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watch_task

        await self.writer.complete(self.session)
        log_service.log_event(
            event_type="research_completed",
            message="Research stream completed",
            topic=self.session.topic[:100],
            records_written=self.writer.written,
            **self.session.counts(),
        )
        return self.session

    async def _process_lines(self, lines: list[str]) -> None:
        for line in lines:
            value = parse_line(line)
            if value is None:
                continue
            self.watchdog.touch()

            detection = detect(value)
            if not detection.translatable:
                continue

            await self.writer.write_all(self.reconciler.apply_batch(normalize(detection)))

    async def _fail(self, exc: BaseException) -> None:
        if isinstance(exc, TimeoutError):
            message = f"Research stream timed out after {self.timeout_seconds:g}s"
        else:
            message = str(exc) or exc.__class__.__name__
        error_type = exc.__class__.__name__

        self.session.error = SessionError(message=message, kind=error_type)
        log_service.log_event(
            event_type="stream_error",
            message="Upstream research stream failed",
            error=message,
            error_type=error_type,
            phase=self.session.phase.value,
            buffered=self.framer.pending[:100],
        )
        await self.writer.write(streaming.error(message, error_type))

    def _report_stall(self, idle_seconds: float) -> None:
        log_service.log_stream_stall(
            idle_seconds=idle_seconds,
            phase=self.session.phase.value,
            counts=self.session.counts(),
            buffered=self.framer.pending,
        )
