from __future__ import annotations

import logging
from typing import Callable, Iterable

from panel_relay.models.events import (
    EVENT_CLASSES,
    AnalystEvent,
    ErrorEvent,
    HeartbeatEvent,
    InterviewEvent,
    MetadataEvent,
    ProgressEvent,
    ResearchEvent,
    SearchEvent,
    SectionEvent,
    SSEEvent,
    TextDeltaEvent,
)
from panel_relay.models.research import (
    Analyst,
    InterviewMessage,
    ResearchPhase,
    ResearchSession,
    SearchResult,
    SessionError,
    utc_now_iso,
)
from panel_relay.services import streaming
from panel_relay.services.classifier import check_upstream_flag

logger = logging.getLogger(__name__)

STATUS_ROLES = {"questioning": "user", "answering": "assistant"}
MESSAGE_ROLES = frozenset({"user", "assistant"})


class Reconciler:
    """Merge canonical events into a session and produce downstream records.

    Every event kind has exactly one handler; the handler table is checked
    against the event union at construction time.
    """

    def __init__(self, session: ResearchSession, *, text_stream_id: str = "research-text"):
        self.session = session
        self.text_stream_id = text_stream_id
        self._handlers: dict[type, Callable[[ResearchEvent], list[SSEEvent]]] = {
            AnalystEvent: self._apply_analyst,
            ProgressEvent: self._apply_progress,
            InterviewEvent: self._apply_interview,
            SearchEvent: self._apply_search,
            SectionEvent: self._apply_section,
            ErrorEvent: self._apply_error,
            MetadataEvent: self._apply_metadata,
            TextDeltaEvent: self._apply_text_delta,
            HeartbeatEvent: self._apply_heartbeat,
        }
        missing = set(EVENT_CLASSES.values()) - set(self._handlers)
        if missing:
            raise TypeError(f"No reconcile handler for: {sorted(c.__name__ for c in missing)}")

    def apply(
        self,
        event: ResearchEvent,
        *,
        batch_seen: set[str] | None = None,
    ) -> list[SSEEvent]:
        """Merge one event and return the records it produces.

        ``batch_seen`` holds analyst names already upserted earlier in the
        same upstream line; a repeated name in that batch is skipped.
        """
        if batch_seen is not None and isinstance(event, AnalystEvent):
            if event.name in batch_seen:
                logger.debug("Skipping repeated analyst in batch: %s", event.name)
                return []
            batch_seen.add(event.name)
        check_upstream_flag(event.kind, event.transient)
        return self._handlers[type(event)](event)

    def apply_batch(self, events: Iterable[ResearchEvent]) -> list[SSEEvent]:
        seen: set[str] = set()
        emitted: list[SSEEvent] = []
        for event in events:
            emitted.extend(self.apply(event, batch_seen=seen))
        return emitted

    def _apply_analyst(self, event: AnalystEvent) -> list[SSEEvent]:
        analyst = Analyst(
            name=event.name,
            role=event.role,
            affiliation=event.affiliation,
            esg_focus=event.esg_focus,
            esg_categories=event.esg_categories,
        )
        index = self.session.analyst_index(event.name)
        if index is None:
            self.session.analysts.append(analyst)
        else:
            self.session.analysts[index] = analyst
        return [streaming.analysts_update(self.session)]

    def _apply_progress(self, event: ProgressEvent) -> list[SSEEvent]:
        progress = self.session.progress
        if event.message is not None:
            progress.message = event.message
        if event.current is not None:
            progress.current = event.current
        if event.total is not None:
            progress.total = event.total
        if event.phase is not None:
            self._apply_phase(event.phase)
        return [streaming.progress_update(self.session)]

    def _apply_interview(self, event: InterviewEvent) -> list[SSEEvent]:
        emitted = [streaming.interview_status(event)]
        transcript = self.session.transcript(event.analyst_name)

        content = event.message_preview
        if not content:
            return emitted

        role = self._resolve_role(event)
        if self._is_duplicate_message(transcript, role, content, event.turn_number):
            logger.debug("Suppressing duplicate interview message for %s", event.analyst_name)
            return emitted

        transcript.append(
            InterviewMessage(
                analyst_name=event.analyst_name,
                role=role,
                content=content,
                timestamp=event.timestamp or utc_now_iso(),
                turn_number=event.turn_number,
            )
        )
        emitted.append(streaming.interviews_update(self.session))
        return emitted

    def _apply_search(self, event: SearchEvent) -> list[SSEEvent]:
        if event.status == "completed" and event.results_count and event.results_count > 0:
            self.session.searches.append(
                SearchResult(
                    tool=event.tool,
                    query=event.query,
                    results_count=event.results_count,
                )
            )
        return [streaming.search_status(event)]

    def _apply_section(self, event: SectionEvent) -> list[SSEEvent]:
        self.session.sections[event.analyst_name] = event.content_preview
        return [streaming.sections_update(self.session, event)]

    def _apply_error(self, event: ErrorEvent) -> list[SSEEvent]:
        self.session.error = SessionError(message=event.error, kind=event.error_type)
        return [streaming.error(event.error, event.error_type, event.id, event.context)]

    def _apply_metadata(self, event: MetadataEvent) -> list[SSEEvent]:
        phase = event.data.get("phase")
        if phase is not None:
            self._apply_phase(phase)
        return [streaming.metadata(event.data, event.id)]

    def _apply_text_delta(self, event: TextDeltaEvent) -> list[SSEEvent]:
        return [streaming.text_delta(event.delta, event.id or self.text_stream_id)]

    def _apply_heartbeat(self, event: HeartbeatEvent) -> list[SSEEvent]:
        logger.debug("Heartbeat: %s", event.timestamp)
        return []

    def _apply_phase(self, value: object) -> None:
        phase = ResearchPhase.parse(value)
        current = self.session.phase
        if phase is None:
            logger.warning("Ignoring unknown research phase: %r", value)
            return
        if phase == current:
            return
        if current == ResearchPhase.COMPLETED:
            logger.warning("Ignoring phase %s after research completed", phase.value)
            return
        if phase.order < current.order:
            logger.warning("Backward phase transition %s -> %s", current.value, phase.value)
        elif phase.order > current.order + 1:
            logger.info("Phase skipped ahead %s -> %s", current.value, phase.value)
        self.session.phase = phase

    @staticmethod
    def _resolve_role(event: InterviewEvent) -> str:
        role = event.metadata.get("role")
        if role in MESSAGE_ROLES:
            return role
        return STATUS_ROLES.get(event.status, "assistant")

    @staticmethod
    def _is_duplicate_message(
        transcript: list[InterviewMessage],
        role: str,
        content: str,
        turn_number: int | None,
    ) -> bool:
        if not transcript:
            return False
        if transcript[-1].content == content:
            return True
        # Redelivered fragments: same turn, speaker and text already recorded.
        return any(
            message.turn_number == turn_number
            and message.role == role
            and message.content == content
            for message in transcript
        )
