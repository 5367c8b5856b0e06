from __future__ import annotations

from typing import Any

from panel_relay.models.events import EventType, InterviewEvent, SearchEvent, SectionEvent, SSEEvent
from panel_relay.models.research import ResearchSession, utc_now_iso
from panel_relay.services.classifier import is_transient


def _event(event_type: EventType, data: dict[str, Any], event_id: str | None = None) -> SSEEvent:
    return SSEEvent(event=event_type, data=data, transient=is_transient(event_type), id=event_id)


def research_state(session: ResearchSession) -> SSEEvent:
    """Emit the opening phase/topic record for a new session."""
    return _event(
        EventType.RESEARCH_STATE,
        {"phase": session.phase.value, "topic": session.topic},
    )


def analysts_update(session: ResearchSession) -> SSEEvent:
    return _event(EventType.ANALYSTS, {"analysts": session.analysts_payload()})


def progress_update(session: ResearchSession) -> SSEEvent:
    return _event(
        EventType.PROGRESS,
        {"progress": session.progress.to_dict(), "phase": session.phase.value},
    )


def interview_status(event: InterviewEvent) -> SSEEvent:
    data: dict[str, Any] = {
        "analystName": event.analyst_name,
        "status": event.status,
        "timestamp": event.timestamp or utc_now_iso(),
        "metadata": event.metadata,
    }
    if event.turn_number is not None:
        data["turnNumber"] = event.turn_number
    if event.message_preview is not None:
        data["messagePreview"] = event.message_preview
    return _event(EventType.INTERVIEW, data, event.id)


def interviews_update(session: ResearchSession) -> SSEEvent:
    return _event(EventType.INTERVIEWS, {"interviews": session.interviews_payload()})


def search_status(event: SearchEvent) -> SSEEvent:
    data: dict[str, Any] = {
        "tool": event.tool,
        "query": event.query,
        "status": event.status,
        "timestamp": event.timestamp or utc_now_iso(),
    }
    if event.results_count is not None:
        data["resultsCount"] = event.results_count
    if event.error:
        data["error"] = event.error
    if event.metadata:
        data["metadata"] = event.metadata
    return _event(EventType.SEARCH, data, event.id)


def sections_update(session: ResearchSession, event: SectionEvent | None = None) -> SSEEvent:
    data: dict[str, Any] = {"sections": session.sections_payload()}
    if event is not None and (event.word_count is not None or event.sources_count is not None):
        stats: dict[str, Any] = {"analystName": event.analyst_name}
        if event.word_count is not None:
            stats["wordCount"] = event.word_count
        if event.sources_count is not None:
            stats["sourcesCount"] = event.sources_count
        data["stats"] = stats
    return _event(EventType.SECTIONS, data)


def error(
    message: str,
    error_type: str = "Error",
    event_id: str | None = None,
    context: dict[str, Any] | None = None,
) -> SSEEvent:
    payload: dict[str, Any] = {"message": message, "type": error_type}
    if context:
        payload["context"] = context
    return _event(EventType.ERROR, {"error": payload}, event_id)


def metadata(data: dict[str, Any], event_id: str | None = None) -> SSEEvent:
    return _event(EventType.METADATA, dict(data), event_id)


def text_delta(delta: str, stream_id: str) -> SSEEvent:
    return _event(EventType.TEXT_DELTA, {"delta": delta}, stream_id)


def research_complete(session: ResearchSession) -> SSEEvent:
    return _event(EventType.RESEARCH_COMPLETE, session.snapshot())
