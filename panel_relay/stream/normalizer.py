"""Map detected wire shapes onto the canonical research event union.

Legacy batch elements, discrete ``data-*`` objects and raw ``2:`` data parts
all funnel through ``event_from_parts`` so each kind has exactly one
construction path.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

from panel_relay.models.events import (
    AnalystEvent,
    ErrorEvent,
    EventKind,
    HeartbeatEvent,
    InterviewEvent,
    MetadataEvent,
    ProgressEvent,
    ResearchEvent,
    SearchEvent,
    SectionEvent,
    TextDeltaEvent,
)
from panel_relay.stream.detector import DISCRETE_PREFIX, Detection, WireShape

logger = logging.getLogger(__name__)

DATA_PART_PATTERN = re.compile(r"^([^\[]+)\[(.+)\]$", re.DOTALL)
ENVELOPE_KEYS = ("type", "metadata", "id", "transient")


def normalize(detection: Detection) -> list[ResearchEvent]:
    """Translate one detected line into zero or more canonical events."""
    shape = detection.shape
    if shape == WireShape.LEGACY_BATCH:
        events: list[ResearchEvent] = []
        for element in detection.payload:
            if not isinstance(element, dict) or not isinstance(element.get("type"), str):
                logger.debug("Skipping non-event batch element: %r", element)
                continue
            events.extend(_from_envelope(element["type"], element))
        return events

    if shape == WireShape.DISCRETE:
        envelope = detection.payload
        return _from_envelope(envelope["type"][len(DISCRETE_PREFIX):], envelope)

    if shape == WireShape.RAW_TOKEN:
        return _from_raw_token(detection.token or "", detection.payload)

    if shape == WireShape.PASSTHROUGH:
        return _from_passthrough(detection.payload)

    if shape == WireShape.RESERVED:
        logger.debug("Acknowledged untranslated %s event", detection.payload.get("type"))
    return []


def event_from_parts(
    kind: str,
    data: dict[str, Any],
    *,
    metadata: dict[str, Any] | None = None,
    event_id: str | None = None,
    transient: bool | None = None,
) -> ResearchEvent | None:
    """Build the canonical event for ``kind`` or ``None`` if it is unusable."""
    try:
        event_kind = EventKind(kind)
    except ValueError:
        logger.debug("Ignoring unknown event kind: %s", kind)
        return None

    builder = _BUILDERS.get(event_kind)
    if builder is None:
        logger.debug("No structured builder for event kind: %s", kind)
        return None

    event = builder(data, metadata or {})
    if event is None:
        logger.debug("Dropping %s event with missing required fields: %r", kind, data)
        return None
    event.id = event_id
    event.transient = transient
    return event


def _from_envelope(kind: str, envelope: dict[str, Any]) -> list[ResearchEvent]:
    raw_data = envelope.get("data")
    if raw_data is None:
        # Older emitters put payload fields (e.g. progress message) beside ``type``.
        raw_data = {k: v for k, v in envelope.items() if k not in ENVELOPE_KEYS}

    items = raw_data if isinstance(raw_data, list) else [raw_data]
    metadata = envelope.get("metadata") if isinstance(envelope.get("metadata"), dict) else {}
    event_id = envelope.get("id") if isinstance(envelope.get("id"), str) else None
    transient = envelope.get("transient") if isinstance(envelope.get("transient"), bool) else None

    events: list[ResearchEvent] = []
    for item in items:
        if not isinstance(item, dict):
            logger.debug("Skipping non-object %s payload: %r", kind, item)
            continue
        event = event_from_parts(
            kind, item, metadata=metadata, event_id=event_id, transient=transient
        )
        if event is not None:
            events.append(event)
    return events


def _from_raw_token(token: str, payload: str) -> list[ResearchEvent]:
    if token == "0":
        return [TextDeltaEvent(delta=payload)]

    if token == "2":
        match = DATA_PART_PATTERN.match(payload.strip())
        if not match:
            logger.warning("Malformed data part token: %s", payload[:200])
            return []
        name, raw_json = match.groups()
        try:
            data = json.loads(raw_json)
        except json.JSONDecodeError:
            logger.warning("Failed to parse data part %s payload", name)
            return []
        return _from_envelope(name.strip(), {"data": data})

    if token == "3":
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Failed to parse error token payload: %s", payload[:200])
            return []
        message, error_type = _error_fields(data, None)
        return [ErrorEvent(error=message, error_type=error_type, transient=True)]

    return []


def _from_passthrough(value: dict[str, Any]) -> list[ResearchEvent]:
    event_type = value.get("type")
    stream_id = value.get("id") if isinstance(value.get("id"), str) else None
    if event_type == "text-delta":
        delta = value.get("delta")
        if isinstance(delta, str) and delta:
            return [TextDeltaEvent(delta=delta, id=stream_id)]
        return []
    logger.debug("Text stream %s: %s", "started" if event_type == "text-start" else "ended", stream_id)
    return []


def _analyst(data: dict[str, Any], metadata: dict[str, Any]) -> AnalystEvent | None:
    name = _as_str(data.get("name"))
    if not name:
        return None
    categories = data.get("esgCategories")
    return AnalystEvent(
        name=name,
        role=_as_str(data.get("role")) or "",
        affiliation=_as_str(data.get("affiliation")) or "",
        esg_focus=_as_str(data.get("esgFocus")) or "",
        esg_categories=[str(c) for c in categories] if isinstance(categories, list) else None,
    )


def _progress(data: dict[str, Any], metadata: dict[str, Any]) -> ProgressEvent:
    nested = data.get("progress") if isinstance(data.get("progress"), dict) else {}
    fields = {**nested, **{k: v for k, v in data.items() if k != "progress"}}
    return ProgressEvent(
        message=_as_str(fields.get("message")),
        phase=_as_str(fields.get("phase")),
        current=_as_int(fields.get("current")),
        total=_as_int(fields.get("total")),
    )


def _interview(data: dict[str, Any], metadata: dict[str, Any]) -> InterviewEvent | None:
    name = _as_str(data.get("analystName"))
    if not name:
        return None
    inner = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    return InterviewEvent(
        analyst_name=name,
        status=_as_str(data.get("status")) or "",
        turn_number=_as_int(data.get("turnNumber")),
        message_preview=_as_str(data.get("messagePreview")),
        timestamp=_as_str(data.get("timestamp")),
        metadata={**inner, **metadata},
    )


def _search(data: dict[str, Any], metadata: dict[str, Any]) -> SearchEvent:
    inner = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    return SearchEvent(
        tool=_as_str(data.get("tool")) or "",
        query=_as_str(data.get("query")) or "",
        status=_as_str(data.get("status")) or "",
        results_count=_as_int(data.get("resultsCount")),
        error=_as_str(data.get("error")),
        timestamp=_as_str(data.get("timestamp")),
        metadata={**inner, **metadata},
    )


def _section(data: dict[str, Any], metadata: dict[str, Any]) -> SectionEvent | None:
    name = _as_str(data.get("analystName"))
    if not name:
        return None
    return SectionEvent(
        analyst_name=name,
        content_preview=_as_str(data.get("contentPreview")) or "",
        word_count=_as_int(data.get("wordCount")),
        sources_count=_as_int(data.get("sourcesCount")),
    )


def _error(data: dict[str, Any], metadata: dict[str, Any]) -> ErrorEvent:
    message, error_type = _error_fields(data.get("error"), data.get("errorType"))
    context = data.get("context") if isinstance(data.get("context"), dict) else None
    return ErrorEvent(error=message, error_type=error_type, context=context)


def _metadata(data: dict[str, Any], metadata: dict[str, Any]) -> MetadataEvent:
    return MetadataEvent(data=dict(data))


def _heartbeat(data: dict[str, Any], metadata: dict[str, Any]) -> HeartbeatEvent:
    return HeartbeatEvent(timestamp=_as_str(data.get("timestamp")))


_BUILDERS: dict[EventKind, Callable[[dict[str, Any], dict[str, Any]], ResearchEvent | None]] = {
    EventKind.ANALYST: _analyst,
    EventKind.PROGRESS: _progress,
    EventKind.INTERVIEW: _interview,
    EventKind.SEARCH: _search,
    EventKind.SECTION: _section,
    EventKind.ERROR: _error,
    EventKind.METADATA: _metadata,
    EventKind.HEARTBEAT: _heartbeat,
}


def _error_fields(raw: Any, error_type: Any) -> tuple[str, str]:
    if isinstance(raw, dict):
        message = raw.get("message") or raw.get("error") or ""
        error_type = error_type or raw.get("type") or raw.get("errorType")
    else:
        message = raw if raw is not None else ""
    return str(message), str(error_type or "Error")


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None
