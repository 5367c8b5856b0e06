from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import Any, Union


class EventKind(StrEnum):
    """Canonical kinds an upstream event normalizes to."""

    ANALYST = "analyst"
    PROGRESS = "progress"
    INTERVIEW = "interview"
    SEARCH = "search"
    SECTION = "section"
    ERROR = "error"
    METADATA = "metadata"
    TEXT_DELTA = "text-delta"
    HEARTBEAT = "heartbeat"


@dataclass(slots=True)
class AnalystEvent:
    name: str
    role: str = ""
    affiliation: str = ""
    esg_focus: str = ""
    esg_categories: list[str] | None = None
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.ANALYST, init=False)


@dataclass(slots=True)
class ProgressEvent:
    message: str | None = None
    phase: str | None = None
    current: int | None = None
    total: int | None = None
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.PROGRESS, init=False)


@dataclass(slots=True)
class InterviewEvent:
    analyst_name: str
    status: str
    turn_number: int | None = None
    message_preview: str | None = None
    timestamp: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.INTERVIEW, init=False)


@dataclass(slots=True)
class SearchEvent:
    tool: str
    query: str
    status: str
    results_count: int | None = None
    error: str | None = None
    timestamp: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.SEARCH, init=False)


@dataclass(slots=True)
class SectionEvent:
    analyst_name: str
    content_preview: str
    word_count: int | None = None
    sources_count: int | None = None
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.SECTION, init=False)


@dataclass(slots=True)
class ErrorEvent:
    error: str
    error_type: str = "Error"
    context: dict[str, Any] | None = None
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.ERROR, init=False)


@dataclass(slots=True)
class MetadataEvent:
    data: dict[str, Any] = field(default_factory=dict)
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.METADATA, init=False)


@dataclass(slots=True)
class TextDeltaEvent:
    delta: str
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.TEXT_DELTA, init=False)


@dataclass(slots=True)
class HeartbeatEvent:
    timestamp: str | None = None
    transient: bool | None = None
    id: str | None = None
    kind: EventKind = field(default=EventKind.HEARTBEAT, init=False)


ResearchEvent = Union[
    AnalystEvent,
    ProgressEvent,
    InterviewEvent,
    SearchEvent,
    SectionEvent,
    ErrorEvent,
    MetadataEvent,
    TextDeltaEvent,
    HeartbeatEvent,
]

EVENT_CLASSES: dict[EventKind, type] = {
    EventKind.ANALYST: AnalystEvent,
    EventKind.PROGRESS: ProgressEvent,
    EventKind.INTERVIEW: InterviewEvent,
    EventKind.SEARCH: SearchEvent,
    EventKind.SECTION: SectionEvent,
    EventKind.ERROR: ErrorEvent,
    EventKind.METADATA: MetadataEvent,
    EventKind.TEXT_DELTA: TextDeltaEvent,
    EventKind.HEARTBEAT: HeartbeatEvent,
}


class EventType(str, Enum):
    """Kinds of records written to the downstream sink."""

    RESEARCH_STATE = "research-state"
    ANALYSTS = "analysts"
    PROGRESS = "progress"
    INTERVIEW = "interview"
    INTERVIEWS = "interviews"
    SEARCH = "search"
    SECTIONS = "sections"
    ERROR = "error"
    METADATA = "metadata"
    TEXT_DELTA = "text-delta"
    RESEARCH_COMPLETE = "research-complete"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)
    transient: bool = False
    id: str | None = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "kind": self.event.value,
            "payload": self.data,
            "transient": self.transient,
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.to_record())}\n\n"
