from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class ResearchPhase(StrEnum):
    INITIALIZATION = "initialization"
    TOPIC_EXTRACTION = "topic_extraction"
    RESEARCH_BRIEF = "research_brief"
    ANALYSTS = "analysts"
    INTERVIEWS = "interviews"
    REPORT = "report"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return list(ResearchPhase).index(self)

    @classmethod
    def parse(cls, value: Any) -> ResearchPhase | None:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class Analyst:
    name: str
    role: str = ""
    affiliation: str = ""
    esg_focus: str = ""
    esg_categories: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "role": self.role,
            "affiliation": self.affiliation,
            "esgFocus": self.esg_focus,
        }
        if self.esg_categories is not None:
            data["esgCategories"] = list(self.esg_categories)
        return data


@dataclass(slots=True)
class InterviewMessage:
    analyst_name: str
    role: str
    content: str
    timestamp: str = field(default_factory=utc_now_iso)
    turn_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "analystName": self.analyst_name,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class SearchResult:
    tool: str
    query: str
    results_count: int
    sources: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "query": self.query,
            "resultsCount": self.results_count,
            "sources": list(self.sources),
        }


@dataclass(slots=True)
class Progress:
    current: int = 0
    total: int = 0
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"current": self.current, "total": self.total, "message": self.message}


@dataclass(slots=True)
class SessionError:
    message: str
    kind: str = "Error"

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "type": self.kind}


@dataclass
class ResearchSession:
    """Accumulated state of one research request.

    Owned by a single pipeline instance for the lifetime of the request and
    mutated only by its reconciler.
    """

    topic: str = ""
    phase: ResearchPhase = ResearchPhase.INITIALIZATION
    analysts: list[Analyst] = field(default_factory=list)
    interviews: dict[str, list[InterviewMessage]] = field(default_factory=dict)
    sections: dict[str, str] = field(default_factory=dict)
    searches: list[SearchResult] = field(default_factory=list)
    progress: Progress = field(default_factory=lambda: Progress(message="Starting research..."))
    error: SessionError | None = None

    def analyst_index(self, name: str) -> int | None:
        for index, analyst in enumerate(self.analysts):
            if analyst.name == name:
                return index
        return None

    def transcript(self, name: str) -> list[InterviewMessage]:
        return self.interviews.setdefault(name, [])

    def message_count(self) -> int:
        return sum(len(messages) for messages in self.interviews.values())

    def analysts_payload(self) -> list[dict[str, Any]]:
        return [analyst.to_dict() for analyst in self.analysts]

    def interviews_payload(self) -> dict[str, list[dict[str, Any]]]:
        return {
            name: [message.to_dict() for message in messages]
            for name, messages in self.interviews.items()
        }

    def sections_payload(self) -> dict[str, str]:
        return dict(self.sections)

    def searches_payload(self) -> list[dict[str, Any]]:
        return [search.to_dict() for search in self.searches]

    def counts(self) -> dict[str, int]:
        return {
            "analysts": len(self.analysts),
            "interviews": len(self.interviews),
            "interview_messages": self.message_count(),
            "sections": len(self.sections),
            "searches": len(self.searches),
        }

    def snapshot(self) -> dict[str, Any]:
        """Full terminal dump of the accumulated state, phase forced to completed."""
        return {
            "phase": ResearchPhase.COMPLETED.value,
            "analysts": self.analysts_payload(),
            "interviews": self.interviews_payload(),
            "sections": self.sections_payload(),
            "searches": self.searches_payload(),
        }
