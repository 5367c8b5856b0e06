"""Tests for merging canonical events into the research session."""
from panel_relay.models.events import (
    EVENT_CLASSES,
    AnalystEvent,
    ErrorEvent,
    HeartbeatEvent,
    InterviewEvent,
    MetadataEvent,
    ProgressEvent,
    SearchEvent,
    SectionEvent,
    TextDeltaEvent,
)
from panel_relay.models.research import ResearchPhase, ResearchSession
from panel_relay.services.reconciler import Reconciler
from panel_relay.stream.detector import detect
from panel_relay.stream.normalizer import normalize


def _reconciler() -> Reconciler:
    return Reconciler(ResearchSession(topic="ESG in mining"))


def test_every_event_kind_has_a_handler():
    reconciler = _reconciler()

    assert set(reconciler._handlers) == set(EVENT_CLASSES.values())


def test_repeated_analyst_updates_in_place_with_latest_fields():
    reconciler = _reconciler()
    reconciler.apply(AnalystEvent(name="A", role="R1", affiliation="Aff1", esg_focus="F1"))
    reconciler.apply(AnalystEvent(name="B", role="R", affiliation="Aff", esg_focus="F"))
    reconciler.apply(AnalystEvent(name="A", role="R2", affiliation="Aff2", esg_focus="F2"))

    analysts = reconciler.session.analysts
    assert [a.name for a in analysts] == ["A", "B"]
    assert analysts[0].role == "R2"
    assert analysts[0].affiliation == "Aff2"


def test_analyst_repeated_within_one_batch_keeps_first():
    reconciler = _reconciler()
    records = reconciler.apply_batch(
        [
            AnalystEvent(name="A", role="first"),
            AnalystEvent(name="A", role="second"),
        ]
    )

    assert len(records) == 1
    assert reconciler.session.analysts[0].role == "first"


def test_analyst_update_is_persistent_record():
    records = _reconciler().apply(AnalystEvent(name="A", role="R"))

    assert [r.event.value for r in records] == ["analysts"]
    assert records[0].transient is False
    assert records[0].data["analysts"][0]["name"] == "A"


def test_identical_consecutive_interview_previews_collapse():
    reconciler = _reconciler()
    for _ in range(3):
        reconciler.apply(InterviewEvent(analyst_name="A", status="answering", message_preview="same"))

    assert [m.content for m in reconciler.session.interviews["A"]] == ["same"]


def test_interview_emits_status_hint_and_transcript_update_only_when_appended():
    reconciler = _reconciler()
    first = reconciler.apply(InterviewEvent(analyst_name="A", status="questioning", message_preview="Q1"))
    repeat = reconciler.apply(InterviewEvent(analyst_name="A", status="questioning", message_preview="Q1"))

    assert [(r.event.value, r.transient) for r in first] == [("interview", True), ("interviews", False)]
    assert [(r.event.value, r.transient) for r in repeat] == [("interview", True)]


def test_interview_without_preview_creates_empty_transcript():
    reconciler = _reconciler()
    records = reconciler.apply(InterviewEvent(analyst_name="A", status="started"))

    assert reconciler.session.interviews == {"A": []}
    assert [r.event.value for r in records] == ["interview"]


def test_interview_role_resolution():
    reconciler = _reconciler()
    reconciler.apply(InterviewEvent(analyst_name="A", status="questioning", message_preview="q"))
    reconciler.apply(InterviewEvent(analyst_name="A", status="answering", message_preview="a"))
    reconciler.apply(InterviewEvent(analyst_name="A", status="searching", message_preview="s"))
    reconciler.apply(
        InterviewEvent(analyst_name="A", status="answering", message_preview="m", metadata={"role": "user"})
    )

    assert [m.role for m in reconciler.session.interviews["A"]] == ["user", "assistant", "assistant", "user"]


def test_redelivered_turn_is_not_appended_again():
    reconciler = _reconciler()
    turn_one = [
        InterviewEvent(analyst_name="A", status="questioning", turn_number=1, message_preview="Q1"),
        InterviewEvent(analyst_name="A", status="answering", turn_number=1, message_preview="A1"),
    ]
    reconciler.apply_batch(turn_one)
    reconciler.apply_batch(turn_one)

    assert [m.content for m in reconciler.session.interviews["A"]] == ["Q1", "A1"]


def test_same_answer_in_a_later_turn_is_kept():
    reconciler = _reconciler()
    reconciler.apply(InterviewEvent(analyst_name="A", status="answering", turn_number=1, message_preview="Yes."))
    reconciler.apply(InterviewEvent(analyst_name="A", status="questioning", turn_number=2, message_preview="Sure?"))
    reconciler.apply(InterviewEvent(analyst_name="A", status="answering", turn_number=2, message_preview="Yes."))

    assert [m.content for m in reconciler.session.interviews["A"]] == ["Yes.", "Sure?", "Yes."]


def test_transcripts_are_kept_per_participant():
    reconciler = _reconciler()
    reconciler.apply(InterviewEvent(analyst_name="A", status="answering", message_preview="shared"))
    reconciler.apply(InterviewEvent(analyst_name="B", status="answering", message_preview="shared"))

    assert len(reconciler.session.interviews["A"]) == 1
    assert len(reconciler.session.interviews["B"]) == 1


def test_only_completed_searches_with_results_are_persisted():
    reconciler = _reconciler()
    started = reconciler.apply(SearchEvent(tool="web_search", query="q", status="started"))
    assert reconciler.session.searches == []
    assert [(r.event.value, r.transient) for r in started] == [("search", True)]

    reconciler.apply(SearchEvent(tool="web_search", query="q", status="error", error="boom"))
    reconciler.apply(SearchEvent(tool="web_search", query="q", status="completed", results_count=0))
    reconciler.apply(SearchEvent(tool="web_search", query="q", status="completed", results_count=5))

    assert [s.results_count for s in reconciler.session.searches] == [5]
    assert reconciler.session.searches[0].to_dict() == {
        "tool": "web_search",
        "query": "q",
        "resultsCount": 5,
        "sources": [],
    }


def test_section_is_last_write_wins():
    reconciler = _reconciler()
    reconciler.apply(SectionEvent(analyst_name="A", content_preview="draft"))
    records = reconciler.apply(SectionEvent(analyst_name="A", content_preview="final"))

    assert reconciler.session.sections == {"A": "final"}
    assert records[0].data == {"sections": {"A": "final"}}
    assert records[0].transient is False


def test_progress_overwrites_only_present_fields():
    reconciler = _reconciler()
    reconciler.apply(ProgressEvent(message="one", current=1, total=5))
    records = reconciler.apply(ProgressEvent(message="two", current=2))

    progress = reconciler.session.progress
    assert (progress.current, progress.total, progress.message) == (2, 5, "two")
    assert reconciler.session.phase == ResearchPhase.INITIALIZATION
    assert records[0].transient is True
    assert records[0].data["phase"] == "initialization"


def test_phase_follows_progress_and_metadata_values():
    reconciler = _reconciler()
    reconciler.apply(ProgressEvent(message="m", phase="analysts"))
    assert reconciler.session.phase == ResearchPhase.ANALYSTS

    reconciler.apply(MetadataEvent(data={"phase": "interviews", "run": 1}))
    assert reconciler.session.phase == ResearchPhase.INTERVIEWS


def test_backward_phase_is_recorded_but_unknown_phase_is_ignored():
    reconciler = _reconciler()
    reconciler.apply(ProgressEvent(phase="report"))
    reconciler.apply(ProgressEvent(phase="analysts"))
    assert reconciler.session.phase == ResearchPhase.ANALYSTS

    reconciler.apply(ProgressEvent(phase="daydreaming"))
    assert reconciler.session.phase == ResearchPhase.ANALYSTS


def test_completed_phase_is_terminal():
    reconciler = _reconciler()
    reconciler.apply(ProgressEvent(phase="completed"))
    reconciler.apply(ProgressEvent(phase="report"))

    assert reconciler.session.phase == ResearchPhase.COMPLETED


def test_error_does_not_change_phase():
    reconciler = _reconciler()
    reconciler.apply(ProgressEvent(phase="interviews"))
    records = reconciler.apply(ErrorEvent(error="tool failed", error_type="ToolError"))

    assert reconciler.session.phase == ResearchPhase.INTERVIEWS
    assert reconciler.session.error.message == "tool failed"
    assert records[0].data == {"error": {"message": "tool failed", "type": "ToolError"}}
    assert records[0].transient is True


def test_metadata_and_text_delta_are_forwarded_not_merged():
    reconciler = _reconciler()
    meta = reconciler.apply(MetadataEvent(data={"runId": "r1"}))
    text = reconciler.apply(TextDeltaEvent(delta="Hel"))
    tagged = reconciler.apply(TextDeltaEvent(delta="lo", id="report"))

    assert meta[0].data == {"runId": "r1"}
    assert meta[0].transient is True
    assert (text[0].data, text[0].id, text[0].transient) == ({"delta": "Hel"}, "research-text", False)
    assert tagged[0].id == "report"
    assert reconciler.session.snapshot()["analysts"] == []


def test_heartbeat_produces_nothing():
    assert _reconciler().apply(HeartbeatEvent(timestamp="t")) == []


def test_upstream_transient_flag_does_not_override_kind_table():
    reconciler = _reconciler()
    records = reconciler.apply(AnalystEvent(name="A", transient=True))

    assert records[0].transient is False
    assert len(reconciler.session.analysts) == 1


def test_concrete_batch_scenario():
    reconciler = _reconciler()
    batch = [
        {"type": "analyst", "data": {"name": "A", "role": "R", "affiliation": "Aff", "esgFocus": "F"}},
        {"type": "interview", "data": {"analystName": "A", "status": "questioning", "messagePreview": "Q1"}},
    ]

    records = reconciler.apply_batch(normalize(detect(batch)))

    session = reconciler.session
    assert [a.to_dict() for a in session.analysts] == [
        {"name": "A", "role": "R", "affiliation": "Aff", "esgFocus": "F"}
    ]
    assert [(m.role, m.content) for m in session.interviews["A"]] == [("user", "Q1")]
    assert [(r.event.value, r.transient) for r in records] == [
        ("analysts", False),
        ("interview", True),
        ("interviews", False),
    ]


def test_redelivered_batch_is_idempotent():
    reconciler = _reconciler()
    batch = normalize(
        detect(
            [
                {"type": "analyst", "data": {"name": "A", "role": "R"}},
                {"type": "analyst", "data": {"name": "B", "role": "R"}},
                {"type": "interview", "data": {"analystName": "A", "status": "questioning", "messagePreview": "Q1"}},
                {"type": "interview", "data": {"analystName": "A", "status": "answering", "messagePreview": "A1"}},
            ]
        )
    )

    reconciler.apply_batch(batch)
    before = reconciler.session.counts()
    reconciler.apply_batch(batch)

    assert reconciler.session.counts() == before
    assert before["analysts"] == 2
    assert before["interview_messages"] == 2


def test_section_counts_are_forwarded_with_update():
    reconciler = _reconciler()
    records = reconciler.apply(
        SectionEvent(analyst_name="A", content_preview="text", word_count=120, sources_count=4)
    )

    assert records[0].data == {
        "sections": {"A": "text"},
        "stats": {"analystName": "A", "wordCount": 120, "sourcesCount": 4},
    }
    assert reconciler.session.sections == {"A": "text"}


def test_error_context_is_forwarded():
    records = _reconciler().apply(
        ErrorEvent(error="tool failed", error_type="ToolError", context={"tool": "web_search"})
    )

    assert records[0].data == {
        "error": {"message": "tool failed", "type": "ToolError", "context": {"tool": "web_search"}}
    }


def test_unnumbered_repeat_of_an_earlier_message_is_treated_as_redelivery():
    reconciler = _reconciler()
    for preview, status in (("Yes.", "answering"), ("Sure?", "questioning"), ("Yes.", "answering")):
        reconciler.apply(InterviewEvent(analyst_name="A", status=status, message_preview=preview))

    assert [m.content for m in reconciler.session.interviews["A"]] == ["Yes.", "Sure?"]
