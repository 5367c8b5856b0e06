from panel_relay.stream.detector import WireShape, detect, parse_line


def test_parse_line_strips_data_marker():
    assert parse_line('data: [{"type": "analyst"}]') == [{"type": "analyst"}]
    assert parse_line('data:{"type":"data-progress"}') == {"type": "data-progress"}


def test_parse_line_accepts_bare_json_values():
    assert parse_line('{"type": "text-delta", "delta": "x"}') == {"type": "text-delta", "delta": "x"}
    assert parse_line('"0:Hello"') == "0:Hello"


def test_parse_line_accepts_unquoted_raw_tokens():
    assert parse_line("0:Hello") == "0:Hello"
    assert parse_line("data: 3:{\"message\": \"boom\"}") == '3:{"message": "boom"}'


def test_parse_line_skips_non_payload_lines():
    assert parse_line("") is None
    assert parse_line("   ") is None
    assert parse_line("event: custom") is None
    assert parse_line(": keep-alive") is None
    assert parse_line("data: [DONE]") is None


def test_parse_line_discards_malformed_text():
    assert parse_line("data: {not json") is None
    assert parse_line("hello world") is None


def test_detect_array_is_legacy_batch():
    detection = detect([{"type": "analyst", "data": {}}])

    assert detection.shape == WireShape.LEGACY_BATCH
    assert detection.payload == [{"type": "analyst", "data": {}}]


def test_detect_custom_envelope_unwraps_batch():
    detection = detect({"type": "custom", "data": [{"type": "section", "data": {}}]})

    assert detection.shape == WireShape.LEGACY_BATCH
    assert detection.payload == [{"type": "section", "data": {}}]


def test_detect_discrete_typed_event():
    detection = detect({"type": "data-analyst", "data": {"name": "A"}})

    assert detection.shape == WireShape.DISCRETE


def test_detect_raw_tokens_by_digit():
    text = detect("0:Hello")
    data_part = detect('2:analyst[{"name": "A"}]')
    error = detect('3:{"message": "x"}')

    assert (text.shape, text.token, text.payload) == (WireShape.RAW_TOKEN, "0", "Hello")
    assert (data_part.token, data_part.payload) == ("2", 'analyst[{"name": "A"}]')
    assert error.token == "3"


def test_detect_unsupported_raw_digit_is_unknown():
    assert detect("7:whatever").shape == WireShape.UNKNOWN


def test_detect_passthrough_token_objects():
    for event_type in ("text-start", "text-delta", "text-end"):
        assert detect({"type": event_type, "id": "t1"}).shape == WireShape.PASSTHROUGH


def test_detect_reserved_types_are_not_translatable():
    for event_type in ("updates", "messages"):
        detection = detect({"type": event_type, "data": {}})
        assert detection.shape == WireShape.RESERVED
        assert not detection.translatable


def test_detect_anything_else_is_unknown():
    assert detect({"foo": "bar"}).shape == WireShape.UNKNOWN
    assert detect(42).shape == WireShape.UNKNOWN
    assert detect("plain words").shape == WireShape.UNKNOWN
