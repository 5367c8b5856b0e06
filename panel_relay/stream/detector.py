"""Classify upstream protocol lines into one of the known wire shapes."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

DISCRETE_PREFIX = "data-"
DATA_MARKER = "data:"
DONE_MARKER = "[DONE]"
# SSE field lines that never carry an event payload.
IGNORED_MARKERS = ("event:", "id:", "retry:", ":")

PASSTHROUGH_TYPES = frozenset({"text-start", "text-delta", "text-end"})
RESERVED_TYPES = frozenset({"updates", "messages", "messages/partial"})
CUSTOM_TYPE = "custom"

RAW_TOKEN_PATTERN = re.compile(r"^([0-9]):(.*)$", re.DOTALL)
RAW_TOKEN_CODES = frozenset({"0", "2", "3"})


class WireShape(StrEnum):
    LEGACY_BATCH = "legacy_batch"
    DISCRETE = "discrete"
    RAW_TOKEN = "raw_token"
    PASSTHROUGH = "passthrough"
    RESERVED = "reserved"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class Detection:
    shape: WireShape
    payload: Any
    token: str | None = None

    @property
    def translatable(self) -> bool:
        return self.shape not in (WireShape.RESERVED, WireShape.UNKNOWN)


_SKIP = object()


def parse_line(line: str) -> Any:
    """Extract the JSON (or raw token) value carried by one protocol line.

    Returns ``None`` for lines that carry nothing: blanks, SSE field lines
    other than ``data:``, the ``[DONE]`` marker, and lines that are neither
    JSON nor raw tokens.
    """
    text = line.strip()
    if not text:
        return None

    if text.startswith(DATA_MARKER):
        text = text[len(DATA_MARKER):].strip()
        if not text or text == DONE_MARKER:
            return None
    elif text.startswith(IGNORED_MARKERS):
        return None

    value = _loads(text)
    if value is not _SKIP:
        return value
    if RAW_TOKEN_PATTERN.match(text):
        return text

    logger.warning("Discarding malformed stream line: %s", text[:200])
    return None


def detect(value: Any) -> Detection:
    """Determine the wire shape of a parsed line value.

    Precedence: batch array, discrete ``data-*`` object, raw token string,
    passthrough text object, reserved (acknowledged, untranslated) object.
    """
    if isinstance(value, list):
        return Detection(WireShape.LEGACY_BATCH, value)

    if isinstance(value, dict):
        event_type = value.get("type")
        if isinstance(event_type, str) and event_type.startswith(DISCRETE_PREFIX):
            return Detection(WireShape.DISCRETE, value)
        if event_type == CUSTOM_TYPE and isinstance(value.get("data"), list):
            return Detection(WireShape.LEGACY_BATCH, value["data"])

    if isinstance(value, str):
        match = RAW_TOKEN_PATTERN.match(value.lstrip())
        if match and match.group(1) in RAW_TOKEN_CODES:
            return Detection(WireShape.RAW_TOKEN, match.group(2), token=match.group(1))

    if isinstance(value, dict):
        event_type = value.get("type")
        if event_type in PASSTHROUGH_TYPES:
            return Detection(WireShape.PASSTHROUGH, value)
        if event_type in RESERVED_TYPES or event_type == CUSTOM_TYPE:
            return Detection(WireShape.RESERVED, value)

    logger.warning("Discarding unrecognized stream value: %s", _preview(value))
    return Detection(WireShape.UNKNOWN, value)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _SKIP


def _preview(value: Any, limit: int = 200) -> str:
    try:
        rendered = json.dumps(value)
    except (TypeError, ValueError):
        rendered = repr(value)
    return rendered[:limit]
