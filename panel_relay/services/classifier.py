from __future__ import annotations

import logging
from enum import StrEnum

from panel_relay.models.events import EventKind, EventType

logger = logging.getLogger(__name__)


class Channel(StrEnum):
    PERSISTENT = "persistent"
    TRANSIENT = "transient"
    STREAM = "stream"


# Keyed by the upstream event kind.
KIND_CHANNELS: dict[EventKind, Channel] = {
    EventKind.ANALYST: Channel.PERSISTENT,
    EventKind.SECTION: Channel.PERSISTENT,
    EventKind.PROGRESS: Channel.TRANSIENT,
    EventKind.INTERVIEW: Channel.TRANSIENT,
    EventKind.SEARCH: Channel.TRANSIENT,
    EventKind.ERROR: Channel.TRANSIENT,
    EventKind.METADATA: Channel.TRANSIENT,
    EventKind.TEXT_DELTA: Channel.STREAM,
}

# Keyed by the record written downstream. Interview events fan out into a
# transient status hint and a persistent transcript update.
OUTPUT_CHANNELS: dict[EventType, Channel] = {
    EventType.RESEARCH_STATE: Channel.PERSISTENT,
    EventType.ANALYSTS: Channel.PERSISTENT,
    EventType.INTERVIEWS: Channel.PERSISTENT,
    EventType.SECTIONS: Channel.PERSISTENT,
    EventType.RESEARCH_COMPLETE: Channel.PERSISTENT,
    EventType.PROGRESS: Channel.TRANSIENT,
    EventType.INTERVIEW: Channel.TRANSIENT,
    EventType.SEARCH: Channel.TRANSIENT,
    EventType.ERROR: Channel.TRANSIENT,
    EventType.METADATA: Channel.TRANSIENT,
    EventType.TEXT_DELTA: Channel.STREAM,
}


def channel_for(event_type: EventType) -> Channel:
    return OUTPUT_CHANNELS[event_type]


def is_transient(event_type: EventType) -> bool:
    return channel_for(event_type) == Channel.TRANSIENT


def check_upstream_flag(kind: EventKind, upstream_transient: bool | None) -> bool:
    """Report whether an upstream ``transient`` flag agrees with the kind table.

    Records are always classified through ``OUTPUT_CHANNELS``; a contradicting
    upstream flag is only logged. Heartbeats and text deltas are never checked.
    """
    channel = KIND_CHANNELS.get(kind)
    if channel is None or upstream_transient is None or channel == Channel.STREAM:
        return True
    if upstream_transient == (channel == Channel.TRANSIENT):
        return True
    logger.debug(
        "Upstream marked %s event transient=%s; classifying as %s",
        kind.value,
        upstream_transient,
        channel.value,
    )
    return False
