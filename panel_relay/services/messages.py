"""Conversion between chat UI messages and upstream thread messages."""
from __future__ import annotations

from typing import Any

from panel_relay.models.schemas import (
    FilePart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    UIMessage,
)

UPSTREAM_TYPES = {"user": "human", "assistant": "ai", "system": "system"}


def extract_content(message: UIMessage) -> str:
    """Plain text of a message, preferring its text parts over ``content``."""
    if message.parts:
        texts = [part.text for part in message.parts if isinstance(part, TextPart)]
        if texts:
            return "".join(texts)
    return message.content or ""


def latest_user_query(messages: list[UIMessage]) -> str | None:
    user_messages = [m for m in messages if m.role == "user"]
    if not user_messages:
        return None
    return extract_content(user_messages[-1])


def to_upstream_message(message: UIMessage) -> dict[str, Any]:
    content = message.content or ""
    additional_kwargs: dict[str, Any] = {}

    parts = message.parts or []
    texts: list[str] = []
    for part in parts:
        if isinstance(part, TextPart) and part.text:
            texts.append(part.text)
        elif isinstance(part, ReasoningPart) and part.text:
            texts.append(f"[Reasoning] {part.text}")
    if texts:
        content = "\n\n".join(texts)

    files = [p for p in parts if isinstance(p, FilePart)]
    if files:
        additional_kwargs["attachments"] = [
            {"fileId": p.file_id, "mimeType": p.mime_type, "data": p.data} for p in files
        ]

    tool_calls = [p for p in parts if isinstance(p, ToolCallPart)]
    if tool_calls:
        additional_kwargs["tool_calls"] = [
            {"id": p.tool_call_id, "name": p.tool_name, "args": p.args} for p in tool_calls
        ]

    tool_results = [p for p in parts if isinstance(p, ToolResultPart)]
    if tool_results:
        additional_kwargs["tool_results"] = [
            {"tool_call_id": p.tool_call_id, "result": p.result} for p in tool_results
        ]

    if message.metadata:
        additional_kwargs["metadata"] = message.metadata

    converted: dict[str, Any] = {
        "type": UPSTREAM_TYPES[message.role],
        "content": content,
    }
    if message.id:
        converted["id"] = message.id
    if additional_kwargs:
        converted["additional_kwargs"] = additional_kwargs
    return converted


def to_upstream_messages(messages: list[UIMessage]) -> list[dict[str, Any]]:
    return [to_upstream_message(message) for message in messages]
