from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# --- Message parts ---


class _Part(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TextPart(_Part):
    type: Literal["text"]
    text: str


class ReasoningPart(_Part):
    type: Literal["reasoning"]
    text: str


class FilePart(_Part):
    type: Literal["file"]
    file_id: str = Field(alias="fileId")
    mime_type: str = Field(alias="mimeType")
    data: str


class ToolCallPart(_Part):
    type: Literal["tool-call"]
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    args: Any = None


class ToolResultPart(_Part):
    type: Literal["tool-result"]
    tool_call_id: str = Field(alias="toolCallId")
    result: Any = None


UIMessagePart = Annotated[
    Union[TextPart, ReasoningPart, FilePart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


# --- Requests ---


class UIMessage(BaseModel):
    id: str | None = None
    role: Literal["system", "user", "assistant"]
    content: str | None = None
    parts: list[UIMessagePart] | None = None
    metadata: dict[str, Any] | None = None


class ResearchRequest(BaseModel):
    messages: list[UIMessage]
