"""Wire types for the CLI event stream.

Two layers flow over a request's topic:

- StreamEvent: the envelope published by the host runtime
  (data / error / stderr / done).
- StreamMessage: the decoded JSON carried inside a `data` event, as emitted
  by `claude --output-format stream-json`.

Example (topic "claude-code-stream-<request_id>"):
    {"type": "data", "data": "{\\"type\\":\\"assistant\\", ...}"}
    {"type": "stderr", "data": "warning: ..."}
    {"type": "done", "exitCode": 0}

Decoding is an explicit tagged-variant step. Discriminants that match no
known variant decode to a catch-all instead of raising.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)

# =============================================================================
# Envelope events (host runtime -> adapter)
# =============================================================================


class DataEvent(BaseModel):
    """A line of process output, expected (not guaranteed) to be JSON."""

    type: Literal["data"] = "data"
    data: str | None = None


class ErrorEvent(BaseModel):
    """The producer reported a failure."""

    type: Literal["error"] = "error"
    error: str | None = None


class StderrEvent(BaseModel):
    """Diagnostic output. Never affects the session outcome."""

    type: Literal["stderr"] = "stderr"
    data: str | None = None


class DoneEvent(BaseModel):
    """The process finished."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["done"] = "done"
    exit_code: int | None = Field(default=None, alias="exitCode")


StreamEvent = Annotated[
    DataEvent | ErrorEvent | StderrEvent | DoneEvent,
    Field(discriminator="type"),
]

_stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_stream_event(payload: dict[str, Any]) -> StreamEvent:
    """Validate a raw envelope payload.

    Raises:
        ValidationError: If the payload matches no envelope variant
    """
    return _stream_event_adapter.validate_python(payload)


def dump_stream_event(event: StreamEvent) -> dict[str, Any]:
    """Serialize an envelope event to its wire shape."""
    return event.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Decoded `data` payloads
# =============================================================================


class MalformedEventError(Exception):
    """A `data` payload could not be decoded."""


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class OtherBlock(BaseModel):
    """Any non-text content block (tool_use, thinking, ...). Skipped."""

    model_config = ConfigDict(extra="allow")

    type: str


def _block_tag(block: Any) -> str:
    # A text block without a string body is skipped like any other block
    if isinstance(block, TextBlock):
        return "text"
    if isinstance(block, dict) and block.get("type") == "text":
        return "text" if isinstance(block.get("text"), str) else "other"
    return "other"


ContentBlock = Annotated[
    Union[Annotated[TextBlock, Tag("text")], Annotated[OtherBlock, Tag("other")]],
    Discriminator(_block_tag),
]


class AssistantContent(BaseModel):
    content: list[ContentBlock] = Field(default_factory=list)


class SystemInitMessage(BaseModel):
    """Session metadata emitted once at start-up."""

    type: Literal["system"] = "system"
    subtype: str = "init"
    session_id: str | None = None
    model: str | None = None
    tools: list[str] = Field(default_factory=list)


class AssistantStreamMessage(BaseModel):
    """A chunk of assistant output."""

    type: Literal["assistant"] = "assistant"
    message: AssistantContent = Field(default_factory=AssistantContent)
    session_id: str | None = None


class ResultMessage(BaseModel):
    """Final summary. Its text duplicates what was already streamed."""

    type: Literal["result"] = "result"
    subtype: str = "success"
    result: str | None = None
    error: str | None = None
    session_id: str | None = None


class UnknownStreamMessage(BaseModel):
    """Catch-all for discriminants this adapter does not know."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None


StreamMessage = SystemInitMessage | AssistantStreamMessage | ResultMessage | UnknownStreamMessage

_MESSAGE_TYPES: dict[str, type[BaseModel]] = {
    "system": SystemInitMessage,
    "assistant": AssistantStreamMessage,
    "result": ResultMessage,
}


def decode_stream_message(raw: str) -> StreamMessage:
    """Decode the JSON carried by a `data` event.

    Args:
        raw: The payload string

    Returns:
        The matching variant, or UnknownStreamMessage for unknown types

    Raises:
        MalformedEventError: If the payload is not a JSON object or a known
            variant fails validation
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"Not JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedEventError(f"Expected JSON object, got {type(data).__name__}")

    message_type = data.get("type")
    model = _MESSAGE_TYPES.get(message_type) if isinstance(message_type, str) else None

    try:
        if model is None:
            return UnknownStreamMessage.model_validate(data)
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise MalformedEventError(f"Invalid {message_type!r} message: {e}") from e


def assistant_text_chunks(message: AssistantStreamMessage) -> Iterator[str]:
    """Yield the text blocks of an assistant message in order."""
    for block in message.message.content:
        if isinstance(block, TextBlock):
            yield block.text
