"""Conversation data model.

A conversation is an ordered list of messages. Order is turn order and is
preserved through prompt formatting. User messages may carry attachments
that get inlined into the prompt.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field


class Attachment(BaseModel):
    """A file attached to a user message.

    `path` points at the stored content (extracted text for webpages).
    Webpages may additionally carry their source `url`.
    """

    type: Literal["text", "webpage", "image", "pdf"]
    original_name: str
    path: str | None = None
    url: str | None = None


class UserMessage(BaseModel):
    """A user turn, with optional attachments."""

    role: Literal["user"] = "user"
    content: str
    attachments: list[Attachment] = Field(default_factory=list)


class AssistantMessage(BaseModel):
    """An assistant turn."""

    role: Literal["assistant"] = "assistant"
    content: str


class ToolResultsMessage(BaseModel):
    """Tool output fed back into the conversation."""

    role: Literal["tool_results"] = "tool_results"
    content: str


Message = Annotated[
    UserMessage | AssistantMessage | ToolResultsMessage,
    Field(discriminator="role"),
]

Conversation = list[Message]


class ModelConfig(BaseModel):
    """Caller-side model configuration.

    `model_id` follows the "<provider>::<alias>" convention, e.g.
    "claude-code::sonnet".
    """

    model_id: str
    system_prompt: str | None = None


def message_to_string(message: Message) -> str:
    """Render the text body of a message without inlining attachments.

    Only the body is returned, with no role label. PromptFormatter adds the
    "Human: " / "Assistant: " / "Tool Results: " prefix for transcript
    entries and renders attachments itself, so a lone non-user message
    renders as its bare content.
    """
    return message.content
