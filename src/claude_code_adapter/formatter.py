"""Conversation to prompt conversion.

The Claude Code CLI takes a single prompt string. A lone user message is
passed through with its attachments inlined; anything longer is rendered as
a Human/Assistant transcript.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

from .attachments import read_text_attachment, read_webpage_attachment
from .messages import Attachment, Message, UserMessage, message_to_string

AttachmentResolver = Callable[[Attachment], Awaitable[str]]

TRANSCRIPT_SEPARATOR = "\n\n"


class PromptFormatter:
    """Formats a conversation as one prompt string.

    Usage:
        formatter = PromptFormatter()
        prompt = await formatter.format(conversation)

    Only text and webpage attachments can be inlined. Images and PDFs are
    replaced with a note, since print mode without tools cannot read them.
    """

    def __init__(
        self,
        text_resolver: AttachmentResolver = read_text_attachment,
        webpage_resolver: AttachmentResolver = read_webpage_attachment,
    ) -> None:
        self._text_resolver = text_resolver
        self._webpage_resolver = webpage_resolver

    async def format(self, conversation: Sequence[Message]) -> str:
        """Format a conversation.

        Raises:
            Exception: Whatever an attachment resolver raises
        """
        if len(conversation) == 1 and conversation[0].role == "user":
            return await self.format_single_message(conversation[0])

        parts = [await self.format_transcript_entry(message) for message in conversation]
        return TRANSCRIPT_SEPARATOR.join(parts)

    async def format_single_message(self, message: Message) -> str:
        """Render a message on its own, inlining user attachments."""
        if not isinstance(message, UserMessage):
            return message_to_string(message)

        content = message.content
        for attachment in message.attachments:
            content += await self._format_attachment(attachment)
        return content

    async def format_transcript_entry(self, message: Message) -> str:
        """Render one transcript entry with its speaker prefix."""
        if message.role == "user":
            return f"Human: {await self.format_single_message(message)}"
        if message.role == "assistant":
            return f"Assistant: {message.content}"
        if message.role == "tool_results":
            return f"Tool Results: {message_to_string(message)}"
        return ""

    async def _format_attachment(self, attachment: Attachment) -> str:
        name = attachment.original_name
        if attachment.type == "text":
            text = await self._text_resolver(attachment)
            return f"\n\n[Attachment: {name}]\n{text}"
        if attachment.type == "webpage":
            text = await self._webpage_resolver(attachment)
            return f"\n\n[Webpage: {name}]\n{text}"
        # image / pdf
        return (
            f"\n\n[Attachment: {name}] (Note: {attachment.type} attachments "
            "are not supported in general-assistant mode)"
        )
