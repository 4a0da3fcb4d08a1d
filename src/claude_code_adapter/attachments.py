"""Default attachment content resolvers.

Text and webpage attachments are inlined into the prompt as raw text.
Failures propagate to the caller; nothing here is retried.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

from .messages import Attachment

logger = logging.getLogger(__name__)

WEBPAGE_FETCH_TIMEOUT = 30.0


class AttachmentError(Exception):
    """Attachment content could not be resolved."""


async def _read_file(path: str) -> str:
    return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")


async def read_text_attachment(attachment: Attachment) -> str:
    """Read the stored content of a text attachment."""
    if not attachment.path:
        raise AttachmentError(f"Text attachment {attachment.original_name!r} has no path")
    return await _read_file(attachment.path)


async def read_webpage_attachment(
    attachment: Attachment, client: httpx.AsyncClient | None = None
) -> str:
    """Read the extracted content of a webpage attachment.

    Uses the stored content when the attachment has a path, otherwise
    fetches the page from its url.

    Raises:
        AttachmentError: If the attachment has neither path nor url
        httpx.HTTPError: If fetching the url fails
    """
    if attachment.path:
        return await _read_file(attachment.path)

    if not attachment.url:
        raise AttachmentError(
            f"Webpage attachment {attachment.original_name!r} has neither path nor url"
        )

    logger.debug(f"Fetching webpage attachment {attachment.url}")
    if client is not None:
        return await _fetch(client, attachment.url)

    async with httpx.AsyncClient(timeout=WEBPAGE_FETCH_TIMEOUT, follow_redirects=True) as client:
        return await _fetch(client, attachment.url)


async def _fetch(client: httpx.AsyncClient, url: str) -> str:
    response = await client.get(url)
    response.raise_for_status()
    return response.text
