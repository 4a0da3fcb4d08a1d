"""Claude Code streaming session controller.

One call to ClaudeCodeProvider.stream_response() is one RequestSession:

1. Format the conversation as a prompt
2. Subscribe to "<prefix>-<request_id>" (before launching, so no early
   events are missed)
3. Ask the host runtime to launch the CLI
4. Turn `assistant` events into chunks until `done`, `error` or the timeout
5. Release the subscription, whatever happened

Exactly one of on_complete / on_error fires per session. The completed flag
is checked and set before either is invoked, with no await in between, so
whichever of the event handler and the timer gets there first wins.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import ValidationError

from .formatter import PromptFormatter
from .host import HostRuntime, LaunchRequest
from .messages import Message, ModelConfig
from .models import resolve_model
from .settings import AdapterSettings
from .stream_types import (
    AssistantStreamMessage,
    DataEvent,
    DoneEvent,
    ErrorEvent,
    MalformedEventError,
    StderrEvent,
    UnknownStreamMessage,
    assistant_text_chunks,
    decode_stream_message,
    parse_stream_event,
)

logger = logging.getLogger(__name__)

# Callbacks may be plain functions or coroutine functions
ChunkCallback = Callable[[str], Awaitable[None] | None]
CompleteCallback = Callable[[], Awaitable[None] | None]
ErrorCallback = Callable[[str], Awaitable[None] | None]

UNKNOWN_ERROR = "Unknown error"


class LaunchError(Exception):
    """The host runtime failed to start the CLI."""


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def format_duration(seconds: float) -> str:
    """Human-readable duration for timeout messages."""
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds:g} seconds"


class RequestSession:
    """State for one streaming request.

    Args:
        request_id: Correlation id for the request's topic
        on_chunk: Called with each text chunk, in arrival order
        on_complete: Called once when the stream finishes
        on_error: Called once with a message when the stream fails
        timeout: Seconds from creation until the request times out
    """

    def __init__(
        self,
        request_id: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
        timeout: float,
    ) -> None:
        self.request_id = request_id
        self.timeout = timeout
        self.deadline = asyncio.get_running_loop().time() + timeout
        self._on_chunk = on_chunk
        self._on_complete = on_complete
        self._on_error = on_error
        self._completed = False
        self._finished = asyncio.Event()

    @property
    def completed(self) -> bool:
        return self._completed

    async def handle_event(self, payload: dict[str, Any]) -> None:
        """Handle one event delivered on the request's topic."""
        try:
            event = parse_stream_event(payload)
        except ValidationError:
            logger.warning(f"Ignoring unrecognized stream event for {self.request_id}: {payload!r}")
            return

        if isinstance(event, DataEvent):
            if event.data:
                await self._handle_data(event.data)
        elif isinstance(event, ErrorEvent):
            await self.fail(event.error or UNKNOWN_ERROR)
        elif isinstance(event, StderrEvent):
            logger.debug(f"[claude stderr] {event.data}")
        elif isinstance(event, DoneEvent):
            logger.debug(f"{self.request_id} done (exit code {event.exit_code})")
            await self.complete()

    async def _handle_data(self, raw: str) -> None:
        if self._completed:
            return

        try:
            message = decode_stream_message(raw)
        except MalformedEventError as e:
            # Not valid JSON, might be partial output
            logger.warning(f"Failed to parse Claude Code stream data ({e}): {raw[:200]}")
            return

        if isinstance(message, AssistantStreamMessage):
            for chunk in assistant_text_chunks(message):
                # an awaited chunk callback can outlive the deadline
                if self._completed:
                    return
                await _invoke(self._on_chunk, chunk)
        elif isinstance(message, UnknownStreamMessage):
            logger.debug(f"Skipping stream message of type {message.type!r}")
        # system init is metadata; result repeats text that was already streamed

    async def complete(self) -> bool:
        """Resolve successfully. Returns False if already resolved."""
        if self._completed:
            return False
        self._completed = True
        self._finished.set()
        await _invoke(self._on_complete)
        return True

    async def fail(self, message: str) -> bool:
        """Resolve with an error. Returns False if already resolved."""
        if self._completed:
            return False
        self._completed = True
        self._finished.set()
        logger.info(f"Claude Code request {self.request_id} failed: {message}")
        await _invoke(self._on_error, message)
        return True

    async def wait(self) -> None:
        """Suspend until resolved, failing the session at the deadline."""
        if self._finished.is_set():
            return

        remaining = self.deadline - asyncio.get_running_loop().time()
        try:
            await asyncio.wait_for(self._finished.wait(), timeout=max(remaining, 0))
        except TimeoutError:
            await self.fail(f"Request timed out after {format_duration(self.timeout)}")


class ClaudeCodeProvider:
    """Streams responses from the Claude Code CLI through a host runtime.

    Usage:
        provider = ClaudeCodeProvider(SubprocessHost())
        await provider.stream_response(
            conversation,
            ModelConfig(model_id="claude-code::sonnet"),
            on_chunk=print,
            on_complete=lambda: None,
            on_error=print,
        )
    """

    def __init__(
        self,
        host: HostRuntime,
        settings: AdapterSettings | None = None,
        formatter: PromptFormatter | None = None,
    ) -> None:
        self.host = host
        self.settings = settings or AdapterSettings()
        self.formatter = formatter or PromptFormatter()

    async def stream_response(
        self,
        conversation: Sequence[Message],
        model_config: ModelConfig,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Stream one response.

        Returns once on_complete or on_error has fired.

        Raises:
            LaunchError: If the host could not start the CLI
            Exception: Whatever an attachment resolver raises while formatting
        """
        request_id = str(uuid.uuid4())
        session = RequestSession(
            request_id,
            on_chunk=on_chunk,
            on_complete=on_complete,
            on_error=on_error,
            timeout=self.settings.timeout,
        )

        prompt = await self.formatter.format(conversation)
        model = resolve_model(model_config.model_id)

        subscription = None
        try:
            subscription = await self.host.subscribe(
                self.settings.topic_for(request_id), session.handle_event
            )

            request = LaunchRequest(
                request_id=request_id,
                prompt=prompt,
                system_prompt=model_config.system_prompt or None,
                model=model,
                disable_project_context=True,
            )
            logger.debug(f"Launching Claude Code request {request_id} (model={model or 'default'})")
            try:
                await self.host.launch_streaming_process(request)
            except Exception as e:
                raise LaunchError(f"Failed to start Claude Code: {e}") from e

            await session.wait()
        finally:
            if subscription is not None:
                subscription.release()
