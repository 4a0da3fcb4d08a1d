"""Host runtime abstraction.

The host runtime owns the Claude Code process. The adapter only needs three
things from it:
- launch_streaming_process: start the CLI for one request
- subscribe: receive that request's events on "<prefix>-<request_id>"
- check_availability: probe whether the CLI is installed and logged in

Implementations:
- SubprocessHost: runs the CLI locally via asyncio subprocesses
- MockHost: in-memory, replays scripted events (testing)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from .bus import EventBus, EventCallback, Subscription
from .settings import AdapterSettings
from .stream_types import DataEvent, DoneEvent, ErrorEvent, StderrEvent, dump_stream_event

logger = logging.getLogger(__name__)

VERSION_PROBE_TIMEOUT = 10.0
# stream-json lines can carry whole messages
STREAM_LINE_LIMIT = 16 * 1024 * 1024
AUTH_ENV_VARS = ("ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN")


class LaunchRequest(BaseModel):
    """Everything the host needs to start one CLI run."""

    request_id: str
    prompt: str
    system_prompt: str | None = None
    model: str | None = None
    # Run as a general assistant, without the caller's project context
    disable_project_context: bool = True


class ToolAvailability(BaseModel):
    """Result of probing the CLI. Defaults are the all-negative answer."""

    available: bool = False
    version: str | None = None
    authenticated: bool = False


@runtime_checkable
class HostRuntime(Protocol):
    """Protocol for host runtimes."""

    async def launch_streaming_process(self, request: LaunchRequest) -> Any:
        """Start the CLI for a request.

        Events for the run are published on the request's topic. Raises if
        the process cannot be started.
        """
        ...

    async def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        """Subscribe to a topic. release() on the handle stops delivery."""
        ...

    async def check_availability(self) -> ToolAvailability:
        """Probe the CLI installation."""
        ...


async def check_tool_availability(host: HostRuntime) -> ToolAvailability:
    """Probe the CLI through a host, never raising.

    Any failure is reported as unavailable, unauthenticated, no version.
    """
    try:
        return await host.check_availability()
    except Exception as e:
        logger.debug(f"Claude Code availability check failed: {e}")
        return ToolAvailability()


class SubprocessHost:
    """Runs the Claude Code CLI as a local subprocess.

    Each stdout line becomes a `data` event and each stderr line a `stderr`
    event. When the process exits, a non-zero exit code is reported as an
    `error` event, followed by `done` carrying the exit code. If the output
    cannot be read (a line over STREAM_LINE_LIMIT), the process is killed and
    the same `error` then `done` pair is published.
    """

    def __init__(self, settings: AdapterSettings | None = None, bus: EventBus | None = None):
        self.settings = settings or AdapterSettings()
        self.bus = bus or EventBus()
        self._tasks: set[asyncio.Task[None]] = set()
        self._processes: dict[str, asyncio.subprocess.Process] = {}

    async def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        return await self.bus.subscribe(topic, callback)

    def build_command(self, request: LaunchRequest) -> list[str]:
        """Build the CLI argv for a request.

        The prompt goes last, after "--", so a prompt starting with "-" is
        never read as an option.
        """
        cmd = [
            *self.settings.cli_command,
            "-p",
            "--output-format",
            "stream-json",
            "--verbose",
        ]
        if request.model:
            cmd += ["--model", request.model]
        if request.system_prompt:
            cmd += ["--system-prompt", request.system_prompt]
        return [*cmd, "--", request.prompt]

    async def launch_streaming_process(self, request: LaunchRequest) -> dict[str, Any]:
        cmd = self.build_command(request)

        env = None
        if self.settings.env:
            env = {**os.environ, **self.settings.env}

        # An empty scratch directory keeps project files and CLAUDE.md out of context
        scratch: tempfile.TemporaryDirectory[str] | None = None
        cwd = self.settings.working_directory
        if request.disable_project_context:
            scratch = tempfile.TemporaryDirectory(prefix="claude-code-")
            cwd = scratch.name

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                limit=STREAM_LINE_LIMIT,
            )
        except Exception:
            if scratch:
                scratch.cleanup()
            raise

        logger.info(f"Launched Claude Code for {request.request_id} (pid={process.pid})")
        self._processes[request.request_id] = process

        task = asyncio.create_task(self._pump(request.request_id, process, scratch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return {"request_id": request.request_id, "pid": process.pid}

    async def _pump(
        self,
        request_id: str,
        process: asyncio.subprocess.Process,
        scratch: tempfile.TemporaryDirectory[str] | None,
    ) -> None:
        topic = self.settings.topic_for(request_id)
        stderr_tail: list[str] = []

        async def read_stdout() -> None:
            assert process.stdout is not None
            async for line in process.stdout:
                text = line.decode("utf-8", errors="replace").strip()
                if text:
                    await self.bus.publish(topic, dump_stream_event(DataEvent(data=text)))

        async def read_stderr() -> None:
            assert process.stderr is not None
            async for line in process.stderr:
                text = line.decode("utf-8", errors="replace").rstrip()
                stderr_tail[:] = [*stderr_tail[-4:], text]
                await self.bus.publish(topic, dump_stream_event(StderrEvent(data=text)))

        readers = [asyncio.create_task(read_stdout()), asyncio.create_task(read_stderr())]
        failure: str | None = None
        try:
            try:
                await asyncio.gather(*readers)
            except Exception as e:
                # e.g. a line longer than STREAM_LINE_LIMIT
                logger.error(f"Reading output of {request_id} failed: {e}")
                await self._abort(process, readers)
                failure = f"Claude Code output could not be read: {e}"

            exit_code = await process.wait()
            logger.debug(f"{request_id} exited with code {exit_code}")

            if failure is None and exit_code != 0:
                detail = stderr_tail[-1] if stderr_tail else ""
                failure = f"Claude Code exited with code {exit_code}"
                if detail:
                    failure = f"{failure}: {detail}"

            if failure is not None:
                await self.bus.publish(topic, dump_stream_event(ErrorEvent(error=failure)))
            await self.bus.publish(topic, dump_stream_event(DoneEvent(exit_code=exit_code)))
        finally:
            for reader in readers:
                reader.cancel()
            self._processes.pop(request_id, None)
            if scratch:
                scratch.cleanup()

    @staticmethod
    async def _abort(
        process: asyncio.subprocess.Process, readers: list[asyncio.Task[None]]
    ) -> None:
        """Stop the readers, kill the process and discard its remaining output."""
        for reader in readers:
            reader.cancel()
        await asyncio.gather(*readers, return_exceptions=True)

        with contextlib.suppress(ProcessLookupError):
            process.kill()

        # read() is not bound by the line limit; draining lets the pipes reach EOF
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                await stream.read()

    async def check_availability(self) -> ToolAvailability:
        process = await asyncio.create_subprocess_exec(
            *self.settings.cli_command,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            stdout, _ = await asyncio.wait_for(
                process.communicate(), timeout=VERSION_PROBE_TIMEOUT
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            return ToolAvailability()

        return ToolAvailability(
            available=True,
            version=stdout.decode("utf-8", errors="replace").strip() or None,
            authenticated=self._has_credentials(),
        )

    @staticmethod
    def _has_credentials() -> bool:
        if any(os.getenv(var) for var in AUTH_ENV_VARS):
            return True
        return (Path.home() / ".claude" / ".credentials.json").exists()

    async def close(self) -> None:
        """Terminate running processes, reap them and stop output pumps."""
        processes = list(self._processes.values())
        for process in processes:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()

        # pumps keep draining output until the processes have exited
        for process in processes:
            await process.wait()

        for task in list(self._tasks):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


class MockHost:
    """In-memory host runtime for testing.

    Records launch requests and replays scripted event payloads on the
    request's topic after launch returns. No actual I/O.

    Usage:
        host = MockHost(events=[{"type": "done"}])
        await provider.stream_response(...)
        assert host.launched[0].model == "sonnet"
    """

    def __init__(
        self,
        events: Sequence[dict[str, Any]] | None = None,
        *,
        settings: AdapterSettings | None = None,
        delay: float = 0.0,
        launch_error: Exception | None = None,
        availability: ToolAvailability | None = None,
    ) -> None:
        self.settings = settings or AdapterSettings()
        self.bus = EventBus()
        self.events = list(events or [])
        self.delay = delay
        self.launch_error = launch_error
        self.availability = availability or ToolAvailability()
        self.launched: list[LaunchRequest] = []
        self.subscriptions: list[Subscription] = []
        self._tasks: set[asyncio.Task[None]] = set()

    async def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        subscription = await self.bus.subscribe(topic, callback)
        self.subscriptions.append(subscription)
        return subscription

    async def launch_streaming_process(self, request: LaunchRequest) -> dict[str, Any]:
        self.launched.append(request)
        if self.launch_error is not None:
            raise self.launch_error

        topic = self.settings.topic_for(request.request_id)
        task = asyncio.create_task(self._replay(topic, list(self.events)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return {"request_id": request.request_id}

    async def _replay(self, topic: str, events: list[dict[str, Any]]) -> None:
        for payload in events:
            await asyncio.sleep(self.delay)
            await self.bus.publish(topic, payload)

    async def publish(self, request_id: str, payload: dict[str, Any]) -> None:
        """Inject an event for a request."""
        await self.bus.publish(self.settings.topic_for(request_id), payload)

    async def check_availability(self) -> ToolAvailability:
        return self.availability
