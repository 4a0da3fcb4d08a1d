"""Unit tests for host runtimes.

SubprocessHost tests run a small Python script in place of the Claude Code
CLI, so the real subprocess and stream-pumping code paths are exercised.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any
from unittest.mock import AsyncMock

import pytest

import claude_code_adapter.host as host_module
from claude_code_adapter.host import (
    HostRuntime,
    LaunchRequest,
    MockHost,
    SubprocessHost,
    ToolAvailability,
    check_tool_availability,
)
from claude_code_adapter.messages import ModelConfig, UserMessage
from claude_code_adapter.session import ClaudeCodeProvider, LaunchError
from claude_code_adapter.settings import AdapterSettings

FAKE_CLI = """
import json, os, sys
print(json.dumps({"type": "system", "subtype": "init", "session_id": "s1", "tools": []}))
print("some non-json noise")
for text in ["Hello", " world"]:
    block = {"type": "text", "text": text}
    print(json.dumps({"type": "assistant", "message": {"content": [block]}}), flush=True)
print(json.dumps({"type": "result", "subtype": "success", "result": "Hello world"}))
print("cwd=" + os.getcwd(), file=sys.stderr)
"""

FAILING_CLI = """
import sys
print("boom", file=sys.stderr)
sys.exit(3)
"""

OVERSIZED_LINE_CLI = """
import time
print("x" * 500, flush=True)
time.sleep(30)
"""

SLEEPING_CLI = """
import time
time.sleep(30)
"""


def fake_cli_settings(script: str, **kwargs: Any) -> AdapterSettings:
    return AdapterSettings(cli_command=[sys.executable, "-c", script], **kwargs)


async def collect(host: SubprocessHost, request: LaunchRequest) -> list[dict[str, Any]]:
    """Launch a request and collect its events up to `done`."""
    events: list[dict[str, Any]] = []
    finished = asyncio.Event()

    def on_event(payload: dict[str, Any]) -> None:
        events.append(payload)
        if payload["type"] == "done":
            finished.set()

    subscription = await host.subscribe(host.settings.topic_for(request.request_id), on_event)
    try:
        await host.launch_streaming_process(request)
        await asyncio.wait_for(finished.wait(), timeout=10)
    finally:
        subscription.release()
    return events


class TestBuildCommand:
    def test_minimal_command(self) -> None:
        host = SubprocessHost(AdapterSettings(cli_command=["claude"]))
        cmd = host.build_command(LaunchRequest(request_id="r", prompt="Hi"))
        assert cmd == ["claude", "-p", "--output-format", "stream-json", "--verbose", "--", "Hi"]

    def test_model_and_system_prompt(self) -> None:
        host = SubprocessHost()
        cmd = host.build_command(
            LaunchRequest(request_id="r", prompt="Hi", model="opus", system_prompt="Be terse")
        )
        assert cmd[-6:] == ["--model", "opus", "--system-prompt", "Be terse", "--", "Hi"]

    @pytest.mark.asyncio
    async def test_prompt_starting_with_dash_is_not_an_option(self) -> None:
        echo_argv = "import json, sys\nprint(json.dumps(sys.argv[1:]))"
        host = SubprocessHost(fake_cli_settings(echo_argv))
        prompt = "--help me write a shell script"

        events = await collect(host, LaunchRequest(request_id="r1", prompt=prompt))

        argv = json.loads(next(e["data"] for e in events if e["type"] == "data"))
        assert argv[-2:] == ["--", prompt]
        assert argv.count(prompt) == 1


class TestSubprocessHost:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(SubprocessHost(), HostRuntime)
        assert isinstance(MockHost(), HostRuntime)

    @pytest.mark.asyncio
    async def test_stdout_lines_become_data_events(self) -> None:
        host = SubprocessHost(fake_cli_settings(FAKE_CLI))
        events = await collect(host, LaunchRequest(request_id="r1", prompt="Hi"))

        data = [e["data"] for e in events if e["type"] == "data"]
        assert "some non-json noise" in data
        assert json.loads(data[0])["type"] == "system"
        assert events[-1] == {"type": "done", "exitCode": 0}
        assert not any(e["type"] == "error" for e in events)

    @pytest.mark.asyncio
    async def test_general_assistant_mode_uses_scratch_directory(self, tmp_path) -> None:
        host = SubprocessHost(fake_cli_settings(FAKE_CLI, working_directory=str(tmp_path)))

        isolated = await collect(host, LaunchRequest(request_id="r1", prompt="Hi"))
        project = await collect(
            host, LaunchRequest(request_id="r2", prompt="Hi", disable_project_context=False)
        )

        def cwd(events: list[dict[str, Any]]) -> str:
            stderr = [e["data"] for e in events if e["type"] == "stderr"]
            return next(line for line in stderr if line.startswith("cwd="))[4:]

        assert cwd(project) == str(tmp_path)
        assert cwd(isolated) != str(tmp_path)

    @pytest.mark.asyncio
    async def test_non_zero_exit_reports_error_then_done(self) -> None:
        host = SubprocessHost(fake_cli_settings(FAILING_CLI))
        events = await collect(host, LaunchRequest(request_id="r1", prompt="Hi"))

        assert {"type": "stderr", "data": "boom"} in events
        assert events[-2] == {"type": "error", "error": "Claude Code exited with code 3: boom"}
        assert events[-1] == {"type": "done", "exitCode": 3}

    @pytest.mark.asyncio
    async def test_oversized_line_reports_error_then_done(self, monkeypatch) -> None:
        monkeypatch.setattr(host_module, "STREAM_LINE_LIMIT", 64)
        host = SubprocessHost(fake_cli_settings(OVERSIZED_LINE_CLI))

        events = await collect(host, LaunchRequest(request_id="r1", prompt="Hi"))

        assert events[-2]["type"] == "error"
        assert events[-2]["error"].startswith("Claude Code output could not be read")
        assert events[-1]["type"] == "done"
        await host.close()
        assert host._processes == {}

    @pytest.mark.asyncio
    async def test_close_reaps_running_processes(self) -> None:
        host = SubprocessHost(fake_cli_settings(SLEEPING_CLI))
        await host.launch_streaming_process(LaunchRequest(request_id="r1", prompt="Hi"))
        process = host._processes["r1"]

        await asyncio.wait_for(host.close(), timeout=10)

        assert process.returncode is not None
        assert host._processes == {}

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self) -> None:
        host = SubprocessHost(AdapterSettings(cli_command=["definitely-not-claude-xyz"]))
        with pytest.raises(OSError):
            await host.launch_streaming_process(LaunchRequest(request_id="r", prompt="Hi"))


class TestEndToEnd:
    """ClaudeCodeProvider driving SubprocessHost."""

    @pytest.mark.asyncio
    async def test_streams_text_from_process(self, recorder) -> None:
        host = SubprocessHost(fake_cli_settings(FAKE_CLI, timeout=10))
        provider = ClaudeCodeProvider(host, host.settings)

        await provider.stream_response(
            [UserMessage(content="Hi")],
            ModelConfig(model_id="claude-code::sonnet"),
            recorder.on_chunk,
            recorder.on_complete,
            recorder.on_error,
        )
        await host.close()

        assert recorder.chunks == ["Hello", " world"]
        assert recorder.completions == 1
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_process_failure_reaches_on_error(self, recorder) -> None:
        host = SubprocessHost(fake_cli_settings(FAILING_CLI, timeout=10))
        provider = ClaudeCodeProvider(host, host.settings)

        await provider.stream_response(
            [UserMessage(content="Hi")],
            ModelConfig(model_id="claude-code::sonnet"),
            recorder.on_chunk,
            recorder.on_complete,
            recorder.on_error,
        )
        await host.close()

        assert recorder.errors == ["Claude Code exited with code 3: boom"]
        assert recorder.completions == 0

    @pytest.mark.asyncio
    async def test_unreadable_output_reaches_on_error(self, monkeypatch, recorder) -> None:
        monkeypatch.setattr(host_module, "STREAM_LINE_LIMIT", 64)
        host = SubprocessHost(fake_cli_settings(OVERSIZED_LINE_CLI, timeout=5))
        provider = ClaudeCodeProvider(host, host.settings)

        started = asyncio.get_running_loop().time()
        await provider.stream_response(
            [UserMessage(content="Hi")],
            ModelConfig(model_id="claude-code::sonnet"),
            recorder.on_chunk,
            recorder.on_complete,
            recorder.on_error,
        )
        elapsed = asyncio.get_running_loop().time() - started
        await host.close()

        assert len(recorder.errors) == 1
        assert recorder.errors[0].startswith("Claude Code output could not be read")
        assert recorder.completions == 0
        assert elapsed < 5

    @pytest.mark.asyncio
    async def test_missing_binary_is_launch_error(self, recorder) -> None:
        settings = AdapterSettings(cli_command=["definitely-not-claude-xyz"])
        host = SubprocessHost(settings)

        with pytest.raises(LaunchError):
            await ClaudeCodeProvider(host, settings).stream_response(
                [UserMessage(content="Hi")],
                ModelConfig(model_id="claude-code::sonnet"),
                recorder.on_chunk,
                recorder.on_complete,
                recorder.on_error,
            )

        assert host.bus._subscriptions == {}
        assert recorder.terminal_count == 0


class TestAvailability:
    @pytest.mark.asyncio
    async def test_version_probe(self, monkeypatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        host = SubprocessHost(fake_cli_settings("print('2.0.1 (Claude Code)')"))

        result = await check_tool_availability(host)

        assert result == ToolAvailability(
            available=True, version="2.0.1 (Claude Code)", authenticated=True
        )

    @pytest.mark.asyncio
    async def test_failing_probe_is_unavailable(self) -> None:
        host = SubprocessHost(fake_cli_settings("import sys; sys.exit(1)"))
        assert await check_tool_availability(host) == ToolAvailability()

    @pytest.mark.asyncio
    async def test_missing_binary_is_unavailable(self) -> None:
        host = SubprocessHost(AdapterSettings(cli_command=["definitely-not-claude-xyz"]))
        result = await check_tool_availability(host)

        assert result.available is False
        assert result.version is None
        assert result.authenticated is False

    @pytest.mark.asyncio
    async def test_any_exception_returns_default(self) -> None:
        host = MockHost()
        host.check_availability = AsyncMock(side_effect=RuntimeError("ipc down"))
        assert await check_tool_availability(host) == ToolAvailability()

    @pytest.mark.asyncio
    async def test_mock_host_reports_configured_availability(self) -> None:
        expected = ToolAvailability(available=True, version="1.0", authenticated=False)
        assert await check_tool_availability(MockHost(availability=expected)) == expected
