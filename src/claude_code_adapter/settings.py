"""Adapter configuration.

Defaults can be overridden from the environment or from a YAML file:

    CLAUDE_CODE_ADAPTER_CLI="claude --verbose"
    CLAUDE_CODE_ADAPTER_TIMEOUT=120
    CLAUDE_CODE_ADAPTER_TOPIC_PREFIX=claude-code-stream
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_TIMEOUT = 5 * 60.0
DEFAULT_TOPIC_PREFIX = "claude-code-stream"

ENV_CLI = "CLAUDE_CODE_ADAPTER_CLI"
ENV_TIMEOUT = "CLAUDE_CODE_ADAPTER_TIMEOUT"
ENV_TOPIC_PREFIX = "CLAUDE_CODE_ADAPTER_TOPIC_PREFIX"


@dataclass
class AdapterSettings:
    """Settings shared by the session controller and the subprocess host."""

    # Claude Code CLI invocation (subprocess host)
    cli_command: list[str] = field(default_factory=lambda: ["claude"])
    working_directory: str | None = None
    env: dict[str, str] | None = None

    # Request lifecycle
    timeout: float = DEFAULT_TIMEOUT
    topic_prefix: str = DEFAULT_TOPIC_PREFIX

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if not self.cli_command:
            raise ValueError("cli_command must not be empty")

    def topic_for(self, request_id: str) -> str:
        """Topic name carrying a request's stream events."""
        return f"{self.topic_prefix}-{request_id}"

    @classmethod
    def from_env(cls, base: AdapterSettings | None = None) -> AdapterSettings:
        """Apply environment overrides on top of `base` (or the defaults)."""
        settings = base or cls()
        overrides: dict[str, Any] = {}

        if cli := os.getenv(ENV_CLI):
            overrides["cli_command"] = shlex.split(cli)
        if timeout := os.getenv(ENV_TIMEOUT):
            overrides["timeout"] = _parse_timeout(timeout)
        if prefix := os.getenv(ENV_TOPIC_PREFIX):
            overrides["topic_prefix"] = prefix

        return replace(settings, **overrides) if overrides else settings

    @classmethod
    def from_file(cls, path: str | Path) -> AdapterSettings:
        """Load settings from a YAML file.

        Recognized keys: cli_command (string or list), timeout, topic_prefix,
        working_directory, env.
        """
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")

        known = {"cli_command", "timeout", "topic_prefix", "working_directory", "env"}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")

        if isinstance(data.get("cli_command"), str):
            data["cli_command"] = shlex.split(data["cli_command"])
        if "timeout" in data:
            data["timeout"] = _parse_timeout(data["timeout"])

        return cls(**data)


def _parse_timeout(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timeout: {value!r}") from e
