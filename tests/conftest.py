"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest


class CallbackRecorder:
    """Records the callbacks a streaming session fires."""

    def __init__(self) -> None:
        self.chunks: list[str] = []
        self.completions = 0
        self.errors: list[str] = []

    def on_chunk(self, text: str) -> None:
        self.chunks.append(text)

    def on_complete(self) -> None:
        self.completions += 1

    def on_error(self, error: str) -> None:
        self.errors.append(error)

    @property
    def terminal_count(self) -> int:
        return self.completions + len(self.errors)


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()
