"""Unit tests for model alias mapping."""

import pytest

from claude_code_adapter.models import map_model_name, resolve_model


class TestMapModelName:
    @pytest.mark.parametrize(
        ("alias", "expected"),
        [
            ("opus", "opus"),
            ("opus-4.5", "opus"),
            ("sonnet", "sonnet"),
            ("sonnet-4.5", "sonnet"),
            ("haiku", "haiku"),
        ],
    )
    def test_known_aliases(self, alias, expected):
        assert map_model_name(alias) == expected

    @pytest.mark.parametrize("alias", [None, "", "gpt-4", "Sonnet", "opus-5"])
    def test_unknown_aliases_use_default(self, alias):
        assert map_model_name(alias) is None


class TestResolveModel:
    def test_alias_after_separator(self):
        assert resolve_model("claude-code::sonnet-4.5") == "sonnet"

    def test_missing_separator_uses_default(self):
        assert resolve_model("claude-code") is None

    def test_unknown_alias_uses_default(self):
        assert resolve_model("claude-code::default") is None
