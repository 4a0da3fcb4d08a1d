"""Model alias mapping.

Callers identify models as "<provider>::<alias>". Only the alias is passed
on to the CLI, and only when it is one the CLI understands.
"""

from __future__ import annotations

MODEL_ID_SEPARATOR = "::"

MODEL_ALIASES: dict[str, str] = {
    "opus": "opus",
    "opus-4.5": "opus",
    "sonnet": "sonnet",
    "sonnet-4.5": "sonnet",
    "haiku": "haiku",
}


def map_model_name(alias: str | None) -> str | None:
    """Map an alias to a CLI model name.

    Returns None for unknown or missing aliases so the CLI uses its default.
    """
    if alias is None:
        return None
    return MODEL_ALIASES.get(alias)


def resolve_model(model_id: str) -> str | None:
    """Resolve the CLI model for a "<provider>::<alias>" model id."""
    parts = model_id.split(MODEL_ID_SEPARATOR)
    alias = parts[1] if len(parts) > 1 else None
    return map_model_name(alias)
