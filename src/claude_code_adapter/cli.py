"""Claude Code adapter CLI.

Usage:
    claude-code-adapter ask "Explain asyncio.Event"
    claude-code-adapter ask "Summarize" --attach notes.txt --model claude-code::haiku
    claude-code-adapter check                  # Is the Claude Code CLI usable?
    claude-code-adapter check --format json

Model output goes to stdout; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

import click

from .host import SubprocessHost, check_tool_availability
from .messages import Attachment, ModelConfig, UserMessage
from .session import ClaudeCodeProvider, LaunchError
from .settings import AdapterSettings

FORMAT_TABLE = "table"
FORMAT_JSON = "json"

DEFAULT_MODEL_ID = "claude-code::default"


def _configure_logging(verbose: bool) -> None:
    """Send all logging to stderr so stdout only carries the response."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load_settings(config_path: str | None, timeout: float | None) -> AdapterSettings:
    try:
        settings = AdapterSettings.from_file(config_path) if config_path else AdapterSettings()
        settings = AdapterSettings.from_env(settings)
        if timeout is not None:
            settings = replace(settings, timeout=timeout)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    return settings


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML settings file",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """Talk to the Claude Code CLI through its stream-json output."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("prompt")
@click.option(
    "--model", "model_id", default=DEFAULT_MODEL_ID, help="Model id, e.g. claude-code::sonnet"
)
@click.option("--system", "system_prompt", default=None, help="System prompt")
@click.option(
    "--attach",
    "attach_paths",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Inline a text file into the prompt (repeatable)",
)
@click.option("--timeout", type=float, default=None, help="Seconds before the request times out")
@click.pass_context
def ask(
    ctx: click.Context,
    prompt: str,
    model_id: str,
    system_prompt: str | None,
    attach_paths: tuple[str, ...],
    timeout: float | None,
) -> None:
    """Send PROMPT and stream the response to stdout."""
    settings = _load_settings(ctx.obj.get("config_path"), timeout)

    message = UserMessage(
        content=prompt,
        attachments=[
            Attachment(type="text", original_name=Path(path).name, path=path)
            for path in attach_paths
        ],
    )
    errors: list[str] = []

    def on_chunk(text: str) -> None:
        click.echo(text, nl=False)

    def on_complete() -> None:
        click.echo()

    def on_error(error: str) -> None:
        errors.append(error)

    async def run() -> None:
        host = SubprocessHost(settings)
        provider = ClaudeCodeProvider(host, settings)
        try:
            await provider.stream_response(
                [message],
                ModelConfig(model_id=model_id, system_prompt=system_prompt),
                on_chunk=on_chunk,
                on_complete=on_complete,
                on_error=on_error,
            )
        finally:
            await host.close()

    try:
        asyncio.run(run())
    except LaunchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if errors:
        click.echo(f"\nError: {errors[0]}", err=True)
        sys.exit(1)


@main.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_context
def check(ctx: click.Context, output_format: str) -> None:
    """Check whether the Claude Code CLI is installed and authenticated."""
    settings = _load_settings(ctx.obj.get("config_path"), None)
    result = asyncio.run(check_tool_availability(SubprocessHost(settings)))

    if output_format == FORMAT_JSON:
        click.echo(json.dumps(result.model_dump(), indent=2))
        return

    click.echo(f"Available:     {'yes' if result.available else 'no'}")
    click.echo(f"Version:       {result.version or 'N/A'}")
    click.echo(f"Authenticated: {'yes' if result.authenticated else 'no'}")
    if not result.available:
        click.echo("\nInstall Claude Code and make sure it is on your PATH.")


if __name__ == "__main__":
    main()
