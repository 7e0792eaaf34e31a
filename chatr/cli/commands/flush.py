"""Deliver everything in the local queue."""

import asyncio

import typer
from rich.console import Console

from chatr.cli.output import format_error, format_success, format_warning, json_output
from chatr.cli.utils import ConfigManager
from chatr.cli.utils.config import ConfigError
from chatr.cli.utils.runtime import delivery_pipeline
from chatr.delivery import DrainResult
from chatr.errors import ChatrError, NotAuthenticatedError

console = Console()


async def _flush() -> tuple[DrainResult, list[str]]:
    config = ConfigManager().load()
    async with delivery_pipeline(config) as pipeline:
        result = await pipeline.processor.drain()
        failed = [m.id for m in pipeline.notifier.exhausted]
    return result, failed


def flush_command(
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Run one delivery pass over the queue."""
    try:
        result, failed = asyncio.run(_flush())
    except (ConfigError, NotAuthenticatedError) as e:
        format_error(console, str(e), hint="Run 'chatr init' to configure your client")
        raise typer.Exit(code=1)
    except ChatrError as e:
        format_error(console, f"Flush failed: {e}")
        raise typer.Exit(code=3)

    if json_flag:
        json_output(
            console,
            {
                "sent": result.sent,
                "failed": result.exhausted,
                "failed_ids": failed,
                "remaining": result.remaining,
            },
        )
    else:
        if result.sent:
            format_success(console, f"Synced {result.sent} message(s)")
        elif not failed:
            console.print("[dim]Nothing to send[/dim]")
        for message_id in failed:
            format_warning(
                console,
                f"Message {message_id} failed to send; run 'chatr retry {message_id}' to send it again",
            )
        if result.remaining:
            console.print(f"[cyan]Still queued:[/cyan] {result.remaining}")

    if failed:
        raise typer.Exit(code=3)
