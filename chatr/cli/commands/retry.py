"""Re-queue messages that exhausted their retries."""

import asyncio
from typing import Optional

import typer
from rich.console import Console

from chatr.cli.output import format_error, format_success, format_warning, json_output
from chatr.cli.utils import ConfigManager
from chatr.cli.utils.config import ConfigError
from chatr.cli.utils.runtime import delivery_pipeline
from chatr.errors import ChatrError, NotAuthenticatedError
from chatr.state import QueuedMessage

console = Console()


class UnknownMessageError(ChatrError):
    """No failed message matches the requested ID."""


def _select(failed: list[QueuedMessage], message_id: Optional[str]) -> list[QueuedMessage]:
    """Pick failed messages by full ID or unique prefix; all when no ID."""
    if not message_id:
        return failed
    exact = [m for m in failed if m.id == message_id]
    if exact:
        return exact
    matches = [m for m in failed if m.id.startswith(message_id)]
    if len(matches) != 1:
        raise UnknownMessageError(
            f"No single failed message matches '{message_id}'"
            if matches else f"No failed message with ID '{message_id}'"
        )
    return matches


async def _retry(message_id: Optional[str], offline: bool) -> tuple[list[dict], int]:
    config = ConfigManager().load()
    async with delivery_pipeline(config, online=not offline) as pipeline:
        selected = _select(await pipeline.queue.failed(), message_id)
        requeued = [
            (original, await pipeline.processor.retry_exhausted(original))
            for original in selected
        ]
        await pipeline.processor.wait_idle()
        notifier = pipeline.notifier
        remaining_failed = len(await pipeline.queue.failed())

    sent = {m.id for m in notifier.sent}
    exhausted = {m.id for m in notifier.exhausted}
    results = []
    for original, new in requeued:
        if new.id in sent:
            status = "sent"
        elif new.id in exhausted:
            status = "failed"
        else:
            status = "queued"
        results.append({"message_id": original.id, "new_id": new.id, "status": status})
    return results, remaining_failed


def retry_command(message_id: Optional[str], offline: bool, json_flag: bool) -> None:
    """Put failed messages back on the queue and try to deliver them."""
    try:
        results, remaining_failed = asyncio.run(_retry(message_id, offline))
    except (ConfigError, NotAuthenticatedError) as e:
        format_error(console, str(e), hint="Run 'chatr init' to configure your client")
        raise typer.Exit(code=1)
    except UnknownMessageError as e:
        format_error(console, str(e), hint="Run 'chatr status' to see failed messages")
        raise typer.Exit(code=2)
    except ChatrError as e:
        format_error(console, f"Retry failed: {e}")
        raise typer.Exit(code=3)

    if json_flag:
        json_output(console, {"retried": results, "failed": remaining_failed})
    elif not results:
        console.print("[dim]No failed messages[/dim]")
    else:
        for result in results:
            if result["status"] == "sent":
                format_success(console, f"Message {result['message_id']} sent")
            elif result["status"] == "queued":
                format_warning(console, f"Message {result['message_id']} queued as {result['new_id']}")
            else:
                format_error(console, f"Message {result['message_id']} failed to send again")

    if any(r["status"] == "failed" for r in results):
        raise typer.Exit(code=3)
