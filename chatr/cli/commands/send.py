"""Queue a message and deliver it."""

import asyncio
from typing import Optional

import typer
from rich.console import Console

from chatr.cli.output import format_error, format_success, format_warning, json_output
from chatr.cli.utils import ConfigManager, validate_conversation_id
from chatr.cli.utils.config import ConfigError
from chatr.cli.utils.runtime import delivery_pipeline
from chatr.cli.utils.validation import validate_message_content, validate_message_type
from chatr.errors import ChatrError, NotAuthenticatedError
from chatr.state import QueuedMessage

console = Console()


async def _send_message(
    conversation_id: str,
    content: str,
    message_type: str,
    media_url: Optional[str],
    offline: bool,
) -> tuple[str, QueuedMessage]:
    """Queue the message, wait for the drain and return (status, message)."""
    config = ConfigManager().load()
    async with delivery_pipeline(config, online=not offline) as pipeline:
        message = await pipeline.processor.send(conversation_id, content, message_type, media_url)
        await pipeline.processor.wait_idle()
        notifier = pipeline.notifier

    if any(m.id == message.id for m in notifier.sent):
        return "sent", message
    if any(m.id == message.id for m in notifier.exhausted):
        return "failed", message
    return "queued", message


def send_command(
    conversation: str = typer.Option(..., "--conversation", "-c", help="Conversation ID"),
    message: str = typer.Option("", "--message", "-m", help="Message content"),
    message_type: str = typer.Option("text", "--type", help="Message type"),
    media_url: str = typer.Option(None, "--media-url", help="Attached media URL"),
    offline: bool = typer.Option(False, "--offline", help="Only queue; deliver on next flush"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Send a message; it stays queued if it cannot be delivered now."""
    try:
        conversation_id = validate_conversation_id(conversation)
        message_type = validate_message_type(message_type)
        content = validate_message_content(message, message_type)
    except ValueError as e:
        format_error(console, str(e))
        raise typer.Exit(code=2)

    try:
        status, queued = asyncio.run(
            _send_message(conversation_id, content, message_type, media_url, offline)
        )
    except (ConfigError, NotAuthenticatedError) as e:
        format_error(console, str(e), hint="Run 'chatr init' to configure your client")
        raise typer.Exit(code=1)
    except ChatrError as e:
        format_error(console, f"Failed to send message: {e}")
        raise typer.Exit(code=3)

    if json_flag:
        json_output(
            console,
            {
                "status": status,
                "message_id": queued.id,
                "conversation_id": queued.conversation_id,
            },
        )
    elif status == "sent":
        format_success(console, "Message sent")
        console.print(f"[cyan]Message ID:[/cyan] {queued.id}")
    elif status == "queued":
        format_warning(console, "Message queued; it will send when you are back online")
        console.print(f"[cyan]Message ID:[/cyan] {queued.id}")
    else:
        format_error(
            console, "Message failed to send", hint=f"Run 'chatr retry {queued.id}' to send it again"
        )

    if status == "failed":
        raise typer.Exit(code=3)
