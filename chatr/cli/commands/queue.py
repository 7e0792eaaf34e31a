"""Inspect or clear the local outbound queue."""

import asyncio

import typer
from rich.console import Console

from chatr.cli.output import format_error, format_success, format_table, json_output
from chatr.cli.utils import ConfigManager
from chatr.cli.utils.config import ConfigError
from chatr.delivery import PersistentQueue
from chatr.errors import ChatrError
from chatr.state import DatabaseError, DatabaseManager, QueuedMessage

console = Console()


async def _load_queue(clear: bool) -> tuple[list[QueuedMessage], int]:
    config = ConfigManager().load()
    db = DatabaseManager(config.db_path)
    await db.initialize()
    try:
        queue = PersistentQueue(db, config.user_id)
        messages = await queue.peek()
        cleared = await queue.clear() if clear else 0
    finally:
        await db.close()
    return messages, cleared


def queue_command(
    clear: bool = typer.Option(False, "--clear", help="Discard every queued message"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List messages waiting for delivery."""
    try:
        messages, cleared = asyncio.run(_load_queue(clear))
    except ConfigError as e:
        format_error(console, str(e), hint="Run 'chatr init' to configure your client")
        raise typer.Exit(code=1)
    except (ChatrError, DatabaseError) as e:
        format_error(console, f"Cannot read the queue: {e}")
        raise typer.Exit(code=3)

    if json_flag:
        json_output(
            console,
            {
                "count": 0 if clear else len(messages),
                "cleared": cleared,
                "messages": [] if clear else [m.to_dict() for m in messages],
            },
        )
        return

    if clear:
        format_success(console, f"Cleared {cleared} queued message(s)")
        return

    if not messages:
        console.print("[dim]Queue is empty[/dim]")
        return

    rows = [
        (
            m.id[:8] + "...",
            m.conversation_id[:8] + "...",
            m.message_type,
            str(m.retry_count),
            m.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            (m.content[:40] + "...") if len(m.content) > 40 else m.content,
        )
        for m in messages
    ]
    format_table(
        console,
        f"Queued Messages ({len(messages)})",
        ["ID", "Conversation", "Type", "Retries", "Queued At", "Content"],
        rows,
    )
