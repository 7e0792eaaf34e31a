"""Show client configuration and queue status."""

import asyncio

import typer
from rich.console import Console

from chatr.cli.output import format_error, format_key_value, json_output
from chatr.cli.utils import ConfigManager
from chatr.cli.utils.config import ConfigError
from chatr.delivery import PersistentQueue
from chatr.errors import ChatrError
from chatr.state import DatabaseError, DatabaseManager

console = Console()


async def _get_status() -> dict:
    """Get client status information without touching stored data."""
    config = ConfigManager()
    cli_config = config.load()

    db = DatabaseManager(cli_config.db_path)
    await db.initialize()
    try:
        queue = PersistentQueue(db, cli_config.user_id)
        messages = await queue.peek()
        failed = await queue.failed()
        last_sync = await queue.last_sync()
        schema = await db.schema_version()
    finally:
        await db.close()

    return {
        "user_id": cli_config.user_id,
        "backend_url": cli_config.backend_url,
        "has_token": bool(cli_config.access_token),
        "config_path": str(config.config_path),
        "db_path": str(cli_config.db_path),
        "schema_version": schema,
        "queued": len(messages),
        "retrying": sum(1 for m in messages if m.retry_count),
        "failed": len(failed),
        "failed_ids": [m.id for m in failed],
        "last_sync": last_sync,
    }


def status_command(
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show configuration and outbound queue status."""
    try:
        status = asyncio.run(_get_status())
    except ConfigError as e:
        if json_flag:
            json_output(console, {"status": "not_initialized", "error": str(e)})
        else:
            format_error(
                console, str(e), hint="Run 'chatr init' to configure your client"
            )
        raise typer.Exit(code=1)
    except (ChatrError, DatabaseError) as e:
        if json_flag:
            json_output(console, {"status": "error", "error": str(e)})
        else:
            format_error(console, f"Cannot read local state: {e}")
        raise typer.Exit(code=3)

    if json_flag:
        json_output(console, {"status": "initialized", **status})
        return

    last_sync = status["last_sync"]
    console.print("[bold]Chatr Status[/bold]")
    console.print()
    format_key_value(console, {
        "User ID": status["user_id"],
        "Backend": status["backend_url"],
        "Token": "saved" if status["has_token"] else "not set",
        "Config": status["config_path"],
        "Database": status["db_path"],
        "Schema": status["schema_version"] or "unknown",
    })
    console.print()
    format_key_value(console, {
        "Queued": status["queued"],
        "Retrying": status["retrying"],
        "Failed": status["failed"],
        "Last Sync": last_sync["last_sync"] if last_sync else "never",
    })
    for message_id in status["failed_ids"]:
        console.print(f"  [red]{message_id}[/red] (chatr retry {message_id[:8]})")
