"""Stay connected and show notifications as they arrive."""

import asyncio
from typing import Optional

import typer
from rich.console import Console

from chatr.cli.output import format_error
from chatr.cli.utils import ConfigManager, validate_conversation_id
from chatr.cli.utils.config import CliConfig, ConfigError
from chatr.delivery import RestMessageBackend
from chatr.errors import ChatrError, NotAuthenticatedError
from chatr.notify import (
    DesktopNotifier,
    NotificationPreferences,
    NotificationPresenter,
    RichToastSink,
    StaticFocus,
    TerminalBell,
)
from chatr.realtime import RealtimeChangeFeed
from chatr.session import ChatSession
from chatr.state import DatabaseManager

console = Console()

ACTION_HINTS = {"Retry": "run 'chatr retry {message_id}' to send it again"}


async def _listen(config: CliConfig, active_conversation: Optional[str]) -> None:
    token = config.require_token()
    client_config = config.to_client_config()
    notifications = client_config.notifications
    presenter = NotificationPresenter(
        toasts=RichToastSink(console, action_hints=ACTION_HINTS),
        sound=TerminalBell(console),
        os_notifier=DesktopNotifier(),
        focus=StaticFocus(focused=False),
        preferences=NotificationPreferences(
            sound_enabled=notifications.sound_enabled,
            desktop_enabled=notifications.desktop_enabled,
        ),
        auto_dismiss=notifications.auto_dismiss,
    )
    db = DatabaseManager(config.db_path)
    await db.initialize()
    try:
        async with RestMessageBackend(client_config.backend, token) as backend, \
                RealtimeChangeFeed(
                    client_config.backend.realtime_url,
                    client_config.backend.api_key,
                    token,
                    heartbeat_interval=client_config.backend.heartbeat_interval,
                ) as feed:
            session = ChatSession(client_config, config.user_id, db, backend, feed, presenter)
            session.set_active_conversation(active_conversation)
            async with session:
                console.print(f"[dim]Listening as {config.user_id}; Ctrl-C to stop[/dim]")
                await asyncio.Event().wait()
    finally:
        await db.close()


def listen_command(
    conversation: str = typer.Option(
        None, "--conversation", "-c", help="Treat this conversation as open"
    ),
) -> None:
    """Deliver queued messages and notify on incoming events until interrupted."""
    active = None
    if conversation:
        try:
            active = validate_conversation_id(conversation)
        except ValueError as e:
            format_error(console, str(e))
            raise typer.Exit(code=2)

    try:
        config = ConfigManager().load()
        asyncio.run(_listen(config, active))
    except (ConfigError, NotAuthenticatedError) as e:
        format_error(console, str(e), hint="Run 'chatr init' to configure your client")
        raise typer.Exit(code=1)
    except (ChatrError, OSError) as e:
        format_error(console, f"Connection failed: {e}")
        raise typer.Exit(code=3)
