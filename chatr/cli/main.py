"""Main CLI entry point for Chatr."""

import logging

import typer
from rich.console import Console

from chatr.cli.commands.flush import flush_command
from chatr.cli.commands.init import init_command
from chatr.cli.commands.listen import listen_command
from chatr.cli.commands.queue import queue_command
from chatr.cli.commands.retry import retry_command
from chatr.cli.commands.send import send_command
from chatr.cli.commands.status import status_command

app = typer.Typer(
    name="chatr",
    help="Chatr - offline-first message delivery and notifications",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )


@app.command("init")
def init(
    user_id: str = typer.Option(..., "-u", "--user-id", help="Signed-in user ID"),
    backend_url: str = typer.Option(..., "-U", "--backend-url", help="Backend base URL"),
    api_key: str = typer.Option(..., "-k", "--api-key", help="Backend anon key"),
    token: str = typer.Option(None, "-t", "--token", help="Session access token"),
    force: bool = typer.Option(False, "-f", "--force", help="Overwrite config"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Save identity and backend configuration."""
    init_command(user_id, backend_url, api_key, token, force, json_flag)


@app.command("send")
def send(
    conversation: str = typer.Option(..., "-c", "--conversation", help="Conversation ID"),
    message: str = typer.Option("", "-m", "--message", help="Content"),
    message_type: str = typer.Option("text", "--type", help="Message type"),
    media_url: str = typer.Option(None, "--media-url", help="Attached media URL"),
    offline: bool = typer.Option(False, "--offline", help="Queue without sending"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Send a message to a conversation."""
    send_command(conversation, message, message_type, media_url, offline, json_flag)


@app.command("queue")
def queue(
    clear: bool = typer.Option(False, "--clear", help="Discard queued messages"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """List messages waiting for delivery."""
    queue_command(clear, json_flag)


@app.command("flush")
def flush(
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Deliver queued messages now."""
    flush_command(json_flag)


@app.command("retry")
def retry(
    message_id: str = typer.Argument(None, help="Failed message ID or prefix; all when omitted"),
    offline: bool = typer.Option(False, "--offline", help="Re-queue without sending"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Send failed messages again."""
    retry_command(message_id, offline, json_flag)


@app.command("listen")
def listen(
    conversation: str = typer.Option(None, "-c", "--conversation", help="Open conversation"),
) -> None:
    """Stay connected and show incoming notifications."""
    listen_command(conversation)


@app.command("status")
def status(
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Show configuration and queue status."""
    status_command(json_flag)


def main() -> None:
    """Entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130)
