"""Save identity and backend settings."""

import typer
from rich.console import Console

from chatr.cli.output import format_error, format_success, json_output
from chatr.cli.utils import ConfigManager, validate_backend_url, validate_user_id
from chatr.cli.utils.validation import validate_api_key

console = Console()


def init_command(
    user_id: str = typer.Option(..., "--user-id", "-u", help="Signed-in user ID"),
    backend_url: str = typer.Option(..., "--backend-url", "-U", help="Backend base URL"),
    api_key: str = typer.Option(..., "--api-key", "-k", help="Backend anon key"),
    token: str = typer.Option(None, "--token", "-t", help="Session access token"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing configuration"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Write ~/.chatr/config.yaml and, if given, the access token file (chmod 600)."""
    try:
        user_id = validate_user_id(user_id)
        backend_url = validate_backend_url(backend_url)
        api_key = validate_api_key(api_key)
    except ValueError as e:
        format_error(console, str(e))
        raise typer.Exit(code=2)

    config = ConfigManager()

    if config.exists() and not force:
        format_error(
            console,
            f"Configuration already exists at {config.config_path}",
            hint="Use --force to overwrite existing configuration",
        )
        raise typer.Exit(code=1)

    config.save(user_id, backend_url, api_key, token)

    if json_flag:
        json_output(
            console,
            {
                "status": "initialized",
                "user_id": user_id,
                "backend_url": backend_url,
                "has_token": bool(token),
                "config_path": str(config.config_path),
            },
        )
    else:
        format_success(console, "Chatr initialized successfully")
        console.print(f"[cyan]User ID:[/cyan]   {user_id}")
        console.print(f"[cyan]Backend:[/cyan]   {backend_url}")
        console.print(f"[cyan]Token:[/cyan]     {'saved' if token else 'not set'}")
        console.print(f"[cyan]Config:[/cyan]    {config.config_path}")
