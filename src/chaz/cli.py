"""chaz CLI - an LLM relay bot for Matrix."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from chaz.config import Config
from chaz.error_handling import ChazError

app = typer.Typer(help="chaz: relay Matrix conversations to LLM backends")
console = Console()

DEFAULT_CONFIG_PATH = Path("config.yaml")


def _load_config(config_path: Path) -> Config:
    try:
        return Config.from_yaml(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


@app.command()
def version() -> None:
    """Show the current version of chaz."""
    from chaz import __version__

    console.print(f"chaz version: [bold]{__version__}[/bold]")


@app.command()
def run(
    config_path: Path = typer.Option(  # noqa: B008
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the YAML configuration",
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        "-l",
        help="Set the logging level (DEBUG, INFO, WARNING, ERROR)",
        case_sensitive=False,
    ),
) -> None:
    """Log in, join rooms the allow list invites us to and answer messages."""
    from chaz.matrix.client import session_path

    config = _load_config(config_path)
    if config.password is None and not session_path(config.state_path).exists():
        config.password = typer.prompt(f"Password for {config.username}", hide_input=True)

    console.print(f"Starting chaz (log level: {log_level.upper()})")
    console.print("Press Ctrl+C to stop\n")
    try:
        asyncio.run(_run(config, log_level.upper()))
    except KeyboardInterrupt:
        console.print("\nStopped")


async def _run(config: Config, log_level: str) -> None:
    from chaz.bot import main

    await main(config=config, log_level=log_level)


@app.command()
def roles(
    name: str | None = typer.Argument(None, help="Show the details of one role"),
    config_path: Path = typer.Option(  # noqa: B008
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the YAML configuration",
    ),
) -> None:
    """List the built-in and configured roles."""
    from chaz.roles import RoleCatalog

    config = _load_config(config_path)
    catalog = RoleCatalog.from_config(config.roles)

    if name is not None:
        try:
            console.print(catalog.get(name).describe())
        except ChazError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from e
        return

    table = Table(title="Roles")
    table.add_column("Name", style="bold")
    table.add_column("Description")
    for role_name in catalog.names():
        role = catalog.get(role_name)
        marker = " (default)" if role_name == config.default_role else ""
        table.add_row(f"{role_name}{marker}", role.description)
    console.print(table)


@app.command()
def models(
    config_path: Path = typer.Option(  # noqa: B008
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the YAML configuration",
    ),
) -> None:
    """List the models known to the configured backends."""
    from chaz.ai import load_backend_registry
    from chaz.logging_config import setup_logging

    config = _load_config(config_path)
    setup_logging(level="WARNING")
    registry = asyncio.run(load_backend_registry(config))

    console.print(f"Backends: {', '.join(registry.names())}")
    known = registry.list_known_models()
    if not known:
        console.print("No models listed, any model id is passed through to the backend")
        return
    for model in known:
        console.print(f"  {model}")


def main() -> None:
    """Main entry point that shows help by default."""
    # Handle -h flag by replacing with --help
    for i, arg in enumerate(sys.argv):
        if arg == "-h":
            sys.argv[i] = "--help"
            break

    if len(sys.argv) == 1:
        sys.argv.append("--help")

    app()


if __name__ == "__main__":
    main()
