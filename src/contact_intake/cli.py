# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for contact-intake.

Usage:
    contact-intake serve --port 8000
    contact-intake check-config --config /etc/contact-intake/config.ini
    contact-intake classify "Cheap VIAGRA here" --email bot@tempmail.com

Example:
    $ contact-intake check-config
    $ contact-intake serve --host 127.0.0.1 --port 8080 --config config.ini
"""

from __future__ import annotations

import os
import sys

import click
from rich.console import Console
from rich.table import Table

from contact_intake.config_loader import CONFIG_PATH_ENV, ConfigurationError, load_config
from contact_intake.models import NormalizedMessage
from contact_intake.spam import evaluate

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


@click.group()
@click.version_option(package_name="contact-intake")
def main() -> None:
    """contact-intake: spam-resistant contact form endpoint."""


@main.command()
@click.option("--host", "-h", default="0.0.0.0", show_default=True, help="Host to bind to.")
@click.option("--port", "-p", type=int, default=8000, show_default=True, help="Port to listen on.")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="INI configuration file.")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development.")
def serve(host: str, port: int, config_path: str | None, reload: bool) -> None:
    """Run the HTTP server."""
    import uvicorn

    if config_path:
        os.environ[CONFIG_PATH_ENV] = config_path
    try:
        load_config()
    except ConfigurationError as exc:
        print_error(str(exc))
        sys.exit(1)

    console.print("\n[bold cyan]Starting contact-intake[/bold cyan]")
    console.print(f"  Config:  {config_path or '(environment)'}")
    console.print(f"  Listen:  {host}:{port}")
    console.print()

    uvicorn.run(
        "contact_intake.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("check-config")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="INI configuration file.")
def check_config(config_path: str | None) -> None:
    """Validate the configuration and print it with secrets masked."""
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        print_error(str(exc))
        sys.exit(1)

    table = Table(title="Contact Intake Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in config.redacted().items():
        table.add_row(key, "[dim]-[/dim]" if value is None else str(value))
    console.print(table)
    print_success("Configuration is valid")


@main.command()
@click.argument("message")
@click.option("--name", default="Anonymous", help="Submitter name.")
@click.option("--email", default="someone@example.com", help="Submitter email.")
@click.option("--subject", default="", help="Message subject.")
def classify(message: str, name: str, email: str, subject: str) -> None:
    """Run the spam classifier on MESSAGE and print the verdict."""
    verdict = evaluate(NormalizedMessage(name=name, email=email, subject=subject, message=message))
    if verdict.is_spam:
        console.print(f"[red]spam[/red] ({verdict.reason.value})")
    else:
        console.print("[green]clean[/green]")


if __name__ == "__main__":
    main()
