"""Flask CLI commands for inspecting the debugger and its logs."""

from __future__ import annotations

from collections import deque
from pathlib import Path

import click
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from faultline.services.errors import LoggerError
from faultline.services.failures import Priority


def _debugger():
    return current_app.extensions["faultline"].debugger


def register_cli(app) -> None:
    group = AppGroup("faultline", help="Inspect error capture and logs.")

    @group.command("mode")
    @with_appcontext
    def mode() -> None:
        debugger = _debugger()
        click.echo(f"mode: {debugger.resolve_mode().value}")
        click.echo(f"log directory: {debugger.log_directory or '(not set)'}")
        click.echo(f"strict mode: {debugger.config.strict_mode}")

    @group.command("log")
    @click.argument("message")
    @click.option(
        "--priority",
        type=click.Choice([p.value for p in Priority]),
        default=Priority.INFO.value,
        show_default=True,
    )
    @with_appcontext
    def log_message(message: str, priority: str) -> None:
        try:
            reference = _debugger().log(message, Priority(priority))
        except LoggerError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Logged to {priority}.log" + (f" ({reference})" if reference else ""))

    @group.command("logs")
    @click.option(
        "--priority",
        type=click.Choice([p.value for p in Priority]),
        default=Priority.EXCEPTION.value,
        show_default=True,
    )
    @click.option("--lines", "-n", default=20, show_default=True, type=int)
    @with_appcontext
    def show_logs(priority: str, lines: int) -> None:
        directory = _debugger().log_directory
        if not directory:
            raise click.ClickException("Logging directory is not configured.")
        log_path = Path(directory) / f"{priority}.log"
        if not log_path.exists():
            click.echo(f"No entries in {log_path.name}.")
            return
        with log_path.open(encoding="utf-8") as handle:
            for entry in deque(handle, maxlen=lines):
                click.echo(entry.rstrip("\n"))

    app.cli.add_command(group)
