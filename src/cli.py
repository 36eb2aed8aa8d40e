"""Click CLI for running the pairing gateway and maintaining its state."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click
import uvicorn

from src.audit.logger import validate_audit_chain
from src.pairing.sessions import SessionDirectories, UnsafeSessionNameError, remove_tree


@click.group()
def cli() -> None:
    """Pairing-code gateway CLI."""


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind.")
@click.option("--port", default=8000, type=int, help="Port to bind.")
@click.option("--log-level", default="info", help="Root log level.")
def serve(host: str, port: int, log_level: str) -> None:
    """Run the HTTP server (reads PAIRING_BACKEND and friends from the environment)."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "src.api.app:create_app_from_env",
        factory=True,
        host=host,
        port=port,
        log_level=log_level.lower(),
    )


@cli.group("sessions")
def sessions_group() -> None:
    """Manage per-number credential directories."""


@sessions_group.command("purge")
@click.argument("number")
@click.option("--root", default=".", help="Directory holding session folders.")
def sessions_purge(number: str, root: str) -> None:
    """Delete the session directory for NUMBER (exactly as it was requested)."""
    try:
        path = SessionDirectories(root).path_for(number)
    except UnsafeSessionNameError as exc:
        raise click.BadParameter(f"not a usable session name: {number!r}") from exc
    if remove_tree(path):
        click.echo(f"Removed: {path}")
    else:
        click.echo(f"No session at: {path}")


@cli.group("audit")
def audit_group() -> None:
    """Inspect the pairing audit log."""


@audit_group.command("verify")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def audit_verify(log_path: Path) -> None:
    """Check the hash chain of LOG_PATH; exits 1 when it is broken."""
    result = validate_audit_chain(log_path)
    click.echo(json.dumps({
        "valid": result.valid,
        "entries": result.entries,
        "broken_at_line": result.broken_at_line,
    }, indent=2))
    if not result.valid:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
