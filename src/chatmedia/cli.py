"""Typer CLI for chatmedia — loopback HTTPS server for chat media."""

from __future__ import annotations

import logging
import signal
import sqlite3
import threading
from pathlib import Path
from typing import Optional

import typer

from chatmedia import __version__

app = typer.Typer(
    help="Loopback HTTPS server for chat images, audio and identicons.",
    add_completion=False,
)


# ── Helpers ────────────────────────────────────────────────────────


def _setup_logging(level: str) -> None:
    from rich.logging import RichHandler

    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _require_db(db_path: Path) -> Path:
    if not db_path.exists():
        typer.secho(f"Error: database not found at {db_path}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    return db_path


def _install_lifecycle_signals(server) -> None:
    """SIGUSR1 backgrounds the server, SIGUSR2 brings it back (POSIX only)."""
    if not hasattr(signal, "SIGUSR1"):
        return

    def _background(signum, frame):
        threading.Thread(target=server.to_background, daemon=True).start()

    def _foreground(signum, frame):
        threading.Thread(target=server.to_foreground, daemon=True).start()

    signal.signal(signal.SIGUSR1, _background)
    signal.signal(signal.SIGUSR2, _foreground)


# ── Commands ───────────────────────────────────────────────────────


@app.command()
def serve(
    db: Optional[Path] = typer.Option(None, "--db", help="Messages database (default: db/messages.db)"),
    port: Optional[int] = typer.Option(None, help="Port to bind (default: any free port)"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML or TOML config file"),
    print_cert: bool = typer.Option(False, "--print-cert", help="Print the certificate PEM on startup"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
) -> None:
    """Start the media server and run until Ctrl+C."""
    from chatmedia.certs import public_tls_cert
    from chatmedia.config import load_config
    from chatmedia.server import MediaServer
    from chatmedia.store import MessageStore

    cfg = load_config(config).replace(db_path=db, port=port, log_level=log_level)
    _setup_logging(cfg.log_level)
    store = MessageStore(_require_db(cfg.db_path))

    server = MediaServer(store, cfg)
    if print_cert:
        typer.echo(public_tls_cert())
    server.start()
    if not server.wait_until_running(timeout=30):
        typer.secho("Error: server did not start", fg=typer.colors.RED, err=True)
        server.stop()
        raise typer.Exit(1)

    typer.echo(f"chatmedia {__version__} serving at {server.url()}")
    typer.echo(f"  DB: {cfg.db_path}")
    typer.echo("  Routes: /messages/images  /messages/audio  /messages/identicons")
    if hasattr(signal, "SIGUSR1"):
        typer.echo("  Background: SIGUSR1   Foreground: SIGUSR2")
    typer.echo("  Stop: Ctrl+C")

    _install_lifecycle_signals(server)
    done = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: done.set())
    try:
        while not done.wait(0.5):
            pass
    except KeyboardInterrupt:
        typer.echo("Shutting down...")
    finally:
        server.stop()


@app.command()
def stats(
    db: Path = typer.Option(Path("db") / "messages.db", "--db", help="Messages database"),
) -> None:
    """Print payload counts as a table."""
    from rich.console import Console
    from rich.table import Table

    from chatmedia.store import MessageStore

    store = MessageStore(_require_db(db))
    try:
        counts = store.counts()
    except sqlite3.Error as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Payload", style="cyan")
    table.add_column("Messages", justify="right")
    table.add_column("Route")
    table.add_row("image", str(counts["image"]), "/messages/images")
    table.add_row("audio", str(counts["audio"]), "/messages/audio")
    table.add_row("total", str(counts["messages"]), "", style="bold")
    Console().print(table)


@app.command()
def identicon(
    public_key: str = typer.Argument(..., help="Public key to derive the avatar from"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write PNG here"),
) -> None:
    """Generate an identicon PNG (or print it as a data URI)."""
    from chatmedia.identicon import generate, generate_base64

    if output is None:
        typer.echo(generate_base64(public_key))
        return
    output.write_bytes(generate(public_key))
    typer.echo(f"Wrote {output}")


def main() -> None:
    app()
