"""CLI interface for the Trackshare API server."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import find_dotenv, load_dotenv
from rich.console import Console

from trackshare.config import AppConfig, load_config

app = typer.Typer(
    name="trackshare",
    help="HTTP API for uploading, searching and streaming shared audio tracks.",
    add_completion=False,
)
console = Console()


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


def _load(config_path: Path | None) -> AppConfig:
    load_dotenv(find_dotenv(usecwd=True))
    return load_config(config_path)


def _mask(secret: str) -> str:
    if not secret:
        return "[red]not set[/red]"
    return secret[:4] + "…" if len(secret) > 8 else "****"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: str = typer.Option("", "--host", help="Interface to bind (default: config)"),
    port: int = typer.Option(0, "--port", "-p", help="Port to listen on (default: config)"),
    log_level: str = typer.Option("", "--log-level", help="Logging level (default: config)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a TOML config file"),
) -> None:
    """Start the HTTP API server."""
    import uvicorn

    from trackshare.backend import BackendAdapter, BackendClient
    from trackshare.logging import setup_logging
    from trackshare.server.app import create_app

    cfg = _load(config_path)
    if host:
        cfg.server.host = host
    if port:
        cfg.server.port = port
    if log_level:
        cfg.server.log_level = log_level

    if not cfg.is_backend_configured():
        console.print("[red]Backend is not configured.[/red]  Set SUPABASE_URL and SUPABASE_KEY.")
        raise typer.Exit(1)

    setup_logging(cfg.server.log_level, cfg.server.log_dir)

    client = BackendClient(cfg.backend)
    api = create_app(BackendAdapter(client, cfg), cfg, client=client)

    console.print(f"Server is running on port [bold]{cfg.server.port}[/bold]")
    uvicorn.run(
        api,
        host=cfg.server.host,
        port=cfg.server.port,
        log_level=cfg.server.log_level,
        log_config=None,
    )


@app.command()
def config(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a TOML config file"),
) -> None:
    """Show the effective configuration with secrets masked."""
    cfg = _load(config_path)

    console.print()
    console.print("  [bold cyan]Backend[/bold cyan]")
    console.print(f"    url:          {cfg.backend.url or '[red]not set[/red]'}")
    console.print(f"    service key:  {_mask(cfg.backend.service_key.get_secret_value())}")
    console.print(f"    audio bucket: {cfg.backend.audio_bucket}")
    console.print(f"    cover bucket: {cfg.backend.cover_bucket}")
    console.print(f"    signed ttl:   {cfg.backend.signed_url_ttl}s")

    console.print("\n  [bold cyan]Server[/bold cyan]")
    console.print(f"    listen:       {cfg.server.host}:{cfg.server.port}")
    console.print(f"    log level:    {cfg.server.log_level}")
    console.print(f"    log dir:      {cfg.server.log_dir or '—'}")
    console.print(f"    cors:         {', '.join(cfg.server.cors_origins)}")

    console.print("\n  [bold cyan]Upload[/bold cyan]")
    console.print(f"    require audio on finalize: {cfg.upload.require_audio_on_finalize}")

    status = "[green]yes[/green]" if cfg.is_backend_configured() else "[red]no[/red]"
    console.print(f"\n  [bold]Backend configured:[/bold] {status}")
    console.print()
