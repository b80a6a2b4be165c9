from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_health, render_ingest, render_reading, render_summary


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        help="Bearer token for the data routes (defaults to API_TOKEN env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, token=token, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with a reading or a list of readings."
    ),
) -> None:
    """Send readings from a JSON file."""
    state = _get_state(ctx)
    typer.echo(f"Sending {file} to {state.config.base_url} ...")
    render_ingest(state.client.ingest_file(file))


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
) -> None:
    """Show the most recent reading of a device."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest(device_id))


@app.command("summary")
def summary_command(
    ctx: typer.Context,
    site_id: str = typer.Argument(..., help="Site identifier."),
    start: str = typer.Option(..., "--from", help="ISO-8601 range start (inclusive)."),
    end: str = typer.Option(..., "--to", help="ISO-8601 range end (inclusive)."),
) -> None:
    """Show aggregate statistics for a site over a time range."""
    state = _get_state(ctx)
    render_summary(site_id, state.client.get_summary(site_id, start, end))


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Check store and cache liveness; exits 1 when either is down."""
    state = _get_state(ctx)
    payload = state.client.get_health()
    render_health(payload)
    if not (payload.get("store") and payload.get("cache")):
        raise typer.Exit(code=1)
