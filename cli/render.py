from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_ingest(payload: Dict[str, Any]) -> None:
    typer.secho(payload.get("message", "Ingested."), fg=typer.colors.GREEN)
    echo_key_values([("count", payload.get("count"))])


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    metrics = payload.get("metrics") or {}
    echo_key_values(
        [
            ("deviceId", payload.get("deviceId")),
            ("siteId", payload.get("siteId")),
            ("ts", payload.get("ts")),
            ("temperature", metrics.get("temperature")),
            ("humidity", metrics.get("humidity")),
        ]
    )


def render_summary(site_id: str, payload: Dict[str, Any]) -> None:
    echo_heading(f"Site Summary: {site_id}")
    if not payload.get("count"):
        typer.echo("No readings in range.")
        return
    echo_key_values(
        [
            ("count", payload.get("count")),
            ("uniqueDevices", payload.get("uniqueDevices")),
            ("avgTemperature", payload.get("avgTemperature")),
            ("maxTemperature", payload.get("maxTemperature")),
            ("avgHumidity", payload.get("avgHumidity")),
            ("maxHumidity", payload.get("maxHumidity")),
        ]
    )


def render_health(payload: Dict[str, Any]) -> None:
    echo_heading("Dependency Health")
    for name in ("store", "cache"):
        healthy = bool(payload.get(name))
        typer.secho(
            f"{name}: {'up' if healthy else 'down'}",
            fg=typer.colors.GREEN if healthy else typer.colors.RED,
        )
