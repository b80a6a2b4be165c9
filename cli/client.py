from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, NoReturn
from urllib.parse import quote

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        headers = {"Authorization": f"Bearer {config.token}"} if config.token else {}
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout, headers=headers)

    def close(self) -> None:
        self._client.close()

    def ingest_file(self, path: Path) -> Dict[str, Any]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise typer.BadParameter(f"Could not read JSON from {path}: {exc}") from exc
        if not isinstance(payload, (dict, list)):
            raise typer.BadParameter("File must contain a reading object or a list of readings.")
        return self._request("POST", "/api/v1/telemetry", json=payload)

    def get_latest(self, device_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/v1/devices/{quote(device_id, safe='')}/latest")

    def get_summary(self, site_id: str, start: str, end: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/api/v1/sites/{quote(site_id, safe='')}/summary",
            params={"from": start, "to": end},
        )

    def get_health(self) -> Dict[str, Any]:
        return self._request("GET", "/api/v1/health")

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            typer.secho(f"Request to {self._config.base_url} failed: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
