"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)


def _require_number(value: Any) -> Any:
    # bool is an int subclass and numeric strings would otherwise be coerced.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


Identifier = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)]
FiniteNumber = Annotated[float, BeforeValidator(_require_number), Field(allow_inf_nan=False)]


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    A trailing ``Z`` is accepted and naive values are treated as UTC.
    """
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    return as_utc(parsed)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Metrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: FiniteNumber
    humidity: FiniteNumber


class Reading(BaseModel):
    """A single validated sensor sample."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    device_id: Identifier = Field(alias="deviceId")
    site_id: Identifier = Field(alias="siteId")
    ts: datetime = Field(alias="ts", validation_alias=AliasChoices("ts", "timestamp"))
    metrics: Metrics

    @field_validator("ts", mode="before")
    @classmethod
    def _parse_ts(cls, value: Any) -> datetime:
        if isinstance(value, datetime):
            return as_utc(value)
        if isinstance(value, str):
            return parse_timestamp(value)
        raise ValueError("must be an ISO-8601 date-time string")

    @property
    def temperature(self) -> float:
        return self.metrics.temperature

    @property
    def humidity(self) -> float:
        return self.metrics.humidity

    def to_payload(self) -> Dict[str, Any]:
        """JSON-compatible representation using the wire field names."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass(slots=True)
class StoredReading:
    """A reading as persisted, with store-assigned identity and audit instants."""

    id: int
    reading: Reading
    created_at: datetime
    updated_at: datetime


class AlertReason(str, Enum):
    """Closed set of threshold breaches that raise alerts."""

    high_temperature = "HIGH_TEMPERATURE"
    high_humidity = "HIGH_HUMIDITY"


@dataclass(frozen=True, slots=True)
class AlertEvent:
    device_id: str
    site_id: str
    ts: datetime
    reason: AlertReason
    value: float

    @property
    def dedup_key(self) -> str:
        return f"{self.device_id}:{self.reason.value}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "siteId": self.site_id,
            "ts": self.ts.isoformat().replace("+00:00", "Z"),
            "reason": self.reason.value,
            "value": self.value,
        }


@dataclass(frozen=True, slots=True)
class RangeStats:
    """Raw grouped statistics as returned by the persistent store."""

    count: int = 0
    avg_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    avg_humidity: Optional[float] = None
    max_humidity: Optional[float] = None
    unique_devices: int = 0


@dataclass(frozen=True, slots=True)
class SiteSummary:
    count: int = 0
    avg_temperature: float = 0.0
    max_temperature: float = 0.0
    avg_humidity: float = 0.0
    max_humidity: float = 0.0
    unique_devices: int = 0


@dataclass(frozen=True, slots=True)
class HealthStatus:
    store: bool
    cache: bool


@dataclass(frozen=True, slots=True)
class IngestResult:
    count: int
    message: str
    success: bool = True
