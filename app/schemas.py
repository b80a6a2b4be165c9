"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.records import HealthStatus, IngestResult, Reading, SiteSummary


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IngestResponse(_CamelModel):
    """Outcome of a successful ingestion call."""

    success: bool
    count: int = Field(..., ge=0)
    message: str

    @classmethod
    def from_result(cls, result: IngestResult) -> "IngestResponse":
        return cls(success=result.success, count=result.count, message=result.message)


class MetricsOut(_CamelModel):
    temperature: float
    humidity: float


class LatestReadingResponse(_CamelModel):
    """Most recent reading known for a device."""

    device_id: str
    site_id: str
    ts: datetime
    metrics: MetricsOut

    @classmethod
    def from_reading(cls, reading: Reading) -> "LatestReadingResponse":
        return cls(
            device_id=reading.device_id,
            site_id=reading.site_id,
            ts=reading.ts,
            metrics=MetricsOut(temperature=reading.temperature, humidity=reading.humidity),
        )


class SiteSummaryResponse(_CamelModel):
    """Aggregate statistics for a site over an inclusive time range."""

    count: int = Field(..., ge=0)
    avg_temperature: float
    max_temperature: float
    avg_humidity: float
    max_humidity: float
    unique_devices: int = Field(..., ge=0)

    @classmethod
    def from_summary(cls, summary: SiteSummary) -> "SiteSummaryResponse":
        return cls(
            count=summary.count,
            avg_temperature=summary.avg_temperature,
            max_temperature=summary.max_temperature,
            avg_humidity=summary.avg_humidity,
            max_humidity=summary.max_humidity,
            unique_devices=summary.unique_devices,
        )


class HealthResponse(BaseModel):
    store: bool
    cache: bool

    @classmethod
    def from_status(cls, status: HealthStatus) -> "HealthResponse":
        return cls(store=status.store, cache=status.cache)
