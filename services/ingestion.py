"""Validation-to-persistence flow for inbound readings."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Union

from pydantic import ValidationError

from models.records import IngestResult, Reading, StoredReading
from services.alerts import AlertEngine
from services.errors import (
    CacheUnavailableError,
    InvalidReadingError,
    StoreRejectedError,
    StoreUnavailableError,
)
from storage.cache import Cache

logger = logging.getLogger(__name__)

Payload = Union[Reading, Mapping[str, Any], Sequence[Union[Reading, Mapping[str, Any]]]]


class ReadingWriter(Protocol):
    def insert(self, reading: Reading) -> StoredReading: ...


def latest_key(device_id: str) -> str:
    return f"latest:{device_id}"


def validate_reading(item: Any, index: Optional[int] = None) -> Reading:
    """Validate one inbound item, naming the first offending field on failure."""
    prefix = f"readings[{index}]." if index is not None else ""
    if isinstance(item, Reading):
        return item
    if not isinstance(item, Mapping):
        raise InvalidReadingError(f"{prefix}reading must be a JSON object", index=index)
    try:
        return Reading.model_validate(item)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InvalidReadingError(
            f"Validation failed: {prefix}{field}: {first['msg']}",
            field=field,
            index=index,
        ) from exc


def validate_batch(payload: Payload) -> List[Reading]:
    """Validate every reading of a call before any of them is persisted."""
    if isinstance(payload, (list, tuple)):
        items = list(payload)
        if not items:
            raise InvalidReadingError("No telemetry readings provided")
        return [validate_reading(item, index) for index, item in enumerate(items)]
    return [validate_reading(payload)]


class IngestionPipeline:
    """Persists, caches and alerts on each reading, strictly in order."""

    def __init__(
        self,
        store: ReadingWriter,
        cache: Cache,
        alerts: AlertEngine,
        latest_ttl: Optional[int] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.alerts = alerts
        self.latest_ttl = latest_ttl

    def ingest(self, payload: Payload) -> IngestResult:
        try:
            readings = validate_batch(payload)
        except InvalidReadingError as exc:
            logger.warning("Rejected telemetry payload: %s", exc, extra={"index": exc.index})
            raise

        logger.info("Ingesting %d telemetry reading(s)", len(readings), extra={"count": len(readings)})
        for index, reading in enumerate(readings):
            self._ingest_one(index, reading)

        count = len(readings)
        return IngestResult(count=count, message=f"{count} reading(s) ingested successfully")

    def _ingest_one(self, index: int, reading: Reading) -> None:
        context = {"device_id": reading.device_id, "site_id": reading.site_id, "index": index}

        try:
            self.store.insert(reading)
        except StoreRejectedError as exc:
            logger.warning("Store rejected reading: %s", exc, extra=context)
            raise
        except StoreUnavailableError:
            logger.exception("Failed to ingest reading", extra=context)
            raise

        try:
            self.cache.set(
                latest_key(reading.device_id),
                json.dumps(reading.to_payload()),
                ttl=self.latest_ttl,
            )
        except CacheUnavailableError:
            logger.exception("Reading persisted but latest cache update failed", extra=context)
            raise

        try:
            self.alerts.process(reading)
        except Exception:  # noqa: BLE001 - alerting never fails ingestion
            logger.exception("Alert processing failed", extra=context)
