"""Caller-facing telemetry operations and their default wiring."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import ValidationError

from datastore.readings import ReadingStore, build_default_store
from models.records import HealthStatus, IngestResult, Reading, SiteSummary
from services.aggregator import Aggregator
from services.alerts import AlertEngine, LocalDedupWindow, SharedDedupWindow
from services.errors import ReadingNotFoundError
from services.health import HealthProbe
from services.ingestion import IngestionPipeline, Payload, latest_key
from settings import get_settings
from storage.cache import Cache, build_default_cache

logger = logging.getLogger(__name__)


class TelemetryService:
    """Coordinates the store, cache and alert engine behind the public operations."""

    def __init__(
        self,
        store: ReadingStore,
        cache: Cache,
        alerts: AlertEngine,
        latest_ttl: Optional[int] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.alerts = alerts
        self.pipeline = IngestionPipeline(store, cache, alerts, latest_ttl=latest_ttl)
        self.aggregator = Aggregator(store)
        self.probe = HealthProbe(store, cache)

    def ingest(self, payload: Payload) -> IngestResult:
        """Validate and ingest one reading or a list of readings."""
        return self.pipeline.ingest(payload)

    def get_latest(self, device_id: str) -> Reading:
        """Cache-aside lookup; a miss reads the store but does not refill the cache."""
        cached = self.cache.get(latest_key(device_id))
        if cached is not None:
            try:
                return Reading.model_validate_json(cached)
            except ValidationError:
                logger.warning("Ignoring unreadable cached reading", extra={"device_id": device_id})

        stored = self.store.find_latest(device_id)
        if stored is None:
            raise ReadingNotFoundError(device_id)
        return stored.reading

    def get_summary(self, site_id: str, start: Optional[str], end: Optional[str]) -> SiteSummary:
        return self.aggregator.summarize(site_id, start, end)

    def check_health(self) -> HealthStatus:
        return self.probe.check()

    def close(self) -> None:
        """Release the webhook client, store engine and cache connection."""
        self.alerts.close()
        self.store.close()
        self.cache.close()


@lru_cache
def build_default_service() -> TelemetryService:
    """Factory that wires the service from environment settings."""
    settings = get_settings()
    store = build_default_store()
    cache = build_default_cache()
    if settings.alert_dedup_scope == "shared":
        dedup = SharedDedupWindow(cache)
    else:
        dedup = LocalDedupWindow()
    alerts = AlertEngine(settings.alert_webhook_url, dedup=dedup)
    return TelemetryService(store, cache, alerts, latest_ttl=settings.latest_cache_ttl)
