"""Threshold alerting with time-windowed deduplication and webhook delivery."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Dict, List, Optional, Protocol

import httpx

from models.records import AlertEvent, AlertReason, Reading
from storage.cache import Cache

logger = logging.getLogger(__name__)

TEMPERATURE_THRESHOLD = 50.0
HUMIDITY_THRESHOLD = 90.0
DEDUP_WINDOW_SECONDS = 60
WEBHOOK_TIMEOUT_SECONDS = 5.0


def evaluate(reading: Reading) -> List[AlertEvent]:
    """Return the alerts a reading breaches, temperature first."""
    alerts: List[AlertEvent] = []
    if reading.temperature > TEMPERATURE_THRESHOLD:
        alerts.append(_alert(reading, AlertReason.high_temperature, reading.temperature))
    if reading.humidity > HUMIDITY_THRESHOLD:
        alerts.append(_alert(reading, AlertReason.high_humidity, reading.humidity))
    return alerts


def _alert(reading: Reading, reason: AlertReason, value: float) -> AlertEvent:
    return AlertEvent(
        device_id=reading.device_id,
        site_id=reading.site_id,
        ts=reading.ts,
        reason=reason,
        value=value,
    )


class DedupWindow(Protocol):
    def reserve(self, key: str) -> bool: ...

    def confirm(self, key: str) -> None: ...

    def release(self, key: str) -> None: ...


class LocalDedupWindow:
    """Per-process map of dedup key to the wall-clock instant of the last delivery."""

    def __init__(
        self,
        window_seconds: float = DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_sent: Dict[str, float] = {}
        self._lock = Lock()

    def reserve(self, key: str) -> bool:
        """True unless ``key`` was delivered less than one window ago."""
        with self._lock:
            last = self._last_sent.get(key)
        if last is None:
            return True
        return self._clock() - last >= self.window_seconds

    def confirm(self, key: str) -> None:
        with self._lock:
            self._last_sent[key] = self._clock()

    def release(self, key: str) -> None:
        return None


class SharedDedupWindow:
    """Dedup window kept in the shared cache so every instance sees the same suppression.

    ``reserve`` is a set-if-absent with expiry, so concurrent instances cannot
    both claim one window. A confirmed delivery restarts the expiry and a
    failed one drops the claim.
    """

    KEY_PREFIX = "alert"

    def __init__(
        self,
        cache: Cache,
        window_seconds: int = DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.window_seconds = window_seconds
        self._clock = clock

    def reserve(self, key: str) -> bool:
        return self.cache.add(self._key(key), str(self._clock()), ttl=self.window_seconds)

    def confirm(self, key: str) -> None:
        self.cache.set(self._key(key), str(self._clock()), ttl=self.window_seconds)

    def release(self, key: str) -> None:
        self.cache.delete(self._key(key))

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}:{key}"


class AlertEngine:
    """Evaluates readings against fixed thresholds and delivers deduplicated alerts."""

    def __init__(
        self,
        webhook_url: Optional[str],
        dedup: Optional[DedupWindow] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.dedup = dedup or LocalDedupWindow()
        self._client = client or httpx.Client(timeout=WEBHOOK_TIMEOUT_SECONDS)

    def process(self, reading: Reading) -> List[AlertEvent]:
        """Deliver every non-suppressed alert for ``reading``; return those delivered."""
        delivered: List[AlertEvent] = []
        for alert in evaluate(reading):
            if not self.dedup.reserve(alert.dedup_key):
                logger.debug(
                    "Suppressing duplicate alert",
                    extra={"device_id": alert.device_id, "reason": alert.reason.value},
                )
                continue
            if self._send(alert):
                self.dedup.confirm(alert.dedup_key)
                delivered.append(alert)
            else:
                # an undelivered alert must not hold the window
                self.dedup.release(alert.dedup_key)
        return delivered

    def close(self) -> None:
        self._client.close()

    def _send(self, alert: AlertEvent) -> bool:
        context = {
            "device_id": alert.device_id,
            "site_id": alert.site_id,
            "reason": alert.reason.value,
            "value": alert.value,
        }
        if not self.webhook_url:
            logger.info("No alert webhook configured; skipping delivery", extra=context)
            return False

        try:
            response = self._client.post(
                self.webhook_url,
                json=alert.to_payload(),
                timeout=WEBHOOK_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Alert webhook rejected delivery",
                extra={**context, "status_code": exc.response.status_code},
            )
            return False
        except httpx.HTTPError as exc:
            logger.warning("Alert delivery failed", extra={**context, "error": repr(exc)})
            return False

        logger.info("Alert delivered", extra=context)
        return True
