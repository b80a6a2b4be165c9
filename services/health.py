from __future__ import annotations

import logging
from typing import Protocol

from models.records import HealthStatus

logger = logging.getLogger(__name__)


class Pingable(Protocol):
    def ping(self) -> None: ...


class HealthProbe:
    """Checks each backing dependency independently; never raises."""

    def __init__(self, store: Pingable, cache: Pingable) -> None:
        self.store = store
        self.cache = cache

    def check(self) -> HealthStatus:
        return HealthStatus(store=self._probe("store", self.store), cache=self._probe("cache", self.cache))

    @staticmethod
    def _probe(name: str, dependency: Pingable) -> bool:
        try:
            dependency.ping()
        except Exception as exc:  # noqa: BLE001 - any failure means unhealthy
            logger.warning("%s health probe failed", name, extra={"error": repr(exc)})
            return False
        return True
