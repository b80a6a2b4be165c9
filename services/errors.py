"""Exception hierarchy raised by the telemetry services."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for all telemetry service failures."""


class ClientError(TelemetryError):
    """The caller sent something the service cannot accept. Never retried."""


class InvalidReadingError(ClientError):
    """A reading failed structural validation."""

    def __init__(self, message: str, field: str | None = None, index: int | None = None) -> None:
        super().__init__(message)
        self.field = field
        self.index = index


class InvalidDateRangeError(ClientError):
    pass


class StoreRejectedError(ClientError):
    """The persistent store refused the record (constraint or data error)."""


class ReadingNotFoundError(ClientError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"No telemetry found for device {device_id!r}.")
        self.device_id = device_id


class DependencyError(TelemetryError):
    """A backing store was unreachable or failed."""


class StoreUnavailableError(DependencyError):
    pass


class CacheUnavailableError(DependencyError):
    pass
