"""Time-ranged statistical summaries per site."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Optional, Protocol, Tuple

from models.records import RangeStats, SiteSummary, parse_timestamp
from services.errors import InvalidDateRangeError

_CENTS = Decimal("0.01")


class RangeQuery(Protocol):
    def aggregate_range(self, site_id: str, start: datetime, end: datetime) -> RangeStats: ...


def round_half_away(value: float) -> float:
    """Round to two decimals, ties away from zero (2.675 -> 2.68, -2.675 -> -2.68)."""
    amount = Decimal(str(value))
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the two decimals
        ctx.prec = max(ctx.prec, amount.adjusted() + 4)
        return float(amount.quantize(_CENTS, rounding=ROUND_HALF_UP))


def parse_range(start: Optional[str], end: Optional[str]) -> Tuple[datetime, datetime]:
    try:
        if start is None or end is None:
            raise ValueError("missing bound")
        return parse_timestamp(start), parse_timestamp(end)
    except ValueError as exc:
        raise InvalidDateRangeError(
            'Invalid date range. "from" and "to" must be valid ISO date strings.'
        ) from exc


class Aggregator:
    """Summarises readings of a site between two inclusive instants."""

    def __init__(self, store: RangeQuery) -> None:
        self.store = store

    def summarize(self, site_id: str, start: Optional[str], end: Optional[str]) -> SiteSummary:
        range_start, range_end = parse_range(start, end)
        return self.from_stats(self.store.aggregate_range(site_id, range_start, range_end))

    @staticmethod
    def from_stats(stats: RangeStats) -> SiteSummary:
        if stats.count == 0:
            return SiteSummary()
        return SiteSummary(
            count=stats.count,
            avg_temperature=round_half_away(stats.avg_temperature or 0.0),
            max_temperature=stats.max_temperature or 0.0,
            avg_humidity=round_half_away(stats.avg_humidity or 0.0),
            max_humidity=stats.max_humidity or 0.0,
            unique_devices=stats.unique_devices,
        )
