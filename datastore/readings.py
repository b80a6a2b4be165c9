"""Relational persistence for sensor readings."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    create_engine,
    distinct,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from models.records import RangeStats, Reading, StoredReading, as_utc
from services.errors import StoreRejectedError, StoreUnavailableError
from settings import get_settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_db(value: datetime) -> datetime:
    # Instants are stored as naive UTC so range comparisons behave the same on every backend.
    return as_utc(value).replace(tzinfo=None)


def _from_db(value: datetime) -> datetime:
    return as_utc(value)


class Base(DeclarativeBase):
    pass


class ReadingRow(Base):
    __tablename__ = "readings"
    __table_args__ = (
        CheckConstraint("length(device_id) > 0", name="ck_readings_device_id_not_empty"),
        CheckConstraint("length(site_id) > 0", name="ck_readings_site_id_not_empty"),
        Index("ix_readings_site_id_ts", "site_id", "ts"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    site_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    ts: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)
    humidity: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )


class ReadingStore:
    """Append-only store of readings with latest-by-device and range aggregation queries."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError:
            logger.exception("Could not create readings schema; store calls will fail until it exists")

    def insert(self, reading: Reading) -> StoredReading:
        row = ReadingRow(
            device_id=reading.device_id,
            site_id=reading.site_id,
            ts=_to_db(reading.ts),
            temperature=reading.temperature,
            humidity=reading.humidity,
        )
        try:
            with self._sessions.begin() as session:
                session.add(row)
        except (IntegrityError, DataError) as exc:
            raise StoreRejectedError(f"Validation failed: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to persist reading: {exc}") from exc
        return self._to_stored(row)

    def find_latest(self, device_id: str) -> Optional[StoredReading]:
        stmt = (
            select(ReadingRow)
            .where(ReadingRow.device_id == device_id)
            .order_by(ReadingRow.ts.desc(), ReadingRow.id.desc())
            .limit(1)
        )
        try:
            with self._sessions() as session:
                row = session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to query latest reading: {exc}") from exc
        return self._to_stored(row) if row is not None else None

    def aggregate_range(self, site_id: str, start: datetime, end: datetime) -> RangeStats:
        stmt = select(
            func.count(ReadingRow.id),
            func.avg(ReadingRow.temperature),
            func.max(ReadingRow.temperature),
            func.avg(ReadingRow.humidity),
            func.max(ReadingRow.humidity),
            func.count(distinct(ReadingRow.device_id)),
        ).where(
            ReadingRow.site_id == site_id,
            ReadingRow.ts >= _to_db(start),
            ReadingRow.ts <= _to_db(end),
        )
        try:
            with self._sessions() as session:
                count, avg_t, max_t, avg_h, max_h, devices = session.execute(stmt).one()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Failed to aggregate readings: {exc}") from exc
        return RangeStats(
            count=int(count or 0),
            avg_temperature=_optional_float(avg_t),
            max_temperature=_optional_float(max_t),
            avg_humidity=_optional_float(avg_h),
            max_humidity=_optional_float(max_h),
            unique_devices=int(devices or 0),
        )

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Store ping failed: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _to_stored(row: ReadingRow) -> StoredReading:
        reading = Reading(
            device_id=row.device_id,
            site_id=row.site_id,
            ts=_from_db(row.ts),
            metrics={"temperature": row.temperature, "humidity": row.humidity},
        )
        return StoredReading(
            id=row.id,
            reading=reading,
            created_at=_from_db(row.created_at),
            updated_at=_from_db(row.updated_at),
        )


def _optional_float(value: object) -> Optional[float]:
    return None if value is None else float(value)  # type: ignore[arg-type]


def create_store_engine(url: str) -> Engine:
    """Create an engine, preparing SQLite specifics (thread sharing, file directory)."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    database = parsed.database
    if not database or database == ":memory:":
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)

    Path(database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args)


@lru_cache
def build_default_store(url: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    database_url = settings.database_url if url is None else url
    logger.info("Opening reading store: %s", make_url(database_url).render_as_string(hide_password=True))
    return ReadingStore(create_store_engine(database_url))
