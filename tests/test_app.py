from dataclasses import replace
from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.readings import ReadingStore, build_default_store, create_store_engine
from services.alerts import AlertEngine
from services.errors import CacheUnavailableError, StoreUnavailableError
from services.telemetry import TelemetryService, build_default_service
from settings import get_settings
from storage.cache import MemoryCache, build_default_cache

AUTH_HEADER = {"Authorization": "Bearer secret123"}


def _reading(device_id: str = "dev-test-001", **overrides) -> dict:
    payload = {
        "deviceId": device_id,
        "siteId": "site-test-A",
        "ts": "2025-03-01T10:00:00Z",
        "metrics": {"temperature": 25.5, "humidity": 60.0},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def service() -> TelemetryService:
    return TelemetryService(
        ReadingStore(create_store_engine("sqlite://")),
        MemoryCache(),
        AlertEngine(None),
    )


@pytest.fixture
def api_client(service: TelemetryService, monkeypatch) -> Iterator[TestClient]:
    services: List[TelemetryService] = [service]

    def build_test_service() -> TelemetryService:
        return services[0]

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: replace(get_settings(), ingest_token=None)
    with TestClient(app) as client:
        yield client


def test_lifespan_closes_service_and_clears_cache(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.delenv("REDIS_URL", raising=False)
    get_settings.cache_clear()
    build_default_service.cache_clear()
    app = create_app()

    try:
        with TestClient(app) as client:
            service_during = build_default_service()
            assert client.get("/api/v1/health").json() == {"store": True, "cache": True}

        service_after = build_default_service()
        assert service_after is not service_during
        service_after.close()
    finally:
        build_default_service.cache_clear()
        build_default_store.cache_clear()
        build_default_cache.cache_clear()
        get_settings.cache_clear()


def test_ingest_single_reading(api_client: TestClient) -> None:
    response = api_client.post("/api/v1/telemetry", json=_reading())

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 1
    assert isinstance(body["message"], str)


def test_ingest_bulk_readings(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/telemetry",
        json=[_reading(), _reading("dev-test-002")],
    )

    assert response.status_code == 201
    assert response.json()["count"] == 2


def test_ingest_missing_site_id_is_bad_request(api_client: TestClient, service: TelemetryService) -> None:
    invalid = _reading("dev-test-002")
    del invalid["siteId"]

    response = api_client.post("/api/v1/telemetry", json=invalid)

    assert response.status_code == 400
    assert "siteId" in response.json()["detail"]
    assert service.store.find_latest("dev-test-002") is None


def test_ingest_store_outage_is_service_unavailable(
    api_client: TestClient, service: TelemetryService, monkeypatch
) -> None:
    def fail(_reading):
        raise StoreUnavailableError("database is down")

    monkeypatch.setattr(service.store, "insert", fail)

    response = api_client.post("/api/v1/telemetry", json=_reading())

    assert response.status_code == 503
    assert "database is down" in response.json()["detail"]


def test_ingest_cache_write_outage_is_service_unavailable_but_reading_persists(
    api_client: TestClient, service: TelemetryService, monkeypatch
) -> None:
    def fail(key, value, ttl=None):
        raise CacheUnavailableError("cache write failed")

    monkeypatch.setattr(service.cache, "set", fail)

    response = api_client.post("/api/v1/telemetry", json=_reading("dev-cache-down"))

    assert response.status_code == 503
    assert "cache write failed" in response.json()["detail"]
    assert service.store.find_latest("dev-cache-down") is not None


def test_latest_cache_read_outage_is_service_unavailable(
    api_client: TestClient, service: TelemetryService, monkeypatch
) -> None:
    api_client.post("/api/v1/telemetry", json=_reading())

    def fail(key):
        raise CacheUnavailableError("cache read failed")

    monkeypatch.setattr(service.cache, "get", fail)

    response = api_client.get("/api/v1/devices/dev-test-001/latest")

    assert response.status_code == 503
    assert "cache read failed" in response.json()["detail"]


def test_latest_reading_round_trip(api_client: TestClient) -> None:
    api_client.post("/api/v1/telemetry", json=_reading("dev-test-003", metrics={"temperature": 22.0, "humidity": 55.0}))

    response = api_client.get("/api/v1/devices/dev-test-003/latest")

    assert response.status_code == 200
    assert response.json() == {
        "deviceId": "dev-test-003",
        "siteId": "site-test-A",
        "ts": "2025-03-01T10:00:00Z",
        "metrics": {"temperature": 22.0, "humidity": 55.0},
    }


def test_latest_for_unknown_device_is_not_found(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/devices/non-existent-device/latest")

    assert response.status_code == 404
    assert response.json()["detail"] == "No telemetry found for device"


def test_site_summary(api_client: TestClient) -> None:
    api_client.post(
        "/api/v1/telemetry",
        json=[
            _reading("dev-1", metrics={"temperature": 20.0, "humidity": 70.0}),
            _reading("dev-2", metrics={"temperature": 30.0, "humidity": 71.0}),
            _reading("dev-2", metrics={"temperature": 40.0, "humidity": 72.5}),
        ],
    )

    response = api_client.get(
        "/api/v1/sites/site-test-A/summary",
        params={"from": "2025-01-01T00:00:00Z", "to": "2025-12-31T23:59:59Z"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "count": 3,
        "avgTemperature": 30.0,
        "maxTemperature": 40.0,
        "avgHumidity": 71.17,
        "maxHumidity": 72.5,
        "uniqueDevices": 2,
    }


def test_site_summary_with_no_readings_is_all_zero(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/v1/sites/empty-site/summary",
        params={"from": "2025-01-01", "to": "2025-12-31"},
    )

    assert response.status_code == 200
    assert set(response.json().values()) == {0}


@pytest.mark.parametrize(
    "params",
    [{"from": "invalid-date", "to": "invalid-date"}, {"from": "2025-01-01"}, {}],
)
def test_site_summary_rejects_bad_dates(api_client: TestClient, params) -> None:
    response = api_client.get("/api/v1/sites/site-test-A/summary", params=params)

    assert response.status_code == 400


def test_health_reports_dependencies(api_client: TestClient, service: TelemetryService, monkeypatch) -> None:
    assert api_client.get("/api/v1/health").json() == {"store": True, "cache": True}

    def fail() -> None:
        raise StoreUnavailableError("ping failed")

    monkeypatch.setattr(service.store, "ping", fail)

    response = api_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"store": False, "cache": True}


def test_token_is_required_when_configured(api_client: TestClient) -> None:
    api_client.app.dependency_overrides[get_settings] = lambda: replace(
        get_settings(), ingest_token="secret123"
    )

    missing = api_client.post("/api/v1/telemetry", json=_reading())
    wrong = api_client.get(
        "/api/v1/devices/dev-test-001/latest",
        headers={"Authorization": "Bearer nope"},
    )
    accepted = api_client.post("/api/v1/telemetry", json=_reading(), headers=AUTH_HEADER)
    health = api_client.get("/api/v1/health")

    assert missing.status_code == 401
    assert missing.json()["detail"] == "Missing or invalid authorization header"
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid token"
    assert accepted.status_code == 201
    assert health.status_code == 200


def test_oversized_ingest_body_is_rejected(api_client: TestClient, service: TelemetryService) -> None:
    api_client.app.dependency_overrides[get_settings] = lambda: replace(
        get_settings(), ingest_token=None, max_body_bytes=400
    )

    small = api_client.post("/api/v1/telemetry", json=_reading("dev-small"))
    large = api_client.post(
        "/api/v1/telemetry",
        json=[_reading(f"dev-large-{index}") for index in range(10)],
    )

    assert small.status_code == 201
    assert large.status_code == 413
    assert service.store.find_latest("dev-large-0") is None
