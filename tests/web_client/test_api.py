# tests/web_client/test_api.py
"""
Тесты HTTP API веб-клиента (src/web_client/api.py).
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.infra.redis_client import get_redis
from src.shared.models.trip_dto import TripStatus
from src.web_client.api import get_location_store, get_trip_directory, router
from tests.fakes import InMemoryLocationStore, InMemoryTripDirectory, make_record


@pytest.fixture
def location_store() -> InMemoryLocationStore:
    return InMemoryLocationStore()


@pytest.fixture
def trips() -> InMemoryTripDirectory:
    directory = InMemoryTripDirectory()
    directory.add_trip("trip-1", "d-1", driver_name="Karim")
    return directory


@pytest.fixture
def redis_mock() -> MagicMock:
    redis = MagicMock()
    redis.is_connected = True
    redis.health_check = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def client(location_store, trips, redis_mock) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_location_store] = lambda: location_store
    app.dependency_overrides[get_trip_directory] = lambda: trips
    app.dependency_overrides[get_redis] = lambda: redis_mock
    return TestClient(app)


class TestHealth:
    """Тесты проверки здоровья."""

    def test_healthy(self, client) -> None:
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dependencies"] == {"redis": "healthy"}

    def test_degraded_without_redis(self, client, redis_mock) -> None:
        """Без Redis сервис деградирован."""
        redis_mock.is_connected = False

        data = client.get("/api/v1/health").json()

        assert data["status"] == "degraded"
        assert data["dependencies"] == {"redis": "unavailable"}


class TestDriverLocation:
    """Тесты чтения и записи позиции водителя."""

    def test_get_missing(self, client) -> None:
        """Нет позиции: 404."""
        response = client.get("/api/v1/trips/trip-1/driver-location")

        assert response.status_code == 404

    def test_get_existing(self, client, location_store) -> None:
        location_store.records["trip-1"] = make_record(lat=33.97, lng=-6.85)

        response = client.get("/api/v1/trips/trip-1/driver-location")

        assert response.status_code == 200
        data = response.json()
        assert data["trip_id"] == "trip-1"
        assert data["latitude"] == 33.97

    def test_get_store_down(self, client, location_store) -> None:
        """Хранилище недоступно: 503."""
        location_store.fail_reads = True

        response = client.get("/api/v1/trips/trip-1/driver-location")

        assert response.status_code == 503

    def test_put_upserts_and_notifies_subscribers(self, client, location_store) -> None:
        """PUT записывает позицию (last-writer-wins)."""
        client.put("/api/v1/trips/trip-1/driver-location", json={"driver_id": "d-1", "lat": 33.97, "lon": -6.85})
        response = client.put(
            "/api/v1/trips/trip-1/driver-location",
            json={"driver_id": "d-1", "lat": 34.0, "lon": -6.8, "accuracy": 5},
        )

        assert response.status_code == 200
        assert response.json()["latitude"] == 34.0
        assert location_store.records["trip-1"].longitude == -6.8
        assert len(location_store.upserts) == 2

    @pytest.mark.parametrize(
        "body",
        [
            {"driver_id": "d-1", "lat": 91, "lon": 0},
            {"driver_id": "d-1", "lat": 0, "lon": -181},
            {"driver_id": "", "lat": 0, "lon": 0},
        ],
    )
    def test_put_invalid(self, client, body) -> None:
        """Недопустимые координаты: 422."""
        response = client.put("/api/v1/trips/trip-1/driver-location", json=body)

        assert response.status_code == 422

    def test_put_store_down(self, client, location_store) -> None:
        """Ошибка записи: 503."""
        location_store.fail_writes = True

        response = client.put("/api/v1/trips/trip-1/driver-location", json={"driver_id": "d-1", "lat": 1, "lon": 1})

        assert response.status_code == 503

    def test_put_by_other_driver_forbidden(self, client, location_store) -> None:
        """Публиковать позицию может только водитель поездки: 403."""
        response = client.put("/api/v1/trips/trip-1/driver-location", json={"driver_id": "d-2", "lat": 1, "lon": 1})

        assert response.status_code == 403
        assert location_store.upserts == []

    def test_put_unknown_trip(self, client, location_store) -> None:
        response = client.put("/api/v1/trips/trip-9/driver-location", json={"driver_id": "d-1", "lat": 1, "lon": 1})

        assert response.status_code == 404
        assert location_store.upserts == []

    def test_put_directory_down(self, client, trips) -> None:
        trips.fail_reads = True

        response = client.put("/api/v1/trips/trip-1/driver-location", json={"driver_id": "d-1", "lat": 1, "lon": 1})

        assert response.status_code == 503


class TestTripsAndBookings:
    """Тесты регистрации поездок и бронирований."""

    def test_put_trip(self, client, trips) -> None:
        response = client.put(
            "/api/v1/trips/trip-2",
            json={"driver_id": "d-5", "driver_name": "Amine", "status": "in_progress"},
        )

        assert response.status_code == 200
        assert response.json()["trip_id"] == "trip-2"
        assert trips.trips["trip-2"].driver_name == "Amine"
        assert trips.trips["trip-2"].status == TripStatus.IN_PROGRESS

    def test_put_trip_invalid_status(self, client) -> None:
        response = client.put("/api/v1/trips/trip-2", json={"driver_id": "d-5", "status": "flying"})

        assert response.status_code == 422

    def test_put_booking(self, client, trips) -> None:
        """Бронирование добавляет пассажира в поездку."""
        response = client.put("/api/v1/bookings/b-7", json={"trip_id": "trip-1", "passenger_id": "u-7"})

        assert response.status_code == 200
        assert trips.bookings["b-7"].passenger_id == "u-7"
        assert "u-7" in trips.passengers["trip-1"]

    def test_put_booking_unknown_trip(self, client, trips) -> None:
        response = client.put("/api/v1/bookings/b-7", json={"trip_id": "trip-9", "passenger_id": "u-7"})

        assert response.status_code == 404
        assert "b-7" not in trips.bookings

    def test_put_booking_directory_down(self, client, trips) -> None:
        trips.fail_reads = True

        response = client.put("/api/v1/bookings/b-7", json={"trip_id": "trip-1", "passenger_id": "u-7"})

        assert response.status_code == 503
