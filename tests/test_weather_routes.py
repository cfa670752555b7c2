"""Tests for the placeholder weather endpoints and health routes."""

import datetime as dt
import random

import pytest
from fastapi.testclient import TestClient

from app.api.routes.weather import get_weather_service
from app.core.app_factory import create_app
from app.services.weather_service import (
    MAX_TEMPERATURE_C,
    MIN_TEMPERATURE_C,
    SUMMARIES,
    WeatherService,
    celsius_to_fahrenheit,
)

TODAY = dt.date(2024, 3, 1)


@pytest.fixture
def service() -> WeatherService:
    return WeatherService(rng=random.Random(42), today=lambda: TODAY)


@pytest.fixture
def client(service: WeatherService) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_weather_service] = lambda: service
    return TestClient(app)


class TestWeatherService:
    def test_upcoming_starts_tomorrow(self, service: WeatherService) -> None:
        forecasts = service.upcoming(days=5)

        assert [f.date for f in forecasts] == [TODAY + dt.timedelta(days=i) for i in range(1, 6)]
        assert all(f.id is None for f in forecasts)

    def test_values_stay_in_range(self, service: WeatherService) -> None:
        for forecast in service.upcoming(days=200):
            assert MIN_TEMPERATURE_C <= forecast.temperature_c < MAX_TEMPERATURE_C
            assert forecast.temperature_f == celsius_to_fahrenheit(forecast.temperature_c)
            assert forecast.summary in SUMMARIES

    def test_by_id_is_for_today(self, service: WeatherService) -> None:
        forecast = service.by_id(7)

        assert forecast.id == 7
        assert forecast.date == TODAY

    @pytest.mark.parametrize(("celsius", "fahrenheit"), [(0, 32), (100, 211), (-20, -3)])
    def test_celsius_to_fahrenheit(self, celsius: int, fahrenheit: int) -> None:
        assert celsius_to_fahrenheit(celsius) == fahrenheit


class TestWeatherRoutes:
    def test_list_returns_five_forecasts(self, client: TestClient) -> None:
        response = client.get("/api/weather")

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 5
        assert body[0]["date"] == "2024-03-02"
        assert set(body[0]) == {"id", "date", "temperature_c", "temperature_f", "summary"}

    def test_get_by_id(self, client: TestClient) -> None:
        response = client.get("/api/weather/3")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == 3
        assert body["date"] == "2024-03-01"

    @pytest.mark.parametrize("forecast_id", [0, -1])
    def test_non_positive_id_is_rejected_without_detail(self, client: TestClient, forecast_id: int) -> None:
        response = client.get(f"/api/weather/{forecast_id}")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error == {
            "code": "invalid_request",
            "message": "Invalid request",
            "request_id": response.headers["X-Request-ID"],
        }

    def test_non_numeric_id_is_unprocessable(self, client: TestClient) -> None:
        assert client.get("/api/weather/abc").status_code == 422


class TestHealthRoutes:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_rate_limit_stats_list_policies(self, client: TestClient) -> None:
        client.get("/api/weather")
        client.get("/api/weather/1")

        response = client.get("/health/rate-limits")

        assert response.status_code == 200
        policies = {p["policy_id"]: p for p in response.json()["policies"]}
        assert set(policies) == {"global", "auth_endpoints"}
        assert policies["global"]["scope"] == "global"
        assert policies["global"]["partitions"] == 1
        assert policies["auth_endpoints"]["permit_limit"] == 5
        assert policies["auth_endpoints"]["queue_limit"] == 0
        assert policies["auth_endpoints"]["partitions"] == 1
