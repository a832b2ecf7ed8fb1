"""Tests for the HTTP API."""

import importlib
import logging
import sys

import pytest
from fastapi.testclient import TestClient

from app import app, get_distance_provider
from carbconfig import CarbonSettings, get_settings
from routesdb import DistanceProvider, StaticRoutesProvider


class UnreachableProvider(DistanceProvider):
    """Stands in for a remote provider that cannot resolve anything."""

    def find_distance(self, origin, destination):
        return None

    def get_all_cities(self):
        return []


@pytest.fixture
def client():
    app.dependency_overrides[get_settings] = lambda: CarbonSettings(_env_file=None)
    app.dependency_overrides[get_distance_provider] = lambda: StaticRoutesProvider(
        [("Origin City", "Bus Town", 429), ("Origin City", "Car Town", 100)]
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_cities(client):
    response = client.get("/cities")
    assert response.json() == {"cities": ["Bus Town", "Car Town", "Origin City"]}


def test_modes(client):
    data = client.get("/modes").json()

    assert data["baseline"] == "car"
    assert [m["mode"] for m in data["modes"]] == ["bicycle", "car", "bus", "truck"]
    truck = data["modes"][3]
    assert truck["emission_factor_kg_per_km"] == 0.96
    assert truck["label"] == "Caminhão"


def test_distance_found(client):
    response = client.get("/distance", params={"origin": "bus town", "destination": "Origin City"})
    assert response.json()["ok"] == 1
    assert response.json()["distance_km"] == 429


def test_distance_not_found(client):
    response = client.get("/distance", params={"origin": "Nowhere", "destination": "Origin City"})
    assert response.json() == {"ok": 0, "error": "Route not found"}


def test_calculate_with_lookup(client):
    response = client.post("/calculate", json={"origin": "Origin City", "destination": "Car Town", "mode": "car"})

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] == 1
    assert data["distance_km"] == 100

    result = data["result"]
    assert result["emission"]["emission_kg"] == 12.0
    assert [e["mode"] for e in result["comparison"]] == ["bicycle", "bus", "car", "truck"]
    assert [e["percentage_vs_baseline"] for e in result["comparison"]] == [0.0, 74.17, 100.0, 800.0]
    assert result["savings"] == {"saved_kg": 0.0, "percentage": 0.0}
    assert result["credits"] == {
        "credits_required": 0.012,
        "price_min": 0.6,
        "price_max": 1.8,
        "price_average": 1.2,
    }


def test_calculate_display_block(client):
    response = client.post("/calculate", json={"origin": "Origin City", "destination": "Car Town", "mode": "car"})

    display = response.json()["display"]
    assert display["distance"] == "100.00 km"
    assert display["emission"] == "12.00 kg CO₂"
    assert display["transport"] == "🚗 Carro"
    assert display["credits"] == "0.0120"
    assert display["price_average"] == "US$ 1.20"
    assert display["price_range"] == "US$ 0.60 — US$ 1.80"

    selected = [item for item in display["comparison"] if item["selected"]]
    assert [item["mode"] for item in selected] == ["car"]
    assert selected[0]["vs_baseline"] == "100.0% vs car"


def test_calculate_manual_distance(client):
    response = client.post(
        "/calculate",
        json={"origin": "Anywhere", "destination": "Elsewhere", "mode": "bus", "distance_km": 429},
    )

    data = response.json()
    assert data["ok"] == 1
    assert data["result"]["emission"]["emission_kg"] == 38.18
    assert data["result"]["savings"]["saved_kg"] == 13.3


def test_calculate_route_not_found(client):
    response = client.post("/calculate", json={"origin": "Nowhere", "destination": "Car Town", "mode": "car"})

    assert response.status_code == 200
    assert response.json()["ok"] == 0
    assert "Route not found" in response.json()["error"]


def test_calculate_unknown_mode(client):
    response = client.post(
        "/calculate",
        json={"origin": "Origin City", "destination": "Car Town", "mode": "rocket"},
    )
    assert response.status_code == 422
    assert "rocket" in response.json()["detail"]


@pytest.mark.parametrize("distance", [0, -5])
def test_calculate_rejects_non_positive_distance(client, distance):
    response = client.post(
        "/calculate",
        json={"origin": "A", "destination": "B", "mode": "car", "distance_km": distance},
    )
    assert response.status_code == 422


def test_calculate_with_unreachable_provider(client):
    app.dependency_overrides[get_distance_provider] = lambda: UnreachableProvider()

    response = client.post("/calculate", json={"origin": "Origin City", "destination": "Car Town", "mode": "car"})

    assert response.json()["ok"] == 0


def test_calculate_very_large_manual_distance(client):
    response = client.post(
        "/calculate",
        json={"origin": "A", "destination": "B", "mode": "car", "distance_km": 1e30},
    )

    assert response.status_code == 200
    result = response.json()["result"]
    assert result["emission"]["emission_kg"] == pytest.approx(1.2e29)
    assert result["savings"]["saved_kg"] == 0
    assert result["credits"]["credits_required"] == pytest.approx(1.2e26)


def test_import_reads_no_settings():
    importlib.reload(sys.modules["app"])
    assert get_settings.cache_info().currsize == 0


def test_startup_configures_logging(client, monkeypatch):
    monkeypatch.setenv("CARBON_LOG_LEVEL", "debug")
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    with TestClient(app) as started:
        assert started.get("/").status_code == 200

    assert calls and calls[0]["level"] == "DEBUG"
