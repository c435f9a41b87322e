from __future__ import annotations

import httpx
import pytest

from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.modules.factors import service as factors


def _mock_client(handler, calls: list[httpx.Request]):
    def _factory(timeout: float) -> httpx.Client:
        def _record(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        return httpx.Client(transport=httpx.MockTransport(_record), timeout=timeout)

    return _factory


def _estimate_ok(co2e: float = 2.65, unit: str = "kg"):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "co2e": co2e,
                "co2e_unit": unit,
                "emission_factor": {"source": "BEIS", "region": "GB", "year": 2024},
            },
        )

    return handler


def test_diesel_without_credential_uses_static_fallback():
    resolved = factors.get_fuel_factor("diesel")
    assert resolved.used_fallback
    assert resolved.reason == "not_configured"
    assert resolved.value.kg_co2e_per_liter == 2.68
    assert resolved.value.source == "fallback"


def test_invalid_fuel_type_is_rejected():
    with pytest.raises(PipelineError) as exc:
        factors.get_fuel_factor("kerosene")
    assert exc.value.kind == ErrorKind.VALIDATION
    assert exc.value.message == "invalid_fuel_type"


def test_fetched_factor_is_cached_by_versioned_key(monkeypatch):
    calls: list[httpx.Request] = []
    monkeypatch.setattr(settings, "climatiq_api_key", "ck")
    monkeypatch.setattr(factors, "_http_client", _mock_client(_estimate_ok(), calls))

    first = factors.get_fuel_factor("Diesel")
    second = factors.get_fuel_factor("diesel")

    assert not first.used_fallback
    assert first.value.kg_co2e_per_liter == 2.65
    assert first.value.source == "data"
    assert first.value.provider == "BEIS"
    assert first.value.year == 2024
    assert second.value == first.value
    assert len(calls) == 1
    assert calls[0].url.path.endswith("/estimate")
    assert calls[0].headers["authorization"] == "Bearer ck"


def test_grams_are_converted_to_kilograms(monkeypatch):
    monkeypatch.setattr(settings, "climatiq_api_key", "ck")
    monkeypatch.setattr(factors, "_http_client", _mock_client(_estimate_ok(2310, "g"), []))
    assert factors.get_fuel_factor("gasoline").value.kg_co2e_per_liter == 2.31


def test_rejected_activity_id_is_rediscovered_via_search(monkeypatch):
    calls: list[httpx.Request] = []
    monkeypatch.setattr(settings, "climatiq_api_key", "ck")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            return httpx.Response(
                200,
                json={
                    "results": [
                        {"activity_id": "wrong-unit", "unit_type": "Energy", "region": "AT"},
                        {"activity_id": "diesel-at", "unit_type": "Volume", "region": "AT"},
                    ]
                },
            )
        body = request.read().decode()
        if "diesel-at" in body:
            return _estimate_ok(2.7)(request)
        return httpx.Response(400, json={"error": "bad activity"})

    monkeypatch.setattr(factors, "_http_client", _mock_client(handler, calls))

    resolved = factors.get_fuel_factor("diesel")
    assert not resolved.used_fallback
    assert resolved.value.activity_id == "diesel-at"
    assert [r.url.path.rsplit("/", 1)[-1] for r in calls] == ["estimate", "search", "estimate"]


def test_upstream_failure_falls_back_and_is_not_cached(monkeypatch):
    calls: list[httpx.Request] = []
    monkeypatch.setattr(settings, "climatiq_api_key", "ck")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    monkeypatch.setattr(factors, "_http_client", _mock_client(handler, calls))

    first = factors.get_fuel_factor("gasoline")
    assert first.used_fallback
    assert first.reason == "upstream_error:ReadTimeout"
    assert first.value.kg_co2e_per_liter == 2.31

    factors.get_fuel_factor("gasoline")
    assert len(calls) == 2


def test_non_positive_co2e_falls_back(monkeypatch):
    monkeypatch.setattr(settings, "climatiq_api_key", "ck")
    monkeypatch.setattr(factors, "_http_client", _mock_client(_estimate_ok(0), []))
    resolved = factors.get_fuel_factor("diesel")
    assert resolved.used_fallback
    assert resolved.reason == "invalid_co2e"


def test_grid_intensity_fallback_and_fetch(monkeypatch):
    resolved = factors.get_grid_intensity("at")
    assert resolved.used_fallback
    assert resolved.value.zone == "AT"
    assert resolved.value.kg_co2_per_kwh == 0.05

    calls: list[httpx.Request] = []
    monkeypatch.setattr(settings, "electricity_maps_api_key", "em")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["auth-token"] == "em"
        assert request.url.params["zone"] == "DE"
        return httpx.Response(
            200, json={"zone": "DE", "carbonIntensity": 381, "datetime": "2026-10-19T10:00:00Z"}
        )

    monkeypatch.setattr(factors, "_http_client", _mock_client(handler, calls))
    resolved = factors.get_grid_intensity("de")
    assert not resolved.used_fallback
    assert resolved.value.kg_co2_per_kwh == 0.381
    factors.get_grid_intensity("DE")
    assert len(calls) == 1


def test_fuel_factor_endpoint(client, auth_headers):
    resp = client.get("/api/fuel-factor?fuelType=diesel", headers=auth_headers())
    assert resp.status_code == 200
    body = resp.json()
    assert body["fuelType"] == "diesel"
    assert body["kgCo2ePerLiter"] == 2.68
    assert body["source"] == "fallback"
    assert body["fallback"] is True

    assert client.get("/api/fuel-factor?fuelType=jet", headers=auth_headers()).status_code == 400
    assert client.get("/api/fuel-factor?fuelType=diesel").status_code == 401


def test_refresh_clears_caches(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "climatiq_api_key", "ck")
    monkeypatch.setattr(factors, "_http_client", _mock_client(_estimate_ok(), []))
    factors.get_fuel_factor("diesel")

    resp = client.post("/api/factors/refresh", headers=auth_headers())
    assert resp.status_code == 200
    assert resp.json() == {"cleared": 1}
    assert len(factors.fuel_factor_cache) == 0


def test_non_object_emission_factor_falls_back(monkeypatch):
    monkeypatch.setattr(settings, "climatiq_api_key", "ck")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"co2e": 2.5, "co2e_unit": "kg", "emission_factor": "x"}
        )

    monkeypatch.setattr(factors, "_http_client", _mock_client(handler, []))
    resolved = factors.get_fuel_factor("diesel")
    assert resolved.used_fallback
    assert resolved.reason == "invalid_emission_factor"
    assert resolved.value.kg_co2e_per_liter == 2.68


def test_fuel_factor_wire_keys_are_camel_case(client, auth_headers):
    body = client.get("/api/fuel-factor?fuelType=gasoline", headers=auth_headers()).json()
    assert body["kgCo2ePerLiter"] == 2.31
    assert "kgCo2EPerLiter" not in body
    assert "kg_co2e_per_liter" not in body
