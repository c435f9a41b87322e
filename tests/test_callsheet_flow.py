from __future__ import annotations

import json

from sqlalchemy import func, select

from trip_companion.core.db import SessionLocal
from trip_companion.modules.callsheets import worker as worker_mod
from trip_companion.modules.callsheets.models import CallsheetJob, JobStatus
from trip_companion.modules.limits.models import AiUsageEvent
from trip_companion.modules.trips.models import Project, Trip

CALLSHEET = {
    "date": "2026-04-01",
    "projectName": "Sunset Ad",
    "productionCompanies": ["Studio North"],
    "locations": ["Hauptplatz 1, Linz", "Donaulände 5"],
}


def _fake_ai(payload: dict, calls: list[str] | None = None):
    def _generate(prompt, body, mime_type, response_schema=None):
        if calls is not None:
            calls.append(mime_type)
        return json.dumps(payload)

    return _generate


def _upload(client, headers, *, body: bytes = b"%PDF-1.4 call sheet", name: str = "sheet.pdf"):
    return client.post(
        "/api/callsheets",
        headers=headers,
        files={"upload": (name, body, "application/pdf")},
    )


def _count(model) -> int:
    with SessionLocal() as session:
        return session.scalar(select(func.count(model.id))) or 0


def test_upload_runs_job_to_done_and_exposes_result(client, auth_headers, monkeypatch):
    calls: list[str] = []
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET, calls))

    resp = _upload(client, auth_headers())
    assert resp.status_code == 200
    job = resp.json()
    assert job["status"] == "done"
    assert job["filename"] == "sheet.pdf"
    assert calls == ["application/pdf"]

    status = client.get(f"/api/callsheets/{job['id']}", headers=auth_headers())
    assert status.status_code == 200
    assert status.json()["status"] == "done"
    assert status.json()["error"] is None

    result = client.get(f"/api/callsheets/{job['id']}/result", headers=auth_headers()).json()
    assert result["project_name"] == "Sunset Ad"
    assert result["producer"] == "Studio North"
    assert result["date"] == "2026-04-01"
    assert [loc["address_raw"] for loc in result["locations"]] == CALLSHEET["locations"]


def test_review_without_maps_keeps_raw_locations(client, auth_headers, monkeypatch):
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET))
    job_id = _upload(client, auth_headers()).json()["id"]

    resp = client.post(f"/api/callsheets/{job_id}/review", headers=auth_headers())
    assert resp.status_code == 200
    review = resp.json()
    assert [loc["address"] for loc in review["locations"]] == CALLSHEET["locations"]
    assert all(loc["used_fallback"] for loc in review["locations"])
    assert review["distance_km"] is None
    assert "location[0]:maps_not_configured" in review["fallbacks"]
    assert "distance:no_base_address" in review["fallbacks"]


def test_confirm_creates_trip_and_reuses_project_case_insensitively(
    client, auth_headers, monkeypatch
):
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET))
    first = _upload(client, auth_headers()).json()["id"]
    second = _upload(client, auth_headers()).json()["id"]

    payload = {
        "trip_date": "2026-04-01",
        "project_name": "Sunset Ad",
        "producer": "Studio North",
        "locations": ["Hauptplatz 1, Linz", "Donaulände 5"],
        "distance_km": 42.5,
    }
    resp = client.post(f"/api/callsheets/{first}/confirm", headers=auth_headers(), json=payload)
    assert resp.status_code == 200
    trip = resp.json()
    assert trip["source"] == "callsheet"
    assert trip["callsheet_job_id"] == first
    assert trip["distance_km"] == 42.5
    assert trip["purpose"] == "Sunset Ad"

    again = client.post(f"/api/callsheets/{first}/confirm", headers=auth_headers(), json=payload)
    assert again.status_code == 409

    resp = client.post(
        f"/api/callsheets/{second}/confirm",
        headers=auth_headers(),
        json={**payload, "project_name": "  sunset AD "},
    )
    assert resp.status_code == 200
    assert resp.json()["project_id"] == trip["project_id"]
    assert _count(Project) == 1
    assert _count(Trip) == 2


def test_oversized_upload_is_rejected_before_any_job_or_quota(client, auth_headers, monkeypatch):
    calls: list[str] = []
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET, calls))

    resp = _upload(client, auth_headers(), body=b"0" * (15 * 1024 * 1024))
    assert resp.status_code == 413
    assert resp.json()["error"] == "payload_too_large"
    assert _count(CallsheetJob) == 0
    assert _count(AiUsageEvent) == 0
    assert calls == []


def test_unsupported_type_is_rejected(client, auth_headers):
    resp = client.post(
        "/api/callsheets",
        headers=auth_headers(),
        files={"upload": ("notes.txt", b"hello", "text/plain")},
    )
    assert resp.status_code == 400
    assert _count(CallsheetJob) == 0


def test_octet_stream_is_typed_by_extension(client, auth_headers, monkeypatch):
    calls: list[str] = []
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET, calls))
    resp = client.post(
        "/api/callsheets",
        headers=auth_headers(),
        files={"upload": ("scan.PNG", b"\x89PNG", "application/octet-stream")},
    )
    assert resp.status_code == 200
    assert calls == ["image/png"]


def test_jobs_are_private_to_their_owner(client, auth_headers, monkeypatch):
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET))
    job_id = _upload(client, auth_headers("owner")).json()["id"]

    resp = client.get(f"/api/callsheets/{job_id}", headers=auth_headers("someone-else"))
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_terminal_jobs_cannot_be_requeued_or_cancelled(client, auth_headers, monkeypatch):
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET))
    job_id = _upload(client, auth_headers()).json()["id"]

    for action in ("queue", "cancel"):
        resp = client.post(f"/api/callsheets/{job_id}/{action}", headers=auth_headers())
        assert resp.status_code == 409, action
        assert resp.json()["error"] == "conflict"


def test_failed_job_reports_error_and_has_no_result(client, auth_headers, monkeypatch):
    monkeypatch.setattr(worker_mod, "generate_structured", lambda *a, **k: "not json at all")
    job = _upload(client, auth_headers()).json()
    assert job["status"] == JobStatus.FAILED.value
    assert job["error"]

    resp = client.get(f"/api/callsheets/{job['id']}/result", headers=auth_headers())
    assert resp.status_code == 409
    assert _count(AiUsageEvent) == 0


def test_created_job_can_be_cancelled_but_not_after(client, auth_headers):
    from trip_companion.modules.callsheets.service import create_job
    from trip_companion.modules.identity.session import Identity

    with SessionLocal() as session:
        job = create_job(
            session,
            identity=Identity(id="user-1"),
            filename="sheet.pdf",
            content_type="application/pdf",
            body=b"%PDF",
            enqueue=False,
        )
        job_id = str(job.id)
        assert job.status == JobStatus.CREATED
        assert job.storage_path

    resp = client.post(f"/api/callsheets/{job_id}/cancel", headers=auth_headers())
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert client.post(f"/api/callsheets/{job_id}/queue", headers=auth_headers()).status_code == 409


def test_review_geocodes_routes_and_persists_locations(client, auth_headers, monkeypatch):
    import httpx

    from trip_companion.modules.callsheets.api import get_location_resolver
    from trip_companion.modules.locations.maps import MapsClient
    from trip_companion.modules.locations.resolver import LocationResolver

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("geocode/json"):
            address = request.url.params["address"]
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "results": [
                        {
                            "formatted_address": f"{address.split(',')[0]}, Linz, Austria",
                            "place_id": "p1",
                            "geometry": {"location": {"lat": 48.3, "lng": 14.29}},
                        }
                    ],
                },
            )
        return httpx.Response(
            200, json={"status": "OK", "routes": [{"legs": [{"distance": {"value": 23_400}}]}]}
        )

    maps = MapsClient(api_key="mk", transport=httpx.MockTransport(handler))
    client.app.dependency_overrides[get_location_resolver] = lambda: LocationResolver(maps)
    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai(CALLSHEET))

    profile = client.put(
        "/api/user/profile",
        headers=auth_headers(),
        json={"base_address": "Landstraße 10, Linz", "city": "Linz", "country": "Österreich"},
    )
    assert profile.status_code == 200
    job_id = _upload(client, auth_headers()).json()["id"]

    review = client.post(f"/api/callsheets/{job_id}/review", headers=auth_headers()).json()
    assert review["distance_km"] == 23.4
    assert review["fallbacks"] == []
    assert [loc["address"] for loc in review["locations"]] == [
        "Hauptplatz 1, Linz, Austria",
        "Donaulände 5, Linz, Austria",
    ]

    result = client.get(f"/api/callsheets/{job_id}/result", headers=auth_headers()).json()
    assert [loc["place_id"] for loc in result["locations"]] == ["p1", "p1"]
    assert result["locations"][0]["lat"] == 48.3
