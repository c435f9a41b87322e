from __future__ import annotations

import asyncio

import httpx
import pytest

from trip_companion.modules.callsheets.polling import CallsheetClient, JobPoller


class _FakeTime:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _statuses(*statuses: str):
    remaining = list(statuses)
    calls: list[str] = []

    async def fetch(job_id: str) -> dict:
        calls.append(job_id)
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return {"id": job_id, "status": status, "error": None}

    return fetch, calls


def test_poller_stops_on_terminal_status():
    fake = _FakeTime()
    fetch, calls = _statuses("queued", "processing", "done")
    poller = JobPoller(fetch, interval_s=3, timeout_s=300, clock=fake.clock, sleep=fake.sleep)

    outcome = asyncio.run(poller.run("job-1"))

    assert outcome.status == "done"
    assert outcome.reason == "terminal"
    assert outcome.attempts == 3
    assert len(calls) == 3
    assert fake.sleeps == [3, 3]


def test_failed_is_terminal_too():
    fake = _FakeTime()
    fetch, _ = _statuses("failed")
    outcome = asyncio.run(JobPoller(fetch, clock=fake.clock, sleep=fake.sleep).run("job-1"))
    assert (outcome.status, outcome.reason) == ("failed", "terminal")
    assert fake.sleeps == []


def test_poller_times_out_on_stuck_job():
    fake = _FakeTime()
    fetch, calls = _statuses("processing")
    poller = JobPoller(fetch, interval_s=3, timeout_s=30, clock=fake.clock, sleep=fake.sleep)

    outcome = asyncio.run(poller.run("job-1"))

    assert outcome.reason == "timeout"
    assert outcome.status == "processing"
    assert fake.now <= 30
    assert len(calls) == 11


def test_max_attempts_bounds_the_loop():
    fake = _FakeTime()
    fetch, calls = _statuses("queued")
    poller = JobPoller(fetch, max_attempts=4, clock=fake.clock, sleep=fake.sleep)
    assert asyncio.run(poller.run("job-1")).reason == "timeout"
    assert len(calls) == 4


def test_cancel_event_stops_polling_without_further_checks():
    async def scenario():
        cancel = asyncio.Event()
        calls: list[str] = []

        async def fetch(job_id: str) -> dict:
            calls.append(job_id)
            return {"status": "processing"}

        poller = JobPoller(fetch, interval_s=60, timeout_s=600)
        task = asyncio.create_task(poller.run("job-1", cancel))
        await asyncio.sleep(0.05)
        cancel.set()
        outcome = await asyncio.wait_for(task, timeout=5)
        return outcome, calls

    outcome, calls = asyncio.run(scenario())
    assert outcome.reason == "cancelled"
    assert outcome.status == "processing"
    assert len(calls) == 1


def test_task_cancellation_leaves_no_check_running():
    async def scenario():
        in_flight = 0
        peak = 0

        async def fetch(job_id: str) -> dict:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return {"status": "queued"}

        task = asyncio.create_task(JobPoller(fetch, interval_s=0.01, timeout_s=60).run("job-1"))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return peak

    assert asyncio.run(scenario()) == 1


def test_client_waits_then_fetches_result():
    statuses = iter(["queued", "processing", "done"])
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        assert request.headers["authorization"] == "Bearer tkn"
        if request.url.path.endswith("/result"):
            return httpx.Response(200, json={"project_name": "Sunset Ad", "locations": []})
        return httpx.Response(200, json={"id": "job-1", "status": next(statuses), "error": None})

    fake = _FakeTime()
    client = CallsheetClient("http://api.test/", "tkn", transport=httpx.MockTransport(handler))

    outcome, result = asyncio.run(client.wait_for_result("job-1", sleep=fake.sleep))

    assert outcome.status == "done"
    assert result == {"project_name": "Sunset Ad", "locations": []}
    assert seen == ["/api/callsheets/job-1"] * 3 + ["/api/callsheets/job-1/result"]


def test_client_skips_result_for_failed_job():
    def handler(request: httpx.Request) -> httpx.Response:
        assert not request.url.path.endswith("/result")
        return httpx.Response(200, json={"id": "job-1", "status": "failed", "error": "bad scan"})

    client = CallsheetClient("http://api.test", "tkn", transport=httpx.MockTransport(handler))
    outcome, result = asyncio.run(client.wait_for_result("job-1"))
    assert outcome.status == "failed"
    assert outcome.job["error"] == "bad scan"
    assert result is None
