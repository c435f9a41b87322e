"""
Client side of the call sheet job contract.

``JobPoller`` checks a job's status on a fixed interval with one request in
flight at a time. It stops when the job reaches a terminal status, when the
caller cancels (task cancellation or a cancel event) or when the timeout runs
out. ``CallsheetClient`` wraps the HTTP endpoints for scripts and other
services that wait on a job.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from trip_companion.core.cache import Clock
from trip_companion.core.logging import get_logger, log_event
from trip_companion.modules.callsheets.models import JobStatus
from trip_companion.modules.callsheets.state import TERMINAL_STATUSES

logger = get_logger(__name__)

FetchStatus = Callable[[str], Awaitable[dict[str, Any]]]
Sleep = Callable[[float], Awaitable[None]]

TERMINAL_STATUS_VALUES = frozenset(s.value for s in TERMINAL_STATUSES)
RESULT_STATUS_VALUES = frozenset({JobStatus.DONE.value, JobStatus.NEEDS_REVIEW.value})


@dataclass(frozen=True)
class PollOutcome:
    # Last status seen; "unknown" when no check completed.
    status: str
    job: dict[str, Any] | None
    # "terminal", "cancelled" or "timeout".
    reason: str
    attempts: int = 0

    @property
    def finished(self) -> bool:
        return self.reason == "terminal"


class JobPoller:
    def __init__(
        self,
        fetch_status: FetchStatus,
        *,
        interval_s: float = 3.0,
        timeout_s: float = 300.0,
        max_attempts: int | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._fetch_status = fetch_status
        self._interval_s = max(0.0, float(interval_s))
        self._timeout_s = max(0.0, float(timeout_s))
        self._max_attempts = max_attempts
        self._clock = clock
        self._sleep = sleep

    async def run(self, job_id: str, cancel_event: asyncio.Event | None = None) -> PollOutcome:
        deadline = self._clock() + self._timeout_s
        attempts = 0
        job: dict[str, Any] | None = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return self._outcome(job_id, job, "cancelled", attempts)

            job = await self._fetch_status(job_id)
            attempts += 1
            if str(job.get("status") or "") in TERMINAL_STATUS_VALUES:
                return self._outcome(job_id, job, "terminal", attempts)

            if self._max_attempts is not None and attempts >= self._max_attempts:
                return self._outcome(job_id, job, "timeout", attempts)
            if self._clock() + self._interval_s > deadline:
                return self._outcome(job_id, job, "timeout", attempts)

            await self._wait(cancel_event)

    async def _wait(self, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await self._sleep(self._interval_s)
            return
        sleeper = asyncio.ensure_future(self._sleep(self._interval_s))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)

    def _outcome(
        self, job_id: str, job: dict[str, Any] | None, reason: str, attempts: int
    ) -> PollOutcome:
        status = str((job or {}).get("status") or "unknown")
        log_event(
            logger,
            "callsheet.poll.finished",
            job_id=job_id,
            status=status,
            reason=reason,
            attempts=attempts,
        )
        return PollOutcome(status=status, job=job, reason=reason, attempts=attempts)


class CallsheetClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _get(self, path: str) -> dict[str, Any]:
        async with self._client() as client:
            r = await client.get(path)
            r.raise_for_status()
            return r.json()

    async def get_status(self, job_id: str) -> dict[str, Any]:
        return await self._get(f"/api/callsheets/{job_id}")

    async def get_result(self, job_id: str) -> dict[str, Any]:
        return await self._get(f"/api/callsheets/{job_id}/result")

    async def wait_for_result(
        self,
        job_id: str,
        *,
        interval_s: float = 3.0,
        timeout_s: float = 300.0,
        cancel_event: asyncio.Event | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> tuple[PollOutcome, dict[str, Any] | None]:
        """Poll until the job settles, then fetch its result when it produced one."""
        poller = JobPoller(self.get_status, interval_s=interval_s, timeout_s=timeout_s, sleep=sleep)
        outcome = await poller.run(job_id, cancel_event)
        if outcome.finished and outcome.status in RESULT_STATUS_VALUES:
            return outcome, await self.get_result(job_id)
        return outcome, None
