from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from itertools import product

import pytest

from trip_companion.core.db import SessionLocal
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.storage import get_storage
from trip_companion.modules.callsheets import worker as worker_mod
from trip_companion.modules.callsheets.models import CallsheetJob, JobStatus
from trip_companion.modules.callsheets.state import (
    TERMINAL_STATUSES,
    Writer,
    can_transition,
    transition,
)
from trip_companion.modules.limits.plans import AiKind
from trip_companion.modules.limits.quota import check_quota, record_usage

CALLSHEET = {
    "date": "2026-04-01",
    "projectName": "Sunset Ad",
    "productionCompanies": ["Studio North"],
    "locations": ["Hauptplatz 1, Linz", "Donaulände 5"],
}


def _queued_job(session, *, user_id: str = "user-1", body: bytes = b"%PDF-1.4") -> CallsheetJob:
    job = CallsheetJob(
        user_id=user_id,
        status=JobStatus.QUEUED,
        filename="sheet.pdf",
        content_type="application/pdf",
        byte_size=len(body),
    )
    session.add(job)
    session.commit()
    job.storage_path = f"callsheets/{user_id}/{job.id}/sheet.pdf"
    get_storage().put(key=job.storage_path, body=body)
    session.commit()
    return job


def test_terminal_states_are_immutable():
    for terminal, target, writer in product(TERMINAL_STATUSES, JobStatus, Writer):
        assert not can_transition(terminal, target, writer)


def test_orchestrator_never_writes_worker_states():
    for current, target in product(JobStatus, JobStatus):
        if target in {JobStatus.PROCESSING, JobStatus.DONE, JobStatus.FAILED}:
            assert not can_transition(current, target, Writer.ORCHESTRATOR)


def test_no_backward_transitions():
    assert not can_transition(JobStatus.QUEUED, JobStatus.CREATED, Writer.ORCHESTRATOR)
    assert not can_transition(JobStatus.PROCESSING, JobStatus.QUEUED, Writer.WORKER)


def test_rejected_transition_raises_conflict():
    job = CallsheetJob(user_id="u", status=JobStatus.DONE, filename="x.pdf")
    with pytest.raises(PipelineError) as exc:
        transition(job, JobStatus.CANCELLED, Writer.ORCHESTRATOR)
    assert exc.value.kind == ErrorKind.CONFLICT
    assert job.status == JobStatus.DONE


def test_claim_is_exclusive():
    with SessionLocal() as session:
        job = _queued_job(session)
        claimed = worker_mod.claim_job(session, job_id=job.id)
        assert claimed is not None
        assert claimed.status == JobStatus.PROCESSING
        assert worker_mod.claim_job(session, job_id=job.id) is None


def test_worker_saves_result_and_records_usage(monkeypatch):
    prompts: list[str] = []

    def _fake_ai(prompt, body, mime_type, response_schema=None):
        prompts.append(mime_type)
        return "Sure! " + json.dumps(CALLSHEET)

    monkeypatch.setattr(worker_mod, "generate_structured", _fake_ai)

    with SessionLocal() as session:
        job_id = _queued_job(session).id

    worker_mod.process_callsheet_job(job_id=str(job_id))

    with SessionLocal() as session:
        job = session.get(CallsheetJob, job_id)
        assert job.status == JobStatus.DONE
        assert job.processed_at is not None
        assert job.result.project_value == "Sunset Ad"
        assert job.result.producer_value == "Studio North"
        assert [loc.address_raw for loc in job.locations] == CALLSHEET["locations"]
        assert [loc.position for loc in job.locations] == [0, 1]
        assert check_quota(session, user_id="user-1").used == 1
    assert prompts == ["application/pdf"]

    # Redelivery of the same task does nothing.
    worker_mod.process_callsheet_job(job_id=str(job_id))
    with SessionLocal() as session:
        assert check_quota(session, user_id="user-1").used == 1


def test_untitled_project_needs_review(monkeypatch):
    payload = {**CALLSHEET, "projectName": "Untitled Project"}
    monkeypatch.setattr(
        worker_mod, "generate_structured", lambda *a, **k: json.dumps(payload)
    )
    with SessionLocal() as session:
        job_id = _queued_job(session).id
    worker_mod.process_callsheet_job(job_id=str(job_id))
    with SessionLocal() as session:
        assert session.get(CallsheetJob, job_id).status == JobStatus.NEEDS_REVIEW


def test_unparseable_output_fails_job_without_usage(monkeypatch):
    monkeypatch.setattr(worker_mod, "generate_structured", lambda *a, **k: "I could not read it")
    with SessionLocal() as session:
        job_id = _queued_job(session).id
    worker_mod.process_callsheet_job(job_id=str(job_id))
    with SessionLocal() as session:
        job = session.get(CallsheetJob, job_id)
        assert job.status == JobStatus.FAILED
        assert "parse" in (job.error or "").lower()
        assert check_quota(session, user_id="user-1").used == 0


def test_worker_fails_job_when_quota_is_used_up(monkeypatch):
    calls: list[str] = []
    monkeypatch.setattr(
        worker_mod, "generate_structured", lambda *a, **k: calls.append("ai") or "{}"
    )
    with SessionLocal() as session:
        for i in range(5):
            record_usage(session, user_id="user-1", kind=AiKind.EXPENSE, reference=f"r-{i}")
        job_id = _queued_job(session).id
    worker_mod.process_callsheet_job(job_id=str(job_id))
    with SessionLocal() as session:
        job = session.get(CallsheetJob, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "Monthly AI quota exceeded"
    assert calls == []


def test_stuck_jobs_are_failed():
    with SessionLocal() as session:
        job = _queued_job(session)
        worker_mod.claim_job(session, job_id=job.id)
        job_id = job.id

    assert worker_mod.fail_stuck_jobs(now=datetime.now(UTC)) == 0
    assert worker_mod.fail_stuck_jobs(now=datetime.now(UTC) + timedelta(minutes=11)) == 1

    with SessionLocal() as session:
        job = session.get(CallsheetJob, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "Processing timed out"
