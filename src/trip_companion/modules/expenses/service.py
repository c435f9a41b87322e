from __future__ import annotations

import time
import uuid

from sqlalchemy.orm import Session

from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, get_request_id, log_event, monotonic_ms
from trip_companion.core.storage import ObjectNotFound, StorageError, get_storage, safe_key
from trip_companion.modules.extraction.ai import generate_structured
from trip_companion.modules.extraction.normalizer import (
    ExpenseFields,
    normalize_expense,
    parse_json_object,
)
from trip_companion.modules.extraction.prompts import (
    EXPENSE_PROMPTS,
    EXPENSE_SCHEMAS,
    EXPENSE_TYPES,
)
from trip_companion.modules.identity.session import Identity
from trip_companion.modules.limits.plans import AiKind
from trip_companion.modules.limits.quota import record_usage, require_quota
from trip_companion.modules.trips.service import add_project_document

logger = get_logger(__name__)

DOCUMENTS_PREFIX = "project_documents"

_MIME_BY_EXTENSION: dict[str, str] = {
    "webp": "image/webp",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "pdf": "application/pdf",
}


def mime_type_for_path(storage_path: str) -> str:
    name = storage_path.rsplit("/", 1)[-1]
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    return _MIME_BY_EXTENSION.get(ext, "image/webp")


def document_key(storage_path: str) -> str:
    return safe_key(DOCUMENTS_PREFIX, storage_path)


def _optional_uuid(value: str | None, field_name: str) -> uuid.UUID | None:
    if value is None or value == "":
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise PipelineError(ErrorKind.VALIDATION, f"Invalid {field_name}") from e


def extract_expense(
    session: Session,
    *,
    identity: Identity,
    storage_path: str | None,
    expense_type: str | None,
    trip_id: str | None = None,
    project_id: str | None = None,
) -> ExpenseFields:
    """Read one receipt from storage with the document model and return normalized fields."""
    if not storage_path or not isinstance(storage_path, str) or not storage_path.strip():
        raise PipelineError(ErrorKind.VALIDATION, "Missing storagePath")
    if expense_type not in EXPENSE_TYPES:
        raise PipelineError(ErrorKind.VALIDATION, "Invalid expenseType")
    trip_uuid = _optional_uuid(trip_id, "tripId")
    project_uuid = _optional_uuid(project_id, "projectId")
    storage_path = storage_path.strip()

    require_quota(session, user_id=identity.id)

    # Receipts are uploaded under the owner's id.
    if not storage_path.startswith(f"{identity.id}/"):
        raise PipelineError(ErrorKind.NOT_FOUND, "File not found")
    try:
        body = get_storage().get(key=document_key(storage_path))
    except ObjectNotFound as e:
        raise PipelineError(ErrorKind.NOT_FOUND, "File not found") from e
    except StorageError as e:
        raise PipelineError(ErrorKind.UPSTREAM_UNAVAILABLE, "Storage unavailable") from e
    if len(body) > settings.max_upload_bytes:
        raise PipelineError(ErrorKind.PAYLOAD_TOO_LARGE, "File too large")

    mime_type = mime_type_for_path(storage_path)
    start = time.monotonic()
    log_event(
        logger,
        "expense.extract.start",
        expense_type=expense_type,
        mime_type=mime_type,
        byte_size=len(body),
    )
    try:
        raw = generate_structured(
            EXPENSE_PROMPTS[expense_type], body, mime_type, EXPENSE_SCHEMAS[expense_type]
        )
        fields = normalize_expense(parse_json_object(raw), expense_type)
    except PipelineError as e:
        if e.kind == ErrorKind.CONFIGURATION:
            raise
        log_event(
            logger,
            "expense.extract.failed",
            expense_type=expense_type,
            error_kind=e.kind.value,
            duration_ms=monotonic_ms(start),
        )
        raise PipelineError(ErrorKind.EXTRACTION_FAILED, e.message) from e

    record_usage(
        session,
        user_id=identity.id,
        kind=AiKind.EXPENSE,
        reference=get_request_id() or str(uuid.uuid4()),
    )

    if trip_uuid or project_uuid:
        add_project_document(
            session,
            user_id=identity.id,
            storage_path=storage_path,
            doc_type=expense_type,
            trip_id=trip_uuid,
            project_id=project_uuid,
        )

    log_event(
        logger,
        "expense.extract.done",
        expense_type=expense_type,
        has_amount=fields.amount is not None,
        has_quantity=fields.quantity is not None,
        duration_ms=monotonic_ms(start),
    )
    return fields
