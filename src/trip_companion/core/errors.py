from __future__ import annotations

import enum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from trip_companion.core.logging import get_logger, get_request_id, log_event


class ErrorKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    PARSE_FAILURE = "parse_failure"
    EXTRACTION_FAILED = "extraction_failed"
    CONFLICT = "conflict"


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.UPSTREAM_UNAVAILABLE: 502,
    ErrorKind.PARSE_FAILURE: 500,
    ErrorKind.EXTRACTION_FAILED: 500,
    ErrorKind.CONFLICT: 409,
}

logger = get_logger(__name__)


class PipelineError(Exception):
    """A failure with no local fallback, rendered to clients as ``{error, message}``."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        headers: dict[str, str] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.headers = headers or {}
        self.extra = extra or {}

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self.kind]

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.kind.value, "message": self.message}
        payload.update(self.extra)
        request_id = get_request_id()
        if request_id:
            payload["request_id"] = request_id
        return payload


async def _pipeline_error_handler(_: Request, exc: PipelineError) -> JSONResponse:
    log_event(
        logger,
        "http.pipeline_error",
        error_kind=exc.kind.value,
        status_code=exc.status_code,
        error_message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers or None
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, _pipeline_error_handler)
