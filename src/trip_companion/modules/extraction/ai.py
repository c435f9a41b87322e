from __future__ import annotations

import base64
import time
from typing import Any

import httpx

from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)


def ai_available() -> bool:
    return bool(settings.ai_api_key)


def generate_structured(
    prompt: str,
    body: bytes,
    mime_type: str,
    response_schema: dict[str, Any] | None = None,
) -> str:
    """
    Send one document plus an instruction to the document model; returns the raw text answer.

    The answer is expected to be JSON (``responseMimeType=application/json``) but is
    not parsed here, see ``extraction.normalizer.parse_json_object``.
    """
    if not settings.ai_api_key:
        raise PipelineError(ErrorKind.CONFIGURATION, "Document AI service is not configured")

    generation_config: dict[str, Any] = {"temperature": 0}
    if response_schema:
        generation_config["responseMimeType"] = "application/json"
        generation_config["responseSchema"] = response_schema

    payload = {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": mime_type,
                            "data": base64.b64encode(body).decode("ascii"),
                        }
                    },
                    {"text": prompt},
                ],
            }
        ],
        "generationConfig": generation_config,
    }

    url = f"{settings.ai_base_url.rstrip('/')}/models/{settings.ai_model}:generateContent"
    start = time.monotonic()
    try:
        resp = httpx.post(
            url,
            params={"key": settings.ai_api_key},
            json=payload,
            timeout=float(settings.ai_timeout_seconds),
        )
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as e:
        log_event(
            logger,
            "ai.request.failed",
            model=settings.ai_model,
            status_code=e.response.status_code,
            duration_ms=monotonic_ms(start),
        )
        raise PipelineError(
            ErrorKind.UPSTREAM_UNAVAILABLE, "Document AI service request failed"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        log_event(
            logger,
            "ai.request.failed",
            model=settings.ai_model,
            error_type=type(e).__name__,
            duration_ms=monotonic_ms(start),
        )
        raise PipelineError(
            ErrorKind.UPSTREAM_UNAVAILABLE, "Document AI service unavailable"
        ) from e

    text = _response_text(data)
    log_event(
        logger,
        "ai.request.done",
        model=settings.ai_model,
        mime_type=mime_type,
        byte_size=len(body),
        response_chars=len(text),
        duration_ms=monotonic_ms(start),
    )
    if not text.strip():
        reason = _block_reason(data)
        message = "Document AI returned no content"
        raise PipelineError(
            ErrorKind.EXTRACTION_FAILED, f"{message} ({reason})" if reason else message
        )
    return text


def _response_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def _block_reason(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    feedback = data.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        return str(feedback["blockReason"])
    candidates = data.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        finish = candidates[0].get("finishReason")
        if finish and finish != "STOP":
            return str(finish)
    return None
