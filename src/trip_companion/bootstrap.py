from __future__ import annotations

import logging

from trip_companion.core.config import settings
from trip_companion.core.db import engine
from trip_companion.core.logging import get_logger, log_event
from trip_companion.core.models import Base

logger = get_logger(__name__)


def bootstrap() -> None:
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        import trip_companion.models  # noqa: F401

        Base.metadata.create_all(engine)

    missing = [
        name
        for name, value in (
            ("ai_api_key", settings.ai_api_key),
            ("maps_api_key", settings.maps_api_key),
            ("climatiq_api_key", settings.climatiq_api_key),
            ("electricity_maps_api_key", settings.electricity_maps_api_key),
        )
        if not value
    ]
    if missing:
        log_event(logger, "config.optional_missing", settings=missing)
    if not settings.identity_url or not settings.identity_service_key:
        log_event(logger, "config.identity_missing", level=logging.WARNING)
