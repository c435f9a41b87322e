"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

from trip_companion.modules.callsheets.models import (  # noqa: F401
    CallsheetJob,
    CallsheetLocation,
    CallsheetResult,
)
from trip_companion.modules.identity.models import UserProfile  # noqa: F401
from trip_companion.modules.limits.models import AiUsageEvent  # noqa: F401
from trip_companion.modules.trips.models import Project, ProjectDocument, Trip  # noqa: F401
