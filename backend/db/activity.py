"""
Activity Log — Audit Trail for Planning Decisions

Every planning run, approval, rejection and executed stock movement is
appended here so downstream observers can reconstruct who changed what,
including runs that only partially succeeded.

Entries are added to the caller's session and committed with the caller's
unit of work; nothing here commits on its own.
"""

import uuid
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ActivityLogEntry

logger = structlog.get_logger()

SYSTEM_USER = "System"


def record_activity(
    db: AsyncSession,
    action: str,
    *,
    user_name: str | None = None,
    entity_type: str | None = None,
    entity_id: uuid.UUID | None = None,
    details: dict[str, Any] | None = None,
) -> ActivityLogEntry:
    """Append an activity entry to the current unit of work."""
    entry = ActivityLogEntry(
        user_name=user_name or SYSTEM_USER,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=_jsonable(details or {}),
    )
    db.add(entry)
    logger.debug("activity.recorded", action=action, entity_type=entity_type, user_name=entry.user_name)
    return entry


def _jsonable(details: dict[str, Any]) -> dict[str, Any]:
    # JSON columns on SQLite reject UUID/date values.
    out: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, dict):
            out[key] = _jsonable(value)
        elif isinstance(value, (list, tuple)):
            out[key] = [str(v) if not isinstance(v, (int, float, str, bool, type(None))) else v for v in value]
        elif isinstance(value, (int, float, str, bool, type(None))):
            out[key] = value
        else:
            out[key] = str(value)
    return out
