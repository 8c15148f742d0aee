# crm_app/services/activity_service.py
"""
Activity log appender - one history row per created record, batched by kind
"""

from typing import Any, Iterable, Mapping, Optional

from flask import current_app
from sqlalchemy import insert

from crm_app.models import ActivityLog, db


def append_creation_logs(
    content_type: str,
    entries: Iterable[Mapping[str, Any]],
    *,
    created_by: Optional[int] = None,
    action: str = "create",
) -> int:
    """
    Write one ``ActivityLog`` per entry in a single insert and commit.

    Each entry carries the record ``id`` plus an optional ``content`` payload.
    Returns the number of rows written.
    """
    rows = [
        {
            "content_type": content_type,
            "content_id": int(entry["id"]),
            "action": action,
            "created_by": created_by,
            "content": dict(entry.get("content") or {}),
        }
        for entry in entries
        if entry.get("id") is not None
    ]
    if not rows:
        return 0

    db.session.execute(insert(ActivityLog), rows)
    db.session.commit()
    current_app.logger.debug(
        "Activity logs appended",
        extra={"activity_content_type": content_type, "activity_action": action, "activity_rows": len(rows)},
    )
    return len(rows)
