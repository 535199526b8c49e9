"""
Structured JSON logging for the activity feed.

Every write that shows up in "recent activity" is persisted to
studio.activity_events and mirrored here as one flat JSON line.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg

# Dedicated logger for activity events (separate from operational logs)
_activity_logger: Optional[logging.Logger] = None


def _get_activity_logger() -> logging.Logger:
    """Get or create the activity logger with JSON formatting."""
    global _activity_logger
    if _activity_logger is not None:
        return _activity_logger

    _activity_logger = logging.getLogger("studio.activity")
    _activity_logger.setLevel(logging.INFO)
    _activity_logger.propagate = False  # Don't bubble to root logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)

    class JsonFormatter(logging.Formatter):
        def format(self, record: logging.LogRecord) -> str:
            # record.msg is already a dict for activity logs
            if isinstance(record.msg, dict):
                return json.dumps(record.msg, default=str, ensure_ascii=False)
            return super().format(record)

    handler.setFormatter(JsonFormatter())
    _activity_logger.addHandler(handler)

    return _activity_logger


def build_activity_record(
    *,
    event_type: str,
    actor_id: Optional[str],
    project_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "type": "activity",
        "ts": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "actor_id": actor_id,
    }
    # Optional fields (only include if present)
    if project_id is not None:
        record["project_id"] = project_id
    if metadata:
        record["metadata"] = metadata
    return record


async def log_activity(
    conn: asyncpg.Connection,
    *,
    event_type: str,
    actor_id: Optional[str],
    project_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """
    Persist and log a single activity event.

    Args:
        event_type: e.g. "task_created", "project_status_changed"
        actor_id: UUID of the acting user, None for the worker
        project_id: UUID of the project the event belongs to, if any
        metadata: small flat dict of extra fields
    """
    await conn.execute(
        """
        INSERT INTO studio.activity_events (actor_id, event_type, project_id, metadata)
        VALUES ($1::uuid, $2, $3::uuid, $4::jsonb)
        """,
        actor_id,
        event_type,
        project_id,
        metadata or {},
    )
    _get_activity_logger().info(build_activity_record(
        event_type=event_type,
        actor_id=actor_id,
        project_id=project_id,
        metadata=metadata,
    ))
