"""
Apply the overdue-return follow-up plan against the database.

Per-item failures are logged and counted; the run as a whole only fails when
the initial loads fail.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg

from ..activity import log_activity
from ..engine.returns import FOLLOWUP_TITLE_MARKER, plan_return_followups
from .projects import recalculate_project_progress

logger = logging.getLogger(__name__)

LOAD_OVERDUE_RETURNS_SQL = """
SELECT id::text AS id, project_id::text AS project_id, client_id::text AS client_id,
       reason, status, return_date, created_at
FROM studio.returns
WHERE status IN ('pending', 'processed')
  AND return_date < $1::date;
"""

LOAD_FOLLOWUP_TASKS_SQL = """
SELECT id::text AS id, description, priority
FROM studio.tasks
WHERE title LIKE '%' || $1 || '%';
"""

INSERT_FOLLOWUP_TASK_SQL = """
INSERT INTO studio.tasks (
    project_id, client_id, title, description, status, priority,
    due_date, category, visible_to_client
) VALUES ($1::uuid, $2::uuid, $3, $4, $5, $6, $7::date, $8, $9)
RETURNING id::text;
"""

ESCALATE_TASK_SQL = """
UPDATE studio.tasks
SET priority = $2, title = $3, updated_at = now()
WHERE id = $1::uuid;
"""


async def check_overdue_returns(conn: asyncpg.Connection, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)

    overdue = await conn.fetch(LOAD_OVERDUE_RETURNS_SQL, now.date())
    logger.info("check_overdue_returns: %d overdue returns", len(overdue))
    if not overdue:
        return {
            "message": "No overdue returns found",
            "processed": 0,
            "tasks_created": 0,
            "tasks_updated": 0,
            "timestamp": now.isoformat(),
        }

    existing = await conn.fetch(LOAD_FOLLOWUP_TASKS_SQL, FOLLOWUP_TITLE_MARKER)
    plan = plan_return_followups(overdue, existing, now)

    created = 0
    updated = 0
    touched_projects: set[str] = set()

    for item in plan.escalations:
        try:
            async with conn.transaction():
                await conn.execute(ESCALATE_TASK_SQL, item.task_id, item.priority, item.title)
        except asyncpg.PostgresError as e:
            logger.warning("escalate task %s for return %s failed: %s", item.task_id, item.return_id, e)
            continue
        updated += 1

    for item in plan.creates:
        try:
            async with conn.transaction():
                task_id = await conn.fetchval(
                    INSERT_FOLLOWUP_TASK_SQL,
                    item.project_id,
                    item.client_id,
                    item.title,
                    item.description,
                    item.status,
                    item.priority,
                    item.due_date,
                    item.category,
                    item.visible_to_client,
                )
                await log_activity(
                    conn,
                    event_type="return_followup_created",
                    actor_id=None,
                    project_id=item.project_id,
                    metadata={
                        "task_id": task_id,
                        "return_id": item.return_id,
                        "priority": item.priority,
                        "days_overdue": item.days_overdue,
                    },
                )
        except asyncpg.PostgresError as e:
            logger.warning("create follow-up for return %s failed: %s", item.return_id, e)
            continue
        created += 1
        if item.project_id:
            touched_projects.add(item.project_id)

    for project_id in sorted(touched_projects):
        await recalculate_project_progress(conn, project_id)

    result = {
        "message": "Overdue returns check completed",
        "processed": len(overdue),
        "tasks_created": created,
        "tasks_updated": updated,
        "timestamp": now.isoformat(),
    }
    logger.info(
        "check_overdue_returns: processed=%d created=%d updated=%d",
        result["processed"], created, updated,
    )
    return result
