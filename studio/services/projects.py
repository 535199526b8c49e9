"""
Project write-side helpers shared by the task, expense and return flows.

Whenever a task or expense belonging to a project changes, the stored
`progress` / `spent` columns are recomputed here from the source rows.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

import asyncpg

from ..engine.progress import calculate_project_progress

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

LOAD_PROJECT_SQL = """
SELECT id::text AS id, client_id::text AS client_id, name, status, budget, spent,
       start_date, expected_completion, description, rooms, progress, created_at
FROM studio.projects
WHERE id = $1::uuid;
"""

LOAD_PROJECT_TASKS_SQL = """
SELECT id::text AS id, project_id::text AS project_id, client_id::text AS client_id,
       title, description, status, priority, due_date, assigned_to::text AS assigned_to,
       category, visible_to_client, created_at
FROM studio.tasks
WHERE project_id = $1::uuid
ORDER BY due_date ASC NULLS LAST, created_at ASC;
"""

UPDATE_PROGRESS_SQL = """
UPDATE studio.projects
SET progress = $2::int,
    updated_at = now()
WHERE id = $1::uuid;
"""

RECALC_SPENT_SQL = """
UPDATE studio.projects p
SET spent = COALESCE((
        SELECT SUM(e.total_amount) FROM studio.expenses e WHERE e.project_id = p.id
    ), 0),
    updated_at = now()
WHERE p.id = $1::uuid
RETURNING spent;
"""


async def load_project(conn: asyncpg.Connection, project_id: str) -> Optional[dict[str, Any]]:
    row = await conn.fetchrow(LOAD_PROJECT_SQL, project_id)
    return dict(row) if row else None


async def load_project_tasks(conn: asyncpg.Connection, project_id: str) -> list[dict[str, Any]]:
    rows = await conn.fetch(LOAD_PROJECT_TASKS_SQL, project_id)
    return [dict(r) for r in rows]


async def recalculate_project_progress(conn: asyncpg.Connection, project_id: Optional[str]) -> Optional[int]:
    """Recompute and store progress for one project. Returns None if the project is gone."""
    if not project_id:
        return None
    project = await load_project(conn, project_id)
    if project is None:
        logger.warning("recalculate_project_progress: project %s not found", project_id)
        return None

    tasks = await load_project_tasks(conn, project_id)
    progress = calculate_project_progress(project["status"], tasks)
    if progress != project["progress"]:
        await conn.execute(UPDATE_PROGRESS_SQL, project_id, progress)
        logger.info(
            "project %s progress %s -> %s (status=%s, tasks=%d)",
            project_id, project["progress"], progress, project["status"], len(tasks),
        )
    return progress


async def recalculate_project_spent(conn: asyncpg.Connection, project_id: Optional[str]) -> Optional[Decimal]:
    if not project_id:
        return None
    return await conn.fetchval(RECALC_SPENT_SQL, project_id)
