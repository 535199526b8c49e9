import asyncpg
from fastapi import APIRouter, Depends

from ..engine.stages import STAGE_ORDER, display_name
from .auth import get_conn, require_staff

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("")
async def business_dashboard(
    days: int = 7,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    stage_rows = await conn.fetch(
        "SELECT status, COUNT(*) AS n FROM studio.projects GROUP BY status"
    )
    by_stage = {r["status"]: r["n"] for r in stage_rows}

    upcoming = await conn.fetch(
        """
        SELECT t.id::text AS id, t.title, t.priority, t.due_date, t.category,
               t.project_id::text AS project_id, p.name AS project_name
        FROM studio.tasks t
        LEFT JOIN studio.projects p ON p.id = t.project_id
        WHERE t.status <> 'completed'
          AND t.due_date IS NOT NULL
          AND t.due_date <= CURRENT_DATE + ($1::int || ' days')::interval
        ORDER BY t.due_date ASC,
                 CASE t.priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END
        LIMIT 20
        """,
        days,
    )

    contracts = await conn.fetch(
        "SELECT status, COUNT(*) AS n, COALESCE(SUM(value), 0) AS total_value FROM studio.contracts GROUP BY status"
    )

    activity = await conn.fetch(
        """
        SELECT event_type, actor_id::text AS actor_id, project_id::text AS project_id,
               metadata, created_at
        FROM studio.activity_events
        ORDER BY created_at DESC
        LIMIT 20
        """
    )

    return {
        "projects_by_stage": [
            {"stage": s, "display_name": display_name(s), "count": by_stage.get(s, 0)}
            for s in STAGE_ORDER
        ],
        "upcoming_tasks": [dict(r) for r in upcoming],
        "contracts": [dict(r) for r in contracts],
        "recent_activity": [dict(r) for r in activity],
    }
