import asyncpg
from fastapi import APIRouter, Depends, HTTPException

from ..activity import log_activity
from ..services.projects import load_project, recalculate_project_progress
from .auth import ensure_client_access, get_conn, is_staff, require_staff, require_user
from .schemas import TaskCreate, TaskUpdate
from .sql import build_update_sql

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

TASK_COLUMNS = """
    id::text AS id, project_id::text AS project_id, client_id::text AS client_id,
    title, description, status, priority, due_date, assigned_to::text AS assigned_to,
    category, visible_to_client, created_at
"""

UPDATABLE = {
    "title": "text",
    "description": "text",
    "status": "text",
    "priority": "text",
    "due_date": "date",
    "assigned_to": "uuid",
    "category": "text",
    "visible_to_client": "boolean",
}

# Fields whose change can move the project's progress
PROGRESS_FIELDS = frozenset(["status", "category"])


@router.get("")
async def list_tasks(
    project_id: str | None = None,
    status: str | None = None,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    client_id = None
    visible_only = False
    if not is_staff(user):
        if not user["client_id"]:
            return {"tasks": []}
        client_id = user["client_id"]
        visible_only = True

    rows = await conn.fetch(
        f"""
        SELECT {TASK_COLUMNS}
        FROM studio.tasks
        WHERE ($1::uuid IS NULL OR project_id = $1::uuid)
          AND ($2::text IS NULL OR status = $2)
          AND ($3::uuid IS NULL OR client_id = $3::uuid)
          AND (NOT $4::boolean OR visible_to_client)
        ORDER BY due_date ASC NULLS LAST, created_at ASC
        """,
        project_id,
        status,
        client_id,
        visible_only,
    )
    return {"tasks": [dict(r) for r in rows]}


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    row = await conn.fetchrow(f"SELECT {TASK_COLUMNS} FROM studio.tasks WHERE id = $1::uuid", task_id)
    if not row:
        raise HTTPException(status_code=404, detail="Task not found")
    ensure_client_access(user, row["client_id"])
    if not is_staff(user) and not row["visible_to_client"]:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"task": dict(row)}


@router.post("", status_code=201)
async def create_task(
    body: TaskCreate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    client_id = body.client_id
    async with conn.transaction():
        if body.project_id:
            project = await load_project(conn, body.project_id)
            if project is None:
                raise HTTPException(status_code=404, detail="Project not found")
            client_id = client_id or project["client_id"]

        row = await conn.fetchrow(
            f"""
            INSERT INTO studio.tasks (
                project_id, client_id, title, description, status, priority,
                due_date, assigned_to, category, visible_to_client
            ) VALUES ($1::uuid, $2::uuid, $3, $4, $5, $6, $7, $8::uuid, $9, $10)
            RETURNING {TASK_COLUMNS}
            """,
            body.project_id, client_id, body.title, body.description, body.status,
            body.priority, body.due_date, body.assigned_to, body.category,
            body.visible_to_client,
        )
        progress = await recalculate_project_progress(conn, body.project_id)
        await log_activity(
            conn,
            event_type="task_created",
            actor_id=staff["user_id"],
            project_id=body.project_id,
            metadata={"task_id": row["id"], "title": body.title},
        )
    return {"task": dict(row), "project_progress": progress}


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    body: TaskUpdate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    updates = body.model_dump(exclude_unset=True)
    sql, args = build_update_sql("studio.tasks", updates, UPDATABLE, TASK_COLUMNS)
    if not sql:
        raise HTTPException(status_code=400, detail="Nothing to update")

    progress = None
    async with conn.transaction():
        row = await conn.fetchrow(sql, task_id, *args)
        if not row:
            raise HTTPException(status_code=404, detail="Task not found")
        if PROGRESS_FIELDS & updates.keys():
            progress = await recalculate_project_progress(conn, row["project_id"])
        await log_activity(
            conn,
            event_type="task_completed" if updates.get("status") == "completed" else "task_updated",
            actor_id=staff["user_id"],
            project_id=row["project_id"],
            metadata={"task_id": task_id, "fields": sorted(updates)},
        )
    return {"task": dict(row), "project_progress": progress}


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        project_id = await conn.fetchval(
            "DELETE FROM studio.tasks WHERE id = $1::uuid RETURNING COALESCE(project_id::text, '')",
            task_id,
        )
        if project_id is None:
            raise HTTPException(status_code=404, detail="Task not found")
        progress = await recalculate_project_progress(conn, project_id or None)
        await log_activity(
            conn,
            event_type="task_deleted",
            actor_id=staff["user_id"],
            project_id=project_id or None,
            metadata={"task_id": task_id},
        )
    return {"ok": True, "task_id": task_id, "project_progress": progress}
