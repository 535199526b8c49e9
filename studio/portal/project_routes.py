import logging

import asyncpg
from fastapi import APIRouter, Depends, HTTPException

from ..activity import log_activity
from ..engine.progress import calculate_project_progress, get_all_stage_progress, get_progress_breakdown
from ..engine.stages import display_name
from ..services.projects import load_project, load_project_tasks, recalculate_project_progress
from .auth import ensure_client_access, get_conn, is_staff, require_owner, require_staff, require_user
from .schemas import ProjectCreate, ProjectUpdate
from .sql import build_update_sql

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])

PROJECT_COLUMNS = """
    id::text AS id, client_id::text AS client_id, name, status, budget, spent,
    start_date, expected_completion, description, rooms, progress, created_at
"""

UPDATABLE = {
    "name": "text",
    "status": "text",
    "budget": "numeric",
    "start_date": "date",
    "expected_completion": "date",
    "description": "text",
    "rooms": "text[]",
}


async def _load_visible_project(conn: asyncpg.Connection, project_id: str, user: dict) -> dict:
    project = await load_project(conn, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    ensure_client_access(user, project["client_id"])
    return project


@router.get("")
async def list_projects(
    status: str | None = None,
    client_id: str | None = None,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    if not is_staff(user):
        if not user["client_id"]:
            return {"projects": []}
        client_id = user["client_id"]

    rows = await conn.fetch(
        f"""
        SELECT {PROJECT_COLUMNS}
        FROM studio.projects
        WHERE ($1::text IS NULL OR status = $1)
          AND ($2::uuid IS NULL OR client_id = $2::uuid)
        ORDER BY created_at DESC
        """,
        status,
        client_id,
    )
    projects = []
    for r in rows:
        p = dict(r)
        p["stage_name"] = display_name(p["status"])
        projects.append(p)
    return {"projects": projects}


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    project = await _load_visible_project(conn, project_id, user)
    project["stage_name"] = display_name(project["status"])
    return {"project": project}


@router.get("/{project_id}/progress")
async def project_progress(
    project_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    project = await _load_visible_project(conn, project_id, user)
    tasks = await load_project_tasks(conn, project_id)
    breakdown = get_progress_breakdown(project["status"], tasks)
    return {"project_id": project_id, **breakdown.to_dict()}


@router.get("/{project_id}/timeline")
async def project_timeline(
    project_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    project = await _load_visible_project(conn, project_id, user)
    tasks = await load_project_tasks(conn, project_id)
    return {
        "project_id": project_id,
        "status": project["status"],
        "progress": calculate_project_progress(project["status"], tasks),
        "stages": [s.to_dict() for s in get_all_stage_progress(project["status"], tasks)],
    }


@router.post("", status_code=201)
async def create_project(
    body: ProjectCreate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    # A new project has no tasks yet
    initial_progress = calculate_project_progress(body.status, [])

    async with conn.transaction():
        client = await conn.fetchval("SELECT 1 FROM studio.clients WHERE id = $1::uuid", body.client_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        row = await conn.fetchrow(
            f"""
            INSERT INTO studio.projects (
                client_id, name, status, budget, spent, start_date,
                expected_completion, description, rooms, progress
            ) VALUES ($1::uuid, $2, $3, $4, 0, $5, $6, $7, $8, $9)
            RETURNING {PROJECT_COLUMNS}
            """,
            body.client_id, body.name, body.status, body.budget, body.start_date,
            body.expected_completion, body.description, body.rooms, initial_progress,
        )
        await log_activity(
            conn,
            event_type="project_created",
            actor_id=staff["user_id"],
            project_id=row["id"],
            metadata={"name": body.name, "status": body.status},
        )
    return {"project": dict(row)}


@router.patch("/{project_id}")
async def update_project(
    project_id: str,
    body: ProjectUpdate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    updates = body.model_dump(exclude_unset=True)
    sql, args = build_update_sql("studio.projects", updates, UPDATABLE, PROJECT_COLUMNS)
    if not sql:
        raise HTTPException(status_code=400, detail="Nothing to update")

    async with conn.transaction():
        before = await load_project(conn, project_id)
        if before is None:
            raise HTTPException(status_code=404, detail="Project not found")

        row = await conn.fetchrow(sql, project_id, *args)
        project = dict(row)

        if "status" in updates and updates["status"] != before["status"]:
            project["progress"] = await recalculate_project_progress(conn, project_id)
            await log_activity(
                conn,
                event_type="project_status_changed",
                actor_id=staff["user_id"],
                project_id=project_id,
                metadata={"from": before["status"], "to": updates["status"]},
            )
    return {"project": project}


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    owner: dict = Depends(require_owner),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        deleted = await conn.fetchval(
            "DELETE FROM studio.projects WHERE id = $1::uuid RETURNING id::text",
            project_id,
        )
        if not deleted:
            raise HTTPException(status_code=404, detail="Project not found")
        await log_activity(
            conn,
            event_type="project_deleted",
            actor_id=owner["user_id"],
            metadata={"project_id": project_id},
        )
    logger.info("project %s deleted by %s", project_id, owner["user_id"])
    return {"ok": True, "project_id": project_id}
