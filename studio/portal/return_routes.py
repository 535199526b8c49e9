from datetime import date

import asyncpg
from fastapi import APIRouter, Depends, HTTPException

from ..activity import log_activity
from ..services.projects import load_project
from .auth import ensure_client_access, get_conn, is_staff, require_staff, require_user
from .schemas import ReturnCreate, ReturnUpdate
from .sql import build_update_sql

router = APIRouter(prefix="/api/returns", tags=["returns"])

RETURN_COLUMNS = """
    id::text AS id, project_id::text AS project_id, client_id::text AS client_id,
    items, reason, status, amount, return_date, processed_date, notes, created_at
"""

UPDATABLE = {
    "items": "jsonb",
    "reason": "text",
    "status": "text",
    "amount": "numeric",
    "return_date": "date",
    "processed_date": "date",
    "notes": "text",
}

# Statuses that mean the return has been handled by the vendor
HANDLED_STATUSES = frozenset(["processed", "refunded", "exchanged"])


def stamp_processed_date(updates: dict, current_processed: date | None, today: date) -> dict:
    """Set processed_date the first time a return reaches a handled status."""
    if (
        updates.get("status") in HANDLED_STATUSES
        and current_processed is None
        and "processed_date" not in updates
    ):
        updates = {**updates, "processed_date": today}
    return updates


@router.get("")
async def list_returns(
    project_id: str | None = None,
    status: str | None = None,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    client_id = None if is_staff(user) else user["client_id"]
    if not is_staff(user) and not client_id:
        return {"returns": []}
    rows = await conn.fetch(
        f"""
        SELECT {RETURN_COLUMNS}
        FROM studio.returns
        WHERE ($1::uuid IS NULL OR project_id = $1::uuid)
          AND ($2::text IS NULL OR status = $2)
          AND ($3::uuid IS NULL OR client_id = $3::uuid)
        ORDER BY return_date DESC
        """,
        project_id,
        status,
        client_id,
    )
    return {"returns": [dict(r) for r in rows]}


@router.get("/{return_id}")
async def get_return(
    return_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    row = await conn.fetchrow(f"SELECT {RETURN_COLUMNS} FROM studio.returns WHERE id = $1::uuid", return_id)
    if not row:
        raise HTTPException(status_code=404, detail="Return not found")
    ensure_client_access(user, row["client_id"])
    return {"return": dict(row)}


@router.post("", status_code=201)
async def create_return(
    body: ReturnCreate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    items = [i.model_dump(mode="json") for i in body.items]
    async with conn.transaction():
        project = await load_project(conn, body.project_id)
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")

        row = await conn.fetchrow(
            f"""
            INSERT INTO studio.returns (
                project_id, client_id, items, reason, status, amount, return_date, notes
            ) VALUES ($1::uuid, $2::uuid, $3::jsonb, $4, $5, $6, $7, $8)
            RETURNING {RETURN_COLUMNS}
            """,
            body.project_id, project["client_id"], items, body.reason, body.status,
            body.amount, body.return_date, body.notes,
        )
        await log_activity(
            conn,
            event_type="return_created",
            actor_id=staff["user_id"],
            project_id=body.project_id,
            metadata={"return_id": row["id"], "reason": body.reason},
        )
    return {"return": dict(row)}


@router.patch("/{return_id}")
async def update_return(
    return_id: str,
    body: ReturnUpdate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    updates = body.model_dump(exclude_unset=True)
    if body.items is not None:
        updates["items"] = [i.model_dump(mode="json") for i in body.items]

    async with conn.transaction():
        current = await conn.fetchrow(
            "SELECT status, processed_date FROM studio.returns WHERE id = $1::uuid",
            return_id,
        )
        if not current:
            raise HTTPException(status_code=404, detail="Return not found")

        updates = stamp_processed_date(updates, current["processed_date"], date.today())
        sql, args = build_update_sql("studio.returns", updates, UPDATABLE, RETURN_COLUMNS)
        if not sql:
            raise HTTPException(status_code=400, detail="Nothing to update")

        row = await conn.fetchrow(sql, return_id, *args)
        await log_activity(
            conn,
            event_type="return_updated",
            actor_id=staff["user_id"],
            project_id=row["project_id"],
            metadata={"return_id": return_id, "from": current["status"], "to": row["status"]},
        )
    return {"return": dict(row)}
