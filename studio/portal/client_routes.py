import asyncpg
from fastapi import APIRouter, Depends, HTTPException

from ..activity import log_activity
from .auth import ensure_client_access, get_conn, is_staff, require_staff, require_user
from .schemas import ClientCreate, ClientUpdate
from .sql import build_update_sql

router = APIRouter(prefix="/api/clients", tags=["clients"])

CLIENT_COLUMNS = """
    id::text AS id, user_id::text AS user_id, name, email, phone, status, budget,
    move_in_date, reveal_date, style_preferences, notes, lead_source, address, created_at
"""

UPDATABLE = {
    "name": "text",
    "email": "text",
    "phone": "text",
    "status": "text",
    "budget": "numeric",
    "move_in_date": "date",
    "reveal_date": "date",
    "style_preferences": "text[]",
    "notes": "text",
    "lead_source": "text",
    "address": "text",
}


@router.get("")
async def list_clients(
    status: str | None = None,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    if not is_staff(user):
        row = await conn.fetchrow(
            f"SELECT {CLIENT_COLUMNS} FROM studio.clients WHERE id = $1::uuid",
            user["client_id"],
        )
        return {"clients": [dict(row)] if row else []}

    rows = await conn.fetch(
        f"""
        SELECT {CLIENT_COLUMNS}
        FROM studio.clients
        WHERE ($1::text IS NULL OR status = $1)
        ORDER BY created_at DESC
        """,
        status,
    )
    return {"clients": [dict(r) for r in rows]}


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    ensure_client_access(user, client_id)
    row = await conn.fetchrow(
        f"SELECT {CLIENT_COLUMNS} FROM studio.clients WHERE id = $1::uuid",
        client_id,
    )
    if not row:
        raise HTTPException(status_code=404, detail="Client not found")

    projects = await conn.fetch(
        """
        SELECT id::text AS id, name, status, progress, budget, spent
        FROM studio.projects
        WHERE client_id = $1::uuid
        ORDER BY created_at DESC
        """,
        client_id,
    )
    return {"client": dict(row), "projects": [dict(p) for p in projects]}


@router.post("", status_code=201)
async def create_client(
    body: ClientCreate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        row = await conn.fetchrow(
            f"""
            INSERT INTO studio.clients (
                name, email, phone, status, budget, move_in_date, reveal_date,
                style_preferences, notes, lead_source, address
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            RETURNING {CLIENT_COLUMNS}
            """,
            body.name, body.email.lower().strip(), body.phone, body.status, body.budget,
            body.move_in_date, body.reveal_date, body.style_preferences, body.notes,
            body.lead_source, body.address,
        )
        await log_activity(
            conn,
            event_type="client_created",
            actor_id=staff["user_id"],
            metadata={"client_id": row["id"], "name": body.name},
        )
    return {"client": dict(row)}


@router.patch("/{client_id}")
async def update_client(
    client_id: str,
    body: ClientUpdate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    updates = body.model_dump(exclude_unset=True)
    sql, args = build_update_sql("studio.clients", updates, UPDATABLE, CLIENT_COLUMNS)
    if not sql:
        raise HTTPException(status_code=400, detail="Nothing to update")

    row = await conn.fetchrow(sql, client_id, *args)
    if not row:
        raise HTTPException(status_code=404, detail="Client not found")
    await log_activity(
        conn,
        event_type="client_updated",
        actor_id=staff["user_id"],
        metadata={"client_id": client_id, "fields": sorted(updates)},
    )
    return {"client": dict(row)}
