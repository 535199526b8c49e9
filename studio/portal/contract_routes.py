import asyncpg
from fastapi import APIRouter, Body, Depends, HTTPException

from ..activity import log_activity
from .auth import ensure_client_access, get_conn, is_staff, require_staff, require_user
from .schemas import ContractCreate, ContractUpdate
from .sql import build_update_sql
from .storage import contract_key, head_object, presign_get, presign_put

router = APIRouter(prefix="/api/contracts", tags=["contracts"])

CONTRACT_COLUMNS = """
    id::text AS id, client_id::text AS client_id, project_id::text AS project_id,
    title, type, status, storage_key, file_name, created_at, sent_at, viewed_at,
    signed_at, signed_by, value, description, version
"""

UPDATABLE = {
    "title": "text",
    "type": "text",
    "status": "text",
    "value": "numeric",
    "description": "text",
    "signed_by": "text",
}

STATUS_ORDER = ["draft", "sent", "viewed", "signed", "completed"]

# status -> timestamp column stamped when the contract first reaches it
STATUS_TIMESTAMPS = {
    "sent": "sent_at",
    "viewed": "viewed_at",
    "signed": "signed_at",
}


def check_status_move(current: str, target: str) -> None:
    """Contracts only move forward through STATUS_ORDER."""
    if STATUS_ORDER.index(target) < STATUS_ORDER.index(current):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot move contract from {current} to {target}",
        )


@router.get("")
async def list_contracts(
    client_id: str | None = None,
    project_id: str | None = None,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    if not is_staff(user):
        if not user["client_id"]:
            return {"contracts": []}
        client_id = user["client_id"]
    rows = await conn.fetch(
        f"""
        SELECT {CONTRACT_COLUMNS}
        FROM studio.contracts
        WHERE ($1::uuid IS NULL OR client_id = $1::uuid)
          AND ($2::uuid IS NULL OR project_id = $2::uuid)
          AND ($3::boolean OR status <> 'draft')
        ORDER BY created_at DESC
        """,
        client_id,
        project_id,
        is_staff(user),
    )
    return {"contracts": [dict(r) for r in rows]}


@router.get("/{contract_id}")
async def get_contract(
    contract_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    row = await conn.fetchrow(f"SELECT {CONTRACT_COLUMNS} FROM studio.contracts WHERE id = $1::uuid", contract_id)
    if not row:
        raise HTTPException(status_code=404, detail="Contract not found")
    ensure_client_access(user, row["client_id"])
    # Drafts stay internal, same as in list_contracts
    if not is_staff(user) and row["status"] == "draft":
        raise HTTPException(status_code=404, detail="Contract not found")
    contract = dict(row)

    # First client view of a sent contract marks it viewed
    if not is_staff(user) and contract["status"] == "sent":
        row = await conn.fetchrow(
            f"""
            UPDATE studio.contracts
            SET status = 'viewed', viewed_at = COALESCE(viewed_at, now()), updated_at = now()
            WHERE id = $1::uuid
            RETURNING {CONTRACT_COLUMNS}
            """,
            contract_id,
        )
        contract = dict(row)
        await log_activity(
            conn,
            event_type="contract_viewed",
            actor_id=user["user_id"],
            project_id=contract["project_id"],
            metadata={"contract_id": contract_id},
        )

    if contract["storage_key"]:
        contract["download_url"] = presign_get(contract["storage_key"])
    return {"contract": contract}


@router.post("", status_code=201)
async def create_contract(
    body: ContractCreate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        row = await conn.fetchrow(
            f"""
            INSERT INTO studio.contracts (
                client_id, project_id, title, type, status, value, description, version
            ) VALUES ($1::uuid, $2::uuid, $3, $4, 'draft', $5, $6, 1)
            RETURNING {CONTRACT_COLUMNS}
            """,
            body.client_id, body.project_id, body.title, body.type, body.value, body.description,
        )
        await log_activity(
            conn,
            event_type="contract_created",
            actor_id=staff["user_id"],
            project_id=body.project_id,
            metadata={"contract_id": row["id"], "type": body.type},
        )
    return {"contract": dict(row)}


@router.patch("/{contract_id}")
async def update_contract(
    contract_id: str,
    body: ContractUpdate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    updates = body.model_dump(exclude_unset=True)
    sql, args = build_update_sql("studio.contracts", updates, UPDATABLE, CONTRACT_COLUMNS)
    if not sql:
        raise HTTPException(status_code=400, detail="Nothing to update")

    async with conn.transaction():
        current = await conn.fetchrow(
            "SELECT status FROM studio.contracts WHERE id = $1::uuid FOR UPDATE",
            contract_id,
        )
        if not current:
            raise HTTPException(status_code=404, detail="Contract not found")

        target = updates.get("status")
        if target:
            check_status_move(current["status"], target)

        row = await conn.fetchrow(sql, contract_id, *args)

        stamp = STATUS_TIMESTAMPS.get(target or "")
        if stamp and target != current["status"]:
            row = await conn.fetchrow(
                f"""
                UPDATE studio.contracts SET {stamp} = COALESCE({stamp}, now())
                WHERE id = $1::uuid
                RETURNING {CONTRACT_COLUMNS}
                """,
                contract_id,
            )
        await log_activity(
            conn,
            event_type="contract_updated",
            actor_id=staff["user_id"],
            project_id=row["project_id"],
            metadata={"contract_id": contract_id, "from": current["status"], "to": row["status"]},
        )
    return {"contract": dict(row)}


@router.post("/{contract_id}/upload-url")
async def contract_upload_url(
    contract_id: str,
    filename: str = Body(..., embed=True),
    content_type: str = Body("application/pdf", embed=True),
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    """New document revision: bumps `version` once a file was already attached."""
    async with conn.transaction():
        row = await conn.fetchrow(
            "SELECT client_id::text AS client_id, storage_key, version FROM studio.contracts WHERE id = $1::uuid FOR UPDATE",
            contract_id,
        )
        if not row:
            raise HTTPException(status_code=404, detail="Contract not found")

        version = row["version"] + 1 if row["storage_key"] else row["version"]
        key = contract_key(row["client_id"], contract_id, version, filename)
        upload_url = presign_put(key, content_type)
        await conn.execute(
            """
            UPDATE studio.contracts
            SET storage_key = $2, file_name = $3, version = $4, updated_at = now()
            WHERE id = $1::uuid
            """,
            contract_id, key, filename, version,
        )
    return {"contract_id": contract_id, "upload_url": upload_url, "storage_key": key, "version": version}


@router.post("/{contract_id}/confirm")
async def confirm_contract_upload(
    contract_id: str,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    key = await conn.fetchval("SELECT storage_key FROM studio.contracts WHERE id = $1::uuid", contract_id)
    if not key:
        raise HTTPException(status_code=404, detail="Contract document not found")
    meta = head_object(key)
    if not meta:
        raise HTTPException(status_code=400, detail="Object not found in storage")
    return {"contract_id": contract_id, "size_bytes": meta["size_bytes"]}


@router.delete("/{contract_id}")
async def delete_contract(
    contract_id: str,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        project_id = await conn.fetchval(
            "DELETE FROM studio.contracts WHERE id = $1::uuid RETURNING COALESCE(project_id::text, '')",
            contract_id,
        )
        if project_id is None:
            raise HTTPException(status_code=404, detail="Contract not found")
        await log_activity(
            conn,
            event_type="contract_deleted",
            actor_id=staff["user_id"],
            project_id=project_id or None,
            metadata={"contract_id": contract_id},
        )
    return {"ok": True, "contract_id": contract_id}
