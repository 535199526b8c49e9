from decimal import Decimal

import asyncpg
from fastapi import APIRouter, Depends, HTTPException

from ..activity import log_activity
from ..services.expenses import price_expense_items
from ..services.projects import load_project, recalculate_project_spent
from .auth import get_conn, require_staff
from .schemas import ExpenseCreate, ExpenseUpdate
from .sql import build_update_sql

router = APIRouter(prefix="/api/expenses", tags=["expenses"])

EXPENSE_COLUMNS = """
    id::text AS id, project_id::text AS project_id, client_id::text AS client_id,
    title, description, items, total_amount, expense_date, category,
    receipt_key, notes, created_at
"""

UPDATABLE = {
    "title": "text",
    "description": "text",
    "items": "jsonb",
    "total_amount": "numeric",
    "expense_date": "date",
    "category": "text",
    "notes": "text",
}


def _priced(items) -> tuple[list, Decimal]:
    try:
        return price_expense_items(items)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
async def list_expenses(
    project_id: str,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    rows = await conn.fetch(
        f"""
        SELECT {EXPENSE_COLUMNS}
        FROM studio.expenses
        WHERE project_id = $1::uuid
        ORDER BY expense_date DESC, created_at DESC
        """,
        project_id,
    )
    return {"expenses": [dict(r) for r in rows]}


@router.post("", status_code=201)
async def create_expense(
    body: ExpenseCreate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    items, total = _priced(body.items)

    async with conn.transaction():
        project = await load_project(conn, body.project_id)
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")

        row = await conn.fetchrow(
            f"""
            INSERT INTO studio.expenses (
                project_id, client_id, title, description, items, total_amount,
                expense_date, category, notes
            ) VALUES ($1::uuid, $2::uuid, $3, $4, $5::jsonb, $6, $7, $8, $9)
            RETURNING {EXPENSE_COLUMNS}
            """,
            body.project_id, project["client_id"], body.title, body.description,
            items, total, body.expense_date, body.category, body.notes,
        )
        spent = await recalculate_project_spent(conn, body.project_id)
        await log_activity(
            conn,
            event_type="expense_added",
            actor_id=staff["user_id"],
            project_id=body.project_id,
            metadata={"expense_id": row["id"], "total_amount": str(total)},
        )
    return {"expense": dict(row), "project_spent": spent}


@router.patch("/{expense_id}")
async def update_expense(
    expense_id: str,
    body: ExpenseUpdate,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    updates = body.model_dump(exclude_unset=True)
    if body.items is not None:
        updates["items"], updates["total_amount"] = _priced(body.items)

    sql, args = build_update_sql("studio.expenses", updates, UPDATABLE, EXPENSE_COLUMNS)
    if not sql:
        raise HTTPException(status_code=400, detail="Nothing to update")

    async with conn.transaction():
        row = await conn.fetchrow(sql, expense_id, *args)
        if not row:
            raise HTTPException(status_code=404, detail="Expense not found")
        spent = await recalculate_project_spent(conn, row["project_id"])
        await log_activity(
            conn,
            event_type="expense_updated",
            actor_id=staff["user_id"],
            project_id=row["project_id"],
            metadata={"expense_id": expense_id, "fields": sorted(updates)},
        )
    return {"expense": dict(row), "project_spent": spent}


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: str,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        project_id = await conn.fetchval(
            "DELETE FROM studio.expenses WHERE id = $1::uuid RETURNING project_id::text",
            expense_id,
        )
        if project_id is None:
            raise HTTPException(status_code=404, detail="Expense not found")
        spent = await recalculate_project_spent(conn, project_id)
        await log_activity(
            conn,
            event_type="expense_deleted",
            actor_id=staff["user_id"],
            project_id=project_id,
            metadata={"expense_id": expense_id},
        )
    return {"ok": True, "expense_id": expense_id, "project_spent": spent}
