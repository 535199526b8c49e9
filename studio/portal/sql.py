"""Small SQL builders shared by the CRUD routers."""
from __future__ import annotations

from typing import Any


def build_update_sql(
    table: str,
    updates: dict[str, Any],
    columns: dict[str, str],
    returning: str,
) -> tuple[str, list[Any]]:
    """
    Build a partial UPDATE for the row whose id is bound to $1.

    `columns` maps each updatable column to its Postgres cast; keys of
    `updates` outside that map are ignored. Returns ("", []) when nothing
    is left to update.
    """
    assignments: list[str] = []
    args: list[Any] = []
    for name, value in updates.items():
        cast = columns.get(name)
        if cast is None:
            continue
        args.append(value)
        assignments.append(f"{name} = ${len(args) + 1}::{cast}")

    if not assignments:
        return "", []

    sql = (
        f"UPDATE {table}\n"
        f"SET {', '.join(assignments)}, updated_at = now()\n"
        f"WHERE id = $1::uuid\n"
        f"RETURNING {returning};"
    )
    return sql, args
