"""
Overdue-return follow-up planning.

Decides which follow-up tasks to create or escalate for returns that are past
their return date. Pure: the caller loads rows and applies the plan
(see studio.services.returns_check).
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

OPEN_RETURN_STATUSES: frozenset[str] = frozenset(["pending", "processed"])
CLOSED_RETURN_STATUSES: frozenset[str] = frozenset(["exchanged", "refunded", "completed"])

URGENT_AFTER_DAYS = 5
FOLLOWUP_DUE_DAYS = 2
FOLLOWUP_TITLE_MARKER = "Return Follow-up"
URGENT_PREFIX = "URGENT: "

_RETURN_ID_RE = re.compile(r"Return ID: ([a-f0-9-]+)")


@dataclass
class TaskCreate:
    return_id: str
    project_id: Optional[str]
    client_id: Optional[str]
    title: str
    description: str
    priority: str
    due_date: date
    days_overdue: int
    status: str = "pending"
    category: str = "administrative"
    visible_to_client: bool = False


@dataclass
class TaskEscalation:
    task_id: str
    return_id: str
    project_id: Optional[str]
    title: str
    priority: str = "high"


@dataclass
class FollowupPlan:
    considered: int = 0
    creates: list[TaskCreate] = field(default_factory=list)
    escalations: list[TaskEscalation] = field(default_factory=list)


def _get(row: Any, name: str) -> Any:
    getter = getattr(row, "get", None)
    if callable(getter):
        return getter(name)
    return getattr(row, name, None)


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return _as_datetime(date.fromisoformat(value[:10]))
        except ValueError:
            return None
    return None


def extract_return_id(description: Optional[str]) -> Optional[str]:
    if not description:
        return None
    m = _RETURN_ID_RE.search(description)
    return m.group(1) if m else None


def days_overdue(return_date: Any, now: datetime) -> Optional[int]:
    when = _as_datetime(return_date)
    if when is None:
        return None
    return math.floor((now - when).total_seconds() / 86400)


def followup_title(reason: str, urgent: bool) -> str:
    prefix = URGENT_PREFIX if urgent else ""
    return f"{prefix}{FOLLOWUP_TITLE_MARKER} - {reason}"


def followup_description(return_id: str, reason: str, return_date: Any, overdue: int) -> str:
    original = return_date.isoformat() if hasattr(return_date, "isoformat") else str(return_date)
    return (
        f"OVERDUE: Return request has been pending for {overdue} days past the return date. "
        f"Return ID: {return_id}. Reason: {reason}. Original return date: {original[:10]}. "
        "Please process this return immediately or contact the client."
    )


def is_overdue_candidate(ret: Any, now: datetime) -> bool:
    if _get(ret, "status") not in OPEN_RETURN_STATUSES:
        return False
    when = _as_datetime(_get(ret, "return_date"))
    return when is not None and when.date() < now.date()


def plan_return_followups(
    returns: Iterable[Any],
    existing_tasks: Iterable[Any],
    now: datetime,
) -> FollowupPlan:
    """
    Build the follow-up plan for overdue returns.

    Args:
        returns: return rows (id, project_id, client_id, reason, status, return_date)
        existing_tasks: follow-up task rows (id, description, priority)
        now: timezone-aware "current" time

    A return already covered by a task is escalated to high priority once it
    is URGENT_AFTER_DAYS overdue; otherwise a new task is planned.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    tasks_by_return: dict[str, Any] = {}
    for task in existing_tasks:
        rid = extract_return_id(_get(task, "description"))
        if rid and rid not in tasks_by_return:
            tasks_by_return[rid] = task

    plan = FollowupPlan()
    for ret in returns:
        if _get(ret, "status") in CLOSED_RETURN_STATUSES:
            continue
        if not is_overdue_candidate(ret, now):
            continue
        plan.considered += 1

        return_id = str(_get(ret, "id"))
        reason = _get(ret, "reason") or ""
        overdue = days_overdue(_get(ret, "return_date"), now) or 0
        urgent = overdue >= URGENT_AFTER_DAYS
        project_id = _get(ret, "project_id")

        existing = tasks_by_return.get(return_id)
        if existing is not None:
            if urgent and _get(existing, "priority") != "high":
                plan.escalations.append(TaskEscalation(
                    task_id=str(_get(existing, "id")),
                    return_id=return_id,
                    project_id=str(project_id) if project_id else None,
                    title=followup_title(reason, urgent=True),
                ))
            continue

        plan.creates.append(TaskCreate(
            return_id=return_id,
            project_id=str(project_id) if project_id else None,
            client_id=str(_get(ret, "client_id")) if _get(ret, "client_id") else None,
            title=followup_title(reason, urgent=urgent),
            description=followup_description(return_id, reason, _get(ret, "return_date"), overdue),
            priority="high" if urgent else "medium",
            due_date=(now + timedelta(days=FOLLOWUP_DUE_DAYS)).date(),
            days_overdue=overdue,
        ))

    return plan
