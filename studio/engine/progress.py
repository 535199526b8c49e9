"""
Project progress: overall percentage and per-stage timeline.

Pure functions over a project's status and its (already filtered) tasks.
Tasks may be dicts, asyncpg records or any object with `category` and
`status` attributes. Nothing here raises on dirty data.
"""
from __future__ import annotations

import collections.abc
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .stages import (
    CONSULTATION,
    COMPLETE,
    INSTALLATION,
    ORDERING,
    STAGE_INDEX,
    STAGE_ORDER,
    STYLING,
    TERMINAL_STAGE,
    VISION_BOARD,
    display_name,
    resolve_stage,
    stage_for_category,
)

TASK_COMPLETED = "completed"

# stage -> (base percentage on arrival, width of the stage's interval)
# base(next) == base(stage) + weight(stage)
STAGE_CONFIG: dict[str, tuple[int, int]] = {
    CONSULTATION: (0, 20),
    VISION_BOARD: (20, 20),
    ORDERING: (40, 20),
    INSTALLATION: (60, 20),
    STYLING: (80, 20),
    COMPLETE: (100, 0),
}

# Credit given to a current stage that has no tasks mapped to it yet
NO_TASKS_RATIO = 0.5


@dataclass(frozen=True)
class StageProgress:
    stage: str
    display_name: str
    is_completed: bool
    is_current: bool
    progress: int
    task_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "display_name": self.display_name,
            "is_completed": self.is_completed,
            "is_current": self.is_current,
            "progress": self.progress,
            "task_count": self.task_count,
        }


@dataclass(frozen=True)
class ProgressBreakdown:
    total_progress: int
    base_progress: int
    current_stage: str
    current_stage_progress: int
    current_stage_tasks: int
    completed_current_stage_tasks: int
    task_completion_ratio: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_progress": self.total_progress,
            "base_progress": self.base_progress,
            "current_stage": self.current_stage,
            "current_stage_progress": self.current_stage_progress,
            "current_stage_tasks": self.current_stage_tasks,
            "completed_current_stage_tasks": self.completed_current_stage_tasks,
            "task_completion_ratio": self.task_completion_ratio,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _task_field(task: Any, name: str) -> Any:
    getter = getattr(task, "get", None)
    if callable(getter):
        return getter(name)
    return getattr(task, name, None)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_percent(value: int) -> int:
    return max(0, min(100, value))


def _tasks_by_stage(tasks: Optional[Iterable[Any]]) -> dict[str, tuple[int, int]]:
    """stage -> (mapped task count, completed count). Unmapped tasks are dropped."""
    counts = {stage: (0, 0) for stage in STAGE_ORDER}
    if not isinstance(tasks, collections.abc.Iterable):
        # None or anything else that is not a collection counts as no tasks
        return counts
    for task in tasks:
        if task is None:
            continue
        stage = stage_for_category(_task_field(task, "category"))
        if stage is None:
            continue
        total, done = counts[stage]
        if _task_field(task, "status") == TASK_COMPLETED:
            done += 1
        counts[stage] = (total + 1, done)
    return counts


def _completion_ratio(total: int, done: int) -> float:
    if total == 0:
        return NO_TASKS_RATIO
    return done / total


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def calculate_project_progress(status: Any, tasks: Optional[Iterable[Any]]) -> int:
    """Overall completion percentage (0-100) for a project."""
    current = resolve_stage(status)
    if current == TERMINAL_STAGE:
        return 100

    base, weight = STAGE_CONFIG[current]
    total, done = _tasks_by_stage(tasks)[current]
    ratio = _completion_ratio(total, done)
    return _clamp_percent(_round_half_up(base + ratio * weight))


def get_all_stage_progress(status: Any, tasks: Optional[Iterable[Any]]) -> list[StageProgress]:
    """One descriptor per stage, in lifecycle order, for the timeline view."""
    current = resolve_stage(status)
    current_rank = STAGE_INDEX[current]
    finished = current == TERMINAL_STAGE
    counts = _tasks_by_stage(tasks)

    result: list[StageProgress] = []
    for rank, stage in enumerate(STAGE_ORDER):
        total, done = counts[stage]
        is_completed = finished or rank < current_rank
        is_current = not finished and rank == current_rank

        if is_completed:
            progress = 100
        elif is_current:
            progress = _clamp_percent(_round_half_up(_completion_ratio(total, done) * 100))
        else:
            progress = 0

        result.append(StageProgress(
            stage=stage,
            display_name=display_name(stage),
            is_completed=is_completed,
            is_current=is_current,
            progress=progress,
            task_count=total,
        ))
    return result


def get_progress_breakdown(status: Any, tasks: Optional[Iterable[Any]]) -> ProgressBreakdown:
    """Figures behind the progress bar: base, current-stage share, task counts."""
    current = resolve_stage(status)
    task_list = list(tasks) if isinstance(tasks, collections.abc.Iterable) else []
    total_progress = calculate_project_progress(current, task_list)
    base, _ = STAGE_CONFIG[current]
    total, done = _tasks_by_stage(task_list)[current]

    return ProgressBreakdown(
        total_progress=total_progress,
        base_progress=base,
        current_stage=current,
        current_stage_progress=total_progress - base,
        current_stage_tasks=total,
        completed_current_stage_tasks=done,
        task_completion_ratio=_completion_ratio(total, done),
    )
