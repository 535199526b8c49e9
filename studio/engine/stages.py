"""
Canonical project stages and ordering.

Stages are string constants, not a Postgres ENUM.
A project's `status` column holds one of these values; its position in
STAGE_ORDER is the only thing comparisons may rely on.
"""
from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Canonical stages in lifecycle order
CONSULTATION = "consultation"
VISION_BOARD = "vision_board"
ORDERING = "ordering"
INSTALLATION = "installation"
STYLING = "styling"
COMPLETE = "complete"

STAGE_ORDER: list[str] = [
    CONSULTATION,
    VISION_BOARD,
    ORDERING,
    INSTALLATION,
    STYLING,
    COMPLETE,
]

FIRST_STAGE = CONSULTATION
TERMINAL_STAGE = COMPLETE

# stage -> rank (0-indexed)
STAGE_INDEX: dict[str, int] = {s: i for i, s in enumerate(STAGE_ORDER)}

ALL_STAGES: frozenset[str] = frozenset(STAGE_ORDER)

STAGE_DISPLAY_NAMES: dict[str, str] = {
    CONSULTATION: "Initial Consultation",
    VISION_BOARD: "Vision Board Creation",
    ORDERING: "Ordering & Procurement",
    INSTALLATION: "Installation Phase",
    STYLING: "Final Styling",
    COMPLETE: "Project Complete",
}
UNKNOWN_STAGE_NAME = "Unknown Stage"

# Task category -> stage it feeds progress into.
# Categories missing from this table are ignored by the progress engine.
TASK_CATEGORY_TO_STAGE: dict[str, str] = {
    "consultation": CONSULTATION,
    "design": VISION_BOARD,
    "ordering": ORDERING,
    "installation": INSTALLATION,
    "communication": STYLING,  # client check-ins cluster around final styling
    "administrative": CONSULTATION,
}

TASK_CATEGORIES: frozenset[str] = frozenset(TASK_CATEGORY_TO_STAGE)


def is_valid_stage(value: object) -> bool:
    return isinstance(value, str) and value in ALL_STAGES


def resolve_stage(value: object) -> str:
    """Return `value` if it names a stage, otherwise the first stage."""
    if is_valid_stage(value):
        return value  # type: ignore[return-value]
    logger.warning("unknown project status %r, treating as %s", value, FIRST_STAGE)
    return FIRST_STAGE


def stage_rank(stage: object) -> int:
    return STAGE_INDEX[resolve_stage(stage)]


def next_stage(stage: object) -> Optional[str]:
    rank = stage_rank(stage)
    if rank + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[rank + 1]


def stage_for_category(category: object) -> Optional[str]:
    if not isinstance(category, str):
        return None
    return TASK_CATEGORY_TO_STAGE.get(category)


def display_name(stage: object) -> str:
    if not isinstance(stage, str):
        return UNKNOWN_STAGE_NAME
    return STAGE_DISPLAY_NAMES.get(stage, UNKNOWN_STAGE_NAME)
