"""Tests for the stage table and its lookups."""

from __future__ import annotations

import logging

import pytest

from studio.engine import stages
from studio.engine.stages import (
    STAGE_INDEX,
    STAGE_ORDER,
    display_name,
    next_stage,
    resolve_stage,
    stage_for_category,
    stage_rank,
)
from studio.engine.progress import STAGE_CONFIG


class TestStageTable:

    def test_order(self):
        assert STAGE_ORDER == [
            "consultation",
            "vision_board",
            "ordering",
            "installation",
            "styling",
            "complete",
        ]

    def test_rank_follows_order_not_spelling(self):
        # lexical order would put "complete" before "consultation"
        assert STAGE_INDEX["consultation"] < STAGE_INDEX["complete"]
        assert stage_rank("styling") > stage_rank("installation")

    def test_thresholds_strictly_increase_and_chain(self):
        bases = [STAGE_CONFIG[s][0] for s in STAGE_ORDER]
        assert bases == sorted(set(bases))
        for here, after in zip(STAGE_ORDER, STAGE_ORDER[1:]):
            base, weight = STAGE_CONFIG[here]
            assert base + weight == STAGE_CONFIG[after][0]
        assert STAGE_CONFIG["complete"] == (100, 0)

    def test_every_stage_has_a_threshold_and_name(self):
        for s in STAGE_ORDER:
            assert s in STAGE_CONFIG
            assert display_name(s) != stages.UNKNOWN_STAGE_NAME


class TestResolveStage:

    @pytest.mark.parametrize("value", STAGE_ORDER)
    def test_valid_passthrough(self, value):
        assert resolve_stage(value) == value

    @pytest.mark.parametrize("value", ["archived", "", None, 3, "Vision_Board"])
    def test_unknown_falls_back_to_first(self, value):
        assert resolve_stage(value) == "consultation"

    def test_unknown_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="studio.engine.stages"):
            resolve_stage("archived")
        assert "archived" in caplog.text


class TestLookups:

    def test_next_stage(self):
        assert next_stage("consultation") == "vision_board"
        assert next_stage("styling") == "complete"
        assert next_stage("complete") is None

    def test_next_stage_of_unknown_is_second_stage(self):
        assert next_stage("archived") == "vision_board"

    @pytest.mark.parametrize(
        "category, stage",
        [
            ("consultation", "consultation"),
            ("design", "vision_board"),
            ("ordering", "ordering"),
            ("installation", "installation"),
            ("communication", "styling"),
            ("administrative", "consultation"),
        ],
    )
    def test_category_mapping(self, category, stage):
        assert stage_for_category(category) == stage

    @pytest.mark.parametrize("category", ["landscaping", "", None, 7])
    def test_unmapped_category(self, category):
        assert stage_for_category(category) is None

    def test_display_name_unknown(self):
        assert display_name("archived") == "Unknown Stage"
        assert display_name(None) == "Unknown Stage"
