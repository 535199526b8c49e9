"""
Tests for expense pricing, return/contract helpers and the UPDATE builder.

All pure, no database.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from studio.portal.contract_routes import check_status_move
from studio.portal.return_routes import stamp_processed_date
from studio.portal.schemas import ExpenseItem
from studio.portal.sql import build_update_sql
from studio.services.expenses import price_expense_items

# =============================================================================
# Expense pricing
# =============================================================================


class TestPriceExpenseItems:

    def test_totals(self):
        items, total = price_expense_items([
            {"name": "Paint", "quantity": 3, "unit_price": "24.99"},
            {"name": "Brushes", "quantity": 2, "unit_price": "5.50"},
        ])
        assert total == Decimal("85.97")
        assert items[0]["total_price"] == "74.97"
        assert items[1]["total_price"] == "11.00"

    def test_accepts_models(self):
        items, total = price_expense_items([ExpenseItem(name="Rug", quantity=Decimal("1"), unit_price=Decimal("400"))])
        assert total == Decimal("400.00")
        assert items[0]["name"] == "Rug"

    def test_empty(self):
        items, total = price_expense_items([])
        assert items == []
        assert total == Decimal("0.00")

    def test_fractional_quantity_rounds_to_cents(self):
        _, total = price_expense_items([{"name": "Fabric", "quantity": "2.5", "unit_price": "13.33"}])
        assert total == Decimal("33.33")

    def test_negative_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            price_expense_items([{"name": "Credit", "quantity": 1, "unit_price": "-5"}])


# =============================================================================
# Return / contract helpers
# =============================================================================


class TestStampProcessedDate:

    TODAY = date(2026, 4, 2)

    @pytest.mark.parametrize("status", ["processed", "refunded", "exchanged"])
    def test_first_handled_status_stamps(self, status):
        out = stamp_processed_date({"status": status}, None, self.TODAY)
        assert out["processed_date"] == self.TODAY

    def test_existing_processed_date_kept(self):
        out = stamp_processed_date({"status": "refunded"}, date(2026, 3, 30), self.TODAY)
        assert "processed_date" not in out

    def test_explicit_processed_date_wins(self):
        out = stamp_processed_date({"status": "processed", "processed_date": date(2026, 4, 1)}, None, self.TODAY)
        assert out["processed_date"] == date(2026, 4, 1)

    def test_pending_not_stamped(self):
        assert stamp_processed_date({"notes": "x"}, None, self.TODAY) == {"notes": "x"}


class TestContractStatusMove:

    def test_forward_allowed(self):
        check_status_move("draft", "sent")
        check_status_move("sent", "signed")
        check_status_move("signed", "signed")

    def test_backward_rejected(self):
        with pytest.raises(HTTPException) as exc:
            check_status_move("signed", "draft")
        assert exc.value.status_code == 400


# =============================================================================
# build_update_sql
# =============================================================================


class TestBuildUpdateSql:

    COLUMNS = {"name": "text", "budget": "numeric", "rooms": "text[]"}

    def test_builds_positional_assignments(self):
        sql, args = build_update_sql(
            "studio.projects",
            {"name": "Loft", "budget": Decimal("10")},
            self.COLUMNS,
            "id",
        )
        assert "SET name = $2::text, budget = $3::numeric, updated_at = now()" in sql
        assert "WHERE id = $1::uuid" in sql
        assert sql.endswith("RETURNING id;")
        assert args == ["Loft", Decimal("10")]

    def test_ignores_unknown_columns(self):
        sql, args = build_update_sql("studio.projects", {"id": "x", "rooms": ["den"]}, self.COLUMNS, "id")
        assert "id = $2" not in sql
        assert args == [["den"]]

    def test_nothing_to_update(self):
        assert build_update_sql("studio.projects", {"progress": 5}, self.COLUMNS, "id") == ("", [])
