"""
Expense line pricing.

Item totals are quantity * unit price, the expense total is their sum.
Amounts are Decimal, quantized to cents.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

CENTS = Decimal("0.01")


def _money(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def price_expense_items(items: Iterable[Any]) -> tuple[list[dict[str, Any]], Decimal]:
    """Returns (priced items, expense total). Negative quantities or prices raise ValueError."""
    priced: list[dict[str, Any]] = []
    total = Decimal("0")
    for item in items:
        data = item if isinstance(item, dict) else item.model_dump()
        quantity = _money(data.get("quantity"))
        unit_price = _money(data.get("unit_price"))
        if quantity < 0 or unit_price < 0:
            raise ValueError("quantity and unit_price must be non-negative")
        line_total = (quantity * unit_price).quantize(CENTS, rounding=ROUND_HALF_UP)
        priced.append({
            "name": data.get("name", ""),
            "quantity": str(quantity),
            "unit_price": str(unit_price.quantize(CENTS, rounding=ROUND_HALF_UP)),
            "total_price": str(line_total),
        })
        total += line_total
    return priced, total.quantize(CENTS, rounding=ROUND_HALF_UP)
