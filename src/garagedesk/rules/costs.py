from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from ..domain import PartUsage, to_decimal

CENTS = Decimal("0.01")


def parts_subtotal(parts_used: Iterable[PartUsage]) -> Decimal:
    total = Decimal("0")
    for usage in parts_used:
        if usage.quantity < 1:
            raise ValueError(f"Part {usage.part_id}: quantity must be >= 1")
        if usage.unit_cost < 0:
            raise ValueError(f"Part {usage.part_id}: unit cost cannot be negative")
        total += usage.unit_cost * usage.quantity
    return total


def compute_total(base_cost: Decimal | int | float | str, parts_used: Iterable[PartUsage]) -> Decimal:
    """Service base cost plus consumed parts, rounded half-up to cents."""
    base = to_decimal(base_cost)
    if base < 0:
        raise ValueError("Base cost cannot be negative")
    return (base + parts_subtotal(parts_used)).quantize(CENTS, rounding=ROUND_HALF_UP)
