"""Weighted-average unit cost for stock receipts."""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Tuple

from accounts.exceptions import InvalidAmount, InvalidQuantity

CENT = Decimal('0.01')


def weighted_average(old_quantity: int, old_unit_price: Any, incoming_quantity: int,
                     incoming_total_cost: Any) -> Tuple[Decimal, int]:
    """Return ``(new_unit_price, new_quantity)`` after receiving stock.

    With no stock on hand the incoming unit cost replaces the old price.
    No rounding is applied here.
    """
    if isinstance(incoming_quantity, bool) or int(incoming_quantity) != incoming_quantity or incoming_quantity <= 0:
        raise InvalidQuantity('Incoming quantity must be a positive whole number.')
    if old_quantity < 0:
        raise InvalidQuantity('Stock on hand cannot be negative.')
    cost = Decimal(str(incoming_total_cost))
    if cost < 0:
        raise InvalidAmount('Total cost cannot be negative.')

    new_quantity = old_quantity + incoming_quantity
    if old_quantity == 0:
        return cost / Decimal(incoming_quantity), new_quantity
    old_value = Decimal(old_quantity) * Decimal(str(old_unit_price))
    return (old_value + cost) / Decimal(new_quantity), new_quantity


def display_price(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
