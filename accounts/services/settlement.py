"""
FIFO selection of the advance pool a deduction is taken from.

Pools are considered oldest first (``payment_date`` then id) and a
deduction is never split between pools.  Two policies exist:

``sufficient`` (default)
    The oldest pool whose remaining balance covers the amount is used,
    skipping older pools that are too small.

``oldest``
    The oldest pool that still has money must cover the whole amount.
    Newer pools are only reached once the older ones are exhausted.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Sequence, TypeVar

from accounts.exceptions import InsufficientBalance, InvalidAmount

POLICY_OLDEST = 'oldest'
POLICY_SUFFICIENT = 'sufficient'
POLICIES = (POLICY_OLDEST, POLICY_SUFFICIENT)

P = TypeVar('P')


def fifo_order(pools: Iterable[P]) -> list[P]:
    return sorted(pools, key=lambda p: (p.payment_date, p.id))


def select_pool(pools: Sequence[P], amount: Decimal, *, policy: str = POLICY_SUFFICIENT) -> P:
    """Return the pool to deduct ``amount`` from.

    ``pools`` are objects exposing ``payment_date``, ``id`` and
    ``remaining_amount``; callers pass only active pools.
    """
    if amount <= 0:
        raise InvalidAmount('Deduction amount must be greater than zero.')
    if policy not in POLICIES:
        raise ValueError(f'unknown settlement policy {policy!r}')

    open_pools = [p for p in fifo_order(pools) if p.remaining_amount > 0]
    if policy == POLICY_OLDEST:
        if open_pools and open_pools[0].remaining_amount >= amount:
            return open_pools[0]
        available = open_pools[0].remaining_amount if open_pools else Decimal('0')
        raise InsufficientBalance(
            f'Insufficient advance balance: oldest advance has {available}, required {amount}.'
        )

    for pool in open_pools:
        if pool.remaining_amount >= amount:
            return pool
    raise InsufficientBalance(f'No advance has a remaining balance of {amount} or more.')


def apply_deduction(pool, amount: Decimal) -> None:
    """Move ``amount`` from remaining to used and update the status."""
    pool.used_amount = pool.used_amount + amount
    pool.remaining_amount = pool.advance_amount - pool.used_amount
    if pool.remaining_amount <= 0:
        pool.status = pool.STATUS_EXHAUSTED
