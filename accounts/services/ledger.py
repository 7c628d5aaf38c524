"""
Running-balance ledger engine.

A ledger is built from :class:`LedgerTransaction` rows and a seed
balance carried forward from before the reporting window.  The engine
never queries the database itself: callers hand it a
:class:`TransactionProvider` (see ``accounts.services.ledgers`` for the ORM
backed ones) or a plain list through :class:`InMemoryProvider`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from itertools import groupby
from typing import Any, Dict, Iterable, List, Optional, Protocol

CREDIT = 'credit'
DEBIT = 'debit'

ZERO = Decimal('0')


def _d(x: Any) -> Decimal:
    """Coerce ORM values (Decimal, int, float, None) to Decimal."""
    if x is None:
        return ZERO
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


@dataclass(frozen=True)
class LedgerTransaction:
    id: int
    date: date
    amount: Decimal
    direction: str
    description: str = ''
    reference: str = ''
    category: str = ''
    # creation-order tie-break for rows merged from several tables
    seq: int = 0
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction == CREDIT else -self.amount

    def sort_key(self):
        return (self.date, self.seq, self.id)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'date': self.date.isoformat(),
            'amount': self.amount,
            'direction': self.direction,
            'description': self.description,
            'reference': self.reference,
            'category': self.category,
            **self.extra,
        }


@dataclass
class LedgerEntry:
    date: date
    previous_balance: Decimal
    credit: Decimal
    debit: Decimal
    balance: Decimal
    details: List[LedgerTransaction]

    def as_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'previous_balance': self.previous_balance,
            'credit': self.credit,
            'debit': self.debit,
            'balance': self.balance,
            'details': [t.as_dict() for t in self.details],
        }


@dataclass
class Ledger:
    previous_balance: Decimal
    entries: List[LedgerEntry]
    total_credit: Decimal
    total_debit: Decimal
    final_balance: Decimal

    def as_dict(self) -> Dict[str, Any]:
        return {
            'previous_balance': self.previous_balance,
            'rows': [e.as_dict() for e in self.entries],
            'totals': {
                'credit': self.total_credit,
                'debit': self.total_debit,
                'balance': self.final_balance,
            },
        }


class TransactionProvider(Protocol):
    """Source of ledger rows for one filtered ledger."""

    def balance_before(self, start: Optional[date]) -> Decimal:
        """Signed sum of every matching transaction dated before ``start``."""
        ...

    def within(self, start: Optional[date], end: Optional[date]) -> Iterable[LedgerTransaction]:
        """Matching transactions with ``start <= date <= end`` (open bounds allowed)."""
        ...


def fold_balance(transactions: Iterable[LedgerTransaction], before: Optional[date] = None) -> Decimal:
    """Fold signed amounts, optionally only those dated before ``before``."""
    total = ZERO
    for t in sorted(transactions, key=LedgerTransaction.sort_key):
        if before is not None and t.date >= before:
            break
        total += t.signed_amount
    return total


def build_ledger(
    transactions: Iterable[LedgerTransaction],
    previous_balance: Any = ZERO,
    *,
    group_by_date: bool = False,
) -> Ledger:
    """Build ledger rows over in-window transactions.

    Rows are ordered by date, then creation order (``seq``, id).  With
    ``group_by_date`` every date becomes one row whose ``details`` keep
    the individual transactions.
    """
    seed = _d(previous_balance)
    ordered = sorted(transactions, key=LedgerTransaction.sort_key)
    if group_by_date:
        groups = [list(g) for _, g in groupby(ordered, key=lambda t: t.date)]
    else:
        groups = [[t] for t in ordered]

    running = seed
    total_credit = ZERO
    total_debit = ZERO
    entries: List[LedgerEntry] = []
    for group in groups:
        credit = sum((t.amount for t in group if t.direction == CREDIT), ZERO)
        debit = sum((t.amount for t in group if t.direction == DEBIT), ZERO)
        before = running
        running = running + credit - debit
        total_credit += credit
        total_debit += debit
        entries.append(LedgerEntry(group[0].date, before, credit, debit, running, group))

    return Ledger(seed, entries, total_credit, total_debit, running)


def compile_ledger(
    provider: TransactionProvider,
    start: Optional[date] = None,
    end: Optional[date] = None,
    *,
    group_by_date: bool = False,
) -> Ledger:
    seed = provider.balance_before(start) if start else ZERO
    return build_ledger(provider.within(start, end), seed, group_by_date=group_by_date)


class InMemoryProvider:
    """Provider over transactions already held in memory."""

    def __init__(self, transactions: Iterable[LedgerTransaction]):
        self.transactions = list(transactions)

    def balance_before(self, start: Optional[date]) -> Decimal:
        return fold_balance(self.transactions, before=start)

    def within(self, start: Optional[date], end: Optional[date]) -> List[LedgerTransaction]:
        return [
            t for t in self.transactions
            if (start is None or t.date >= start) and (end is None or t.date <= end)
        ]
