"""
ORM-backed transaction providers and the ledger reports built on them.

Each provider owns one filtered queryset; the seed balance comes from an
aggregate over rows before the window and the display rows from the
rows inside it, so both paths always see the same filter.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterator, Optional

from django.db.models import Q, Sum

from accounts.models import HospitalFundTransaction, HospitalTransaction
from accounts.services.ledger import CREDIT, DEBIT, LedgerTransaction, compile_ledger

ZERO = Decimal('0')

HOUSE_SECURITY = 'House Security'


def _window(qs, field: str, start: Optional[date], end: Optional[date]):
    if start:
        qs = qs.filter(**{f'{field}__gte': start})
    if end:
        qs = qs.filter(**{f'{field}__lte': end})
    return qs


class FundTransactionProvider:
    """Fund in (credit) and fund out (debit), optionally for one investor."""

    def __init__(self, investor: Optional[str] = None):
        qs = HospitalFundTransaction.objects.select_related('added_by')
        if investor:
            qs = qs.filter(purpose=investor)
        self.qs = qs

    def balance_before(self, start: Optional[date]) -> Decimal:
        if not start:
            return ZERO
        sums = self.qs.filter(date__lt=start).aggregate(
            fund_in=Sum('amount', filter=Q(type=HospitalFundTransaction.TYPE_FUND_IN)),
            fund_out=Sum('amount', filter=Q(type=HospitalFundTransaction.TYPE_FUND_OUT)),
        )
        return (sums['fund_in'] or ZERO) - (sums['fund_out'] or ZERO)

    def within(self, start: Optional[date], end: Optional[date]) -> Iterator[LedgerTransaction]:
        for row in _window(self.qs, 'date', start, end).order_by('date', 'id'):
            yield LedgerTransaction(
                id=row.id,
                date=row.date,
                amount=row.amount,
                direction=CREDIT if row.type == HospitalFundTransaction.TYPE_FUND_IN else DEBIT,
                description=row.description,
                reference=row.voucher_no,
                category=row.purpose,
                extra={'investor_name': row.purpose},
            )


class HouseSecurityProvider:
    """Expenses booked under House Security.

    The ledger tracks money spent, so every expense is a credit to the
    running total.
    """

    def __init__(self, search: Optional[str] = None):
        qs = HospitalTransaction.objects.filter(type=HospitalTransaction.TYPE_EXPENSE).filter(
            Q(expense_category__name=HOUSE_SECURITY) | Q(category=HOUSE_SECURITY)
        )
        if search:
            qs = qs.filter(description__icontains=search)
        self.qs = qs

    def balance_before(self, start: Optional[date]) -> Decimal:
        if not start:
            return ZERO
        return self.qs.filter(transaction_date__lt=start).aggregate(s=Sum('amount'))['s'] or ZERO

    def within(self, start: Optional[date], end: Optional[date]) -> Iterator[LedgerTransaction]:
        for row in _window(self.qs, 'transaction_date', start, end).order_by('transaction_date', 'id'):
            yield LedgerTransaction(
                id=row.id,
                date=row.transaction_date,
                amount=row.amount,
                direction=CREDIT,
                description=row.description,
                reference=row.transaction_no,
                category=row.category,
            )


def fund_ledger(*, start: Optional[date] = None, end: Optional[date] = None, investor: Optional[str] = None,
                group_by_date: bool = True):
    return compile_ledger(FundTransactionProvider(investor), start, end, group_by_date=group_by_date)


def fund_ledger_payload(ledger) -> dict:
    rows = []
    for entry in ledger.entries:
        investors = sorted({t.category for t in entry.details if t.category})
        rows.append({
            'date': entry.date.isoformat(),
            'investor_name': ', '.join(investors),
            'description': '; '.join(t.description for t in entry.details if t.description),
            'voucher_no': '; '.join(t.reference for t in entry.details),
            'previous_balance': entry.previous_balance,
            'fund_in': entry.credit,
            'fund_out': entry.debit,
            'balance': entry.balance,
            'details': [t.as_dict() for t in entry.details],
        })
    return {
        'previous_balance': ledger.previous_balance,
        'rows': rows,
        'totals': {
            'fund_in': ledger.total_credit,
            'fund_out': ledger.total_debit,
            'balance': ledger.final_balance,
        },
    }


def house_security_ledger(*, start: Optional[date] = None, end: Optional[date] = None, search: Optional[str] = None):
    return compile_ledger(HouseSecurityProvider(search), start, end)


def house_security_payload(ledger) -> dict:
    rows = []
    for entry in ledger.entries:
        txn = entry.details[0]
        rows.append({
            'id': txn.id,
            'date': entry.date.isoformat(),
            'transaction_no': txn.reference,
            'description': txn.description,
            'previous_balance': entry.previous_balance,
            'expense': entry.credit,
            'balance': entry.balance,
        })
    return {
        'previous_balance': ledger.previous_balance,
        'rows': rows,
        'totals': {
            'total_expense': ledger.total_credit,
            'balance': ledger.final_balance,
        },
    }
