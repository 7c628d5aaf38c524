"""
Vendor due aggregation.

``previous_due`` carries the opening balance (due-type vendors only) plus
every purchase and payment dated before the window; the window then adds
its purchases and subtracts its payments.  Vendors that only exist to
book opening stock are removed by :class:`VendorExclusion`, and the same
object is used for the dropdown, the listing and the computation.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional

from django.db.models import Q, Sum

from accounts.models import Vendor, VendorTransaction
from accounts.services.ledger import CREDIT, DEBIT, LedgerTransaction, build_ledger

ZERO = Decimal('0')


@dataclass(frozen=True)
class VendorExclusion:
    """Names matching ``pattern`` (case-insensitive) are placeholder vendors."""
    pattern: str = r'old.*stock.*add'

    def q(self) -> Q:
        return Q(name__iregex=self.pattern)

    def apply(self, qs):
        return qs.exclude(self.q())

    def matches(self, name: str) -> bool:
        return re.search(self.pattern, name or '', re.IGNORECASE) is not None


OPENING_STOCK_VENDORS = VendorExclusion()


@dataclass
class VendorDue:
    vendor_id: int
    vendor_name: str
    previous_due: Decimal
    purchase_due: Decimal
    payment: Decimal

    @property
    def current_due(self) -> Decimal:
        return self.previous_due + self.purchase_due - self.payment

    @property
    def has_activity(self) -> bool:
        return bool(self.previous_due or self.purchase_due or self.payment)

    def as_dict(self) -> dict:
        return {
            'id': f'vendor-{self.vendor_id}',
            'vendor_id': self.vendor_id,
            'vendor_name': self.vendor_name,
            'description': 'Vendor Due Summary',
            'previous_due': self.previous_due,
            'purchase_due': self.purchase_due,
            'payment': self.payment,
            'current_due': self.current_due,
        }


def _flow(prefix: str, *, before: Optional[date] = None, start: Optional[date] = None, end: Optional[date] = None):
    """Sum expressions for purchases, returns and payments in a date range."""
    when = Q()
    if before:
        when &= Q(transactions__transaction_date__lt=before)
    if start:
        when &= Q(transactions__transaction_date__gte=start)
    if end:
        when &= Q(transactions__transaction_date__lte=end)
    return {
        f'{prefix}_purchase': Sum('transactions__amount', filter=when & Q(transactions__type=VendorTransaction.TYPE_PURCHASE)),
        f'{prefix}_return': Sum('transactions__amount', filter=when & Q(transactions__type=VendorTransaction.TYPE_RETURN)),
        f'{prefix}_payment': Sum('transactions__amount', filter=when & Q(transactions__type=VendorTransaction.TYPE_PAYMENT)),
    }


def vendors_for(kind: str, *, exclusion: VendorExclusion = OPENING_STOCK_VENDORS):
    return exclusion.apply(Vendor.objects.filter(kind=kind))


def compute_dues(vendors, *, start: Optional[date] = None, end: Optional[date] = None) -> List[VendorDue]:
    annotations = _flow('win', start=start, end=end)
    if start:
        annotations.update(_flow('pre', before=start))
    rows = []
    for v in vendors.annotate(**annotations).order_by('name', 'id'):
        opening = v.opening_balance if v.balance_type == Vendor.BALANCE_DUE else ZERO
        previous = opening
        if start:
            previous += (v.pre_purchase or ZERO) - (v.pre_return or ZERO) - (v.pre_payment or ZERO)
        rows.append(VendorDue(
            vendor_id=v.id,
            vendor_name=v.name,
            previous_due=previous,
            purchase_due=(v.win_purchase or ZERO) - (v.win_return or ZERO),
            payment=v.win_payment or ZERO,
        ))
    return rows


def due_ledger(kind: str, *, vendor_id: Optional[int] = None, start: Optional[date] = None,
               end: Optional[date] = None, exclusion: VendorExclusion = OPENING_STOCK_VENDORS) -> dict:
    vendors = vendors_for(kind, exclusion=exclusion)
    if vendor_id:
        vendors = vendors.filter(id=vendor_id)
    rows = [r for r in compute_dues(vendors, start=start, end=end) if r.has_activity]
    return {
        'rows': [r.as_dict() for r in rows],
        'vendors': list(vendors_for(kind, exclusion=exclusion).order_by('name').values('id', 'name')),
        'totals': {
            'previous_due': sum((r.previous_due for r in rows), ZERO),
            'purchase_due': sum((r.purchase_due for r in rows), ZERO),
            'payment': sum((r.payment for r in rows), ZERO),
            'current_due': sum((r.current_due for r in rows), ZERO),
        },
    }


class VendorStatementProvider:
    """One vendor's purchases (credit to due) and payments/returns (debit)."""

    def __init__(self, vendor: Vendor):
        self.vendor = vendor
        self.qs = VendorTransaction.objects.filter(vendor=vendor)

    def _opening(self) -> Decimal:
        return self.vendor.opening_balance if self.vendor.balance_type == Vendor.BALANCE_DUE else ZERO

    def balance_before(self, start: Optional[date]) -> Decimal:
        if not start:
            return self._opening()
        sums = self.qs.filter(transaction_date__lt=start).aggregate(
            purchase=Sum('amount', filter=Q(type=VendorTransaction.TYPE_PURCHASE)),
            other=Sum('amount', filter=~Q(type=VendorTransaction.TYPE_PURCHASE)),
        )
        return self._opening() + (sums['purchase'] or ZERO) - (sums['other'] or ZERO)

    def within(self, start: Optional[date], end: Optional[date]) -> Iterator[LedgerTransaction]:
        qs = self.qs
        if start:
            qs = qs.filter(transaction_date__gte=start)
        if end:
            qs = qs.filter(transaction_date__lte=end)
        for t in qs.order_by('transaction_date', 'id'):
            yield LedgerTransaction(
                id=t.id,
                date=t.transaction_date,
                amount=t.amount,
                direction=CREDIT if t.type == VendorTransaction.TYPE_PURCHASE else DEBIT,
                description=t.description,
                reference=t.transaction_no,
                category=t.type,
            )


def vendor_statement(vendor: Vendor, *, start: Optional[date] = None, end: Optional[date] = None):
    provider = VendorStatementProvider(vendor)
    seed = provider.balance_before(start)
    return build_ledger(provider.within(start, end), seed)
