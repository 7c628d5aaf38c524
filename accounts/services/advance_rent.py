"""
Advance house rent: prepaid pools, monthly deductions and their history.

Paying an advance moves cash out of the hospital account.  Monthly rent
is then deducted from the pools without touching the account again.
"""
from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Iterator, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q, Sum
from django.utils import timezone

from accounts.exceptions import Conflict, DuplicatePeriod, InvalidAmount, NotFound, ValidationError
from accounts.models import AdvanceHouseRent, AdvanceHouseRentDeduction
from accounts.services import hospital_account
from accounts.services.audit import log_action
from accounts.services.exports import describe as describe_entry
from accounts.services.ledger import CREDIT, DEBIT, LedgerTransaction, compile_ledger
from accounts.services.numbering import lock_books, next_number
from accounts.services.settlement import apply_deduction, select_pool

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
EXPENSE_CATEGORY = 'Advance House Rent'
REFUND_CATEGORY = 'Advance House Rent Refund'
FLOOR_LABELS = dict(AdvanceHouseRent.FLOOR_CHOICES)


def _pools(floor_type: Optional[str] = None):
    qs = AdvanceHouseRent.objects.filter(deleted_at__isnull=True)
    if floor_type:
        qs = qs.filter(floor_type=floor_type)
    return qs


@transaction.atomic
def create_advance(*, amount, floor_type: str, payment_date: Optional[date] = None, description: str = '',
                   user=None) -> AdvanceHouseRent:
    amount = Decimal(str(amount))
    if amount < 1:
        raise InvalidAmount('Advance amount must be at least 1.')
    if floor_type not in FLOOR_LABELS:
        raise ValidationError({'floor_type': ['Unknown floor type.']})
    payment_date = payment_date or timezone.localdate()
    lock_books()
    advance = AdvanceHouseRent.objects.create(
        payment_number=next_number(AdvanceHouseRent, 'payment_number', 'ADV-RENT', payment_date),
        floor_type=floor_type,
        advance_amount=amount,
        used_amount=ZERO,
        remaining_amount=amount,
        status=AdvanceHouseRent.STATUS_ACTIVE,
        description=description,
        payment_date=payment_date,
        created_by=user,
    )
    hospital_account.add_expense(
        amount=amount,
        category=EXPENSE_CATEGORY,
        description=f'Advance house rent {advance.payment_number} ({FLOOR_LABELS[floor_type]})',
        on=payment_date,
        user=user,
        reference_type='advance_rent',
        reference_id=advance.id,
    )
    log_action(user=user, action='advance_rent_create', object_type='advance_rent', object_id=advance.id,
               detail={'payment_number': advance.payment_number, 'amount': amount, 'floor_type': floor_type})
    logger.info('advance rent %s paid: %s for %s', advance.payment_number, amount, floor_type)
    return advance


@transaction.atomic
def deduct(*, amount, month: int, year: int, floor_type: str, notes: str = '', on: Optional[date] = None,
           user=None, policy: Optional[str] = None) -> AdvanceHouseRentDeduction:
    """Take one month's rent from the oldest eligible pool of the floor."""
    amount = Decimal(str(amount))
    if amount < 1:
        raise InvalidAmount('Deduction amount must be at least 1.')
    if not 1 <= month <= 12:
        raise ValidationError({'month': ['Month must be between 1 and 12.']})
    if not 2020 <= year <= 2100:
        raise ValidationError({'year': ['Year must be between 2020 and 2100.']})
    if floor_type not in FLOOR_LABELS:
        raise ValidationError({'floor_type': ['Unknown floor type.']})

    lock_books()
    pools = list(
        _pools(floor_type).select_for_update()
        .filter(status=AdvanceHouseRent.STATUS_ACTIVE)
        .order_by('payment_date', 'id')
    )
    period = f'{calendar.month_name[month]} {year}'
    if AdvanceHouseRentDeduction.objects.filter(floor_type=floor_type, year=year, month=month).exists():
        logger.warning('duplicate rent deduction refused: %s %s', floor_type, period)
        raise DuplicatePeriod(f'Rent for {period} has already been deducted.')

    pool = select_pool(pools, amount, policy=policy or settings.ADVANCE_RENT_SELECTION)
    apply_deduction(pool, amount)
    pool.save(update_fields=['used_amount', 'remaining_amount', 'status'])

    try:
        with transaction.atomic():
            deduction = AdvanceHouseRentDeduction.objects.create(
                deduction_number=next_number(
                    AdvanceHouseRentDeduction, 'deduction_number', 'RENT', date(year, month, 1), monthly=True
                ),
                advance=pool,
                floor_type=floor_type,
                month=month,
                year=year,
                amount=amount,
                notes=notes,
                deduction_date=on or timezone.localdate(),
                deducted_by=user,
            )
    except IntegrityError as exc:
        raise DuplicatePeriod(f'Rent for {period} has already been deducted.') from exc

    log_action(user=user, action='advance_rent_deduct', object_type='advance_rent', object_id=pool.id,
               detail={'deduction_number': deduction.deduction_number, 'amount': amount, 'period': period,
                       'remaining': pool.remaining_amount})
    logger.info('rent %s deducted from %s: %s, remaining %s (%s)',
                period, pool.payment_number, amount, pool.remaining_amount, pool.status)
    return deduction


@transaction.atomic
def cancel_advance(advance_id: int, *, user=None) -> AdvanceHouseRent:
    """Cancel an untouched advance and return its money to the account."""
    lock_books()
    advance = _pools().select_for_update().filter(id=advance_id).first()
    if not advance:
        raise NotFound('advance not found')
    if advance.status == AdvanceHouseRent.STATUS_CANCELLED:
        raise Conflict('Advance is already cancelled.')
    if advance.deductions.exists():
        raise Conflict('Advance has deductions and cannot be cancelled.')
    advance.status = AdvanceHouseRent.STATUS_CANCELLED
    advance.remaining_amount = ZERO
    advance.save(update_fields=['status', 'remaining_amount'])
    hospital_account.add_income(
        amount=advance.advance_amount,
        category=REFUND_CATEGORY,
        description=f'Refund of advance house rent {advance.payment_number}',
        user=user,
        reference_type='advance_rent',
        reference_id=advance.id,
    )
    log_action(user=user, action='advance_rent_cancel', object_type='advance_rent', object_id=advance.id,
               detail={'payment_number': advance.payment_number, 'amount': advance.advance_amount})
    return advance


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def _rent_label(d: AdvanceHouseRentDeduction) -> str:
    label = f'Rent for {calendar.month_name[d.month]} {d.year}'
    return f'{label} - {d.notes}' if d.notes else label


class AdvanceRentProvider:
    """Advances paid (credit) and rent deducted (debit) for one floor or all."""

    def __init__(self, floor_type: Optional[str] = None):
        self.advances = _pools(floor_type).exclude(status=AdvanceHouseRent.STATUS_CANCELLED)
        deductions = AdvanceHouseRentDeduction.objects.all()
        if floor_type:
            deductions = deductions.filter(floor_type=floor_type)
        self.deductions = deductions.exclude(advance__deleted_at__isnull=False)

    def balance_before(self, start: Optional[date]) -> Decimal:
        if not start:
            return ZERO
        given = self.advances.filter(payment_date__lt=start).aggregate(s=Sum('advance_amount'))['s'] or ZERO
        used = self.deductions.filter(deduction_date__lt=start).aggregate(s=Sum('amount'))['s'] or ZERO
        return given - used

    def within(self, start: Optional[date], end: Optional[date]) -> Iterator[LedgerTransaction]:
        advances = self.advances
        deductions = self.deductions.select_related('advance')
        if start:
            advances = advances.filter(payment_date__gte=start)
            deductions = deductions.filter(deduction_date__gte=start)
        if end:
            advances = advances.filter(payment_date__lte=end)
            deductions = deductions.filter(deduction_date__lte=end)
        for a in advances:
            yield LedgerTransaction(
                id=a.id, date=a.payment_date, amount=a.advance_amount, direction=CREDIT,
                description=a.description or f'Advance payment ({FLOOR_LABELS[a.floor_type]})',
                reference=a.payment_number, category=a.floor_type,
                seq=int(a.created_at.timestamp() * 1_000_000),
                extra={'kind': 'advance'},
            )
        for d in deductions:
            yield LedgerTransaction(
                id=d.id, date=d.deduction_date, amount=d.amount, direction=DEBIT,
                description=_rent_label(d), reference=d.deduction_number, category=d.floor_type,
                seq=int(d.created_at.timestamp() * 1_000_000),
                extra={'kind': 'deduction', 'advance_payment_number': d.advance.payment_number},
            )


def period_window(year: Optional[int], month: Optional[int]):
    if year and month:
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
    if year:
        return date(year, 1, 1), date(year, 12, 31)
    return None, None


def period_label(year: Optional[int], month: Optional[int]) -> str:
    if year and month:
        return f'{calendar.month_name[month]} {year}'
    if year:
        return str(year)
    return 'All Time'


def history(*, year: Optional[int] = None, month: Optional[int] = None, floor_type: Optional[str] = None):
    start, end = period_window(year, month)
    return compile_ledger(AdvanceRentProvider(floor_type), start, end, group_by_date=True)


def history_payload(ledger) -> dict:
    rows = []
    for entry in ledger.entries:
        description, references = describe_entry(entry)
        rows.append({
            'date': entry.date.isoformat(),
            'description': description,
            'payment_number': references,
            'previous_balance': entry.previous_balance,
            'credit': entry.credit,
            'debit': entry.debit,
            'balance': entry.balance,
            'details': [t.as_dict() for t in entry.details],
        })
    return {
        'previous_balance': ledger.previous_balance,
        'rows': rows,
        'totals': {
            'credit': ledger.total_credit,
            'debit': ledger.total_debit,
            'balance': ledger.final_balance,
        },
    }


def dashboard(floor_type: Optional[str] = None) -> dict:
    pools = _pools(floor_type)
    live = pools.exclude(status=AdvanceHouseRent.STATUS_CANCELLED)
    sums = live.aggregate(
        given=Sum('advance_amount'),
        used=Sum('used_amount'),
        balance=Sum('remaining_amount', filter=Q(status=AdvanceHouseRent.STATUS_ACTIVE)),
    )
    deductions = AdvanceHouseRentDeduction.objects.select_related('advance', 'deducted_by')
    if floor_type:
        deductions = deductions.filter(floor_type=floor_type)
    year = timezone.localdate().year
    by_month = dict(
        deductions.filter(year=year).values('month').annotate(total=Sum('amount')).values_list('month', 'total')
    )
    return {
        'active_advances': [advance_to_dict(a) for a in live.filter(status=AdvanceHouseRent.STATUS_ACTIVE).order_by('payment_date', 'id')],
        'exhausted_advances': [advance_to_dict(a) for a in live.filter(status=AdvanceHouseRent.STATUS_EXHAUSTED).order_by('-payment_date', '-id')[:10]],
        'recent_deductions': [deduction_to_dict(d) for d in deductions.order_by('-created_at', '-id')[:10]],
        'total_balance': sums['balance'] or ZERO,
        'total_given': sums['given'] or ZERO,
        'total_used': sums['used'] or ZERO,
        'monthly_deductions': [
            {'month': m, 'name': calendar.month_name[m], 'total': by_month.get(m, ZERO)} for m in range(1, 13)
        ],
        'year': year,
    }


def list_deductions(*, month: Optional[int] = None, year: Optional[int] = None, floor_type: Optional[str] = None):
    qs = AdvanceHouseRentDeduction.objects.select_related('advance', 'deducted_by')
    if month:
        qs = qs.filter(month=month)
    if year:
        qs = qs.filter(year=year)
    if floor_type:
        qs = qs.filter(floor_type=floor_type)
    return qs.order_by('-year', '-month', '-id')


def total_amount(qs) -> Decimal:
    return qs.aggregate(s=Sum('amount'))['s'] or ZERO


def monthly_totals(qs) -> list[dict]:
    rows = qs.order_by().values('year', 'month').annotate(total=Sum('amount')).order_by('-year', '-month')
    return [
        {'year': r['year'], 'month': r['month'], 'name': calendar.month_name[r['month']], 'total': r['total']}
        for r in rows
    ]


def advance_to_dict(a: AdvanceHouseRent) -> dict:
    return {
        'id': a.id,
        'payment_number': a.payment_number,
        'floor_type': a.floor_type,
        'floor_label': FLOOR_LABELS.get(a.floor_type, a.floor_type),
        'advance_amount': a.advance_amount,
        'used_amount': a.used_amount,
        'remaining_amount': a.remaining_amount,
        'status': a.status,
        'description': a.description,
        'payment_date': a.payment_date.isoformat(),
    }


def deduction_to_dict(d: AdvanceHouseRentDeduction) -> dict:
    return {
        'id': d.id,
        'deduction_number': d.deduction_number,
        'advance_id': d.advance_id,
        'advance_payment_number': d.advance.payment_number,
        'floor_type': d.floor_type,
        'month': d.month,
        'month_name': calendar.month_name[d.month],
        'year': d.year,
        'amount': d.amount,
        'notes': d.notes,
        'deduction_date': d.deduction_date.isoformat(),
        'deducted_by': d.deducted_by.username if d.deducted_by else None,
    }
