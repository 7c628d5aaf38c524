"""
Hospital account: the single cash balance that every module pays from.

All mutations lock the account row first (``select_for_update``) inside
``transaction.atomic`` so that the read-check-write of the balance is
serialised between concurrent requests.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from accounts.exceptions import Conflict, InsufficientBalance, InvalidAmount, NotFound
from accounts.models import (
    ExpenseCategory,
    HospitalAccount,
    HospitalFundTransaction,
    HospitalTransaction,
    IncomeCategory,
)
from accounts.realtime.broadcast import balance_changed
from accounts.services.audit import log_action
from accounts.services.numbering import lock_books, next_number

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def get_account(*, lock: bool = False) -> HospitalAccount:
    if lock:
        return lock_books()
    account, _ = HospitalAccount.objects.get_or_create(pk=1)
    return account


def current_balance(as_on: Optional[date] = None) -> Decimal:
    """Stored balance, or the balance re-derived as on a past date."""
    if as_on is not None:
        return balance_as_on(as_on)
    return get_account().balance


def _move(account: HospitalAccount, delta: Decimal) -> None:
    new_balance = account.balance + delta
    if new_balance < 0:
        raise InsufficientBalance(f'Insufficient balance! Available {account.balance}, required {-delta}.')
    account.balance = new_balance
    account.save(update_fields=['balance', 'updated_at'])
    balance_changed('hospital', account.pk, new_balance)


def _positive(amount) -> Decimal:
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidAmount('Amount must be greater than zero.')
    return amount


def balance_as_on(as_on: date) -> Decimal:
    """Balance recomputed from source rows dated on or before ``as_on``."""
    funds = HospitalFundTransaction.objects.filter(date__lte=as_on).aggregate(
        fund_in=Sum('amount', filter=Q(type=HospitalFundTransaction.TYPE_FUND_IN)),
        fund_out=Sum('amount', filter=Q(type=HospitalFundTransaction.TYPE_FUND_OUT)),
    )
    txns = HospitalTransaction.objects.filter(transaction_date__lte=as_on).aggregate(
        income=Sum('amount', filter=Q(type=HospitalTransaction.TYPE_INCOME)),
        expense=Sum('amount', filter=Q(type=HospitalTransaction.TYPE_EXPENSE)),
    )
    return (
        (funds['fund_in'] or ZERO) - (funds['fund_out'] or ZERO)
        + (txns['income'] or ZERO) - (txns['expense'] or ZERO)
    )


# ---------------------------------------------------------------------------
# Funds
# ---------------------------------------------------------------------------

@transaction.atomic
def fund_in(*, amount, purpose: str, description: str = '', on: Optional[date] = None, user=None) -> HospitalFundTransaction:
    amount = _positive(amount)
    on = on or timezone.localdate()
    account = get_account(lock=True)
    _move(account, amount)
    txn = HospitalFundTransaction.objects.create(
        voucher_no=next_number(HospitalFundTransaction, 'voucher_no', 'HFI', on),
        type=HospitalFundTransaction.TYPE_FUND_IN,
        amount=amount, purpose=purpose, description=description, date=on, added_by=user,
    )
    log_action(user=user, action='fund_in', object_type='fund_transaction', object_id=txn.id,
               detail={'voucher_no': txn.voucher_no, 'amount': amount, 'balance': account.balance})
    logger.info('fund in %s: %s from %s, balance %s', txn.voucher_no, amount, purpose, account.balance)
    return txn


@transaction.atomic
def fund_out(*, amount, purpose: str, description: str = '', on: Optional[date] = None, user=None) -> HospitalFundTransaction:
    amount = _positive(amount)
    on = on or timezone.localdate()
    account = get_account(lock=True)
    _move(account, -amount)
    txn = HospitalFundTransaction.objects.create(
        voucher_no=next_number(HospitalFundTransaction, 'voucher_no', 'HFO', on),
        type=HospitalFundTransaction.TYPE_FUND_OUT,
        amount=amount, purpose=purpose, description=description, date=on, added_by=user,
    )
    log_action(user=user, action='fund_out', object_type='fund_transaction', object_id=txn.id,
               detail={'voucher_no': txn.voucher_no, 'amount': amount, 'balance': account.balance})
    logger.info('fund out %s: %s to %s, balance %s', txn.voucher_no, amount, purpose, account.balance)
    return txn


def _fund_delta(txn: HospitalFundTransaction, amount: Decimal) -> Decimal:
    return amount if txn.type == HospitalFundTransaction.TYPE_FUND_IN else -amount


@transaction.atomic
def update_fund_transaction(txn_id: int, *, amount, purpose: str, description: str, on: date, user=None):
    account = get_account(lock=True)
    txn = HospitalFundTransaction.objects.select_for_update().filter(id=txn_id).first()
    if not txn:
        raise NotFound('fund transaction not found')
    amount = _positive(amount)
    _move(account, _fund_delta(txn, amount) - _fund_delta(txn, txn.amount))
    old_amount = txn.amount
    txn.amount, txn.purpose, txn.description, txn.date = amount, purpose, description, on
    txn.save()
    log_action(user=user, action='fund_update', object_type='fund_transaction', object_id=txn.id,
               detail={'old_amount': old_amount, 'amount': amount})
    return txn


@transaction.atomic
def delete_fund_transaction(txn_id: int, *, user=None) -> None:
    account = get_account(lock=True)
    txn = HospitalFundTransaction.objects.select_for_update().filter(id=txn_id).first()
    if not txn:
        raise NotFound('fund transaction not found')
    _move(account, -_fund_delta(txn, txn.amount))
    log_action(user=user, action='fund_delete', object_type='fund_transaction', object_id=txn.id,
               detail={'voucher_no': txn.voucher_no, 'amount': txn.amount})
    txn.delete()


# ---------------------------------------------------------------------------
# Income & expense
# ---------------------------------------------------------------------------

def resolve_expense_category(*, name: Optional[str] = None, category_id: Optional[int] = None):
    """Find a category by id, or get-or-create it by name."""
    if category_id:
        category = ExpenseCategory.objects.filter(id=category_id).first()
        if not category:
            raise NotFound('expense category not found')
        return category
    if name:
        category, _ = ExpenseCategory.objects.get_or_create(name=name, defaults={'is_active': True})
        return category
    return None


def resolve_income_category(*, name: Optional[str] = None, category_id: Optional[int] = None):
    if category_id:
        category = IncomeCategory.objects.filter(id=category_id).first()
        if not category:
            raise NotFound('income category not found')
        return category
    if name:
        category, _ = IncomeCategory.objects.get_or_create(name=name, defaults={'is_active': True})
        return category
    return None


@transaction.atomic
def add_expense(*, amount, category: Optional[str] = None, category_id: Optional[int] = None,
                description: str = '', on: Optional[date] = None, user=None,
                reference_type: str = '', reference_id: Optional[int] = None) -> HospitalTransaction:
    amount = _positive(amount)
    on = on or timezone.localdate()
    cat = resolve_expense_category(name=category, category_id=category_id)
    account = get_account(lock=True)
    _move(account, -amount)
    txn = HospitalTransaction.objects.create(
        transaction_no=next_number(HospitalTransaction, 'transaction_no', 'HE', on),
        type=HospitalTransaction.TYPE_EXPENSE,
        amount=amount,
        category=cat.name if cat else (category or ''),
        expense_category=cat,
        reference_type=reference_type, reference_id=reference_id,
        description=description, transaction_date=on, created_by=user,
    )
    log_action(user=user, action='expense', object_type='hospital_transaction', object_id=txn.id,
               detail={'transaction_no': txn.transaction_no, 'amount': amount, 'category': txn.category})
    logger.info('expense %s: %s (%s), balance %s', txn.transaction_no, amount, txn.category, account.balance)
    return txn


@transaction.atomic
def add_income(*, amount, category: Optional[str] = None, category_id: Optional[int] = None,
               description: str = '', on: Optional[date] = None, user=None,
               reference_type: str = '', reference_id: Optional[int] = None) -> HospitalTransaction:
    amount = _positive(amount)
    on = on or timezone.localdate()
    cat = resolve_income_category(name=category, category_id=category_id)
    account = get_account(lock=True)
    _move(account, amount)
    txn = HospitalTransaction.objects.create(
        transaction_no=next_number(HospitalTransaction, 'transaction_no', 'HT', on),
        type=HospitalTransaction.TYPE_INCOME,
        amount=amount,
        category=cat.name if cat else (category or ''),
        income_category=cat,
        reference_type=reference_type, reference_id=reference_id,
        description=description, transaction_date=on, created_by=user,
    )
    log_action(user=user, action='income', object_type='hospital_transaction', object_id=txn.id,
               detail={'transaction_no': txn.transaction_no, 'amount': amount, 'category': txn.category})
    logger.info('income %s: %s (%s), balance %s', txn.transaction_no, amount, txn.category, account.balance)
    return txn


def _txn_delta(txn: HospitalTransaction, amount: Decimal) -> Decimal:
    return amount if txn.type == HospitalTransaction.TYPE_INCOME else -amount


def _own_transaction(txn_id: int) -> HospitalTransaction:
    """Lock a manually entered row; rows posted for another record are refused."""
    txn = HospitalTransaction.objects.select_for_update().filter(id=txn_id).first()
    if not txn:
        raise NotFound('transaction not found')
    if txn.reference_type:
        logger.warning('correction of %s refused: posted by %s #%s', txn.transaction_no, txn.reference_type,
                       txn.reference_id)
        raise Conflict(f'{txn.transaction_no} was posted by {txn.reference_type} #{txn.reference_id}; '
                       'correct it from there.')
    return txn


@transaction.atomic
def update_transaction(txn_id: int, *, amount, category: Optional[str] = None, category_id: Optional[int] = None,
                       description: str, on: date, user=None) -> HospitalTransaction:
    """Correct an income/expense row; the account absorbs the difference."""
    account = get_account(lock=True)
    txn = _own_transaction(txn_id)
    amount = _positive(amount)
    _move(account, _txn_delta(txn, amount) - _txn_delta(txn, txn.amount))
    if txn.type == HospitalTransaction.TYPE_EXPENSE:
        cat = resolve_expense_category(name=category, category_id=category_id)
        txn.expense_category = cat
    else:
        cat = resolve_income_category(name=category, category_id=category_id)
        txn.income_category = cat
    old_amount = txn.amount
    txn.amount = amount
    txn.category = cat.name if cat else (category or txn.category)
    txn.description = description
    txn.transaction_date = on
    txn.save()
    log_action(user=user, action='transaction_update', object_type='hospital_transaction', object_id=txn.id,
               detail={'old_amount': old_amount, 'amount': amount})
    logger.info('transaction %s corrected: %s -> %s', txn.transaction_no, old_amount, amount)
    return txn


@transaction.atomic
def delete_transaction(txn_id: int, *, user=None) -> None:
    account = get_account(lock=True)
    txn = _own_transaction(txn_id)
    _move(account, -_txn_delta(txn, txn.amount))
    log_action(user=user, action='transaction_delete', object_type='hospital_transaction', object_id=txn.id,
               detail={'transaction_no': txn.transaction_no, 'amount': txn.amount})
    logger.info('transaction %s deleted (%s)', txn.transaction_no, txn.amount)
    txn.delete()


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def monthly_report(year: int, month: int) -> dict:
    qs = HospitalTransaction.objects.filter(transaction_date__year=year, transaction_date__month=month)
    sums = qs.aggregate(
        income=Sum('amount', filter=Q(type=HospitalTransaction.TYPE_INCOME)),
        expense=Sum('amount', filter=Q(type=HospitalTransaction.TYPE_EXPENSE)),
    )
    income = sums['income'] or ZERO
    expense = sums['expense'] or ZERO
    return {
        'year': year,
        'month': month,
        'income': income,
        'expense': expense,
        'profit': income - expense,
        'balance': current_balance(),
    }


def investor_names() -> list[str]:
    names = (
        HospitalFundTransaction.objects.exclude(purpose='')
        .order_by('purpose').values_list('purpose', flat=True).distinct()
    )
    return list(names)


def list_transactions(*, type: Optional[str] = None, category: Optional[str] = None,
                      start: Optional[date] = None, end: Optional[date] = None, search: Optional[str] = None):
    qs = HospitalTransaction.objects.select_related('created_by')
    if type:
        qs = qs.filter(type=type)
    if category:
        qs = qs.filter(category=category)
    if search:
        qs = qs.filter(Q(description__icontains=search) | Q(transaction_no__icontains=search))
    if start:
        qs = qs.filter(transaction_date__gte=start)
    if end:
        qs = qs.filter(transaction_date__lte=end)
    return qs.order_by('-transaction_date', '-id')


def transaction_to_dict(t: HospitalTransaction) -> dict:
    return {
        'id': t.id,
        'transaction_no': t.transaction_no,
        'type': t.type,
        'amount': t.amount,
        'category': t.category,
        'reference_type': t.reference_type,
        'reference_id': t.reference_id,
        'description': t.description,
        'transaction_date': t.transaction_date.isoformat(),
        'created_by': t.created_by.username if t.created_by else None,
    }


def fund_to_dict(t: HospitalFundTransaction) -> dict:
    return {
        'id': t.id,
        'voucher_no': t.voucher_no,
        'type': t.type,
        'amount': t.amount,
        'purpose': t.purpose,
        'description': t.description,
        'date': t.date.isoformat(),
        'added_by': t.added_by.username if t.added_by else None,
    }
