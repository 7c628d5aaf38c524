"""
Vendor balances: purchases on credit, returns and payments.

Every balance change locks the vendor row and writes one
:class:`VendorTransaction` carrying the balance before and after, so the
vendor's ``current_balance`` can always be re-derived from its rows.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.utils import timezone

from accounts.exceptions import Conflict, InsufficientBalance, InvalidAmount, NotFound
from accounts.models import FixedAsset, Vendor, VendorTransaction
from accounts.realtime.broadcast import balance_changed
from accounts.services import hospital_account
from accounts.services.audit import log_action
from accounts.services.numbering import lock_books, next_number

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
KIND_LABELS = dict(Vendor.KIND_CHOICES)


def get_vendor(vendor_id: int, *, kind: Optional[str] = None, lock: bool = False) -> Vendor:
    qs = Vendor.objects.select_for_update() if lock else Vendor.objects
    if kind:
        qs = qs.filter(kind=kind)
    vendor = qs.filter(id=vendor_id).first()
    if not vendor:
        raise NotFound('vendor not found')
    return vendor


def create_vendor(*, kind: str, user=None, **fields) -> Vendor:
    opening = Decimal(str(fields.pop('opening_balance', None) or 0))
    if opening < 0:
        raise InvalidAmount('Opening balance cannot be negative.')
    vendor = Vendor.objects.create(kind=kind, opening_balance=opening, current_balance=opening, **fields)
    log_action(user=user, action='vendor_create', object_type='vendor', object_id=vendor.id,
               detail={'kind': kind, 'name': vendor.name, 'opening_balance': opening})
    return vendor


@transaction.atomic
def update_vendor(vendor_id: int, *, kind: str, user=None, **fields) -> Vendor:
    vendor = get_vendor(vendor_id, kind=kind, lock=True)
    if 'opening_balance' in fields:
        opening = Decimal(str(fields.pop('opening_balance') or 0))
        if opening != vendor.opening_balance:
            if vendor.transactions.exists():
                raise Conflict('Opening balance cannot change once the vendor has transactions.')
            vendor.opening_balance = opening
            vendor.current_balance = opening
    for name, value in fields.items():
        setattr(vendor, name, value)
    vendor.save()
    log_action(user=user, action='vendor_update', object_type='vendor', object_id=vendor.id,
               detail={'fields': sorted(fields)})
    return vendor


@transaction.atomic
def delete_vendor(vendor_id: int, *, kind: str, user=None) -> None:
    vendor = get_vendor(vendor_id, kind=kind, lock=True)
    if vendor.transactions.exists() or vendor.assets.exists() or vendor.stock_purchases.exists():
        raise Conflict('Vendor has purchases or payments and cannot be deleted.')
    log_action(user=user, action='vendor_delete', object_type='vendor', object_id=vendor.id,
               detail={'name': vendor.name})
    vendor.delete()


def toggle_status(vendor_id: int, *, kind: str, user=None) -> Vendor:
    vendor = get_vendor(vendor_id, kind=kind)
    vendor.is_active = not vendor.is_active
    vendor.save(update_fields=['is_active'])
    log_action(user=user, action='vendor_toggle', object_type='vendor', object_id=vendor.id,
               detail={'is_active': vendor.is_active})
    return vendor


def _record(vendor: Vendor, *, type_: str, amount: Decimal, delta: Decimal, prefix: str, description: str,
            on: Optional[date], user, **extra) -> VendorTransaction:
    """Apply ``delta`` to a locked vendor and write the transaction row."""
    on = on or timezone.localdate()
    previous = vendor.current_balance
    vendor.current_balance = previous + delta
    vendor.save(update_fields=['current_balance'])
    txn = VendorTransaction.objects.create(
        transaction_no=next_number(VendorTransaction, 'transaction_no', prefix, on),
        vendor=vendor,
        type=type_,
        amount=amount,
        previous_balance=previous,
        new_balance=vendor.current_balance,
        description=description,
        transaction_date=on,
        created_by=user,
        **extra,
    )
    balance_changed('vendor', vendor.id, vendor.current_balance)
    return txn


def _signed(vendor: Vendor, amount: Decimal) -> Decimal:
    # due vendors grow with purchases; advance vendors consume their advance
    return amount if vendor.balance_type == Vendor.BALANCE_DUE else -amount


@transaction.atomic
def record_purchase(vendor_id: int, *, amount, description: str = '', on: Optional[date] = None, user=None,
                    reference_type: str = '', reference_id: Optional[int] = None) -> VendorTransaction:
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidAmount('Purchase amount must be greater than zero.')
    lock_books()
    vendor = get_vendor(vendor_id, lock=True)
    if (vendor.balance_type == Vendor.BALANCE_DUE and vendor.credit_limit > 0
            and vendor.current_balance + amount > vendor.credit_limit):
        logger.warning('vendor %s credit limit %s exceeded: due %s + %s',
                       vendor.id, vendor.credit_limit, vendor.current_balance, amount)
        raise InsufficientBalance(
            f'Purchase of {amount} would take the due to {vendor.current_balance + amount}, '
            f'over the credit limit of {vendor.credit_limit}.'
        )
    txn = _record(vendor, type_=VendorTransaction.TYPE_PURCHASE, amount=amount, delta=_signed(vendor, amount),
                  prefix='VPUR', description=description, on=on, user=user,
                  reference_type=reference_type, reference_id=reference_id)
    logger.info('vendor %s purchase %s: %s, balance %s', vendor.id, txn.transaction_no, amount, vendor.current_balance)
    return txn


@transaction.atomic
def record_return(vendor_id: int, *, amount, description: str = '', on: Optional[date] = None, user=None,
                  reference_type: str = '', reference_id: Optional[int] = None) -> VendorTransaction:
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidAmount('Return amount must be greater than zero.')
    lock_books()
    vendor = get_vendor(vendor_id, lock=True)
    txn = _record(vendor, type_=VendorTransaction.TYPE_RETURN, amount=amount, delta=-_signed(vendor, amount),
                  prefix='VRET', description=description, on=on, user=user,
                  reference_type=reference_type, reference_id=reference_id)
    logger.info('vendor %s return %s: %s, balance %s', vendor.id, txn.transaction_no, amount, vendor.current_balance)
    return txn


@transaction.atomic
def pay_vendor(vendor_id: int, *, amount, payment_method: str, reference_no: str = '', description: str = '',
               on: Optional[date] = None, user=None, kind: Optional[str] = None,
               reference_type: str = '', reference_id: Optional[int] = None,
               expense_category: Optional[str] = None) -> VendorTransaction:
    """Pay a vendor from the hospital account.

    Due vendors cannot be paid more than they are owed.  Payments to a
    fixed-asset vendor settle the dues of its assets oldest first.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidAmount('Payment amount must be greater than zero.')
    lock_books()
    vendor = get_vendor(vendor_id, kind=kind, lock=True)
    if vendor.balance_type == Vendor.BALANCE_DUE and amount > vendor.current_balance:
        logger.warning('vendor %s overpayment refused: %s > due %s', vendor.id, amount, vendor.current_balance)
        raise InsufficientBalance(f'Payment amount ({amount}) exceeds current due ({vendor.current_balance}).')

    txn = _record(vendor, type_=VendorTransaction.TYPE_PAYMENT, amount=amount, delta=-_signed(vendor, amount),
                  prefix='VP', description=description or f'Payment to {vendor.name}', on=on, user=user,
                  payment_method=payment_method, reference_no=reference_no,
                  reference_type=reference_type, reference_id=reference_id)
    hospital_account.add_expense(
        amount=amount,
        category=expense_category or f'{KIND_LABELS[vendor.kind]} Vendor Payment',
        description=f'{txn.transaction_no} - {vendor.name}' + (f' ({reference_no})' if reference_no else ''),
        on=txn.transaction_date,
        user=user,
        reference_type='vendor_payment',
        reference_id=txn.id,
    )
    if vendor.kind == Vendor.KIND_FIXED_ASSET and reference_type != 'fixed_asset':
        _settle_assets(vendor, amount)
    log_action(user=user, action='vendor_payment', object_type='vendor', object_id=vendor.id,
               detail={'transaction_no': txn.transaction_no, 'amount': amount, 'due': vendor.current_balance})
    logger.info('vendor %s paid %s: %s, due %s', vendor.id, txn.transaction_no, amount, vendor.current_balance)
    return txn


def _settle_assets(vendor: Vendor, amount: Decimal) -> None:
    remaining = amount
    for asset in (FixedAsset.objects.select_for_update()
                  .filter(vendor=vendor, deleted_at__isnull=True, due_amount__gt=0)
                  .order_by('purchase_date', 'id')):
        if remaining <= 0:
            break
        part = min(remaining, asset.due_amount)
        asset.paid_amount += part
        asset.due_amount -= part
        if asset.due_amount <= 0:
            asset.status = FixedAsset.STATUS_FULLY_PAID
        asset.save(update_fields=['paid_amount', 'due_amount', 'status'])
        remaining -= part


def vendor_to_dict(v: Vendor) -> dict:
    return {
        'id': v.id,
        'kind': v.kind,
        'name': v.name,
        'company_name': v.company_name,
        'contact_person': v.contact_person,
        'phone': v.phone,
        'email': v.email,
        'address': v.address,
        'opening_balance': v.opening_balance,
        'current_balance': v.current_balance,
        'balance_type': v.balance_type,
        'credit_limit': v.credit_limit,
        'payment_terms_days': v.payment_terms_days,
        'notes': v.notes,
        'is_active': v.is_active,
    }


def transaction_to_dict(t: VendorTransaction) -> dict:
    return {
        'id': t.id,
        'transaction_no': t.transaction_no,
        'vendor_id': t.vendor_id,
        'type': t.type,
        'amount': t.amount,
        'previous_balance': t.previous_balance,
        'new_balance': t.new_balance,
        'payment_method': t.payment_method,
        'reference_no': t.reference_no,
        'description': t.description,
        'transaction_date': t.transaction_date.isoformat(),
    }
