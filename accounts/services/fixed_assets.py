"""
Fixed assets bought outright or partly on vendor credit.

The paid part of a purchase is a hospital expense; the unpaid part is a
vendor purchase that shows up in the fixed-asset vendor due ledger.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from accounts.exceptions import Conflict, InsufficientBalance, InvalidAmount, NotFound, ValidationError
from accounts.models import FixedAsset, Vendor
from accounts.services import hospital_account, vendors
from accounts.services.audit import log_action
from accounts.services.numbering import lock_books, next_number

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
PURCHASE_CATEGORY = 'Fixed Asset Purchase'
PAYMENT_CATEGORY = 'Fixed Asset Payment'


def get_asset(asset_id: int, *, lock: bool = False) -> FixedAsset:
    qs = FixedAsset.objects.select_for_update() if lock else FixedAsset.objects.select_related('vendor')
    asset = qs.filter(id=asset_id, deleted_at__isnull=True).first()
    if not asset:
        raise NotFound('fixed asset not found')
    return asset


def _status(asset: FixedAsset) -> str:
    if asset.status == FixedAsset.STATUS_INACTIVE:
        return asset.status
    return FixedAsset.STATUS_FULLY_PAID if asset.due_amount <= 0 else FixedAsset.STATUS_ACTIVE


@transaction.atomic
def create_asset(*, name: str, total_amount, paid_amount=0, vendor_id: Optional[int] = None,
                 purchase_date: Optional[date] = None, description: str = '', user=None) -> FixedAsset:
    total = Decimal(str(total_amount))
    paid = Decimal(str(paid_amount or 0))
    if total <= 0 or paid < 0:
        raise InvalidAmount('Total must be positive and paid cannot be negative.')
    if paid > total:
        raise InvalidAmount('Paid amount cannot be greater than total amount.')
    due = total - paid
    vendor = None
    if vendor_id:
        vendor = vendors.get_vendor(vendor_id, kind=Vendor.KIND_FIXED_ASSET)
    elif due > 0:
        raise ValidationError({'vendor_id': ['A vendor is required when part of the price is unpaid.']})

    purchase_date = purchase_date or timezone.localdate()
    lock_books()
    asset = FixedAsset.objects.create(
        asset_number=next_number(FixedAsset, 'asset_number', 'FA', purchase_date),
        vendor=vendor,
        name=name,
        description=description,
        total_amount=total,
        paid_amount=paid,
        due_amount=due,
        purchase_date=purchase_date,
        status=FixedAsset.STATUS_FULLY_PAID if due <= 0 else FixedAsset.STATUS_ACTIVE,
        created_by=user,
    )
    if paid > 0:
        hospital_account.add_expense(
            amount=paid, category=PURCHASE_CATEGORY,
            description=f'{asset.asset_number} - {name}', on=purchase_date, user=user,
            reference_type='fixed_asset', reference_id=asset.id,
        )
    if due > 0:
        vendors.record_purchase(
            vendor.id, amount=due, description=f'{asset.asset_number} - {name}', on=purchase_date, user=user,
            reference_type='fixed_asset', reference_id=asset.id,
        )
    log_action(user=user, action='fixed_asset_create', object_type='fixed_asset', object_id=asset.id,
               detail={'asset_number': asset.asset_number, 'total': total, 'paid': paid, 'due': due})
    logger.info('fixed asset %s bought: total %s, paid %s, due %s', asset.asset_number, total, paid, due)
    return asset


@transaction.atomic
def update_asset(asset_id: int, *, user=None, **fields) -> FixedAsset:
    """Edit an asset.  A new total re-computes the due and the vendor's due follows."""
    lock_books()
    asset = get_asset(asset_id, lock=True)
    if 'total_amount' in fields:
        total = Decimal(str(fields.pop('total_amount')))
        if total < asset.paid_amount:
            raise InvalidAmount('Total amount cannot be less than the paid amount.')
        new_due = total - asset.paid_amount
        diff = new_due - asset.due_amount
        if diff and not asset.vendor_id:
            raise ValidationError({'vendor_id': ['A vendor is required when part of the price is unpaid.']})
        label = f'{asset.asset_number} price corrected'
        if diff > 0:
            vendors.record_purchase(asset.vendor_id, amount=diff, description=label, user=user,
                                    reference_type='fixed_asset', reference_id=asset.id)
        elif diff < 0:
            vendors.record_return(asset.vendor_id, amount=-diff, description=label, user=user,
                                  reference_type='fixed_asset', reference_id=asset.id)
        asset.total_amount = total
        asset.due_amount = new_due
    for name in ('name', 'description', 'purchase_date', 'status'):
        if name in fields:
            setattr(asset, name, fields[name])
    asset.status = _status(asset)
    asset.save()
    log_action(user=user, action='fixed_asset_update', object_type='fixed_asset', object_id=asset.id,
               detail={'total': asset.total_amount, 'due': asset.due_amount})
    return asset


@transaction.atomic
def delete_asset(asset_id: int, *, user=None) -> None:
    lock_books()
    asset = get_asset(asset_id, lock=True)
    if asset.paid_amount > 0:
        raise Conflict('Cannot delete an asset with payments. Set it inactive instead.')
    if asset.due_amount > 0 and asset.vendor_id:
        vendors.record_return(asset.vendor_id, amount=asset.due_amount, description=f'{asset.asset_number} deleted',
                              user=user, reference_type='fixed_asset', reference_id=asset.id)
    asset.deleted_at = timezone.now()
    asset.save(update_fields=['deleted_at'])
    log_action(user=user, action='fixed_asset_delete', object_type='fixed_asset', object_id=asset.id,
               detail={'asset_number': asset.asset_number})


@transaction.atomic
def pay_asset(asset_id: int, *, amount, payment_method: str = 'cash', reference_no: str = '',
              on: Optional[date] = None, user=None) -> FixedAsset:
    amount = Decimal(str(amount))
    lock_books()
    # vendor before asset, the order pay_vendor settles assets in
    vendor_id = get_asset(asset_id).vendor_id
    if vendor_id:
        vendors.get_vendor(vendor_id, lock=True)
    asset = get_asset(asset_id, lock=True)
    if amount <= 0:
        raise InvalidAmount('Payment amount must be greater than zero.')
    if amount > asset.due_amount:
        raise InsufficientBalance(f'Payment amount ({amount}) exceeds due amount ({asset.due_amount}).')
    if asset.vendor_id:
        vendors.pay_vendor(
            asset.vendor_id, amount=amount, payment_method=payment_method, reference_no=reference_no,
            description=f'Payment for {asset.asset_number} - {asset.name}', on=on, user=user,
            reference_type='fixed_asset', reference_id=asset.id, expense_category=PAYMENT_CATEGORY,
        )
    else:
        hospital_account.add_expense(
            amount=amount, category=PAYMENT_CATEGORY, description=f'{asset.asset_number} - {asset.name}',
            on=on, user=user, reference_type='fixed_asset', reference_id=asset.id,
        )
    asset.paid_amount += amount
    asset.due_amount -= amount
    asset.status = _status(asset)
    asset.save(update_fields=['paid_amount', 'due_amount', 'status'])
    log_action(user=user, action='fixed_asset_payment', object_type='fixed_asset', object_id=asset.id,
               detail={'amount': amount, 'due': asset.due_amount})
    logger.info('fixed asset %s paid %s, due %s', asset.asset_number, amount, asset.due_amount)
    return asset


def list_assets(*, status: Optional[str] = None, vendor_id: Optional[int] = None, search: Optional[str] = None,
                start: Optional[date] = None, end: Optional[date] = None):
    qs = FixedAsset.objects.filter(deleted_at__isnull=True).select_related('vendor')
    if status:
        qs = qs.filter(status=status)
    if vendor_id:
        qs = qs.filter(vendor_id=vendor_id)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(asset_number__icontains=search) | Q(description__icontains=search))
    if start:
        qs = qs.filter(purchase_date__gte=start)
    if end:
        qs = qs.filter(purchase_date__lte=end)
    return qs.order_by('-purchase_date', '-id')


def totals(qs) -> dict:
    sums = qs.aggregate(count=Count('id'), total=Sum('total_amount'), paid=Sum('paid_amount'), due=Sum('due_amount'))
    return {
        'count': sums['count'],
        'total_amount': sums['total'] or ZERO,
        'total_paid': sums['paid'] or ZERO,
        'total_due': sums['due'] or ZERO,
    }


def asset_to_dict(a: FixedAsset) -> dict:
    return {
        'id': a.id,
        'asset_number': a.asset_number,
        'name': a.name,
        'description': a.description,
        'vendor_id': a.vendor_id,
        'vendor_name': a.vendor.name if a.vendor else None,
        'total_amount': a.total_amount,
        'paid_amount': a.paid_amount,
        'due_amount': a.due_amount,
        'purchase_date': a.purchase_date.isoformat(),
        'status': a.status,
    }
