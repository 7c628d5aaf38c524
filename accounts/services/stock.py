"""
Stock items (optics glasses and medicine) and their movements.

Receiving stock re-prices the item at the weighted-average cost and
books the money side: a vendor purchase for the unpaid part, a hospital
expense for what was paid.  Every quantity change writes a
:class:`StockMovement` under a lock on the item row.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Type

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from accounts.exceptions import Conflict, InsufficientBalance, InvalidAmount, InvalidQuantity, NotFound, ValidationError
from accounts.models import Glasses, Medicine, StockMovement, StockPurchase, Vendor
from accounts.services import hospital_account, vendors
from accounts.services.audit import log_action
from accounts.services.costing import display_price, weighted_average
from accounts.services.numbering import lock_books, next_number

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

ITEM_MODELS = {Glasses.ITEM_TYPE: Glasses, Medicine.ITEM_TYPE: Medicine}
VENDOR_KIND = {Glasses.ITEM_TYPE: Vendor.KIND_OPTICS, Medicine.ITEM_TYPE: Vendor.KIND_MEDICINE}
PURCHASE_PREFIX = {Glasses.ITEM_TYPE: 'GP', Medicine.ITEM_TYPE: 'MP'}
EXPENSE_CATEGORY = {Glasses.ITEM_TYPE: 'Optics Purchase', Medicine.ITEM_TYPE: 'Medicine Purchase'}

# movements that take stock out
OUTGOING = {StockMovement.TYPE_SALE, StockMovement.TYPE_DAMAGE}


def item_model(item_type: str) -> Type:
    try:
        return ITEM_MODELS[item_type]
    except KeyError:
        raise NotFound(f'unknown item type {item_type!r}') from None


def get_item(item_type: str, item_id: int, *, lock: bool = False):
    model = item_model(item_type)
    qs = model.objects.select_for_update() if lock else model.objects
    item = qs.filter(id=item_id).first()
    if not item:
        raise NotFound(f'{item_type} not found')
    return item


def _movement(item, *, movement_type: str, quantity: int, previous: int, unit_price, total, notes: str, user):
    return StockMovement.objects.create(
        item_type=item.ITEM_TYPE,
        item_id=item.id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous,
        new_stock=item.stock_quantity,
        unit_price=unit_price,
        total_amount=total,
        notes=notes,
        user=user,
    )


def _payment_status(paid: Decimal, total: Decimal) -> str:
    if paid >= total:
        return StockPurchase.STATUS_PAID
    if paid > 0:
        return StockPurchase.STATUS_PARTIAL
    return StockPurchase.STATUS_PENDING


@transaction.atomic
def receive_stock(item_type: str, item_id: int, *, quantity: int, total_price, vendor_id: Optional[int] = None,
                  paid_amount=None, notes: str = '', on: Optional[date] = None, user=None) -> StockMovement:
    """Add ``quantity`` units bought for ``total_price``.

    Without a vendor the whole price is paid in cash.  With a vendor the
    unpaid part (``total_price - paid_amount``) becomes vendor due.
    """
    total = Decimal(str(total_price))
    if total < 0:
        raise InvalidAmount('Total price cannot be negative.')
    if not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity('Quantity must be at least 1.')
    on = on or timezone.localdate()
    lock_books()
    item = get_item(item_type, item_id, lock=True)

    new_price, new_qty = weighted_average(item.stock_quantity, item.purchase_price, quantity, total)
    previous = item.stock_quantity
    item.purchase_price = new_price
    item.stock_quantity = new_qty
    item.save(update_fields=['purchase_price', 'stock_quantity'])
    unit = total / Decimal(quantity)
    movement = _movement(item, movement_type=StockMovement.TYPE_PURCHASE, quantity=quantity, previous=previous,
                         unit_price=unit, total=total, notes=notes, user=user)

    if vendor_id:
        vendor = vendors.get_vendor(vendor_id, kind=VENDOR_KIND[item_type])
        paid = Decimal(str(paid_amount or 0))
        if paid < 0 or paid > total:
            raise InvalidAmount('Paid amount must be between 0 and the total price.')
        purchase = StockPurchase.objects.create(
            purchase_no=next_number(StockPurchase, 'purchase_no', PURCHASE_PREFIX[item_type], on),
            vendor=vendor, item_type=item_type, item_id=item.id, quantity=quantity,
            unit_price=unit, total_amount=total, paid_amount=paid, due_amount=total - paid,
            payment_status=_payment_status(paid, total), purchase_date=on, created_by=user,
        )
        if purchase.due_amount > 0:
            vendors.record_purchase(vendor.id, amount=purchase.due_amount,
                                    description=f'{purchase.purchase_no} - {item.name} x{quantity}', on=on,
                                    user=user, reference_type='stock_purchase', reference_id=purchase.id)
        if paid > 0:
            hospital_account.add_expense(amount=paid, category=EXPENSE_CATEGORY[item_type],
                                         description=f'{purchase.purchase_no} - {item.name} x{quantity}', on=on,
                                         user=user, reference_type='stock_purchase', reference_id=purchase.id)
    elif total > 0:
        hospital_account.add_expense(amount=total, category=EXPENSE_CATEGORY[item_type],
                                     description=f'Cash purchase - {item.name} x{quantity}', on=on, user=user,
                                     reference_type='stock_movement', reference_id=movement.id)

    log_action(user=user, action='stock_receive', object_type=item_type, object_id=item.id,
               detail={'quantity': quantity, 'total': total, 'average_price': new_price})
    logger.info('%s #%s received %s for %s, stock %s, average %s',
                item_type, item.id, quantity, total, new_qty, new_price)
    return movement


@transaction.atomic
def move_stock(item_type: str, item_id: int, *, movement_type: str, quantity: int, notes: str = '',
               unit_price=None, user=None) -> StockMovement:
    """Sale, damage, return or a signed adjustment of stock on hand."""
    if movement_type == StockMovement.TYPE_PURCHASE:
        raise ValidationError({'movement_type': ['Use receive_stock for purchases.']})
    if not isinstance(quantity, int) or quantity == 0:
        raise InvalidQuantity('Quantity must be a non-zero whole number.')
    if movement_type != StockMovement.TYPE_ADJUSTMENT and quantity < 0:
        raise InvalidQuantity('Quantity must be positive.')
    item = get_item(item_type, item_id, lock=True)

    if movement_type in OUTGOING:
        delta = -quantity
    else:
        delta = quantity
    if item.stock_quantity + delta < 0:
        logger.warning('%s #%s stock movement refused: %s of %s on hand', item_type, item.id, -delta, item.stock_quantity)
        raise InsufficientBalance(f'Insufficient stock: {item.stock_quantity} available, {-delta} requested.')

    previous = item.stock_quantity
    type(item).objects.filter(id=item.id).update(stock_quantity=F('stock_quantity') + delta)
    item.refresh_from_db(fields=['stock_quantity'])
    price = Decimal(str(unit_price)) if unit_price is not None else (
        item.selling_price if movement_type == StockMovement.TYPE_SALE else item.purchase_price
    )
    movement = _movement(item, movement_type=movement_type, quantity=delta, previous=previous,
                         unit_price=price, total=price * abs(delta), notes=notes, user=user)
    log_action(user=user, action=f'stock_{movement_type}', object_type=item_type, object_id=item.id,
               detail={'quantity': delta, 'stock': item.stock_quantity})
    return movement


def toggle_item(item_type: str, item_id: int, *, user=None):
    item = get_item(item_type, item_id)
    item.is_active = not item.is_active
    item.save(update_fields=['is_active'])
    log_action(user=user, action='stock_item_toggle', object_type=item_type, object_id=item.id,
               detail={'is_active': item.is_active})
    return item


@transaction.atomic
def delete_item(item_type: str, item_id: int, *, user=None) -> None:
    item = get_item(item_type, item_id, lock=True)
    if StockMovement.objects.filter(item_type=item_type, item_id=item.id).exists():
        raise Conflict('Item has stock movements and cannot be deleted. Set it inactive instead.')
    log_action(user=user, action='stock_item_delete', object_type=item_type, object_id=item.id,
               detail={'sku': item.sku, 'name': item.name})
    item.delete()


def low_stock(item_type: str):
    model = item_model(item_type)
    return model.objects.filter(is_active=True, stock_quantity__lte=F('minimum_stock_level')).order_by('stock_quantity')


def movements(item_type: str, item_id: int):
    return StockMovement.objects.filter(item_type=item_type, item_id=item_id).select_related('user').order_by('-created_at', '-id')


def item_to_dict(item) -> dict:
    data = {
        'id': item.id,
        'item_type': item.ITEM_TYPE,
        'name': item.name,
        'sku': item.sku,
        'purchase_price': item.purchase_price,
        'purchase_price_display': display_price(item.purchase_price),
        'selling_price': item.selling_price,
        'stock_quantity': item.stock_quantity,
        'minimum_stock_level': item.minimum_stock_level,
        'is_active': item.is_active,
    }
    if isinstance(item, Glasses):
        data.update(brand=item.brand, model=item.model, frame_type=item.frame_type,
                    default_vendor_id=item.default_vendor_id)
    else:
        data.update(generic_name=item.generic_name, unit=item.unit)
    return data


def movement_to_dict(m: StockMovement) -> dict:
    return {
        'id': m.id,
        'item_type': m.item_type,
        'item_id': m.item_id,
        'movement_type': m.movement_type,
        'quantity': m.quantity,
        'previous_stock': m.previous_stock,
        'new_stock': m.new_stock,
        'unit_price': m.unit_price,
        'total_amount': m.total_amount,
        'notes': m.notes,
        'user': m.user.username if m.user else None,
        'created_at': m.created_at.isoformat() if m.created_at else None,
    }
