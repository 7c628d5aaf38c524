"""
Pool selection, weighted-average costing and the vendor exclusion
predicate.  None of these touch the database.
"""
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from accounts.exceptions import InsufficientBalance, InvalidAmount, InvalidQuantity
from accounts.models import AdvanceHouseRent
from accounts.services.costing import display_price, weighted_average
from accounts.services.settlement import (
    POLICY_OLDEST,
    POLICY_SUFFICIENT,
    apply_deduction,
    fifo_order,
    select_pool,
)
from accounts.services.vendor_due import OPENING_STOCK_VENDORS, VendorDue


def pool(id, paid_on, remaining):
    return SimpleNamespace(id=id, payment_date=paid_on, remaining_amount=Decimal(remaining))


JAN = pool(1, date(2025, 1, 1), '100')
FEB = pool(2, date(2025, 2, 1), '200')


def test_oldest_policy_refuses_when_oldest_pool_is_short():
    with pytest.raises(InsufficientBalance):
        select_pool([FEB, JAN], Decimal('150'), policy=POLICY_OLDEST)


def test_sufficient_policy_skips_to_first_pool_that_covers():
    assert select_pool([FEB, JAN], Decimal('150'), policy=POLICY_SUFFICIENT) is FEB


def test_default_policy_skips_pools_that_are_too_small():
    assert select_pool([FEB, JAN], Decimal('150')) is FEB


def test_both_policies_take_oldest_when_it_covers():
    for policy in (POLICY_OLDEST, POLICY_SUFFICIENT):
        assert select_pool([FEB, JAN], Decimal('100'), policy=policy) is JAN


def test_empty_pools_are_passed_over():
    spent = pool(1, date(2025, 1, 1), '0')
    assert select_pool([spent, FEB], Decimal('150'), policy=POLICY_OLDEST) is FEB


def test_same_payment_date_falls_back_to_id():
    a = pool(7, date(2025, 3, 1), '50')
    b = pool(3, date(2025, 3, 1), '50')
    assert fifo_order([a, b]) == [b, a]


def test_no_pools_at_all():
    with pytest.raises(InsufficientBalance):
        select_pool([], Decimal('1'))
    with pytest.raises(InsufficientBalance):
        select_pool([], Decimal('1'), policy=POLICY_SUFFICIENT)


def test_non_positive_amount_and_unknown_policy():
    with pytest.raises(InvalidAmount):
        select_pool([JAN], Decimal('0'))
    with pytest.raises(ValueError):
        select_pool([JAN], Decimal('10'), policy='newest')


def test_apply_deduction_exhausts_pool():
    advance = AdvanceHouseRent(advance_amount=Decimal('1000'), used_amount=Decimal('0'),
                               remaining_amount=Decimal('1000'), status=AdvanceHouseRent.STATUS_ACTIVE)
    apply_deduction(advance, Decimal('400'))
    assert advance.remaining_amount == Decimal('600')
    assert advance.status == AdvanceHouseRent.STATUS_ACTIVE
    apply_deduction(advance, Decimal('600'))
    assert advance.used_amount == Decimal('1000')
    assert advance.remaining_amount == 0
    assert advance.status == AdvanceHouseRent.STATUS_EXHAUSTED


def test_weighted_average_example():
    price, qty = weighted_average(10, Decimal('5.00'), 10, Decimal('70.00'))
    assert price == Decimal('6')
    assert qty == 20


def test_weighted_average_from_empty_stock_uses_incoming_cost():
    assert weighted_average(0, Decimal('99'), 4, Decimal('10')) == (Decimal('2.5'), 4)


def test_weighted_average_is_not_rounded():
    price, qty = weighted_average(3, Decimal('1'), 3, Decimal('1'))
    assert qty == 6
    assert price != Decimal('0.67')
    assert display_price(price) == Decimal('0.67')


def test_weighted_average_rejects_bad_input():
    for qty in (0, -2, True):
        with pytest.raises(InvalidQuantity):
            weighted_average(1, Decimal('1'), qty, Decimal('5'))
    with pytest.raises(InvalidAmount):
        weighted_average(1, Decimal('1'), 1, Decimal('-5'))


@pytest.mark.parametrize('name', ['OLD STOCK ADD', 'OldStockAdd', 'old stock addition (2023)'])
def test_placeholder_vendor_names_match(name):
    assert OPENING_STOCK_VENDORS.matches(name)


@pytest.mark.parametrize('name', ['Square Pharma', 'Oldham Stockists', ''])
def test_real_vendor_names_do_not_match(name):
    assert not OPENING_STOCK_VENDORS.matches(name)


def test_current_due_formula():
    row = VendorDue(vendor_id=1, vendor_name='A', previous_due=Decimal('500'),
                    purchase_due=Decimal('300'), payment=Decimal('200'))
    assert row.current_due == Decimal('600')
    assert row.as_dict()['current_due'] == Decimal('600')
    assert not VendorDue(2, 'B', Decimal('0'), Decimal('0'), Decimal('0')).has_activity
