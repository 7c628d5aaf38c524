import io
from datetime import date
from decimal import Decimal

import pytest
from django.core.management import call_command

from accounts.exceptions import (
    Conflict,
    DuplicatePeriod,
    InsufficientBalance,
    InvalidAmount,
    InvalidQuantity,
    NotFound,
    ValidationError,
)
from accounts.models import (
    AdvanceHouseRent,
    AdvanceHouseRentDeduction,
    AuditEvent,
    ExpenseCategory,
    FixedAsset,
    HospitalAccount,
    HospitalFundTransaction,
    HospitalTransaction,
    Medicine,
    Role,
    StockMovement,
    StockPurchase,
    User,
    Vendor,
)
from accounts.services import advance_rent, fixed_assets, hospital_account, ledgers, rbac, stock, vendor_due, vendors
from accounts.services.ledger import fold_balance
from accounts.services.numbering import lock_books
from accounts.services.settlement import POLICY_OLDEST, POLICY_SUFFICIENT

pytestmark = pytest.mark.django_db

D = Decimal
FLOOR = AdvanceHouseRent.FLOOR_2_3


def balance():
    return hospital_account.current_balance()


# ---------------------------------------------------------------------------
# Hospital account
# ---------------------------------------------------------------------------

def test_fund_in_out_and_expense_move_balance():
    hospital_account.fund_in(amount=D('1000'), purpose='Investor A', on=date(2025, 1, 1))
    hospital_account.fund_out(amount=D('200'), purpose='Investor A', on=date(2025, 1, 2))
    txn = hospital_account.add_expense(amount=D('300'), category='Utilities', on=date(2025, 1, 3))
    hospital_account.add_income(amount=D('50'), category='Consultation', on=date(2025, 1, 4))
    assert balance() == D('550')
    assert txn.transaction_no == 'HE-20250103-0001'
    assert txn.expense_category.name == 'Utilities'
    assert hospital_account.balance_as_on(date(2025, 1, 2)) == D('800')
    assert hospital_account.current_balance(date(2025, 12, 31)) == balance()


def test_voucher_numbers_increase_per_day():
    a = hospital_account.fund_in(amount=D('1'), purpose='A', on=date(2025, 5, 1))
    b = hospital_account.fund_in(amount=D('1'), purpose='A', on=date(2025, 5, 1))
    c = hospital_account.fund_in(amount=D('1'), purpose='A', on=date(2025, 5, 2))
    assert [a.voucher_no, b.voucher_no, c.voucher_no] == ['HFI-20250501-0001', 'HFI-20250501-0002',
                                                          'HFI-20250502-0001']


def test_overdraw_is_refused_and_nothing_is_written():
    hospital_account.fund_in(amount=D('100'), purpose='A')
    with pytest.raises(InsufficientBalance):
        hospital_account.fund_out(amount=D('100.01'), purpose='A')
    with pytest.raises(InsufficientBalance):
        hospital_account.add_expense(amount=D('500'), category='Salary')
    assert balance() == D('100')
    assert not HospitalTransaction.objects.exists()


def test_non_positive_amount_is_invalid():
    with pytest.raises(InvalidAmount):
        hospital_account.fund_in(amount=D('0'), purpose='A')
    with pytest.raises(InvalidAmount):
        hospital_account.add_income(amount=D('-5'), category='Consultation')


def test_update_and_delete_transaction_adjust_balance():
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    txn = hospital_account.add_expense(amount=D('400'), category='Salary')
    hospital_account.update_transaction(txn.id, amount=D('700'), category='Salary', description='March',
                                        on=date(2025, 3, 31))
    assert balance() == D('300')
    with pytest.raises(InsufficientBalance):
        hospital_account.update_transaction(txn.id, amount=D('1500'), category='Salary', description='',
                                            on=date(2025, 3, 31))
    assert balance() == D('300')
    hospital_account.delete_transaction(txn.id)
    assert balance() == D('1000')


def test_deleting_fund_in_cannot_leave_negative_balance():
    fund = hospital_account.fund_in(amount=D('500'), purpose='A')
    hospital_account.add_expense(amount=D('400'), category='Salary')
    with pytest.raises(InsufficientBalance):
        hospital_account.delete_fund_transaction(fund.id)
    hospital_account.update_fund_transaction(fund.id, amount=D('450'), purpose='A', description='',
                                             on=date(2025, 1, 1))
    assert balance() == D('50')


def test_rows_posted_by_vendor_payment_are_not_edited_here():
    square, _, _ = _medicine_vendors()
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    vendors.pay_vendor(square.id, amount=D('300'), payment_method='cash')
    expense = HospitalTransaction.objects.get(reference_type='vendor_payment')
    with pytest.raises(Conflict):
        hospital_account.delete_transaction(expense.id)
    with pytest.raises(Conflict):
        hospital_account.update_transaction(expense.id, amount=D('1'), category=expense.category,
                                            description='', on=expense.transaction_date)
    expense.refresh_from_db()
    square.refresh_from_db()
    assert expense.amount == D('300')
    assert balance() == D('700')
    assert square.current_balance == D('200')


def test_numbers_past_9999_keep_counting():
    for voucher_no in ('HFI-20250601-9999', 'HFI-20250601-10000'):
        HospitalFundTransaction.objects.create(voucher_no=voucher_no, type=HospitalFundTransaction.TYPE_FUND_IN,
                                               amount=D('1'), purpose='A', date=date(2025, 6, 1))
    fund = hospital_account.fund_in(amount=D('1'), purpose='A', on=date(2025, 6, 1))
    assert fund.voucher_no == 'HFI-20250601-10001'


def test_lock_books_returns_the_account_row():
    hospital_account.fund_in(amount=D('250'), purpose='A')
    account = lock_books()
    assert account.pk == 1
    assert account.balance == balance() == D('250')
    assert HospitalAccount.objects.count() == 1


def test_monthly_report():
    hospital_account.fund_in(amount=D('5000'), purpose='A')
    hospital_account.add_income(amount=D('800'), category='Consultation', on=date(2025, 4, 2))
    hospital_account.add_expense(amount=D('300'), category='Salary', on=date(2025, 4, 20))
    hospital_account.add_expense(amount=D('100'), category='Salary', on=date(2025, 5, 1))
    report = hospital_account.monthly_report(2025, 4)
    assert report['income'] == D('800')
    assert report['expense'] == D('300')
    assert report['profit'] == D('500')


def test_mutations_are_audited():
    hospital_account.fund_in(amount=D('10'), purpose='A')
    assert AuditEvent.objects.filter(action='fund_in').count() == 1


# ---------------------------------------------------------------------------
# Ledgers
# ---------------------------------------------------------------------------

def test_fund_ledger_groups_per_date_and_filters_investor():
    hospital_account.fund_in(amount=D('1000'), purpose='A', on=date(2025, 1, 1))
    hospital_account.fund_in(amount=D('500'), purpose='B', on=date(2025, 1, 1))
    hospital_account.fund_out(amount=D('300'), purpose='A', on=date(2025, 1, 3))

    ledger = ledgers.fund_ledger()
    assert len(ledger.entries) == 2
    assert ledger.entries[0].credit == D('1500')
    assert len(ledger.entries[0].details) == 2
    assert ledger.final_balance == D('1200')

    only_a = ledgers.fund_ledger(investor='A')
    assert only_a.total_credit == D('1000')
    assert only_a.total_debit == D('300')
    assert only_a.final_balance == D('700')

    later = ledgers.fund_ledger(start=date(2025, 1, 2))
    assert later.previous_balance == D('1500')
    assert later.final_balance == D('1200')

    payload = ledgers.fund_ledger_payload(ledger)
    assert payload['rows'][0]['investor_name'] == 'A, B'
    assert payload['totals']['balance'] == D('1200')


def test_fund_ledger_seed_matches_fold():
    for day, amount in ((1, '100'), (4, '250'), (9, '75')):
        hospital_account.fund_in(amount=D(amount), purpose='A', on=date(2025, 2, day))
    hospital_account.fund_out(amount=D('60'), purpose='A', on=date(2025, 2, 5))
    provider = ledgers.FundTransactionProvider()
    rows = list(provider.within(None, None))
    for start in (date(2025, 2, 1), date(2025, 2, 5), date(2025, 2, 10)):
        assert provider.balance_before(start) == fold_balance(rows, before=start)


def test_house_security_ledger():
    hospital_account.fund_in(amount=D('10000'), purpose='A', on=date(2025, 1, 1))
    hospital_account.add_expense(amount=D('5000'), category='House Security', description='Guard salary',
                                 on=date(2025, 1, 5))
    hospital_account.add_expense(amount=D('700'), category='Utilities', description='Electricity',
                                 on=date(2025, 1, 6))
    hospital_account.add_expense(amount=D('3000'), category='House Security', description='CCTV repair',
                                 on=date(2025, 1, 20))

    ledger = ledgers.house_security_ledger()
    assert [e.balance for e in ledger.entries] == [D('5000'), D('8000')]

    windowed = ledgers.house_security_ledger(start=date(2025, 1, 10))
    assert windowed.previous_balance == D('5000')
    assert len(windowed.entries) == 1
    assert windowed.final_balance == D('8000')

    guard = ledgers.house_security_ledger(search='Guard')
    assert len(guard.entries) == 1
    assert guard.final_balance == D('5000')

    payload = ledgers.house_security_payload(ledger)
    assert payload['totals']['total_expense'] == D('8000')
    assert payload['rows'][1]['description'] == 'CCTV repair'


def test_house_security_ledger_empty_without_category():
    ledger = ledgers.house_security_ledger()
    assert ledger.entries == []
    assert ledger.final_balance == 0


# ---------------------------------------------------------------------------
# Advance house rent
# ---------------------------------------------------------------------------

def test_advance_is_paid_from_the_account():
    hospital_account.fund_in(amount=D('5000'), purpose='A')
    adv = advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR, payment_date=date(2025, 2, 1))
    assert adv.payment_number == 'ADV-RENT-20250201-0001'
    assert balance() == D('4000')
    expense = HospitalTransaction.objects.get(reference_type='advance_rent', reference_id=adv.id)
    assert expense.category == advance_rent.EXPENSE_CATEGORY


def test_advance_needs_balance():
    with pytest.raises(InsufficientBalance):
        advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR)
    assert not AdvanceHouseRent.objects.exists()
    with pytest.raises(InvalidAmount):
        advance_rent.create_advance(amount=D('0.50'), floor_type=FLOOR)


def test_deduction_exhausts_pool_and_blocks_same_month():
    hospital_account.fund_in(amount=D('5000'), purpose='A')
    adv = advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR, payment_date=date(2025, 2, 1))

    deduction = advance_rent.deduct(amount=D('1000'), month=3, year=2025, floor_type=FLOOR, on=date(2025, 3, 1))
    adv.refresh_from_db()
    assert adv.used_amount == D('1000')
    assert adv.remaining_amount == 0
    assert adv.status == AdvanceHouseRent.STATUS_EXHAUSTED
    assert deduction.deduction_number == 'RENT-202503-0001'
    # deductions do not touch the account
    assert balance() == D('4000')

    advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR, payment_date=date(2025, 3, 5))
    with pytest.raises(DuplicatePeriod):
        advance_rent.deduct(amount=D('500'), month=3, year=2025, floor_type=FLOOR)


def test_duplicate_month_checked_even_when_no_pool_is_left():
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR)
    advance_rent.deduct(amount=D('1000'), month=3, year=2025, floor_type=FLOOR)
    with pytest.raises(DuplicatePeriod):
        advance_rent.deduct(amount=D('1000'), month=3, year=2025, floor_type=FLOOR)


def test_same_month_on_other_floor_is_allowed():
    hospital_account.fund_in(amount=D('2000'), purpose='A')
    advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR)
    advance_rent.create_advance(amount=D('1000'), floor_type=AdvanceHouseRent.FLOOR_4)
    advance_rent.deduct(amount=D('300'), month=6, year=2025, floor_type=FLOOR)
    advance_rent.deduct(amount=D('300'), month=6, year=2025, floor_type=AdvanceHouseRent.FLOOR_4)


def test_pool_selection_policies():
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    jan = advance_rent.create_advance(amount=D('100'), floor_type=FLOOR, payment_date=date(2025, 1, 1))
    feb = advance_rent.create_advance(amount=D('200'), floor_type=FLOOR, payment_date=date(2025, 2, 1))

    with pytest.raises(InsufficientBalance):
        advance_rent.deduct(amount=D('150'), month=4, year=2025, floor_type=FLOOR, policy=POLICY_OLDEST)
    deduction = advance_rent.deduct(amount=D('150'), month=4, year=2025, floor_type=FLOOR)
    assert deduction.advance_id == feb.id
    again = advance_rent.deduct(amount=D('50'), month=5, year=2025, floor_type=FLOOR,
                                policy=POLICY_SUFFICIENT)
    assert again.advance_id == jan.id


def test_deduction_below_one_is_invalid():
    hospital_account.fund_in(amount=D('100'), purpose='A')
    advance_rent.create_advance(amount=D('100'), floor_type=FLOOR)
    with pytest.raises(InvalidAmount):
        advance_rent.deduct(amount=D('0.5'), month=4, year=2025, floor_type=FLOOR)
    assert not AdvanceHouseRentDeduction.objects.exists()


def test_deduction_period_validation():
    with pytest.raises(ValidationError):
        advance_rent.deduct(amount=D('10'), month=13, year=2025, floor_type=FLOOR)
    with pytest.raises(ValidationError):
        advance_rent.deduct(amount=D('10'), month=1, year=2019, floor_type=FLOOR)


def test_cancel_refunds_untouched_advance_only():
    hospital_account.fund_in(amount=D('3000'), purpose='A')
    untouched = advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR, payment_date=date(2025, 1, 1))
    used = advance_rent.create_advance(amount=D('1000'), floor_type=AdvanceHouseRent.FLOOR_4)
    advance_rent.deduct(amount=D('100'), month=1, year=2025, floor_type=AdvanceHouseRent.FLOOR_4)

    advance_rent.cancel_advance(untouched.id)
    assert balance() == D('2000')
    untouched.refresh_from_db()
    assert untouched.status == AdvanceHouseRent.STATUS_CANCELLED
    with pytest.raises(Conflict):
        advance_rent.cancel_advance(untouched.id)
    with pytest.raises(Conflict):
        advance_rent.cancel_advance(used.id)


def test_history_carries_previous_balance():
    hospital_account.fund_in(amount=D('5000'), purpose='A')
    advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR, payment_date=date(2025, 1, 15))
    advance_rent.deduct(amount=D('400'), month=2, year=2025, floor_type=FLOOR, notes='Paid to landlord',
                        on=date(2025, 2, 1))

    ledger = advance_rent.history(year=2025, month=2)
    assert ledger.previous_balance == D('1000')
    assert len(ledger.entries) == 1
    assert ledger.entries[0].debit == D('400')
    assert ledger.final_balance == D('600')
    assert ledger.entries[0].details[0].description == 'Rent for February 2025 - Paid to landlord'

    whole_year = advance_rent.history_payload(advance_rent.history(year=2025))
    assert whole_year['previous_balance'] == 0
    assert [r['balance'] for r in whole_year['rows']] == [D('1000'), D('600')]
    assert advance_rent.period_label(2025, 2) == 'February 2025'
    assert advance_rent.period_label(None, None) == 'All Time'


def test_dashboard_totals():
    hospital_account.fund_in(amount=D('5000'), purpose='A')
    advance_rent.create_advance(amount=D('1000'), floor_type=FLOOR, payment_date=date(2025, 1, 1))
    advance_rent.create_advance(amount=D('500'), floor_type=FLOOR, payment_date=date(2025, 2, 1))
    advance_rent.deduct(amount=D('1000'), month=1, year=2025, floor_type=FLOOR)

    data = advance_rent.dashboard(FLOOR)
    assert data['total_given'] == D('1500')
    assert data['total_used'] == D('1000')
    assert data['total_balance'] == D('500')
    assert len(data['active_advances']) == 1
    assert len(data['exhausted_advances']) == 1
    assert len(data['monthly_deductions']) == 12


# ---------------------------------------------------------------------------
# Vendors & due ledger
# ---------------------------------------------------------------------------

def _medicine_vendors():
    square = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Square Pharma', opening_balance=D('500'))
    placeholder = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='OLD STOCK ADD', opening_balance=D('1000'))
    prepaid = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Beximco', opening_balance=D('300'),
                                    balance_type=Vendor.BALANCE_ADVANCE)
    return square, placeholder, prepaid


def test_due_ledger_window_and_exclusion():
    square, placeholder, prepaid = _medicine_vendors()
    hospital_account.fund_in(amount=D('10000'), purpose='A')
    vendors.record_purchase(square.id, amount=D('2000'), on=date(2025, 1, 10))
    vendors.pay_vendor(square.id, amount=D('800'), payment_method='cash', on=date(2025, 2, 5))
    vendors.record_purchase(square.id, amount=D('1000'), on=date(2025, 2, 10))
    vendors.record_purchase(placeholder.id, amount=D('700'), on=date(2025, 2, 1))

    data = vendor_due.due_ledger(Vendor.KIND_MEDICINE, start=date(2025, 2, 1), end=date(2025, 2, 28))
    assert [r['vendor_name'] for r in data['rows']] == ['Square Pharma']
    row = data['rows'][0]
    assert row['previous_due'] == D('2500')
    assert row['purchase_due'] == D('1000')
    assert row['payment'] == D('800')
    assert row['current_due'] == D('2700')
    assert data['totals']['current_due'] == D('2700')

    square.refresh_from_db()
    assert square.current_balance == row['current_due']
    # the dropdown hides the same placeholder vendors
    assert {v['name'] for v in data['vendors']} == {'Square Pharma', 'Beximco'}


def test_advance_opening_balance_adds_nothing_to_due():
    _, _, prepaid = _medicine_vendors()
    vendors.record_purchase(prepaid.id, amount=D('100'), on=date(2025, 1, 1))
    rows = vendor_due.compute_dues(Vendor.objects.filter(id=prepaid.id))
    assert rows[0].previous_due == 0
    assert rows[0].current_due == D('100')
    prepaid.refresh_from_db()
    assert prepaid.current_balance == D('200')


def test_vendor_payment_cannot_exceed_due():
    square, _, _ = _medicine_vendors()
    hospital_account.fund_in(amount=D('10000'), purpose='A')
    with pytest.raises(InsufficientBalance):
        vendors.pay_vendor(square.id, amount=D('600'), payment_method='cash')
    txn = vendors.pay_vendor(square.id, amount=D('500'), payment_method='cheque', reference_no='CHQ-9')
    assert txn.transaction_no.startswith('VP-')
    assert txn.previous_balance == D('500')
    assert txn.new_balance == 0
    assert balance() == D('9500')
    expense = HospitalTransaction.objects.get(reference_type='vendor_payment', reference_id=txn.id)
    assert expense.category == 'Medicine Vendor Payment'


def test_purchases_stop_at_the_credit_limit():
    supplier = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Square Pharma',
                                     opening_balance=D('40'), credit_limit=D('100'))
    vendors.record_purchase(supplier.id, amount=D('60'))
    with pytest.raises(InsufficientBalance):
        vendors.record_purchase(supplier.id, amount=D('0.01'))
    supplier.refresh_from_db()
    assert supplier.current_balance == D('100')
    assert supplier.transactions.count() == 1


def test_vendor_with_transactions_cannot_be_deleted():
    square, _, _ = _medicine_vendors()
    vendors.record_purchase(square.id, amount=D('10'))
    with pytest.raises(Conflict):
        vendors.delete_vendor(square.id, kind=Vendor.KIND_MEDICINE)
    with pytest.raises(Conflict):
        vendors.update_vendor(square.id, kind=Vendor.KIND_MEDICINE, opening_balance=D('1'))


def test_vendor_statement_runs_from_opening_balance():
    square, _, _ = _medicine_vendors()
    hospital_account.fund_in(amount=D('5000'), purpose='A')
    vendors.record_purchase(square.id, amount=D('1000'), on=date(2025, 1, 10))
    vendors.pay_vendor(square.id, amount=D('300'), payment_method='cash', on=date(2025, 1, 20))
    statement = vendor_due.vendor_statement(square)
    assert statement.previous_balance == D('500')
    assert [e.balance for e in statement.entries] == [D('1500'), D('1200')]
    later = vendor_due.vendor_statement(square, start=date(2025, 1, 15))
    assert later.previous_balance == D('1500')
    assert later.final_balance == D('1200')


# ---------------------------------------------------------------------------
# Fixed assets
# ---------------------------------------------------------------------------

def test_asset_purchase_splits_paid_and_due():
    hospital_account.fund_in(amount=D('30000'), purpose='A')
    supplier = vendors.create_vendor(kind=Vendor.KIND_FIXED_ASSET, name='Medi Equip')
    asset = fixed_assets.create_asset(name='X-ray machine', total_amount=D('50000'), paid_amount=D('20000'),
                                      vendor_id=supplier.id, purchase_date=date(2025, 1, 1))
    supplier.refresh_from_db()
    assert asset.due_amount == D('30000')
    assert asset.status == FixedAsset.STATUS_ACTIVE
    assert supplier.current_balance == D('30000')
    assert balance() == D('10000')

    fixed_assets.pay_asset(asset.id, amount=D('10000'))
    asset.refresh_from_db()
    supplier.refresh_from_db()
    assert asset.due_amount == D('20000')
    assert supplier.current_balance == D('20000')
    assert balance() == 0

    with pytest.raises(InsufficientBalance):
        fixed_assets.pay_asset(asset.id, amount=D('25000'))

    fixed_assets.update_asset(asset.id, total_amount=D('40000'))
    asset.refresh_from_db()
    supplier.refresh_from_db()
    assert asset.due_amount == D('10000')
    assert supplier.current_balance == D('10000')
    with pytest.raises(InvalidAmount):
        fixed_assets.update_asset(asset.id, total_amount=D('25000'))
    with pytest.raises(Conflict):
        fixed_assets.delete_asset(asset.id)


def test_asset_with_unpaid_part_needs_vendor():
    with pytest.raises(ValidationError):
        fixed_assets.create_asset(name='Bed', total_amount=D('100'), paid_amount=D('0'))
    with pytest.raises(InvalidAmount):
        fixed_assets.create_asset(name='Bed', total_amount=D('100'), paid_amount=D('150'))


def test_unpaid_asset_delete_reverses_vendor_due():
    supplier = vendors.create_vendor(kind=Vendor.KIND_FIXED_ASSET, name='Furniture House')
    asset = fixed_assets.create_asset(name='Bench', total_amount=D('900'), vendor_id=supplier.id)
    fixed_assets.delete_asset(asset.id)
    supplier.refresh_from_db()
    assert supplier.current_balance == 0
    assert not fixed_assets.list_assets().exists()


def test_paying_an_asset_settles_the_vendor_too():
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    supplier = vendors.create_vendor(kind=Vendor.KIND_FIXED_ASSET, name='Medi Equip')
    other = fixed_assets.create_asset(name='Monitor', total_amount=D('400'), vendor_id=supplier.id,
                                      purchase_date=date(2025, 1, 1))
    asset = fixed_assets.create_asset(name='Printer', total_amount=D('600'), vendor_id=supplier.id,
                                      purchase_date=date(2025, 2, 1))
    fixed_assets.pay_asset(asset.id, amount=D('600'))
    asset.refresh_from_db()
    other.refresh_from_db()
    supplier.refresh_from_db()
    assert asset.status == FixedAsset.STATUS_FULLY_PAID
    assert other.due_amount == D('400')
    assert supplier.current_balance == D('400')
    assert balance() == D('400')


def test_vendor_payment_settles_assets_oldest_first():
    hospital_account.fund_in(amount=D('5000'), purpose='A')
    supplier = vendors.create_vendor(kind=Vendor.KIND_FIXED_ASSET, name='Medi Equip')
    first = fixed_assets.create_asset(name='Monitor', total_amount=D('1000'), vendor_id=supplier.id,
                                      purchase_date=date(2025, 1, 1))
    second = fixed_assets.create_asset(name='Printer', total_amount=D('800'), vendor_id=supplier.id,
                                       purchase_date=date(2025, 2, 1))
    vendors.pay_vendor(supplier.id, amount=D('1300'), payment_method='bank_transfer')
    first.refresh_from_db()
    second.refresh_from_db()
    assert first.status == FixedAsset.STATUS_FULLY_PAID
    assert second.due_amount == D('500')
    totals = fixed_assets.totals(fixed_assets.list_assets())
    assert totals['count'] == 2
    assert totals['total_due'] == D('500')


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------

def _paracetamol(**kw):
    return Medicine.objects.create(name='Paracetamol', sku='MED-001', selling_price=D('2.00'), **kw)


def test_receiving_reprices_at_weighted_average():
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    item = _paracetamol()
    stock.receive_stock('medicine', item.id, quantity=10, total_price=D('50'))
    stock.receive_stock('medicine', item.id, quantity=10, total_price=D('70'))
    item.refresh_from_db()
    assert item.stock_quantity == 20
    assert item.purchase_price == D('6')
    assert balance() == D('880')
    assert StockMovement.objects.filter(item_type='medicine', item_id=item.id).count() == 2


def test_sales_cannot_exceed_stock():
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    item = _paracetamol()
    stock.receive_stock('medicine', item.id, quantity=10, total_price=D('60'))
    sale = stock.move_stock('medicine', item.id, movement_type=StockMovement.TYPE_SALE, quantity=4)
    assert sale.quantity == -4
    assert sale.unit_price == D('2.00')
    with pytest.raises(InsufficientBalance):
        stock.move_stock('medicine', item.id, movement_type=StockMovement.TYPE_DAMAGE, quantity=7)
    stock.move_stock('medicine', item.id, movement_type=StockMovement.TYPE_ADJUSTMENT, quantity=-2)
    item.refresh_from_db()
    assert item.stock_quantity == 4
    with pytest.raises(InvalidQuantity):
        stock.move_stock('medicine', item.id, movement_type=StockMovement.TYPE_SALE, quantity=0)


def test_receive_on_credit_books_vendor_due():
    hospital_account.fund_in(amount=D('1000'), purpose='A')
    supplier = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Square Pharma')
    item = _paracetamol()
    stock.receive_stock('medicine', item.id, quantity=4, total_price=D('100'), vendor_id=supplier.id,
                        paid_amount=D('30'), on=date(2025, 3, 1))
    supplier.refresh_from_db()
    purchase = StockPurchase.objects.get()
    assert purchase.purchase_no == 'MP-20250301-0001'
    assert purchase.payment_status == StockPurchase.STATUS_PARTIAL
    assert supplier.current_balance == D('70')
    assert balance() == D('970')


def test_receive_over_credit_limit_changes_nothing():
    supplier = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Square Pharma', credit_limit=D('100'))
    item = _paracetamol()
    with pytest.raises(InsufficientBalance):
        stock.receive_stock('medicine', item.id, quantity=5, total_price=D('500'), vendor_id=supplier.id,
                            paid_amount=D('0'))
    item.refresh_from_db()
    supplier.refresh_from_db()
    assert item.stock_quantity == 0
    assert supplier.current_balance == 0
    assert not StockPurchase.objects.exists()
    assert not StockMovement.objects.exists()


def test_receive_rejects_bad_quantity_and_wrong_vendor_kind():
    item = _paracetamol()
    optics = vendors.create_vendor(kind=Vendor.KIND_OPTICS, name='Lens World')
    with pytest.raises(InvalidQuantity):
        stock.receive_stock('medicine', item.id, quantity=0, total_price=D('10'))
    with pytest.raises(NotFound):
        stock.receive_stock('medicine', item.id, quantity=1, total_price=D('10'), vendor_id=optics.id)
    item.refresh_from_db()
    assert item.stock_quantity == 0


def test_low_stock_and_delete_rules():
    item = _paracetamol(minimum_stock_level=5)
    assert list(stock.low_stock('medicine')) == [item]
    stock.toggle_item('medicine', item.id)
    assert list(stock.low_stock('medicine')) == []
    stock.delete_item('medicine', item.id)
    assert not Medicine.objects.exists()


# ---------------------------------------------------------------------------
# Roles & permissions
# ---------------------------------------------------------------------------

def test_seed_is_repeatable():
    perms, roles = rbac.seed_defaults()
    assert perms == len(rbac.DEFAULT_PERMISSIONS)
    assert roles == len(rbac.DEFAULT_ROLES)
    assert rbac.seed_defaults() == (0, 0)


def test_overrides_win_over_role():
    rbac.seed_defaults()
    user = User.objects.create_user(username='m1', password='P@ssw0rd1', role=Role.objects.get(name='Medicine Seller'))
    assert user.has_named_permission('medicine-corner.stock')
    assert not user.has_named_permission('optics.stock')

    rbac.give(user, 'optics.stock')
    rbac.revoke(user, 'medicine-corner.stock')
    assert user.has_named_permission('optics.stock')
    assert not user.has_named_permission('medicine-corner.stock')
    assert user.has_all_permissions(['optics.stock', 'dashboard.view'])

    names = rbac.sync(user, ['hospital-account.view'], [])
    assert 'hospital-account.view' in names
    assert 'medicine-corner.stock' in names
    assert 'optics.stock' not in names


def test_super_admin_holds_everything():
    rbac.seed_defaults()
    admin = User.objects.create_user(username='root', password='P@ssw0rd1',
                                     role=Role.objects.get(name=Role.SUPER_ADMIN))
    assert admin.is_super_admin
    assert admin.has_named_permission('roles.manage')
    assert admin.permission_names() == {name for name, _, _ in rbac.DEFAULT_PERMISSIONS}


def test_role_and_permission_management():
    rbac.seed_defaults()
    role = rbac.create_role(name='Accountant', permissions=['hospital-account.view', 'hospital-account.fund-in'])
    assert set(role.permissions.values_list('name', flat=True)) == {'hospital-account.view', 'hospital-account.fund-in'}
    with pytest.raises(ValidationError):
        rbac.create_role(name='accountant')
    with pytest.raises(ValidationError):
        rbac.update_role(role.id, permissions=['no.such-permission'])

    User.objects.create_user(username='acc', password='P@ssw0rd1', role=role)
    with pytest.raises(Conflict):
        rbac.delete_role(role.id)

    perm = rbac.create_permission(name='Reports Export')
    assert perm.name == 'reports.export'
    assert perm.category == 'reports'
    role.permissions.add(perm)
    rbac.delete_permission(perm.id)
    assert not role.permissions.filter(name='reports.export').exists()


# ---------------------------------------------------------------------------
# Management commands
# ---------------------------------------------------------------------------

def test_seed_permissions_command_creates_categories():
    out = io.StringIO()
    call_command('seed_permissions', stdout=out)
    assert 'roles created: 6' in out.getvalue()
    assert ExpenseCategory.objects.filter(name='House Security').exists()
    call_command('seed_permissions', stdout=io.StringIO())
    assert Role.objects.count() == 6


def test_reconcile_balances_reports_and_fixes_drift():
    hospital_account.fund_in(amount=D('500'), purpose='Investor A')
    vendor = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Square Pharma', opening_balance=D('100'))
    vendors.record_purchase(vendor.id, amount=D('40'))

    out = io.StringIO()
    call_command('reconcile_balances', stdout=out)
    assert 'balances consistent.' in out.getvalue()

    HospitalAccount.objects.update(balance=D('1'))
    Vendor.objects.filter(id=vendor.id).update(current_balance=D('0'))
    out = io.StringIO()
    call_command('reconcile_balances', stdout=out)
    assert '2 balance(s) drifted' in out.getvalue()
    assert balance() == D('1')

    call_command('reconcile_balances', '--fix', stdout=io.StringIO())
    assert balance() == D('500')
    vendor.refresh_from_db()
    assert vendor.current_balance == D('140')
