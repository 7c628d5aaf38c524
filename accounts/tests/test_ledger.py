"""
Ledger engine and CSV export, without a database.
"""
import csv
import io
from datetime import date
from decimal import Decimal

from accounts.services.exports import describe, ledger_csv, money
from accounts.services.ledger import (
    CREDIT,
    DEBIT,
    InMemoryProvider,
    LedgerTransaction,
    build_ledger,
    compile_ledger,
    fold_balance,
)


def txn(id, day, amount, direction, month=1, **kw):
    return LedgerTransaction(id=id, date=date(2025, month, day), amount=Decimal(amount), direction=direction, **kw)


def sample():
    return [
        txn(4, 20, '250', DEBIT, description='Generator fuel', reference='HE-4'),
        txn(1, 2, '1000', CREDIT, description='Fund from A', reference='HFI-1'),
        txn(3, 10, '300', DEBIT, description='Guard salary', reference='HE-3'),
        txn(2, 10, '500', CREDIT, description='Fund from B', reference='HFI-2'),
        txn(5, 3, '120', CREDIT, month=2, description='Fund from A', reference='HFI-5'),
    ]


def test_rows_follow_date_then_creation_order():
    ledger = build_ledger(sample())
    assert [e.details[0].id for e in ledger.entries] == [1, 2, 3, 4, 5]
    assert [e.balance for e in ledger.entries] == [
        Decimal('1000'), Decimal('1500'), Decimal('1200'), Decimal('950'), Decimal('1070'),
    ]


def test_same_day_rows_use_seq_before_id():
    rows = [
        txn(1, 5, '100', DEBIT, seq=20),
        txn(2, 5, '400', CREDIT, seq=10),
    ]
    ledger = build_ledger(rows)
    assert [e.details[0].id for e in ledger.entries] == [2, 1]
    assert ledger.entries[0].previous_balance == 0
    assert ledger.entries[1].previous_balance == Decimal('400')


def test_final_balance_identity_with_and_without_grouping():
    seed = Decimal('75.50')
    rows = sample()
    credits = sum(t.amount for t in rows if t.direction == CREDIT)
    debits = sum(t.amount for t in rows if t.direction == DEBIT)
    for grouped in (False, True):
        ledger = build_ledger(rows, seed, group_by_date=grouped)
        assert ledger.final_balance == seed + credits - debits
        assert ledger.total_credit == credits
        assert ledger.total_debit == debits
        assert ledger.entries[-1].balance == ledger.final_balance


def test_grouping_merges_same_date_rows_and_keeps_details():
    ledger = build_ledger(sample(), group_by_date=True)
    assert len(ledger.entries) == 4
    jan10 = ledger.entries[1]
    assert jan10.date == date(2025, 1, 10)
    assert [t.id for t in jan10.details] == [2, 3]
    assert jan10.credit == Decimal('500')
    assert jan10.debit == Decimal('300')
    assert jan10.previous_balance == Decimal('1000')
    assert jan10.balance == Decimal('1200')


def test_empty_window_returns_seed():
    ledger = build_ledger([], Decimal('420'))
    assert ledger.entries == []
    assert ledger.previous_balance == Decimal('420')
    assert ledger.final_balance == Decimal('420')
    assert ledger.total_credit == 0 and ledger.total_debit == 0


def test_seed_matches_fold_over_earlier_rows():
    rows = sample()
    provider = InMemoryProvider(rows)
    start = date(2025, 1, 10)
    ledger = compile_ledger(provider, start)
    assert ledger.previous_balance == fold_balance(rows, before=start) == Decimal('1000')
    assert [t.id for e in ledger.entries for t in e.details] == [2, 3, 4, 5]
    # windowing never changes where the ledger ends up
    assert ledger.final_balance == compile_ledger(provider).final_balance


def test_window_end_is_inclusive():
    ledger = compile_ledger(InMemoryProvider(sample()), date(2025, 1, 1), date(2025, 1, 10))
    assert [t.id for e in ledger.entries for t in e.details] == [1, 2, 3]
    assert ledger.final_balance == Decimal('1200')


def test_recomputing_gives_identical_output():
    provider = InMemoryProvider(sample())
    first = compile_ledger(provider, date(2025, 1, 5), group_by_date=True).as_dict()
    second = compile_ledger(provider, date(2025, 1, 5), group_by_date=True).as_dict()
    assert first == second


def test_money_formatting():
    assert money(Decimal('1234.5')) == '1,234.50'
    assert money(Decimal('0.005')) == '0.01'
    assert money(0) == '0.00'


def test_describe_joins_grouped_rows():
    ledger = build_ledger(sample(), group_by_date=True)
    assert describe(ledger.entries[0]) == ('Fund from A', 'HFI-1')
    assert describe(ledger.entries[1]) == ('Multiple Transactions: Fund from B; Guard salary', 'HFI-2; HE-3')


def test_csv_export_of_three_transactions():
    rows = [
        txn(1, 1, '1000', CREDIT, description='Advance payment', reference='ADV-RENT-1'),
        txn(3, 10, '200', DEBIT, description='Rent for January 2025', reference='RENT-2'),
        txn(2, 5, '300', DEBIT, description='Rent for December 2024', reference='RENT-1'),
    ]
    content = ledger_csv(build_ledger(rows), title='Advance House Rent History - 2025', currency='৳')
    parsed = list(csv.reader(io.StringIO(content)))
    assert parsed[0] == ['Advance House Rent History - 2025']
    assert parsed[1] == []
    assert parsed[2] == ['Date', 'Description', 'Payment/Deduction No', 'Credit (৳)', 'Debit (৳)', 'Balance (৳)']
    assert parsed[3] == ['', 'Opening Balance', '', '', '', '0.00']
    assert parsed[4] == ['2025-01-01', 'Advance payment', 'ADV-RENT-1', '1,000.00', '', '1,000.00']
    assert parsed[5] == ['2025-01-05', 'Rent for December 2024', 'RENT-1', '', '300.00', '700.00']
    assert parsed[6] == ['2025-01-10', 'Rent for January 2025', 'RENT-2', '', '200.00', '500.00']
    assert parsed[7] == []
    assert parsed[8] == ['', 'Total', '', '1,000.00', '500.00', '500.00']


def test_csv_export_without_currency_and_with_seed():
    content = ledger_csv(build_ledger([], Decimal('50')), title='Empty')
    parsed = list(csv.reader(io.StringIO(content)))
    assert parsed[2][3:] == ['Credit', 'Debit', 'Balance']
    assert parsed[3][-1] == '50.00'
    assert parsed[-1] == ['', 'Total', '', '0.00', '0.00', '50.00']
