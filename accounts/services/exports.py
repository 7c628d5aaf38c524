"""
CSV rendering of ledgers.

Layout: title, blank line, header, opening balance, one row per ledger
entry, blank line, totals.  Amounts carry two decimals and a zero credit
or debit is left blank.
"""
from __future__ import annotations

import csv
import io
from decimal import Decimal, ROUND_HALF_UP

from accounts.services.ledger import Ledger

CENT = Decimal('0.01')


def money(value) -> str:
    return f"{Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP):,.2f}"


def _blank_zero(value) -> str:
    return money(value) if value else ''


def describe(entry) -> tuple[str, str]:
    """Description and reference numbers of one date row."""
    if len(entry.details) == 1:
        t = entry.details[0]
        return t.description, t.reference
    return (
        'Multiple Transactions: ' + '; '.join(t.description for t in entry.details),
        '; '.join(t.reference for t in entry.details),
    )


def ledger_csv(ledger: Ledger, *, title: str, currency: str = '') -> str:
    suffix = f' ({currency})' if currency else ''
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([title])
    writer.writerow([])
    writer.writerow(['Date', 'Description', 'Payment/Deduction No', f'Credit{suffix}', f'Debit{suffix}',
                     f'Balance{suffix}'])
    writer.writerow(['', 'Opening Balance', '', '', '', money(ledger.previous_balance)])
    for entry in ledger.entries:
        description, reference = describe(entry)
        writer.writerow([
            entry.date.isoformat(),
            description,
            reference,
            _blank_zero(entry.credit),
            _blank_zero(entry.debit),
            money(entry.balance),
        ])
    writer.writerow([])
    writer.writerow(['', 'Total', '', money(ledger.total_credit), money(ledger.total_debit),
                     money(ledger.final_balance)])
    return buf.getvalue()
