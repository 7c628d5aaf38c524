"""Sequential document numbers such as ``HFI-20250101-0001``."""
from __future__ import annotations

from datetime import date
from typing import Optional

from django.db.models.functions import Length
from django.utils import timezone

from accounts.models import HospitalAccount


def lock_books() -> HospitalAccount:
    """Lock the hospital account row shared by every numbered write.

    Services that number documents call this before taking any other
    row lock, so concurrent writers queue on one row in one order.
    """
    account, _ = HospitalAccount.objects.select_for_update().get_or_create(pk=1)
    return account


def next_number(model, field: str, prefix: str, on: Optional[date] = None, *, monthly: bool = False) -> str:
    """Return the next free number for ``prefix`` on the given day (or month).

    Call inside the transaction that inserts the row, after
    :func:`lock_books`.
    """
    on = on or timezone.localdate()
    stem = f"{prefix}-{on:%Y%m}-" if monthly else f"{prefix}-{on:%Y%m%d}-"
    # longer suffixes are larger: ...-10000 follows ...-9999
    last = (
        model.objects.filter(**{f'{field}__startswith': stem})
        .order_by(Length(field).desc(), f'-{field}')
        .values_list(field, flat=True)
        .first()
    )
    seq = int(last.rsplit('-', 1)[1]) + 1 if last else 1
    return f"{stem}{seq:04d}"
