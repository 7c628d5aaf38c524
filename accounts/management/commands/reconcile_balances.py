from datetime import date

from django.core.management.base import BaseCommand
from django.db import transaction

from accounts.models import Vendor, VendorTransaction
from accounts.services import hospital_account


class Command(BaseCommand):
    help = "Re-derive stored balances from their transaction rows and report (or --fix) drift."

    def add_arguments(self, parser):
        parser.add_argument("--fix", action="store_true", help="Overwrite stored balances with derived ones.")

    def handle(self, *args, **options):
        fix = options["fix"]
        drift = 0

        derived = hospital_account.balance_as_on(date.max)
        with transaction.atomic():
            account = hospital_account.get_account(lock=True)
            if account.balance != derived:
                drift += 1
                self.stdout.write(self.style.WARNING(f"hospital account: stored {account.balance}, derived {derived}"))
                if fix:
                    account.balance = derived
                    account.save(update_fields=["balance", "updated_at"])

        for vendor in Vendor.objects.order_by("id"):
            derived = vendor.opening_balance
            sign = 1 if vendor.balance_type == Vendor.BALANCE_DUE else -1
            for t in vendor.transactions.order_by("transaction_date", "id"):
                delta = t.amount if t.type == VendorTransaction.TYPE_PURCHASE else -t.amount
                derived += sign * delta
            if vendor.current_balance != derived:
                drift += 1
                self.stdout.write(self.style.WARNING(
                    f"vendor #{vendor.id} {vendor.name}: stored {vendor.current_balance}, derived {derived}"
                ))
                if fix:
                    Vendor.objects.filter(id=vendor.id).update(current_balance=derived)

        if drift and not fix:
            self.stdout.write(self.style.ERROR(f"{drift} balance(s) drifted; rerun with --fix to correct."))
        else:
            self.stdout.write(self.style.SUCCESS(f"balances checked, {drift} corrected." if fix else "balances consistent."))
