from django.core.management.base import BaseCommand

from accounts.models import ExpenseCategory, IncomeCategory
from accounts.services.rbac import seed_defaults

EXPENSE_CATEGORIES = [
    "House Security",
    "Advance House Rent",
    "Fixed Asset Purchase",
    "Fixed Asset Payment",
    "Medicine Purchase",
    "Optics Purchase",
    "Fixed Asset Vendor Payment",
    "Medicine Vendor Payment",
    "Optics Vendor Payment",
    "Salary",
    "Utilities",
]
INCOME_CATEGORIES = ["Consultation", "Medicine Sale", "Optics Sale", "Advance House Rent Refund"]


class Command(BaseCommand):
    help = "Create the default permissions, roles and income/expense categories."

    def handle(self, *args, **options):
        perms, roles = seed_defaults()
        for name in EXPENSE_CATEGORIES:
            ExpenseCategory.objects.get_or_create(name=name)
        for name in INCOME_CATEGORIES:
            IncomeCategory.objects.get_or_create(name=name)
        self.stdout.write(self.style.SUCCESS(f"permissions created: {perms}, roles created: {roles}"))
