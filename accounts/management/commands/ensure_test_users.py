# accounts/management/commands/ensure_test_users.py
from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand

from accounts.models import Role, User
from accounts.services.rbac import seed_defaults

TEST_SET = [
    ("superadmin", Role.SUPER_ADMIN),
    ("reception1", "Receptionist"),
    ("medicine1", "Medicine Seller"),
    ("optics1", "Optics Seller"),
]


class Command(BaseCommand):
    help = "Ensure test users exist with password=123456 (idempotent)."

    def handle(self, *args, **opts):
        seed_defaults()
        for username, role_name in TEST_SET:
            role = Role.objects.get(name=role_name)
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password("123456"), "is_active": True},
            )
            if not created:
                u.password = make_password("123456")
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role_name})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
