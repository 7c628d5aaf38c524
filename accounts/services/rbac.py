"""
Role and permission administration plus the default catalogue.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from django.db import transaction

from accounts.exceptions import Conflict, NotFound, ValidationError
from accounts.models import Permission, Role, User, UserPermission
from accounts.services.audit import log_action

logger = logging.getLogger(__name__)

# (name, display name, category)
DEFAULT_PERMISSIONS = [
    ('dashboard.view', 'View Dashboard', 'dashboard'),
    ('hospital-account.view', 'View Hospital Account', 'hospital-account'),
    ('hospital-account.fund-in', 'Fund In Hospital Account', 'hospital-account'),
    ('hospital-account.fund-out', 'Fund Out Hospital Account', 'hospital-account'),
    ('hospital-account.income', 'Record Hospital Income', 'hospital-account'),
    ('hospital-account.expense', 'Manage Hospital Expenses', 'hospital-account'),
    ('hospital-account.transactions', 'Manage Hospital Transactions', 'hospital-account'),
    ('hospital-account.fund-history', 'View Fund Ledger', 'hospital-account'),
    ('hospital-account.categories', 'Manage Categories', 'hospital-account'),
    ('hospital-account.monthly-report', 'View Monthly Report', 'hospital-account'),
    ('hospital-account.house-security', 'View House Security Ledger', 'hospital-account'),
    ('hospital-account.advance-rent', 'Manage Advance House Rent', 'hospital-account'),
    ('hospital-account.fixed-assets', 'Manage Fixed Assets', 'hospital-account'),
    ('hospital-account.fixed-asset-vendors', 'Manage Fixed Asset Vendors', 'hospital-account'),
    ('hospital-account.vendor-due', 'View Vendor Due Ledgers', 'hospital-account'),
    ('medicine-corner.stock', 'Manage Medicine Stock', 'medicine-corner'),
    ('medicine-corner.vendors', 'Manage Medicine Vendors', 'medicine-corner'),
    ('optics.stock', 'Manage Optics Stock', 'optics'),
    ('optics.sales', 'Manage Optics Sales', 'optics'),
    ('optics.vendors', 'Manage Optics Vendors', 'optics'),
    ('users.view', 'View Users', 'users'),
    ('users.manage-permissions', 'Manage User Permissions', 'users'),
    ('roles.manage', 'Manage Roles', 'users'),
    ('permissions.manage', 'Manage Permissions', 'users'),
]

DEFAULT_ROLES = {
    Role.SUPER_ADMIN: ('Full system access', []),
    'Doctor': ('Clinical staff', ['dashboard.view']),
    'Receptionist': ('Front desk', ['dashboard.view', 'hospital-account.view']),
    'Refractionist': ('Vision testing', ['dashboard.view']),
    'Medicine Seller': ('Medicine corner', ['dashboard.view', 'medicine-corner.stock', 'medicine-corner.vendors']),
    'Optics Seller': ('Optics shop', ['dashboard.view', 'optics.stock', 'optics.sales', 'optics.vendors']),
}


def normalize_name(name: str) -> str:
    """``'Operations Create'`` -> ``'operations.create'``."""
    slug = re.sub(r'[^a-z0-9.\-]+', '.', (name or '').strip().lower())
    slug = re.sub(r'\.{2,}', '.', slug).strip('.')
    if not slug:
        raise ValidationError({'name': ['Permission name is required.']})
    return slug


def _permissions(names: Iterable[str]) -> list[Permission]:
    names = set(names)
    found = list(Permission.objects.filter(name__in=names))
    missing = names - {p.name for p in found}
    if missing:
        raise ValidationError({'permissions': [f'Unknown permission: {n}' for n in sorted(missing)]})
    return found


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

@transaction.atomic
def create_role(*, name: str, description: str = '', permissions: Iterable[str] = (), user=None) -> Role:
    if Role.objects.filter(name__iexact=name).exists():
        raise ValidationError({'name': ['A role with this name already exists.']})
    role = Role.objects.create(name=name, description=description)
    role.permissions.set(_permissions(permissions))
    log_action(user=user, action='role_create', object_type='role', object_id=role.id, detail={'name': name})
    return role


@transaction.atomic
def update_role(role_id: int, *, name: Optional[str] = None, description: Optional[str] = None,
                permissions: Optional[Iterable[str]] = None, user=None) -> Role:
    role = Role.objects.filter(id=role_id).first()
    if not role:
        raise NotFound('role not found')
    if name and Role.objects.filter(name__iexact=name).exclude(id=role.id).exists():
        raise ValidationError({'name': ['A role with this name already exists.']})
    if name:
        role.name = name
    if description is not None:
        role.description = description
    role.save()
    if permissions is not None:
        role.permissions.set(_permissions(permissions))
    log_action(user=user, action='role_update', object_type='role', object_id=role.id, detail={'name': role.name})
    return role


def delete_role(role_id: int, *, user=None) -> None:
    role = Role.objects.filter(id=role_id).first()
    if not role:
        raise NotFound('role not found')
    if role.users.exists():
        raise Conflict('Cannot delete role with assigned users.')
    log_action(user=user, action='role_delete', object_type='role', object_id=role.id, detail={'name': role.name})
    role.delete()


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------

def create_permission(*, name: str, display_name: str = '', category: str = '', description: str = '',
                      user=None) -> Permission:
    slug = normalize_name(name)
    if Permission.objects.filter(name=slug).exists():
        raise ValidationError({'name': ['A permission with this name already exists.']})
    perm = Permission.objects.create(
        name=slug,
        display_name=display_name or slug,
        category=category or slug.split('.', 1)[0],
        description=description,
    )
    log_action(user=user, action='permission_create', object_type='permission', object_id=perm.id,
               detail={'name': slug})
    return perm


def update_permission(permission_id: int, *, user=None, **fields) -> Permission:
    perm = Permission.objects.filter(id=permission_id).first()
    if not perm:
        raise NotFound('permission not found')
    if fields.get('name'):
        slug = normalize_name(fields.pop('name'))
        if Permission.objects.filter(name=slug).exclude(id=perm.id).exists():
            raise ValidationError({'name': ['A permission with this name already exists.']})
        perm.name = slug
    for key in ('display_name', 'category', 'description'):
        if key in fields:
            setattr(perm, key, fields[key])
    perm.save()
    return perm


@transaction.atomic
def delete_permission(permission_id: int, *, user=None) -> None:
    perm = Permission.objects.filter(id=permission_id).first()
    if not perm:
        raise NotFound('permission not found')
    perm.roles.clear()
    perm.user_overrides.all().delete()
    log_action(user=user, action='permission_delete', object_type='permission', object_id=perm.id,
               detail={'name': perm.name})
    perm.delete()


# ---------------------------------------------------------------------------
# User overrides
# ---------------------------------------------------------------------------

def give(user: User, *names: str) -> None:
    for perm in _permissions(names):
        UserPermission.objects.update_or_create(user=user, permission=perm, defaults={'granted': True})


def revoke(user: User, *names: str) -> None:
    for perm in _permissions(names):
        UserPermission.objects.update_or_create(user=user, permission=perm, defaults={'granted': False})


@transaction.atomic
def sync(user: User, granted: Iterable[str] = (), revoked: Iterable[str] = (), *, actor=None) -> set[str]:
    """Replace a user's overrides and return the effective permission names."""
    UserPermission.objects.filter(user=user).delete()
    give(user, *granted)
    revoke(user, *revoked)
    log_action(user=actor, action='user_permissions_sync', object_type='user', object_id=user.id,
               detail={'granted': sorted(granted), 'revoked': sorted(revoked)})
    return user.permission_names()


@transaction.atomic
def seed_defaults() -> tuple[int, int]:
    """Create the default catalogue and roles.  Safe to run repeatedly."""
    created_perms = 0
    for name, display, category in DEFAULT_PERMISSIONS:
        _, created = Permission.objects.get_or_create(
            name=name, defaults={'display_name': display, 'category': category}
        )
        created_perms += int(created)
    created_roles = 0
    for role_name, (description, perms) in DEFAULT_ROLES.items():
        role, created = Role.objects.get_or_create(name=role_name, defaults={'description': description})
        created_roles += int(created)
        if created:
            role.permissions.set(Permission.objects.filter(name__in=perms))
    logger.info('seeded %s permissions and %s roles', created_perms, created_roles)
    return created_perms, created_roles
