"""
Permission classes for role and named-permission based access control.
"""
from rest_framework.permissions import BasePermission


class IsSuperAdmin(BasePermission):
    """Only holders of the Super Admin role (or Django superusers)."""
    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and user.is_super_admin)


def HasPermission(*names: str):
    """Build a permission class passing when the user holds any of ``names``.

    Usage::

        @permission_classes([IsAuthenticated, HasPermission('hospital-account.fund-in')])
    """
    class _HasPermission(BasePermission):
        required = names
        message = f"Missing permission: {' or '.join(names)}"

        def has_permission(self, request, view) -> bool:
            user = getattr(request, "user", None)
            return bool(user and user.is_authenticated and user.has_any_permission(names))

    _HasPermission.__name__ = f"HasPermission({', '.join(names)})"
    return _HasPermission


def HasKindPermission(kwarg: str, mapping: dict, *extra: str):
    """Like :func:`HasPermission` but picks the names from a URL kwarg.

    ``mapping`` maps the kwarg's value (e.g. a vendor kind) to the
    permission that unlocks it; ``extra`` names pass for every value.
    """
    class _HasKindPermission(BasePermission):
        message = "Missing permission for this section."

        def has_permission(self, request, view) -> bool:
            user = getattr(request, "user", None)
            if not (user and user.is_authenticated):
                return False
            value = getattr(view, "kwargs", {}).get(kwarg)
            names = [n for n in (mapping.get(value),) if n] + list(extra)
            return user.has_any_permission(names)

    return _HasKindPermission
