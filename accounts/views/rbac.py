"""
Role, permission and per-user override administration.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.exceptions import NotFound
from accounts.models import Permission, Role, User
from accounts.permissions import HasPermission
from accounts.serializers.rbac import (
    PermissionSerializer,
    RoleSerializer,
    RoleUpdateSerializer,
    UserPermissionsSerializer,
)
from accounts.services import rbac
from accounts.services.audit import log_action


def role_to_dict(role: Role) -> dict:
    return {
        'id': role.id,
        'name': role.name,
        'description': role.description,
        'permissions': sorted(role.permissions.values_list('name', flat=True)),
        'users_count': role.users.count(),
    }


def permission_to_dict(p: Permission) -> dict:
    return {'id': p.id, 'name': p.name, 'display_name': p.display_name, 'category': p.category,
            'description': p.description}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasPermission('roles.manage')])
def roles(request):
    if request.method == 'GET':
        return Response({'ok': True, 'data': [role_to_dict(r) for r in Role.objects.order_by('name')]})
    s = RoleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    role = rbac.create_role(user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': role_to_dict(role)}, status=201)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, HasPermission('roles.manage')])
def role_detail(request, role_id: int):
    if request.method == 'DELETE':
        rbac.delete_role(role_id, user=request.user)
        return Response({'ok': True})
    s = RoleUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    role = rbac.update_role(role_id, user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': role_to_dict(role)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasPermission('permissions.manage')])
def permissions(request):
    if request.method == 'GET':
        grouped: dict[str, list] = {}
        for p in Permission.objects.all():
            grouped.setdefault(p.category, []).append(permission_to_dict(p))
        return Response({'ok': True, 'data': grouped})
    s = PermissionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    perm = rbac.create_permission(user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': permission_to_dict(perm)}, status=201)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, HasPermission('permissions.manage')])
def permission_detail(request, permission_id: int):
    if request.method == 'DELETE':
        rbac.delete_permission(permission_id, user=request.user)
        return Response({'ok': True})
    s = PermissionSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    perm = rbac.update_permission(permission_id, user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': permission_to_dict(perm)})


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, HasPermission('users.manage-permissions')])
def user_permissions(request, user_id: int):
    user = User.objects.select_related('role').filter(id=user_id).first()
    if not user:
        raise NotFound('user not found')
    if request.method == 'PUT':
        s = UserPermissionsSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        v = s.validated_data
        if 'role_id' in request.data:
            role = Role.objects.filter(id=v['role_id']).first() if v.get('role_id') else None
            if v.get('role_id') and not role:
                raise NotFound('role not found')
            user.role = role
            user.save(update_fields=['role'])
            log_action(user=request.user, action='user_role_set', object_type='user', object_id=user.id,
                       detail={'role': role.name if role else None})
        rbac.sync(user, v['granted'], v['revoked'], actor=request.user)
    overrides = user.permission_overrides.select_related('permission')
    return Response({
        'ok': True,
        'user': {'id': user.id, 'username': user.username, 'role': user.role.name if user.role else None},
        'effective': sorted(user.permission_names()),
        'granted': sorted(o.permission.name for o in overrides if o.granted),
        'revoked': sorted(o.permission.name for o in overrides if not o.granted),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_permissions(request):
    user = request.user
    return Response({'ok': True, 'role': user.role.name if user.role else None,
                     'is_super_admin': user.is_super_admin, 'permissions': sorted(user.permission_names())})
