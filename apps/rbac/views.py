"""
RBAC REST API views.

Implements endpoints for:
- Role management (list, create, detail, update, delete)
- Permission catalog
- User role assignments and system-role changes
- Caller's effective permissions
- Audit log viewing

Views are thin adapters: every rule lives in apps.rbac.services.
"""
import uuid

from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from apps.core.permissions import requires_permissions, HasPermissions
from apps.rbac import catalog
from apps.rbac.exceptions import RBACValidationError
from apps.rbac.identity import get_request_authorization
from apps.rbac.models import AuditLog
from apps.rbac.services import RoleService, AssignmentService
from apps.rbac.serializers import (
    RoleSerializer, RoleDetailSerializer, UserSerializer, UserRoleSerializer,
    UserRoleSummarySerializer, AssignRoleSerializer, SystemRoleSerializer,
    AuditLogSerializer,
)


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 100


def _request_body(request):
    """Request data as a plain dict."""
    data = request.data
    if hasattr(data, 'dict'):
        return data.dict()
    if isinstance(data, dict):
        return dict(data)
    return data


def _uuid_param(request, name):
    """Query parameter parsed as a UUID, or None when absent."""
    value = request.query_params.get(name)
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise RBACValidationError(f'Invalid {name}', details={'field': name})


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List roles',
        description='''
List system and custom roles. System roles come first; each list is newest first.

**Required permission:** `users.read`
        ''',
        responses={200: OpenApiTypes.OBJECT},
    ),
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create custom role',
        description='''
Create a custom role. System roles cannot be created through the API.

**Required permission:** `users.create`
        ''',
        request=OpenApiTypes.OBJECT,
        responses={
            201: RoleSerializer,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
        }
    ),
)
class RoleListView(APIView):
    """
    GET /v1/roles
    POST /v1/roles
    """

    permission_classes = [HasPermissions]

    @requires_permissions('users.read')
    def get(self, request):
        roles = RoleService.list_roles()
        system_roles = RoleSerializer(roles['system_roles'], many=True).data
        custom_roles = RoleSerializer(roles['custom_roles'], many=True).data

        return Response({
            'system_roles': system_roles,
            'custom_roles': custom_roles,
            'total_roles': len(system_roles) + len(custom_roles),
            'available_permissions': sorted(catalog.list_all()),
        })

    @requires_permissions('users.create')
    def post(self, request):
        data = _request_body(request)
        if not isinstance(data, dict):
            data = {}

        role = RoleService.create_custom_role(
            name=data.get('name'),
            description=data.get('description', ''),
            permissions=data.get('permissions'),
            is_active=data.get('is_active', True),
            created_by=request.user,
            request=request,
        )

        return Response(RoleSerializer(role).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='Get role details',
        description='**Required permission:** `users.read`',
        responses={200: RoleDetailSerializer, 404: OpenApiTypes.OBJECT},
    ),
    put=extend_schema(
        tags=['RBAC - Roles'],
        summary='Update custom role',
        description='''
Update `name`, `description`, `permissions` and/or `is_active` of a custom role.
Fields not present in the body are left unchanged. System roles return 409.

**Required permission:** `users.update`
        ''',
        request=OpenApiTypes.OBJECT,
        responses={200: RoleSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    ),
    patch=extend_schema(
        tags=['RBAC - Roles'],
        summary='Partially update custom role',
        description='**Required permission:** `users.update`',
        request=OpenApiTypes.OBJECT,
        responses={200: RoleSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    ),
    delete=extend_schema(
        tags=['RBAC - Roles'],
        summary='Delete custom role',
        description='''
Delete a custom role. Refused with 409 for system roles and for roles that are
still assigned to users.

**Required permission:** `users.delete`
        ''',
        responses={200: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    ),
)
class RoleDetailView(APIView):
    """
    GET/PUT/PATCH/DELETE /v1/roles/{id}
    """

    permission_classes = [HasPermissions]

    @requires_permissions('users.read')
    def get(self, request, role_id):
        role = RoleService.get_role(role_id)
        return Response(RoleDetailSerializer(role).data)

    @requires_permissions('users.update')
    def put(self, request, role_id):
        role = RoleService.update_custom_role(
            role_id,
            _request_body(request),
            updated_by=request.user,
            request=request,
        )
        return Response(RoleSerializer(role).data)

    @requires_permissions('users.update')
    def patch(self, request, role_id):
        return self.put(request, role_id)

    @requires_permissions('users.delete')
    def delete(self, request, role_id):
        RoleService.delete_custom_role(role_id, deleted_by=request.user, request=request)
        return Response({'message': 'Role deleted successfully'})


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Permissions'],
        summary='List permission catalog',
        description='''
Every permission a role may carry, grouped by resource.

**Required permission:** `users.read`
        ''',
        responses={200: OpenApiTypes.OBJECT},
    )
)
class PermissionCatalogView(APIView):
    """
    GET /v1/permissions
    """

    permission_classes = [HasPermissions]

    @requires_permissions('users.read')
    def get(self, request):
        return Response({
            'version': catalog.CATALOG_VERSION,
            'permissions': sorted(catalog.list_all()),
            'categories': catalog.describe(),
        })


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - User Roles'],
        summary="Get user's roles and effective permissions",
        description='**Required permission:** `users.read`',
        responses={200: UserRoleSummarySerializer, 404: OpenApiTypes.OBJECT},
    ),
    post=extend_schema(
        tags=['RBAC - User Roles'],
        summary='Assign custom role to user',
        description='''
Assign a custom role. System roles are set through `/system-role` instead.

**Required permission:** `users.update`
        ''',
        request=AssignRoleSerializer,
        responses={201: UserRoleSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
class UserRolesView(APIView):
    """
    GET /v1/users/{id}/roles
    POST /v1/users/{id}/roles
    """

    permission_classes = [HasPermissions]

    @requires_permissions('users.read')
    def get(self, request, user_id):
        summary = AssignmentService.get_user_role_summary(user_id)
        return Response(UserRoleSummarySerializer(summary).data)

    @requires_permissions('users.update')
    def post(self, request, user_id):
        serializer = AssignRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assignment = AssignmentService.assign(
            user_id,
            serializer.validated_data['role_id'],
            assigned_by=request.user,
            request=request,
        )

        return Response(UserRoleSerializer(assignment).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    delete=extend_schema(
        tags=['RBAC - User Roles'],
        summary='Revoke custom role from user',
        description='''
Remove a role assignment. Succeeds whether or not the assignment existed.

**Required permission:** `users.update`
        ''',
        responses={204: None},
    )
)
class UserRoleRevokeView(APIView):
    """
    DELETE /v1/users/{id}/roles/{role_id}
    """

    permission_classes = [HasPermissions]

    @requires_permissions('users.update')
    def delete(self, request, user_id, role_id):
        AssignmentService.revoke(user_id, role_id, revoked_by=request.user, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema_view(
    put=extend_schema(
        tags=['RBAC - User Roles'],
        summary="Set user's system role",
        description='''
Set the system-role tag (`super_admin`, `admin`, `manager`, `agent`, `viewer`).
Demoting the last admin is refused.

**Required permission:** `users.update`
        ''',
        request=SystemRoleSerializer,
        responses={200: UserSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
    delete=extend_schema(
        tags=['RBAC - User Roles'],
        summary="Reset user's system role to agent",
        description='**Required permission:** `users.update`',
        responses={200: UserSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
class UserSystemRoleView(APIView):
    """
    PUT/DELETE /v1/users/{id}/system-role
    """

    permission_classes = [HasPermissions]

    @requires_permissions('users.update')
    def put(self, request, user_id):
        serializer = SystemRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = AssignmentService.set_system_role(
            user_id,
            serializer.validated_data['system_role'],
            changed_by=request.user,
            request=request,
        )
        return Response(UserSerializer(user).data)

    @requires_permissions('users.update')
    def delete(self, request, user_id):
        user = AssignmentService.reset_system_role(user_id, changed_by=request.user, request=request)
        return Response(UserSerializer(user).data)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Permissions'],
        summary="Get caller's effective permissions",
        description='**No permission required** - any authenticated user can see their own permissions.',
        responses={200: OpenApiTypes.OBJECT, 401: OpenApiTypes.OBJECT},
    )
)
class MyPermissionsView(APIView):
    """
    GET /v1/me/permissions
    """

    permission_classes = [HasPermissions]

    def get(self, request):
        identity, held = get_request_authorization(request)
        return Response({
            'user_id': str(identity.user_id),
            'system_role': identity.system_role,
            'custom_role_ids': sorted(str(role_id) for role_id in identity.custom_role_ids),
            'permissions': sorted(held),
        })


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Audit'],
        summary='List audit logs',
        description='''
List RBAC audit logs, newest first.

**Required permission:** `settings.read`

Query parameters:
- `action`: Filter by action type (e.g., 'role_created', 'role_assigned')
- `target_type`: Filter by target type ('Role' or 'User')
- `target_id`: Filter by target ID
- `user_id`: Filter by user who performed the action
        ''',
        parameters=[
            OpenApiParameter('action', OpenApiTypes.STR, description='Filter by action type'),
            OpenApiParameter('target_type', OpenApiTypes.STR, description='Filter by target type'),
            OpenApiParameter('target_id', OpenApiTypes.UUID, description='Filter by target ID'),
            OpenApiParameter('user_id', OpenApiTypes.UUID, description='Filter by user ID'),
        ],
        responses={200: AuditLogSerializer(many=True), 403: OpenApiTypes.OBJECT},
    )
)
class AuditLogListView(APIView):
    """
    GET /v1/audit-logs
    """

    permission_classes = [HasPermissions]
    pagination_class = StandardResultsSetPagination

    @requires_permissions('settings.read')
    def get(self, request):
        logs = AuditLog.objects.select_related('user')

        action = request.query_params.get('action')
        if action:
            logs = logs.filter(action=action)

        target_type = request.query_params.get('target_type')
        if target_type:
            logs = logs.filter(target_type=target_type)

        target_id = _uuid_param(request, 'target_id')
        if target_id:
            logs = logs.filter(target_id=target_id)

        user_id = _uuid_param(request, 'user_id')
        if user_id:
            logs = logs.filter(user_id=user_id)

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(logs, request)

        serializer = AuditLogSerializer(page, many=True)

        return paginator.get_paginated_response(serializer.data)
