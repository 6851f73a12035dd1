"""
RBAC API URLs.

Provides endpoints for:
- Role management
- Permission catalog
- User role assignments and system roles
- Audit log viewing
"""
from django.urls import path
from apps.rbac.views import (
    RoleListView,
    RoleDetailView,
    PermissionCatalogView,
    UserRolesView,
    UserRoleRevokeView,
    UserSystemRoleView,
    MyPermissionsView,
    AuditLogListView,
)

app_name = 'rbac'

urlpatterns = [
    # Role endpoints
    path('roles', RoleListView.as_view(), name='role-list'),
    path('roles/<uuid:role_id>', RoleDetailView.as_view(), name='role-detail'),

    # Permission endpoints
    path('permissions', PermissionCatalogView.as_view(), name='permission-list'),
    path('me/permissions', MyPermissionsView.as_view(), name='my-permissions'),

    # User role endpoints
    path('users/<uuid:user_id>/roles', UserRolesView.as_view(), name='user-roles'),
    path('users/<uuid:user_id>/roles/<uuid:role_id>', UserRoleRevokeView.as_view(), name='user-role-revoke'),
    path('users/<uuid:user_id>/system-role', UserSystemRoleView.as_view(), name='user-system-role'),

    # Audit log endpoints
    path('audit-logs', AuditLogListView.as_view(), name='audit-log-list'),
]
