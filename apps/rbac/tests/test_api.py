"""
Tests for RBAC REST API endpoints.

Tests:
- Role management (list, create, detail, update, delete)
- Permission catalog and caller permissions
- User role assignment, revocation and system roles
- Audit log viewing
- 401/403 error bodies
"""
import uuid
import pytest
from rest_framework.test import APIRequestFactory, force_authenticate
from rest_framework import status

from apps.core.authentication import TokenService
from apps.rbac import catalog
from apps.rbac.models import AuditLog, Role, User, UserRole
from apps.rbac.services import AssignmentService


@pytest.fixture
def request_factory():
    """Create an API request factory."""
    return APIRequestFactory()


def _bearer(client, user):
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {TokenService.generate_jwt(user)}')
    return client


@pytest.mark.django_db
class TestAuthenticationErrors:
    """401 responses."""

    def test_no_credentials(self, api_client):
        response = api_client.get('/v1/roles')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'UNAUTHENTICATED'

    def test_invalid_token(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')

        response = api_client.get('/v1/me/permissions')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response['WWW-Authenticate'] == 'Bearer'

    def test_inactive_user_token(self, api_client, agent_user):
        token = TokenService.generate_jwt(agent_user)
        agent_user.is_active = False
        agent_user.save(update_fields=['is_active', 'updated_at'])
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.get('/v1/me/permissions')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_error_body_carries_request_id(self, api_client):
        response = api_client.get('/v1/roles', HTTP_X_REQUEST_ID='req-123')

        assert response['X-Request-ID'] == 'req-123'
        assert response.data['request_id'] == 'req-123'


@pytest.mark.django_db
class TestForbiddenBody:
    """403 responses report what was missing."""

    def test_missing_permission(self, api_client, agent_user):
        _bearer(api_client, agent_user)

        response = api_client.get('/v1/roles')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['code'] == 'FORBIDDEN'
        assert response.data['required'] == ['users.read']
        assert response.data['missing'] == ['users.read']

    def test_custom_role_unlocks_endpoint(self, api_client, manager_user, django_capture_on_commit_callbacks):
        role = Role.objects.create(name='User Directory', permissions=['users.read'])
        _bearer(api_client, manager_user)
        assert api_client.get('/v1/permissions').status_code == status.HTTP_403_FORBIDDEN

        with django_capture_on_commit_callbacks(execute=True):
            AssignmentService.assign(manager_user.id, role.id)

        assert api_client.get('/v1/permissions').status_code == status.HTTP_200_OK


@pytest.mark.django_db
class TestMyPermissions:
    """Test GET /v1/me/permissions."""

    def test_agent_with_custom_role(self, api_client, agent_user, analytics_role):
        AssignmentService.assign(agent_user.id, analytics_role.id)
        _bearer(api_client, agent_user)

        response = api_client.get('/v1/me/permissions')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user_id'] == str(agent_user.id)
        assert response.data['system_role'] == 'agent'
        assert response.data['custom_role_ids'] == [str(analytics_role.id)]
        assert 'analytics.read' in response.data['permissions']
        assert response.data['permissions'] == sorted(response.data['permissions'])


@pytest.mark.django_db
class TestRoleEndpoints:
    """Test role management endpoints."""

    def test_role_list(self, request_factory, admin_user, system_role, analytics_role):
        from apps.rbac.views import RoleListView

        request = request_factory.get('/v1/roles')
        force_authenticate(request, user=admin_user)

        response = RoleListView.as_view()(request)

        assert response.status_code == 200
        assert [r['name'] for r in response.data['system_roles']] == ['Viewer']
        assert [r['name'] for r in response.data['custom_roles']] == ['Analytics Reader']
        assert response.data['total_roles'] == 2
        assert response.data['available_permissions'] == sorted(catalog.list_all())

    def test_create_role(self, request_factory, super_admin):
        from apps.rbac.views import RoleListView

        request = request_factory.post('/v1/roles', {
            'name': 'Exporter',
            'description': 'Exports farmer data',
            'permissions': ['farmers.read', 'farmers.export'],
        }, format='json')
        force_authenticate(request, user=super_admin)

        response = RoleListView.as_view()(request)

        assert response.status_code == 201
        assert response.data['name'] == 'Exporter'
        assert response.data['is_system'] is False
        assert response.data['permissions'] == ['farmers.export', 'farmers.read']
        assert response.data['created_by'] == super_admin.id

    def test_create_role_requires_users_create(self, request_factory, admin_user):
        from apps.rbac.views import RoleListView

        request = request_factory.post('/v1/roles', {'name': 'X', 'permissions': []}, format='json')
        force_authenticate(request, user=admin_user)

        response = RoleListView.as_view()(request)

        assert response.status_code == 403
        assert response.data['missing'] == ['users.create']
        assert not Role.objects.filter(name='X').exists()

    def test_create_role_invalid_permission(self, request_factory, super_admin):
        from apps.rbac.views import RoleListView

        request = request_factory.post('/v1/roles', {
            'name': 'Broken',
            'permissions': ['farmers.read', 'reports.generate'],
        }, format='json')
        force_authenticate(request, user=super_admin)

        response = RoleListView.as_view()(request)

        assert response.status_code == 400
        assert response.data['code'] == 'INVALID_PERMISSION'
        assert response.data['details']['offending'] == ['reports.generate']

    def test_create_role_duplicate_name(self, request_factory, super_admin, analytics_role):
        from apps.rbac.views import RoleListView

        request = request_factory.post('/v1/roles', {
            'name': 'analytics READER',
            'permissions': [],
        }, format='json')
        force_authenticate(request, user=super_admin)

        response = RoleListView.as_view()(request)

        assert response.status_code == 400
        assert response.data['error'] == 'Role with this name already exists'

    def test_role_detail(self, request_factory, admin_user, agent_user, analytics_role):
        from apps.rbac.views import RoleDetailView
        AssignmentService.assign(agent_user.id, analytics_role.id)

        request = request_factory.get(f'/v1/roles/{analytics_role.id}')
        force_authenticate(request, user=admin_user)

        response = RoleDetailView.as_view()(request, role_id=analytics_role.id)

        assert response.status_code == 200
        assert response.data['assigned_user_count'] == 1
        assert response.data['assigned_users'][0]['email'] == 'agent@registry.test'

    def test_role_detail_not_found(self, request_factory, admin_user):
        from apps.rbac.views import RoleDetailView

        request = request_factory.get('/v1/roles/x')
        force_authenticate(request, user=admin_user)

        response = RoleDetailView.as_view()(request, role_id=uuid.uuid4())

        assert response.status_code == 404
        assert response.data['code'] == 'NOT_FOUND'

    def test_update_role(self, request_factory, admin_user, analytics_role):
        from apps.rbac.views import RoleDetailView

        request = request_factory.patch(
            f'/v1/roles/{analytics_role.id}', {'description': 'Dashboards'}, format='json'
        )
        force_authenticate(request, user=admin_user)

        response = RoleDetailView.as_view()(request, role_id=analytics_role.id)

        assert response.status_code == 200
        assert response.data['description'] == 'Dashboards'
        assert response.data['permissions'] == ['analytics.read']

    def test_update_read_only_field_rejected(self, request_factory, admin_user, analytics_role):
        from apps.rbac.views import RoleDetailView

        request = request_factory.put(
            f'/v1/roles/{analytics_role.id}', {'is_system': True}, format='json'
        )
        force_authenticate(request, user=admin_user)

        response = RoleDetailView.as_view()(request, role_id=analytics_role.id)

        assert response.status_code == 400
        assert response.data['code'] == 'VALIDATION_ERROR'

    def test_update_system_role_conflict(self, request_factory, admin_user, system_role):
        from apps.rbac.views import RoleDetailView

        request = request_factory.put(
            f'/v1/roles/{system_role.id}', {'name': 'Looker'}, format='json'
        )
        force_authenticate(request, user=admin_user)

        response = RoleDetailView.as_view()(request, role_id=system_role.id)

        assert response.status_code == 409
        assert response.data['error'] == 'Cannot modify system roles'

    def test_delete_role(self, request_factory, super_admin, analytics_role):
        from apps.rbac.views import RoleDetailView

        request = request_factory.delete(f'/v1/roles/{analytics_role.id}')
        force_authenticate(request, user=super_admin)

        response = RoleDetailView.as_view()(request, role_id=analytics_role.id)

        assert response.status_code == 200
        assert response.data == {'message': 'Role deleted successfully'}
        assert not Role.objects.filter(id=analytics_role.id).exists()

    def test_delete_role_in_use(self, request_factory, super_admin, agent_user, analytics_role):
        from apps.rbac.views import RoleDetailView
        AssignmentService.assign(agent_user.id, analytics_role.id)

        request = request_factory.delete(f'/v1/roles/{analytics_role.id}')
        force_authenticate(request, user=super_admin)

        response = RoleDetailView.as_view()(request, role_id=analytics_role.id)

        assert response.status_code == 409
        assert response.data['code'] == 'ROLE_IN_USE'
        assert response.data['details']['assigned_count'] == 1

    def test_delete_system_role(self, request_factory, super_admin, system_role):
        from apps.rbac.views import RoleDetailView

        request = request_factory.delete(f'/v1/roles/{system_role.id}')
        force_authenticate(request, user=super_admin)

        response = RoleDetailView.as_view()(request, role_id=system_role.id)

        assert response.status_code == 409
        assert response.data['error'] == 'Cannot delete system roles'


@pytest.mark.django_db
class TestPermissionEndpoints:
    """Test permission catalog endpoint."""

    def test_permission_list(self, request_factory, admin_user):
        from apps.rbac.views import PermissionCatalogView

        request = request_factory.get('/v1/permissions')
        force_authenticate(request, user=admin_user)

        response = PermissionCatalogView.as_view()(request)

        assert response.status_code == 200
        assert response.data['version'] == catalog.CATALOG_VERSION
        assert 'farmers.export' in response.data['permissions']
        resources = [group['resource'] for group in response.data['categories']]
        assert resources[0] == 'users'
        assert 'settings' in resources


@pytest.mark.django_db
class TestUserRoleEndpoints:
    """Test user role assignment endpoints."""

    def test_user_roles_summary(self, api_client, admin_user, agent_user, analytics_role):
        AssignmentService.assign(agent_user.id, analytics_role.id)
        _bearer(api_client, admin_user)

        response = api_client.get(f'/v1/users/{agent_user.id}/roles')

        assert response.status_code == 200
        assert response.data['system_role'] == 'agent'
        assert response.data['assigned_roles'][0]['role']['name'] == 'Analytics Reader'
        assert response.data['permission_summary']['from_custom_roles'] == 1

    def test_assign_role(self, api_client, admin_user, agent_user, analytics_role):
        _bearer(api_client, admin_user)

        response = api_client.post(
            f'/v1/users/{agent_user.id}/roles', {'role_id': str(analytics_role.id)}, format='json'
        )

        assert response.status_code == 201
        assert response.data['user_id'] == str(agent_user.id)
        assert response.data['assigned_by'] == admin_user.id
        assert UserRole.objects.filter(user=agent_user, role=analytics_role).exists()

    def test_assign_twice(self, api_client, admin_user, agent_user, analytics_role):
        AssignmentService.assign(agent_user.id, analytics_role.id)
        _bearer(api_client, admin_user)

        response = api_client.post(
            f'/v1/users/{agent_user.id}/roles', {'role_id': str(analytics_role.id)}, format='json'
        )

        assert response.status_code == 400
        assert response.data['error'] == 'User already has this role'

    def test_assign_system_role_rejected(self, api_client, admin_user, agent_user, system_role):
        _bearer(api_client, admin_user)

        response = api_client.post(
            f'/v1/users/{agent_user.id}/roles', {'role_id': str(system_role.id)}, format='json'
        )

        assert response.status_code == 400
        assert not UserRole.objects.exists()

    def test_assign_malformed_body(self, api_client, admin_user, agent_user):
        _bearer(api_client, admin_user)

        response = api_client.post(f'/v1/users/{agent_user.id}/roles', {'role_id': 'nope'}, format='json')

        assert response.status_code == 400
        assert 'role_id' in response.data

    def test_revoke_is_idempotent(self, api_client, admin_user, agent_user, analytics_role):
        AssignmentService.assign(agent_user.id, analytics_role.id)
        _bearer(api_client, admin_user)
        url = f'/v1/users/{agent_user.id}/roles/{analytics_role.id}'

        assert api_client.delete(url).status_code == 204
        assert api_client.delete(url).status_code == 204
        assert not UserRole.objects.filter(user=agent_user).exists()

    def test_set_system_role(self, api_client, admin_user, agent_user):
        _bearer(api_client, admin_user)

        response = api_client.put(
            f'/v1/users/{agent_user.id}/system-role', {'system_role': 'manager'}, format='json'
        )

        assert response.status_code == 200
        assert response.data['role'] == 'manager'
        assert User.objects.get(id=agent_user.id).role == 'manager'

    def test_last_admin_demotion_refused(self, api_client, admin_user):
        _bearer(api_client, admin_user)

        response = api_client.put(
            f'/v1/users/{admin_user.id}/system-role', {'system_role': 'viewer'}, format='json'
        )

        assert response.status_code == 400
        assert response.data['error'] == 'Cannot remove the last admin user'

    def test_reset_system_role(self, api_client, admin_user, manager_user):
        _bearer(api_client, admin_user)

        response = api_client.delete(f'/v1/users/{manager_user.id}/system-role')

        assert response.status_code == 200
        assert response.data['role'] == 'agent'


@pytest.mark.django_db
class TestAuditLogEndpoints:
    """Test audit log viewing."""

    def test_audit_log_list(self, api_client, admin_user, agent_user, analytics_role):
        AssignmentService.assign(agent_user.id, analytics_role.id, assigned_by=admin_user)
        AssignmentService.revoke(agent_user.id, analytics_role.id, revoked_by=admin_user)
        _bearer(api_client, admin_user)

        response = api_client.get('/v1/audit-logs')

        assert response.status_code == 200
        assert response.data['count'] == 2
        assert response.data['results'][0]['action'] == 'role_revoked'
        assert response.data['results'][0]['user_email'] == 'admin@registry.test'

    def test_filter_by_action(self, api_client, admin_user, agent_user, analytics_role):
        AssignmentService.assign(agent_user.id, analytics_role.id, assigned_by=admin_user)
        AssignmentService.revoke(agent_user.id, analytics_role.id, revoked_by=admin_user)
        _bearer(api_client, admin_user)

        response = api_client.get('/v1/audit-logs', {'action': 'role_assigned'})

        assert response.data['count'] == 1

    @pytest.mark.parametrize('field', ['target_id', 'user_id'])
    def test_malformed_uuid_filter(self, api_client, admin_user, field):
        _bearer(api_client, admin_user)

        response = api_client.get('/v1/audit-logs', {field: 'nope'})

        assert response.status_code == 400
        assert response.data['code'] == 'VALIDATION_ERROR'
        assert response.data['details'] == {'field': field}

    def test_filter_by_target_id(self, api_client, admin_user, agent_user, analytics_role):
        AssignmentService.assign(agent_user.id, analytics_role.id, assigned_by=admin_user)
        _bearer(api_client, admin_user)

        response = api_client.get('/v1/audit-logs', {'target_id': str(agent_user.id)})

        assert response.status_code == 200
        assert response.data['count'] == 1

    def test_request_metadata_recorded(self, api_client, super_admin):
        _bearer(api_client, super_admin)

        api_client.post(
            '/v1/roles', {'name': 'Exporter', 'permissions': ['farmers.export']},
            format='json', HTTP_X_REQUEST_ID='audit-req-1', HTTP_USER_AGENT='pytest',
        )

        entry = AuditLog.objects.get(action='role_created')
        assert entry.request_id == 'audit-req-1'
        assert entry.user_agent == 'pytest'
        assert entry.user == super_admin

    def test_requires_settings_read(self, api_client, manager_user):
        _bearer(api_client, manager_user)

        response = api_client.get('/v1/audit-logs')

        assert response.status_code == 403
        assert response.data['missing'] == ['settings.read']
