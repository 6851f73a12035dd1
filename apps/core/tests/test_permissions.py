"""
Tests for RBAC permission classes and decorators.
"""
import pytest
from django.test import RequestFactory
from rest_framework.test import APIRequestFactory, force_authenticate
from rest_framework.views import APIView
from rest_framework.response import Response

from apps.core.permissions import HasPermissions, InsufficientPermissions, requires_permissions
from apps.rbac.exceptions import Unauthenticated
from apps.rbac.identity import REQUEST_CACHE_ATTR
from apps.rbac.services import AssignmentService


class FarmerView(APIView):
    permission_classes = [HasPermissions]

    @requires_permissions('farmers.read')
    def get(self, request):
        return Response({'status': 'ok'})

    @requires_permissions('farmers.delete', 'farms.delete')
    def delete(self, request):
        return Response(status=204)


@requires_permissions('analytics.read', 'settings.read', mode='any')
class ReportView(APIView):
    permission_classes = [HasPermissions]

    def get(self, request):
        return Response({'status': 'ok'})


class OpenView(APIView):
    permission_classes = [HasPermissions]

    def get(self, request):
        return Response({'status': 'ok'})


@pytest.fixture
def request_factory():
    """Provide Django request factory."""
    return RequestFactory()


@pytest.fixture
def api_factory():
    return APIRequestFactory()


@pytest.mark.django_db
class TestHasPermissions:
    """Test HasPermissions.has_permission directly."""

    def _request(self, request_factory, user, method='get'):
        request = getattr(request_factory, method)('/v1/farmers')
        request.user = user
        return request

    def test_method_requirement_met(self, request_factory, agent_user):
        request = self._request(request_factory, agent_user)
        assert HasPermissions().has_permission(request, FarmerView()) is True

    def test_method_requirement_missing(self, request_factory, agent_user):
        request = self._request(request_factory, agent_user, 'delete')

        with pytest.raises(InsufficientPermissions) as exc_info:
            HasPermissions().has_permission(request, FarmerView())

        detail = exc_info.value.detail
        assert detail['code'] == 'FORBIDDEN'
        assert detail['required'] == ['farmers.delete', 'farms.delete']
        assert detail['missing'] == ['farmers.delete', 'farms.delete']

    def test_class_requirement_any_mode(self, request_factory, agent_user, viewer_user):
        with pytest.raises(InsufficientPermissions):
            HasPermissions().has_permission(self._request(request_factory, agent_user), ReportView())

        assert HasPermissions().has_permission(self._request(request_factory, viewer_user), ReportView())

    def test_no_requirement_needs_authentication_only(self, request_factory, viewer_user):
        assert HasPermissions().has_permission(self._request(request_factory, viewer_user), OpenView())

    def test_anonymous_is_unauthenticated(self, request_factory):
        from django.contrib.auth.models import AnonymousUser
        request = self._request(request_factory, AnonymousUser())

        with pytest.raises(Unauthenticated):
            HasPermissions().has_permission(request, OpenView())

    def test_inactive_user_is_unauthenticated(self, request_factory, agent_user):
        agent_user.is_active = False

        with pytest.raises(Unauthenticated):
            HasPermissions().has_permission(self._request(request_factory, agent_user), FarmerView())

    def test_resolution_memoized_on_request(self, request_factory, agent_user, analytics_role):
        request = self._request(request_factory, agent_user)
        HasPermissions().has_permission(request, FarmerView())
        identity, held = getattr(request, REQUEST_CACHE_ATTR)
        assert identity.user_id == agent_user.id

        # Later assignments do not change the decision already made for this request
        AssignmentService.assign(agent_user.id, analytics_role.id)
        assert getattr(request, REQUEST_CACHE_ATTR)[1] is held
        assert 'analytics.read' not in held


@pytest.mark.django_db
class TestHasPermissionsThroughViews:
    """Dispatch real views so the exception handler renders the error."""

    def test_allowed(self, api_factory, agent_user):
        request = api_factory.get('/v1/farmers')
        force_authenticate(request, user=agent_user)

        response = FarmerView.as_view()(request)

        assert response.status_code == 200

    def test_forbidden_body(self, api_factory, viewer_user):
        request = api_factory.delete('/v1/farmers')
        force_authenticate(request, user=viewer_user)

        response = FarmerView.as_view()(request)

        assert response.status_code == 403
        assert response.data['missing'] == ['farmers.delete', 'farms.delete']

    def test_unauthenticated_body(self, api_factory):
        response = OpenView.as_view()(api_factory.get('/v1/open'))

        assert response.status_code == 401
        assert response.data['code'] == 'UNAUTHENTICATED'


class TestRequiresPermissionsDecorator:
    """Test @requires_permissions decorator."""

    def test_decorator_on_class(self):
        assert ReportView.required_permissions == frozenset({'analytics.read', 'settings.read'})
        assert ReportView.permission_mode == 'any'

    def test_decorator_on_method(self):
        assert FarmerView.get.required_permissions == frozenset({'farmers.read'})
        assert FarmerView.get.permission_mode == 'all'

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            requires_permissions('farmers.read', mode='most')

    def test_decorator_preserves_method_functionality(self):
        view = FarmerView()
        response = view.get(None)
        assert response.data == {'status': 'ok'}


class TestDefaultPermissionClass:
    """HasPermissions is wired as the DRF default."""

    def test_default_permission_class_resolves(self):
        from rest_framework.settings import api_settings

        assert api_settings.DEFAULT_PERMISSION_CLASSES[0] is HasPermissions

