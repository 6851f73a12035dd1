"""
DRF permission class and decorator for RBAC permission enforcement.

This module provides:
- HasPermissions: DRF permission class that runs the authorization gate
- @requires_permissions: Decorator to declare required permissions on views
"""
import logging
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

logger = logging.getLogger(__name__)

PERMISSION_MODES = ('all', 'any')


class InsufficientPermissions(PermissionDenied):
    """403 raised when the gate returns Forbidden."""
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'FORBIDDEN'

    def __init__(self, required, missing):
        super().__init__(detail={
            'error': str(self.default_detail),
            'code': self.default_code,
            'required': sorted(required),
            'missing': sorted(missing),
        })


def _requirements_for(request, view):
    """Return (required_permissions, mode) for the handler serving this request."""
    handler = getattr(view, (request.method or '').lower(), None)

    required = getattr(handler, 'required_permissions', None)
    mode = getattr(handler, 'permission_mode', None)
    if required is None:
        required = getattr(view, 'required_permissions', None)
        mode = getattr(view, 'permission_mode', None)

    if isinstance(required, str):
        required = {required}

    return frozenset(required or ()), mode or 'all'


class HasPermissions(BasePermission):
    """
    DRF permission class that enforces permission requirements on API endpoints.

    The request is authenticated into an Identity and resolved once; the
    gate then compares the effective set with the requirement declared on
    the handler method (or, failing that, on the view class).

    Usage in views:
        class RoleListView(APIView):
            permission_classes = [HasPermissions]

            @requires_permissions('users.read')
            def get(self, request):
                pass

    A view with no declared requirement only needs an authenticated caller.
    Unauthenticated requests raise ``Unauthenticated`` (401); denials raise
    ``InsufficientPermissions`` (403) carrying the required and missing
    permissions.
    """

    def has_permission(self, request, view):
        # Import here to avoid circular imports
        from apps.rbac.gate import AuthorizationGate, Forbidden
        from apps.rbac.identity import get_request_authorization

        identity, held = get_request_authorization(request)
        required, mode = _requirements_for(request, view)

        if not required:
            return True

        if mode == 'any':
            decision = AuthorizationGate.require_any(identity, required, held=held)
        else:
            decision = AuthorizationGate.require_all(identity, required, held=held)

        if isinstance(decision, Forbidden):
            logger.warning(
                f"Permission denied on {view.__class__.__name__}",
                extra={
                    'user_id': str(identity.user_id),
                    'required_permissions': decision.required,
                    'missing_permissions': decision.missing,
                    'permission_mode': mode,
                    'view': view.__class__.__name__,
                    'method': request.method,
                    'path': request.path,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            raise InsufficientPermissions(decision.required, decision.missing)

        return True


def requires_permissions(*permissions, mode='all'):
    """
    Decorator to declare required permissions on view classes or methods.

    ``mode='all'`` (default) requires every listed permission,
    ``mode='any'`` requires at least one.

    Usage:
        @requires_permissions('users.update')
        def put(self, request, role_id):
            pass

        @requires_permissions('farmers.read', 'farmers.export', mode='any')
        class FarmerExportView(APIView):
            permission_classes = [HasPermissions]
    """
    if mode not in PERMISSION_MODES:
        raise ValueError(f"Unknown permission mode '{mode}', expected one of {PERMISSION_MODES}")

    def decorator(view_or_method):
        view_or_method.required_permissions = frozenset(permissions)
        view_or_method.permission_mode = mode
        return view_or_method

    return decorator
