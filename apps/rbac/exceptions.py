"""
RBAC error taxonomy.

Every error is caller-correctable and rendered by
``apps.core.exceptions.custom_exception_handler``.
"""
from rest_framework import status

from apps.core.exceptions import RegistryError


class Unauthenticated(RegistryError):
    """No identity could be established for the request."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = 'UNAUTHENTICATED'

    def __init__(self, message='Authentication credentials were not provided.', details=None):
        super().__init__(message, details)


class RBACValidationError(RegistryError):
    code = 'VALIDATION_ERROR'


class InvalidPermissionError(RegistryError):
    """One or more permission tokens are not in the catalog."""
    code = 'INVALID_PERMISSION'

    def __init__(self, offending):
        self.offending = sorted({repr(p) if not isinstance(p, str) else p for p in offending})
        super().__init__(
            f"Invalid permissions: {', '.join(self.offending)}",
            details={'offending': self.offending},
        )


class DuplicateNameError(RegistryError):
    code = 'DUPLICATE_NAME'

    def __init__(self, name):
        self.name = name
        super().__init__('Role with this name already exists', details={'name': name})


class NotFoundError(RegistryError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'NOT_FOUND'

    def __init__(self, resource, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource} not found",
            details={'resource': resource, 'id': str(identifier)},
        )


class SystemRoleImmutableError(RegistryError):
    status_code = status.HTTP_409_CONFLICT
    code = 'SYSTEM_ROLE_IMMUTABLE'

    def __init__(self, role_id, operation='modify'):
        self.role_id = role_id
        super().__init__(
            f"Cannot {operation} system roles",
            details={'role_id': str(role_id)},
        )


class RoleInUseError(RegistryError):
    status_code = status.HTTP_409_CONFLICT
    code = 'ROLE_IN_USE'

    def __init__(self, assigned_count):
        self.assigned_count = assigned_count
        super().__init__(
            f"Cannot delete role. It is assigned to {assigned_count} user(s)",
            details={'assigned_count': assigned_count},
        )


class SystemRoleAssignmentError(RegistryError):
    code = 'SYSTEM_ROLE_ASSIGNMENT'

    def __init__(self, role_id):
        super().__init__(
            'System roles are set through the user system role, not assigned',
            details={'role_id': str(role_id)},
        )


class AlreadyAssignedError(RegistryError):
    code = 'ALREADY_ASSIGNED'

    def __init__(self, user_id, role_id):
        super().__init__(
            'User already has this role',
            details={'user_id': str(user_id), 'role_id': str(role_id)},
        )


class LastAdminError(RegistryError):
    code = 'LAST_ADMIN'

    def __init__(self, user_id):
        super().__init__(
            'Cannot remove the last admin user',
            details={'user_id': str(user_id)},
        )
