"""
RBAC services.

Implements:
- RoleService: custom role create/update/delete and role listing
- AssignmentService: custom role assignment, system-role changes, user summaries
"""
import logging
from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count

from apps.core.logging import SecurityLogger
from apps.rbac import catalog
from apps.rbac.exceptions import (
    AlreadyAssignedError, DuplicateNameError, LastAdminError, NotFoundError,
    RBACValidationError, RoleInUseError, SystemRoleAssignmentError,
    SystemRoleImmutableError,
)
from apps.rbac.models import AuditLog, Role, User, UserRole
from apps.rbac.system_roles import (
    ADMIN_TAGS, DEFAULT_SYSTEM_ROLE, SYSTEM_ROLE_TAGS, get_system_role_permissions,
    is_system_role_tag,
)

logger = logging.getLogger(__name__)

ROLE_NAME_MAX_LENGTH = 100


def _actor(user):
    """Return ``user`` if it is a real authenticated account, else None."""
    if user is not None and getattr(user, 'is_authenticated', False) and isinstance(user, User):
        return user
    return None


def _role_snapshot(role: Role) -> Dict[str, Any]:
    return {
        'name': role.name,
        'description': role.description,
        'permissions': list(role.permissions),
        'is_active': role.is_active,
    }


class RoleService:
    """
    Service for the role store: custom role CRUD and listing.

    System roles are read-only here. Every successful mutation writes an
    AuditLog row.
    """

    UPDATABLE_FIELDS = frozenset({'name', 'description', 'permissions', 'is_active'})

    @classmethod
    def get_role(cls, role_id) -> Role:
        """
        Get a live role by id.

        Raises:
            NotFoundError: if no live role has this id
        """
        try:
            return Role.objects.get(id=role_id)
        except (Role.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError('Role', role_id)

    @classmethod
    def list_roles(cls) -> Dict[str, List[Role]]:
        """
        List live roles split into system and custom, newest first.

        Each role is annotated with ``assigned_user_count``.
        """
        qs = Role.objects.annotate(
            assigned_user_count=Count('user_roles', distinct=True)
        ).order_by('-created_at')

        return {
            'system_roles': list(qs.filter(is_system=True)),
            'custom_roles': list(qs.filter(is_system=False)),
        }

    @classmethod
    def create_custom_role(cls, name, description, permissions, is_active=True,
                           created_by=None, request=None) -> Role:
        """
        Create a custom role.

        Everything is validated before the row is written; the new role is
        never a system role.

        Raises:
            RBACValidationError: blank name or malformed fields
            InvalidPermissionError: unknown permission tokens
            DuplicateNameError: a live role already has this name (any case)
        """
        name = cls._clean_name(name)
        description = cls._clean_description(description)
        permissions = cls._clean_permissions(permissions)
        is_active = cls._clean_is_active(is_active)

        if Role.objects.filter(name__iexact=name).exists():
            raise DuplicateNameError(name)

        role = Role(
            name=name,
            description=description,
            is_system=False,
            is_active=is_active,
            created_by=_actor(created_by),
        )
        role.set_permissions(permissions)

        try:
            with transaction.atomic():
                role.save()
        except IntegrityError:
            raise DuplicateNameError(name)

        AuditLog.log_action(
            action='role_created',
            user=_actor(created_by),
            target_type='Role',
            target_id=role.id,
            diff={'after': _role_snapshot(role)},
            request=request,
        )

        logger.info(
            f"Custom role created: {role.name}",
            extra={'role_id': str(role.id), 'permission_count': len(role.permissions)}
        )

        return role

    @classmethod
    def update_custom_role(cls, role_id, patch, updated_by=None, request=None) -> Role:
        """
        Apply a partial update to a custom role.

        Only ``name``, ``description``, ``permissions`` and ``is_active`` may
        appear in ``patch``; absent keys are left untouched.

        Raises:
            NotFoundError, SystemRoleImmutableError, RBACValidationError,
            InvalidPermissionError, DuplicateNameError
        """
        with transaction.atomic():
            role = cls._get_for_update(role_id)

            if role.is_system:
                SecurityLogger.log_system_role_mutation_attempt(
                    getattr(_actor(updated_by), 'id', None), role.id, 'update'
                )
                raise SystemRoleImmutableError(role.id, 'modify')

            if not isinstance(patch, dict):
                raise RBACValidationError('Update body must be an object')

            unknown = set(patch) - cls.UPDATABLE_FIELDS
            if unknown:
                raise RBACValidationError(
                    f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                    details={'fields': sorted(unknown)},
                )

            if not patch:
                return role

            before = _role_snapshot(role)

            # Validate every field before touching the row
            changes = {}
            if 'name' in patch:
                name = cls._clean_name(patch['name'])
                if Role.objects.filter(name__iexact=name).exclude(id=role.id).exists():
                    raise DuplicateNameError(name)
                changes['name'] = name
            if 'description' in patch:
                changes['description'] = cls._clean_description(patch['description'])
            if 'permissions' in patch:
                changes['permissions'] = sorted(cls._clean_permissions(patch['permissions']))
            if 'is_active' in patch:
                changes['is_active'] = cls._clean_is_active(patch['is_active'])

            for field, value in changes.items():
                setattr(role, field, value)

            try:
                with transaction.atomic():
                    role.save(update_fields=list(changes) + ['updated_at'])
            except IntegrityError:
                raise DuplicateNameError(changes.get('name', role.name))

        AuditLog.log_action(
            action='role_updated',
            user=_actor(updated_by),
            target_type='Role',
            target_id=role.id,
            diff={'before': before, 'after': _role_snapshot(role)},
            metadata={'fields': sorted(changes)},
            request=request,
        )

        logger.info(
            f"Custom role updated: {role.name}",
            extra={'role_id': str(role.id), 'fields': sorted(changes)}
        )

        return role

    @classmethod
    def delete_custom_role(cls, role_id, deleted_by=None, request=None):
        """
        Delete a custom role that nobody holds.

        Raises:
            NotFoundError, SystemRoleImmutableError,
            RoleInUseError: if any assignment references the role
        """
        with transaction.atomic():
            role = cls._get_for_update(role_id)

            if role.is_system:
                SecurityLogger.log_system_role_mutation_attempt(
                    getattr(_actor(deleted_by), 'id', None), role.id, 'delete'
                )
                raise SystemRoleImmutableError(role.id, 'delete')

            assigned_count = UserRole.objects.filter(role=role).count()
            if assigned_count:
                raise RoleInUseError(assigned_count)

            snapshot = _role_snapshot(role)
            role.delete()

        AuditLog.log_action(
            action='role_deleted',
            user=_actor(deleted_by),
            target_type='Role',
            target_id=role.id,
            diff={'before': snapshot},
            request=request,
        )

        logger.info(f"Custom role deleted: {snapshot['name']}", extra={'role_id': str(role.id)})

    @classmethod
    def _get_for_update(cls, role_id) -> Role:
        """Lock and return a live role; must run inside transaction.atomic()."""
        try:
            return Role.objects.select_for_update().get(id=role_id)
        except (Role.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError('Role', role_id)

    @staticmethod
    def _clean_name(name) -> str:
        if not isinstance(name, str) or not name.strip():
            raise RBACValidationError('Role name is required', details={'field': 'name'})
        name = name.strip()
        if len(name) > ROLE_NAME_MAX_LENGTH:
            raise RBACValidationError(
                f"Role name must be at most {ROLE_NAME_MAX_LENGTH} characters",
                details={'field': 'name'},
            )
        return name

    @staticmethod
    def _clean_description(description) -> str:
        if description is None:
            return ''
        if not isinstance(description, str):
            raise RBACValidationError('Description must be a string', details={'field': 'description'})
        return description.strip()

    @staticmethod
    def _clean_permissions(permissions):
        if not isinstance(permissions, (list, tuple, set, frozenset)):
            raise RBACValidationError('Permissions must be a list', details={'field': 'permissions'})
        return catalog.validate_permissions(permissions)

    @staticmethod
    def _clean_is_active(is_active) -> bool:
        if not isinstance(is_active, bool):
            raise RBACValidationError('is_active must be a boolean', details={'field': 'is_active'})
        return is_active


class AssignmentService:
    """
    Service for the assignment store.

    Custom roles are attached through UserRole rows; the system-role tag
    lives on User.role.
    """

    @classmethod
    def get_user(cls, user_id) -> User:
        try:
            return User.objects.get(id=user_id)
        except (User.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError('User', user_id)

    @classmethod
    def assign(cls, user_id, role_id, assigned_by=None, request=None) -> UserRole:
        """
        Assign a custom role to a user.

        The role row is locked so a concurrent delete serializes against
        this call. Inactive roles may be assigned.

        Raises:
            NotFoundError, SystemRoleAssignmentError, AlreadyAssignedError
        """
        user = cls.get_user(user_id)

        with transaction.atomic():
            role = RoleService._get_for_update(role_id)

            if role.is_system:
                raise SystemRoleAssignmentError(role.id)

            if UserRole.objects.filter(user=user, role=role).exists():
                raise AlreadyAssignedError(user.id, role.id)

            try:
                with transaction.atomic():
                    assignment = UserRole.objects.create(
                        user=user,
                        role=role,
                        assigned_by=_actor(assigned_by),
                    )
            except IntegrityError:
                raise AlreadyAssignedError(user.id, role.id)

        AuditLog.log_action(
            action='role_assigned',
            user=_actor(assigned_by),
            target_type='User',
            target_id=user.id,
            metadata={'role_id': str(role.id), 'role_name': role.name},
            request=request,
        )

        logger.info(
            f"Role {role.name} assigned to user {user.id}",
            extra={'user_id': str(user.id), 'role_id': str(role.id)}
        )

        return assignment

    @classmethod
    def revoke(cls, user_id, role_id, revoked_by=None, request=None) -> bool:
        """
        Remove an assignment. Idempotent.

        Returns:
            True if an assignment was removed, False if none existed
        """
        try:
            deleted, _ = UserRole.objects.filter(user_id=user_id, role_id=role_id).hard_delete()
        except (ValidationError, ValueError):
            return False

        if not deleted:
            return False

        AuditLog.log_action(
            action='role_revoked',
            user=_actor(revoked_by),
            target_type='User',
            target_id=user_id,
            metadata={'role_id': str(role_id)},
            request=request,
        )

        logger.info(
            f"Role {role_id} revoked from user {user_id}",
            extra={'user_id': str(user_id), 'role_id': str(role_id)}
        )

        return True

    @classmethod
    def list_for_user(cls, user_id) -> List[Role]:
        """Active custom roles assigned to the user."""
        try:
            return list(
                Role.objects.filter(
                    user_roles__user_id=user_id, is_active=True, is_system=False
                ).distinct()
            )
        except (ValidationError, ValueError):
            return []

    @classmethod
    def list_assigned_roles(cls, user_id) -> List[UserRole]:
        """Every assignment of the user, active roles or not."""
        return list(UserRole.objects.for_user(user_id).filter(role__deleted_at__isnull=True))

    @classmethod
    def set_system_role(cls, user_id, system_role, changed_by=None, request=None) -> User:
        """
        Change a user's system-role tag.

        Raises:
            RBACValidationError: unknown tag
            NotFoundError: unknown user
            LastAdminError: the change would leave no active admin
        """
        if not is_system_role_tag(system_role):
            raise RBACValidationError(
                'Invalid system role',
                details={'valid_roles': sorted(SYSTEM_ROLE_TAGS)},
            )

        with transaction.atomic():
            # Lock the admin set before the target, in id order, so two
            # concurrent demotions serialize instead of both passing the guard
            admin_ids = []
            if system_role not in ADMIN_TAGS:
                admin_ids = list(
                    User.objects.admins().select_for_update().order_by('id').values_list('id', flat=True)
                )

            try:
                user = User.objects.select_for_update().get(id=user_id)
            except (User.DoesNotExist, ValidationError, ValueError):
                raise NotFoundError('User', user_id)

            previous = user.role
            if previous == system_role:
                return user

            if previous in ADMIN_TAGS and system_role not in ADMIN_TAGS:
                if not any(admin_id != user.id for admin_id in admin_ids):
                    raise LastAdminError(user.id)

            user.role = system_role
            user.save(update_fields=['role', 'updated_at'])

        AuditLog.log_action(
            action='system_role_changed',
            user=_actor(changed_by),
            target_type='User',
            target_id=user.id,
            diff={'before': {'role': previous}, 'after': {'role': system_role}},
            request=request,
        )

        logger.info(
            f"System role of user {user.id} changed from {previous} to {system_role}",
            extra={'user_id': str(user.id)}
        )

        return user

    @classmethod
    def reset_system_role(cls, user_id, changed_by=None, request=None) -> User:
        """Set the user's tag back to the default tier."""
        return cls.set_system_role(user_id, DEFAULT_SYSTEM_ROLE, changed_by=changed_by, request=request)

    @classmethod
    def get_user_role_summary(cls, user_id) -> Dict[str, Any]:
        """
        Describe where a user's permissions come from.

        Returns:
            Dict with user, system_role, assigned_roles, effective_permissions
            (sorted) and permission_summary counts.
        """
        # Import here to avoid circular imports
        from apps.rbac.identity import Identity
        from apps.rbac.resolver import PermissionResolver

        user = cls.get_user(user_id)
        identity = Identity.from_user(user)

        system_permissions = get_system_role_permissions(user.role)
        custom_permissions = PermissionResolver.custom_role_permissions(user.id)
        effective = PermissionResolver.resolve(identity)

        return {
            'user': user,
            'system_role': user.role,
            'assigned_roles': cls.list_assigned_roles(user.id),
            'effective_permissions': sorted(effective),
            'permission_summary': {
                'total': len(effective),
                'from_system_role': len(system_permissions),
                'from_custom_roles': len(custom_permissions),
            },
        }
