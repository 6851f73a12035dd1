"""
Effective permission resolution.

A user's effective set is the union of their system tier and the
permissions of every active custom role assigned to them.
"""
import logging
from typing import FrozenSet

from django.conf import settings
from django.core.cache import cache

from apps.rbac import catalog
from apps.rbac.services import AssignmentService
from apps.rbac.system_roles import get_system_role_permissions

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300


class PermissionResolver:
    """
    Resolve identities into effective permission sets.

    Only the custom-role contribution is cached; the tier set is static and
    recomputed on every call. Cached entries are dropped by the signal
    handlers in ``apps.rbac.signals`` whenever roles or assignments change.
    """

    CACHE_KEY = 'rbac:permissions:user:{user_id}'

    @classmethod
    def cache_ttl(cls) -> int:
        return getattr(settings, 'RBAC_PERMISSION_CACHE_TTL', DEFAULT_CACHE_TTL)

    @classmethod
    def cache_key(cls, user_id) -> str:
        return cls.CACHE_KEY.format(user_id=user_id)

    @classmethod
    def resolve(cls, identity) -> FrozenSet[str]:
        """
        Return the effective permission set for ``identity``.

        The identity is not modified and the returned set is a new object.
        """
        system_permissions = get_system_role_permissions(identity.system_role)
        custom_permissions = cls.custom_role_permissions(identity.user_id)
        return frozenset(system_permissions | custom_permissions)

    @classmethod
    def custom_role_permissions(cls, user_id) -> FrozenSet[str]:
        """Union of the permissions of the user's active custom roles."""
        ttl = cls.cache_ttl()
        key = cls.cache_key(user_id)

        if ttl:
            cached = cache.get(key)
            if cached is not None:
                return frozenset(cached)

        permissions = set()
        for role in AssignmentService.list_for_user(user_id):
            for permission in role.permissions or ():
                if catalog.is_valid(permission):
                    permissions.add(permission)
                else:
                    logger.warning(
                        f"Ignoring unknown permission '{permission}' on role {role.id}",
                        extra={'role_id': str(role.id), 'user_id': str(user_id)}
                    )

        if ttl:
            cache.set(key, sorted(permissions), ttl)

        return frozenset(permissions)

    @classmethod
    def invalidate(cls, user_id):
        """Drop the cached custom-role contribution for one user."""
        cache.delete(cls.cache_key(user_id))

    @classmethod
    def invalidate_many(cls, user_ids):
        keys = [cls.cache_key(user_id) for user_id in user_ids]
        if keys:
            cache.delete_many(keys)
