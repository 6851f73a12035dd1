"""
Identity: the authenticated subject as seen by the authorization layer.
"""
import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, Tuple

from apps.rbac.exceptions import Unauthenticated
from apps.rbac.models import UserRole
from apps.rbac.resolver import PermissionResolver

REQUEST_CACHE_ATTR = '_rbac_authorization'


@dataclass(frozen=True)
class Identity:
    """
    Immutable snapshot of who is acting.

    ``custom_role_ids`` records the assignments present when the identity was
    built; resolution reads assignments afresh.
    """
    user_id: uuid.UUID
    system_role: str
    custom_role_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)

    @classmethod
    def from_user(cls, user) -> 'Identity':
        role_ids = UserRole.objects.filter(
            user_id=user.id, role__deleted_at__isnull=True
        ).values_list('role_id', flat=True)
        return cls(
            user_id=user.id,
            system_role=user.role,
            custom_role_ids=frozenset(role_ids),
        )


def authenticate(request) -> Identity:
    """
    Build the Identity for an authenticated request.

    Raises:
        Unauthenticated: no active user is attached to the request
    """
    user = getattr(request, 'user', None)
    if user is None or not getattr(user, 'is_authenticated', False):
        raise Unauthenticated()
    if not getattr(user, 'is_active', False):
        raise Unauthenticated('User account is disabled.')
    return Identity.from_user(user)


def get_request_authorization(request) -> Tuple[Identity, FrozenSet[str]]:
    """
    Return (identity, effective permissions) for the request.

    Resolved once and memoized on the request object.
    """
    cached = getattr(request, REQUEST_CACHE_ATTR, None)
    if cached is None:
        identity = authenticate(request)
        cached = (identity, PermissionResolver.resolve(identity))
        setattr(request, REQUEST_CACHE_ATTR, cached)
    return cached
