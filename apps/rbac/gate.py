"""
Authorization gate.

Pure decision point: compares a required permission (or set) with the
identity's effective set and returns Allowed or Forbidden. The gate never
raises for a missing permission; turning Forbidden into an HTTP 403 is the
caller's job.
"""
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional

from apps.core.logging import SecurityLogger
from apps.rbac.resolver import PermissionResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allowed:
    required: List[str] = field(default_factory=list)

    def __bool__(self):
        return True


@dataclass(frozen=True)
class Forbidden:
    """Denial carrying the required permissions and what the subject held."""
    required: List[str]
    held: List[str]

    def __bool__(self):
        return False

    @property
    def missing(self) -> List[str]:
        held = set(self.held)
        return [p for p in self.required if p not in held]


class AuthorizationGate:
    """
    Decide whether an identity may perform an operation.

    ``held`` lets a caller pass the effective set it already resolved for the
    current request instead of resolving again.
    """

    @classmethod
    def require_permission(cls, identity, permission: str,
                           held: Optional[FrozenSet[str]] = None):
        return cls._decide(identity, [permission], 'all', held)

    @classmethod
    def require_any(cls, identity, permissions: Iterable[str],
                    held: Optional[FrozenSet[str]] = None):
        """Allowed if at least one permission is held. An empty list is Forbidden."""
        return cls._decide(identity, permissions, 'any', held)

    @classmethod
    def require_all(cls, identity, permissions: Iterable[str],
                    held: Optional[FrozenSet[str]] = None):
        """Allowed if every permission is held. An empty list is Allowed."""
        return cls._decide(identity, permissions, 'all', held)

    @classmethod
    def _decide(cls, identity, permissions, mode, held):
        # A bare string is one permission, not an iterable of characters
        if isinstance(permissions, str):
            permissions = [permissions]
        required = sorted(set(permissions))
        if held is None:
            held = PermissionResolver.resolve(identity)

        if mode == 'any':
            granted = any(p in held for p in required)
        else:
            granted = all(p in held for p in required)

        logger.info(
            f"Authorization {'allowed' if granted else 'denied'} for user {identity.user_id}",
            extra={
                'user_id': str(identity.user_id),
                'system_role': identity.system_role,
                'required_permissions': required,
                'permission_mode': mode,
                'outcome': 'allowed' if granted else 'denied',
            }
        )

        if granted:
            return Allowed(required=required)

        decision = Forbidden(required=required, held=sorted(held))
        SecurityLogger.log_permission_denied(
            user_id=identity.user_id,
            required=decision.required,
            missing=decision.missing,
        )
        return decision


def authorize(identity, permissions, held=None) -> bool:
    """Boolean form of the gate: one permission, or all of several."""
    if isinstance(permissions, str):
        return bool(AuthorizationGate.require_permission(identity, permissions, held=held))
    return bool(AuthorizationGate.require_all(identity, permissions, held=held))
