"""
Static permission tiers for the five system roles.

The tier sets are listed literally rather than derived from one another;
they are intentionally not strict subsets of each other.
"""
from typing import FrozenSet

SUPER_ADMIN = 'super_admin'
ADMIN = 'admin'
MANAGER = 'manager'
AGENT = 'agent'
VIEWER = 'viewer'

SYSTEM_ROLE_CHOICES = [
    (SUPER_ADMIN, 'Super Admin'),
    (ADMIN, 'Admin'),
    (MANAGER, 'Manager'),
    (AGENT, 'Agent'),
    (VIEWER, 'Viewer'),
]

SYSTEM_ROLE_TAGS = frozenset(tag for tag, _ in SYSTEM_ROLE_CHOICES)

# Tags counted by the last-admin guard
ADMIN_TAGS = frozenset({SUPER_ADMIN, ADMIN})

DEFAULT_SYSTEM_ROLE = AGENT

SYSTEM_ROLE_PERMISSIONS = {
    SUPER_ADMIN: frozenset({
        'users.create', 'users.read', 'users.update', 'users.delete',
        'agents.create', 'agents.read', 'agents.update', 'agents.delete',
        'farmers.create', 'farmers.read', 'farmers.update', 'farmers.delete',
        'farms.create', 'farms.read', 'farms.update', 'farms.delete',
        'clusters.create', 'clusters.read', 'clusters.update', 'clusters.delete',
        'certificates.create', 'certificates.read', 'certificates.update', 'certificates.delete',
        'roles.create', 'roles.read', 'roles.update', 'roles.delete',
        'analytics.read',
        'settings.read', 'settings.update',
    }),
    ADMIN: frozenset({
        'users.read', 'users.update',
        'agents.create', 'agents.read', 'agents.update', 'agents.delete',
        'farmers.create', 'farmers.read', 'farmers.update', 'farmers.delete',
        'farms.create', 'farms.read', 'farms.update', 'farms.delete',
        'clusters.create', 'clusters.read', 'clusters.update', 'clusters.delete',
        'certificates.create', 'certificates.read', 'certificates.update',
        'roles.read', 'roles.create',
        'analytics.read',
        'settings.read',
    }),
    MANAGER: frozenset({
        'agents.read', 'agents.update',
        'farmers.create', 'farmers.read', 'farmers.update',
        'farms.create', 'farms.read', 'farms.update',
        'clusters.read', 'clusters.update',
        'certificates.create', 'certificates.read',
        'analytics.read',
    }),
    AGENT: frozenset({
        'farmers.create', 'farmers.read', 'farmers.update',
        'farms.create', 'farms.read', 'farms.update',
        'certificates.create', 'certificates.read',
    }),
    VIEWER: frozenset({
        'agents.read',
        'farmers.read',
        'farms.read',
        'clusters.read',
        'certificates.read',
        'analytics.read',
    }),
}


def is_system_role_tag(tag) -> bool:
    return tag in SYSTEM_ROLE_TAGS


def get_system_role_permissions(tag) -> FrozenSet[str]:
    """Tier set for ``tag``; unknown or empty tags get the agent tier."""
    return SYSTEM_ROLE_PERMISSIONS.get(tag, SYSTEM_ROLE_PERMISSIONS[DEFAULT_SYSTEM_ROLE])


# Seed rows for the Role table. These are displayed alongside custom roles
# but the resolver never reads them; a user's tier comes from User.role.
SYSTEM_ROLE_SEEDS = [
    {
        'name': 'Super Admin',
        'description': 'Full system access with all permissions',
        'permissions': [
            'users.create', 'users.read', 'users.update', 'users.delete',
            'agents.create', 'agents.read', 'agents.update', 'agents.delete',
            'farmers.create', 'farmers.read', 'farmers.update', 'farmers.delete',
            'clusters.create', 'clusters.read', 'clusters.update', 'clusters.delete',
            'analytics.read', 'settings.update',
        ],
    },
    {
        'name': 'Admin',
        'description': 'Administrative access with most permissions',
        'permissions': [
            'users.create', 'users.read', 'users.update',
            'agents.create', 'agents.read', 'agents.update', 'agents.delete',
            'farmers.create', 'farmers.read', 'farmers.update', 'farmers.delete',
            'clusters.create', 'clusters.read', 'clusters.update', 'clusters.delete',
            'analytics.read', 'settings.update',
        ],
    },
    {
        'name': 'Manager',
        'description': 'Management level access',
        'permissions': [
            'agents.read', 'agents.update',
            'farmers.create', 'farmers.read', 'farmers.update',
            'clusters.read', 'clusters.update',
            'analytics.read',
        ],
    },
    {
        'name': 'Agent',
        'description': 'Field agent access',
        'permissions': [
            'farmers.create', 'farmers.read', 'farmers.update',
            'clusters.read',
        ],
    },
    {
        'name': 'Viewer',
        'description': 'Read-only access',
        'permissions': [
            'farmers.read', 'clusters.read', 'analytics.read',
        ],
    },
]
