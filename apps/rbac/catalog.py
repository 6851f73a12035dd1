"""
Permission catalog: the closed set of permission tokens the registry knows.

Every permission written to a role is checked against this module. The
catalog is built once at import time and never mutated.
"""
from typing import FrozenSet, Iterable

from apps.rbac.exceptions import InvalidPermissionError

CATALOG_VERSION = 2

CRUD_ACTIONS = ('create', 'read', 'update', 'delete')

RESOURCES = {
    'users': 'User Management',
    'agents': 'Agent Management',
    'farmers': 'Farmer Management',
    'farms': 'Farm Management',
    'clusters': 'Cluster Management',
    'certificates': 'Certificate Management',
    'roles': 'Role Management',
    'analytics': 'Analytics',
    'settings': 'System Settings',
}

# Resources whose action set differs from plain CRUD
_ACTIONS_OVERRIDE = {
    'farmers': CRUD_ACTIONS + ('export',),
    'settings': ('read', 'update'),
}

_ACTION_LABELS = {
    'create': 'Create',
    'read': 'View',
    'update': 'Edit',
    'delete': 'Delete',
    'export': 'Export',
}


def _build():
    tokens = []
    for resource in RESOURCES:
        for action in _ACTIONS_OVERRIDE.get(resource, CRUD_ACTIONS):
            tokens.append(f"{resource}.{action}")
    return tuple(tokens)


_ORDERED = _build()
_PERMISSIONS: FrozenSet[str] = frozenset(_ORDERED)


def list_all() -> FrozenSet[str]:
    """Return every known permission."""
    return _PERMISSIONS


def is_valid(permission) -> bool:
    return isinstance(permission, str) and permission in _PERMISSIONS


def validate_permissions(permissions: Iterable) -> FrozenSet[str]:
    """
    Return ``permissions`` as a frozenset if every entry is in the catalog.

    Raises:
        InvalidPermissionError: listing every offending entry
    """
    if isinstance(permissions, (str, bytes)) or permissions is None:
        raise InvalidPermissionError([permissions])

    entries = list(permissions)
    offending = [p for p in entries if not is_valid(p)]
    if offending:
        raise InvalidPermissionError(offending)
    return frozenset(entries)


def describe():
    """
    Catalog entries grouped by resource, in declaration order.

    Returns:
        List of {'resource', 'category', 'permissions': [{'key', 'label', 'action'}]}
    """
    grouped = []
    for resource, category in RESOURCES.items():
        actions = _ACTIONS_OVERRIDE.get(resource, CRUD_ACTIONS)
        grouped.append({
            'resource': resource,
            'category': category,
            'permissions': [
                {
                    'key': f"{resource}.{action}",
                    'label': f"{_ACTION_LABELS[action]} {resource.capitalize()}",
                    'action': action,
                }
                for action in actions
            ],
        })
    return grouped
