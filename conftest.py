"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings
import django
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'rbac-tests',
        }
    }
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    settings.SECURE_SSL_REDIRECT = False
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database (apps without migrations are synced)."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture(autouse=True)
def clear_cache():
    """Start every test with an empty permission cache."""
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


def _make_user(email, role):
    from apps.rbac.models import User
    return User.objects.create_user(
        email=email,
        password='s3cure-pass',
        first_name=email.split('@')[0].title(),
        role=role,
    )


@pytest.fixture
def super_admin(db):
    return _make_user('root@registry.test', 'super_admin')


@pytest.fixture
def admin_user(db):
    return _make_user('admin@registry.test', 'admin')


@pytest.fixture
def manager_user(db):
    return _make_user('manager@registry.test', 'manager')


@pytest.fixture
def agent_user(db):
    return _make_user('agent@registry.test', 'agent')


@pytest.fixture
def viewer_user(db):
    return _make_user('viewer@registry.test', 'viewer')


@pytest.fixture
def make_user(db):
    """Factory for extra users: make_user('x@y.z', role='viewer')."""
    def _factory(email, role='agent'):
        return _make_user(email, role)
    return _factory


@pytest.fixture
def analytics_role(db):
    """Active custom role granting analytics.read."""
    from apps.rbac.models import Role
    return Role.objects.create(
        name='Analytics Reader',
        description='Can read analytics dashboards',
        permissions=['analytics.read'],
    )


@pytest.fixture
def system_role(db):
    """A seeded system Role row."""
    from apps.rbac.models import Role
    return Role.objects.create(
        name='Viewer',
        description='Read-only access',
        permissions=['analytics.read', 'clusters.read', 'farmers.read'],
        is_system=True,
    )
