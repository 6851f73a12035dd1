"""
RBAC models for the farmer registry.

Implements:
- User (auth user carrying the system-role tag)
- Role (seeded system roles and admin-defined custom roles)
- UserRole (custom role assignments)
- AuditLog (audit trail of RBAC mutations)
"""
import logging
from django.db import models, transaction
from django.db.models.functions import Lower
from django.contrib.auth.hashers import make_password, check_password
from django.utils import timezone
from apps.core.models import BaseModel, LiveManager
from apps.rbac.system_roles import SYSTEM_ROLE_CHOICES, DEFAULT_SYSTEM_ROLE, ADMIN_TAGS

logger = logging.getLogger(__name__)


class UserManager(LiveManager):
    """
    Manager for User queries.

    Compatible with Django's authentication system.
    """

    def active(self):
        return self.filter(is_active=True)

    def by_email(self, email):
        """Find user by email (case-insensitive)."""
        return self.filter(email__iexact=(email or '').strip()).first()

    def admins(self):
        """Active users whose system role counts for the last-admin guard."""
        return self.filter(is_active=True, role__in=ADMIN_TAGS)

    def create_user(self, email, password=None, **extra_fields):
        """Create a new user with hashed password."""
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('is_superuser', False)
        extra_fields.setdefault('role', DEFAULT_SYSTEM_ROLE)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', 'super_admin')

        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True')

        return self.create_user(email, password, **extra_fields)

    def normalize_email(self, email):
        """Lowercase the domain part of the email address."""
        email = email or ''
        try:
            email_name, domain_part = email.strip().rsplit('@', 1)
        except ValueError:
            pass
        else:
            email = email_name + '@' + domain_part.lower()
        return email

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    Registry staff account.

    ``role`` is the system-role tag that selects a static permission tier.
    It is a plain string, not a reference to a Role row. Custom roles are
    attached through UserRole.
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address"
    )
    password_hash = models.CharField(
        max_length=255,
        blank=True,
        help_text="Hashed password",
        db_column='password_hash'
    )
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    display_name = models.CharField(
        max_length=200,
        blank=True,
        help_text="Name shown in the admin UI"
    )
    role = models.CharField(
        max_length=20,
        choices=SYSTEM_ROLE_CHOICES,
        default=DEFAULT_SYSTEM_ROLE,
        db_index=True,
        help_text="System role tag"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    is_superuser = models.BooleanField(default=False)
    last_login_at = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = 'email'
    EMAIL_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['role', 'is_active']),
        ]

    def __str__(self):
        return self.email

    @property
    def password(self):
        return self.password_hash

    @password.setter
    def password(self, value):
        self.password_hash = value

    def check_password(self, raw_password):
        return check_password(raw_password, self.password_hash)

    def set_password(self, raw_password):
        self.password_hash = make_password(raw_password)

    def get_full_name(self):
        """Return display name, full name or email, whichever is set first."""
        if self.display_name:
            return self.display_name
        if self.first_name or self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.email

    def get_username(self):
        return self.email

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_staff(self):
        return self.is_superuser

    def natural_key(self):
        return (self.email,)


class RoleManager(LiveManager):
    """Manager for Role queries."""

    def system_roles(self):
        return self.filter(is_system=True)

    def custom_roles(self):
        return self.filter(is_system=False)

    def by_name(self, name):
        """Case-insensitive lookup among live roles."""
        return self.filter(name__iexact=(name or '').strip()).first()

    def active(self):
        return self.filter(is_active=True)


class Role(BaseModel):
    """
    Named permission set.

    System rows are seeded by ``seed_system_roles`` and are read-only through
    the service layer. Permissions are stored as a sorted JSON list.
    """

    name = models.CharField(
        max_length=100,
        help_text="Role name (unique, case-insensitive)"
    )
    description = models.TextField(blank=True)
    permissions = models.JSONField(
        default=list,
        blank=True,
        help_text="Sorted list of permission keys"
    )
    is_system = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Seeded role that cannot be edited or deleted"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive roles stay assigned but grant nothing"
    )
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_roles'
    )

    objects = RoleManager()

    class Meta:
        db_table = 'roles'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                Lower('name'),
                condition=models.Q(deleted_at__isnull=True),
                name='unique_live_role_name_ci',
            ),
        ]
        indexes = [
            models.Index(fields=['is_system', 'is_active']),
        ]

    def __str__(self):
        return self.name

    @property
    def permission_set(self):
        return frozenset(self.permissions or ())

    def set_permissions(self, permissions):
        """Store permissions in canonical (sorted, de-duplicated) order."""
        self.permissions = sorted(set(permissions))

    def has_permission(self, permission):
        return permission in self.permission_set


class UserRoleManager(LiveManager):

    def for_user(self, user_id):
        return self.filter(user_id=user_id).select_related('role')

    def for_role(self, role_id):
        return self.filter(role_id=role_id)


class UserRole(BaseModel):
    """Assignment of a custom role to a user."""

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.PROTECT,
        related_name='user_roles'
    )
    assigned_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='role_assignments_made'
    )
    assigned_at = models.DateTimeField(default=timezone.now)

    objects = UserRoleManager()

    class Meta:
        db_table = 'user_roles'
        ordering = ['-assigned_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'role'], name='unique_user_role'),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.role_id}"


class AuditLogManager(LiveManager):
    """Manager for AuditLog queries."""

    def for_user(self, user):
        return self.filter(user=user)

    def by_action(self, action):
        return self.filter(action=action)

    def by_target(self, target_type, target_id=None):
        qs = self.filter(target_type=target_type)
        if target_id:
            qs = qs.filter(target_id=target_id)
        return qs


class AuditLog(BaseModel):
    """
    Audit trail for RBAC changes.

    One row per role create/update/delete, role assignment or revocation,
    and system-role change.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="User who performed the action (null for system actions)"
    )
    action = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Action performed (e.g. 'role_created', 'role_assigned')"
    )
    target_type = models.CharField(max_length=50, db_index=True)
    target_id = models.UUIDField(null=True, blank=True, db_index=True)
    diff = models.JSONField(
        default=dict,
        blank=True,
        help_text="Before/after changes"
    )
    metadata = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    request_id = models.CharField(max_length=64, blank=True, db_index=True)

    objects = AuditLogManager()

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['target_type', 'target_id']),
        ]

    def __str__(self):
        user_str = self.user.email if self.user else 'System'
        return f"{user_str} - {self.action}"

    @classmethod
    def log_action(cls, action, user=None, target_type=None, target_id=None,
                   diff=None, metadata=None, request=None):
        """
        Create an audit log entry.

        Failures are logged and swallowed so that auditing never breaks
        the operation being audited.

        Returns:
            AuditLog instance or None
        """
        if user is not None and not getattr(user, 'is_authenticated', False):
            user = None

        log_data = {
            'action': action,
            'user': user,
            'target_type': target_type or '',
            'target_id': target_id,
            'diff': diff or {},
            'metadata': metadata or {},
        }

        if request is not None:
            log_data['ip_address'] = cls._get_client_ip(request)
            log_data['user_agent'] = request.META.get('HTTP_USER_AGENT', '')
            log_data['request_id'] = getattr(request, 'request_id', None) or ''

        try:
            with transaction.atomic():
                return cls.objects.create(**log_data)
        except Exception as e:
            logger.error(
                f"Failed to create audit log: {str(e)}",
                extra={'action': action, 'target_id': str(target_id) if target_id else None},
                exc_info=True
            )
            return None

    @staticmethod
    def _get_client_ip(request):
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
