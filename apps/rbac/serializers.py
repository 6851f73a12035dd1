"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Users and their system role
- Roles and role assignments
- Audit logs
"""
from rest_framework import serializers
from apps.rbac.models import User, Role, UserRole, AuditLog


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model."""

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'display_name',
            'role', 'is_active', 'created_at',
        ]
        read_only_fields = fields


class RoleSerializer(serializers.ModelSerializer):
    """Serializer for Role model."""

    permissions = serializers.SerializerMethodField()
    created_by = serializers.PrimaryKeyRelatedField(read_only=True)
    assigned_user_count = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            'id', 'name', 'description', 'permissions', 'is_system',
            'is_active', 'created_by', 'created_at', 'updated_at',
            'assigned_user_count',
        ]
        read_only_fields = fields

    def get_permissions(self, obj):
        return sorted(obj.permission_set)

    def get_assigned_user_count(self, obj):
        """Use the list annotation when present."""
        count = getattr(obj, 'assigned_user_count', None)
        if count is None:
            count = obj.user_roles.count()
        return count


class RoleAssignedUserSerializer(serializers.ModelSerializer):
    """User holding a role, as shown on the role detail page."""

    id = serializers.UUIDField(source='user.id', read_only=True)
    email = serializers.EmailField(source='user.email', read_only=True)
    display_name = serializers.CharField(source='user.get_full_name', read_only=True)

    class Meta:
        model = UserRole
        fields = ['id', 'email', 'display_name', 'assigned_at']
        read_only_fields = fields


class RoleDetailSerializer(RoleSerializer):
    """Role with the users currently holding it."""

    assigned_users = serializers.SerializerMethodField()

    class Meta(RoleSerializer.Meta):
        fields = RoleSerializer.Meta.fields + ['assigned_users']
        read_only_fields = fields

    def get_assigned_users(self, obj):
        assignments = obj.user_roles.select_related('user').order_by('-assigned_at')
        return RoleAssignedUserSerializer(assignments, many=True).data


class UserRoleSerializer(serializers.ModelSerializer):
    """Serializer for a custom role assignment."""

    role = RoleSerializer(read_only=True)
    user_id = serializers.UUIDField(read_only=True)
    assigned_by = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = UserRole
        fields = ['id', 'user_id', 'role', 'assigned_by', 'assigned_at']
        read_only_fields = fields


class UserRoleSummarySerializer(serializers.Serializer):
    """Serializer for AssignmentService.get_user_role_summary output."""

    user = UserSerializer(read_only=True)
    system_role = serializers.CharField(read_only=True)
    assigned_roles = UserRoleSerializer(many=True, read_only=True)
    effective_permissions = serializers.ListField(child=serializers.CharField(), read_only=True)
    permission_summary = serializers.DictField(child=serializers.IntegerField(), read_only=True)


class AssignRoleSerializer(serializers.Serializer):
    """Request body for assigning a custom role."""

    role_id = serializers.UUIDField(required=True)


class SystemRoleSerializer(serializers.Serializer):
    """Request body for changing a user's system role."""

    system_role = serializers.CharField(required=True)


class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for AuditLog model."""

    user_email = serializers.EmailField(source='user.email', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = [
            'id', 'user_email', 'action',
            'target_type', 'target_id', 'diff', 'metadata',
            'ip_address', 'user_agent', 'request_id',
            'created_at'
        ]
        read_only_fields = fields
