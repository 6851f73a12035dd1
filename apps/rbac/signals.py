"""
RBAC signals for permission cache invalidation.

Any change to a role, an assignment or a user's system-role tag drops the
cached custom-role permissions of every affected user. Invalidation runs
after the surrounding transaction commits so a concurrent read cannot
repopulate the cache from uncommitted state.
"""
import logging
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from apps.rbac.models import Role, User, UserRole
from apps.rbac.resolver import PermissionResolver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Role)
@receiver(post_delete, sender=Role)
def invalidate_role_holders(sender, instance, **kwargs):
    """Drop the cache of every user holding the role."""
    user_ids = list(
        UserRole.objects.filter(role_id=instance.id).values_list('user_id', flat=True)
    )
    if not user_ids:
        return

    transaction.on_commit(lambda: PermissionResolver.invalidate_many(user_ids))
    logger.debug(
        f"Scheduled permission cache invalidation for {len(user_ids)} holder(s) of role {instance.id}",
        extra={'role_id': str(instance.id)}
    )


@receiver(post_save, sender=UserRole)
@receiver(post_delete, sender=UserRole)
def invalidate_assignment_user(sender, instance, **kwargs):
    user_id = instance.user_id
    transaction.on_commit(lambda: PermissionResolver.invalidate(user_id))


@receiver(post_save, sender=User)
def invalidate_user_on_role_change(sender, instance, created, update_fields=None, **kwargs):
    """Drop the user's cache when the system-role tag may have changed."""
    if created:
        return
    if update_fields is not None and 'role' not in update_fields and 'is_active' not in update_fields:
        return
    user_id = instance.id
    transaction.on_commit(lambda: PermissionResolver.invalidate(user_id))
