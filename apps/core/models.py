"""
Core models for the farmer registry.

Provides BaseModel with UUID primary keys, timestamps and soft delete.
"""
import uuid
from django.db import models
from django.utils import timezone


class LiveQuerySet(models.QuerySet):
    """QuerySet whose delete() marks rows instead of removing them."""

    def delete(self):
        """Soft delete every row in the queryset."""
        return self.update(deleted_at=timezone.now())

    def hard_delete(self):
        """Remove rows from the database."""
        return super().delete()

    def live(self):
        return self.filter(deleted_at__isnull=True)


class LiveManager(models.Manager.from_queryset(LiveQuerySet)):
    """Default manager: soft-deleted rows are invisible."""

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


class BaseModel(models.Model):
    """
    Abstract base for registry models.

    Rows are keyed by UUID and carry created/updated timestamps. Deleting
    through the ORM only stamps ``deleted_at``; ``objects`` hides those rows
    while ``all_objects`` still sees them.
    """
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier"
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the record was created"
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the record was last updated"
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the record was soft deleted"
    )

    objects = LiveManager()
    all_objects = models.Manager.from_queryset(LiveQuerySet)()

    class Meta:
        abstract = True
        ordering = ['-created_at']

    def delete(self, using=None, keep_parents=False):
        """Soft delete the row."""
        self.deleted_at = timezone.now()
        self.save(using=using, update_fields=['deleted_at', 'updated_at'])

    def hard_delete(self, using=None, keep_parents=False):
        """Remove the row from the database."""
        return super().delete(using=using, keep_parents=keep_parents)

    @property
    def is_deleted(self):
        return self.deleted_at is not None
