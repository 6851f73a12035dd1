"""
Management command to seed the five system Role rows.

Creates or updates Super Admin, Admin, Manager, Agent and Viewer so they
appear next to custom roles in listings. This command is idempotent and safe
to re-run. A custom role already holding a system name aborts the run
without changes.
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from apps.rbac import catalog
from apps.rbac.models import Role
from apps.rbac.system_roles import SYSTEM_ROLE_SEEDS


class Command(BaseCommand):
    help = 'Seed system roles (idempotent)'

    @transaction.atomic
    def handle(self, *args, **options):
        created_count = 0
        updated_count = 0

        self.stdout.write('Seeding system roles...\n')

        for seed in SYSTEM_ROLE_SEEDS:
            permissions = sorted(catalog.validate_permissions(seed['permissions']))
            role = Role.objects.by_name(seed['name'])

            if role is None:
                Role.objects.create(
                    name=seed['name'],
                    description=seed['description'],
                    permissions=permissions,
                    is_system=True,
                    is_active=True,
                )
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f"✓ Created: {seed['name']}"))
                continue

            if not role.is_system:
                raise CommandError(
                    f"Custom role '{role.name}' conflicts with system role '{seed['name']}'; rename it first"
                )

            changed = []
            if role.description != seed['description']:
                role.description = seed['description']
                changed.append('description')
            if list(role.permissions) != permissions:
                role.permissions = permissions
                changed.append('permissions')

            if changed:
                role.save(update_fields=changed + ['updated_at'])
                updated_count += 1
                self.stdout.write(self.style.WARNING(f"↻ Updated: {role.name} ({', '.join(changed)})"))
            else:
                self.stdout.write(self.style.HTTP_INFO(f"  Exists: {role.name}"))

        self.stdout.write(
            self.style.SUCCESS(
                f'\n✓ Seeding complete: {created_count} created, {updated_count} updated, '
                f'{len(SYSTEM_ROLE_SEEDS) - created_count - updated_count} unchanged'
            )
        )
