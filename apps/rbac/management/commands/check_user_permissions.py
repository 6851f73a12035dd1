"""
Management command to print where a user's permissions come from.
"""
from django.core.management.base import BaseCommand, CommandError
from apps.rbac.models import User
from apps.rbac.services import AssignmentService


class Command(BaseCommand):
    help = "Show a user's system role, assigned roles and effective permissions"

    def add_arguments(self, parser):
        parser.add_argument(
            '--email',
            type=str,
            required=True,
            help='User email address',
        )

    def handle(self, *args, **options):
        user = User.objects.by_email(options['email'])
        if not user:
            raise CommandError(f"User not found: {options['email']}")

        summary = AssignmentService.get_user_role_summary(user.id)

        self.stdout.write(f'User: {user.email}')
        self.stdout.write(f"System role: {summary['system_role']}")

        self.stdout.write('\nAssigned roles:')
        if not summary['assigned_roles']:
            self.stdout.write('  (none)')
        for assignment in summary['assigned_roles']:
            status = 'active' if assignment.role.is_active else 'inactive'
            self.stdout.write(f'  • {assignment.role.name} ({status})')

        self.stdout.write('\nEffective permissions:')
        for permission in summary['effective_permissions']:
            self.stdout.write(f'  • {permission}')

        counts = summary['permission_summary']
        self.stdout.write(
            self.style.SUCCESS(
                f"\nTotal: {counts['total']} "
                f"(system role: {counts['from_system_role']}, custom roles: {counts['from_custom_roles']})"
            )
        )
