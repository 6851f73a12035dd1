"""
Management command to create a super admin, or promote an existing user.
"""
from django.core.management.base import BaseCommand, CommandError
from apps.rbac.models import User
from apps.rbac.services import AssignmentService
from apps.rbac.system_roles import SUPER_ADMIN


class Command(BaseCommand):
    help = 'Create a user with the super_admin system role (or promote an existing one)'

    def add_arguments(self, parser):
        parser.add_argument('--email', type=str, required=True, help='User email address')
        parser.add_argument(
            '--password',
            type=str,
            help='Password for a new user (required when the user does not exist)',
        )
        parser.add_argument('--first-name', type=str, default='')
        parser.add_argument('--last-name', type=str, default='')

    def handle(self, *args, **options):
        email = options['email']
        user = User.objects.by_email(email)

        if user is None:
            if not options.get('password'):
                raise CommandError('--password is required when creating a new user')

            user = User.objects.create_user(
                email=email,
                password=options['password'],
                first_name=options.get('first_name') or '',
                last_name=options.get('last_name') or '',
                role=SUPER_ADMIN,
            )
            self.stdout.write(self.style.SUCCESS(f'✓ Created super admin: {user.email}'))
            return

        if user.role == SUPER_ADMIN:
            self.stdout.write(self.style.HTTP_INFO(f'  {user.email} is already a super admin'))
            return

        AssignmentService.set_system_role(user.id, SUPER_ADMIN)
        self.stdout.write(self.style.SUCCESS(f'✓ Promoted {user.email} to super admin'))
