from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

User = get_user_model()


class Command(BaseCommand):
    help = 'Create an owner/admin account for the back office'

    def add_arguments(self, parser):
        parser.add_argument('--email', type=str, default='admin@nuetprep.kz', help='Admin email')
        parser.add_argument('--password', type=str, required=True, help='Admin password')
        parser.add_argument(
            '--role', type=str, default=User.Role.OWNER,
            choices=[User.Role.ADMIN, User.Role.OWNER], help='Role of the new account'
        )

    def handle(self, *args, **options):
        email = options['email'].lower()

        if User.objects.filter(email__iexact=email).exists():
            self.stdout.write(self.style.WARNING(f'User "{email}" already exists'))
            return

        try:
            with transaction.atomic():
                User.objects.create_superuser(
                    email=email,
                    password=options['password'],
                    role=options['role'],
                )
        except Exception as e:
            raise CommandError(f'Error creating admin: {e}')

        self.stdout.write(self.style.SUCCESS(f'Successfully created {options["role"].lower()}: {email}'))
