from decouple import config
from django.core.management.base import BaseCommand, CommandError

from hackathon.exceptions import AllocationError, DuplicateEmail, StorageUnavailable
from hackathon.models import AppUser
from hackathon.registration import create_account


class Command(BaseCommand):
    help = 'Create the initial admin account'

    def add_arguments(self, parser):
        parser.add_argument('--email', default=config('ADMIN_EMAIL', default='admin@hackathon.com'))
        parser.add_argument('--password', default=config('ADMIN_PASSWORD', default=''))
        parser.add_argument('--name', default='System Admin')

    def handle(self, *args, **options):
        email = options['email'].strip().lower()
        password = options['password']

        if len(password) < 6:
            raise CommandError('Admin password must be at least 6 characters (use --password or ADMIN_PASSWORD).')

        try:
            user = create_account(
                name=options['name'],
                email=email,
                password=password,
                role=AppUser.ROLE_ADMIN,
                approved=True,
            )
        except DuplicateEmail as exc:
            raise CommandError(f'Admin user already exists: {email}') from exc
        except (AllocationError, StorageUnavailable) as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(f'Admin {user.email} created with registration number {user.registration_number}'))
        self.stdout.write(self.style.WARNING('Please change the password after first login.'))
