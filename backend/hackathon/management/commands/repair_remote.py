import json

import requests
from decouple import config
from django.core.management.base import BaseCommand, CommandError


ENDPOINT = '/api/auth/fix-registration-numbers'


class Command(BaseCommand):
    help = 'Run the registration number backfill on a deployed backend'

    def add_arguments(self, parser):
        parser.add_argument('backend_url', nargs='?', default=config('BACKEND_URL', default='http://localhost:8000'))
        parser.add_argument('--token', default=config('ADMIN_TOKEN', default=''), help='Admin bearer token')
        parser.add_argument('--dry-run', action='store_true', help='Ask the backend to only count records.')
        parser.add_argument('--timeout', type=float, default=30.0)

    def handle(self, *args, **options):
        url = options['backend_url'].rstrip('/') + ENDPOINT
        token = options['token']
        if not token:
            raise CommandError('An admin token is required (--token or ADMIN_TOKEN).')

        self.stdout.write(f'Running registration number repair on {url}')

        try:
            response = requests.post(
                url,
                json={'dry_run': options['dry_run']},
                headers={'Authorization': f'Bearer {token}'},
                timeout=options['timeout'],
            )
        except requests.exceptions.RequestException as exc:
            raise CommandError(f'Unable to reach backend: {exc}') from exc

        self.stdout.write(f'Status code: {response.status_code}')
        try:
            body = response.json()
        except ValueError:
            body = None

        if body is None:
            self.stdout.write(f'Raw response: {response.text}')
        else:
            self.stdout.write(json.dumps(body, indent=2))

        if response.status_code != 200:
            raise CommandError(f'Repair failed with HTTP {response.status_code}')

        self.stdout.write(self.style.SUCCESS('Registration numbers repaired.'))
