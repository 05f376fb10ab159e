from django.core.management.base import BaseCommand

from hackathon.registration import backfill_registration_numbers


class Command(BaseCommand):
    help = 'Assign fresh registration numbers to users and team registrations missing a valid one'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only list the records that would be fixed, do not save.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        if dry_run:
            self.stdout.write(self.style.WARNING('Dry run: no changes will be saved.'))

        reports = backfill_registration_numbers(dry_run=dry_run)

        for label, report in reports.items():
            self.stdout.write(f'{label}: {report.total} without a valid registration number')
            for change in report.changes:
                if dry_run:
                    self.stdout.write(f"  {change['label']}: {change['old']!r} would be replaced")
                else:
                    self.stdout.write(f"  {change['label']}: {change['old']!r} -> {change['new']!r}")
            for error in report.error_details:
                self.stdout.write(self.style.ERROR(f"  {error['label']}: {error['error']}"))

        fixed = sum(r.fixed for r in reports.values())
        errors = sum(r.errors for r in reports.values())
        summary = f'Done. Fixed: {fixed}, errors: {errors}'
        self.stdout.write(self.style.SUCCESS(summary) if not errors else self.style.WARNING(summary))
