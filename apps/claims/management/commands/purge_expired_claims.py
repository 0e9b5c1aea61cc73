"""
Management command to delete abandoned selections.

SELECTING claims whose expiry has passed are already ignored by every read;
this removes the rows. Safe to run from cron.

Usage:
    python manage.py purge_expired_claims
    python manage.py purge_expired_claims --dry-run
"""

from django.core.management.base import BaseCommand
from apps.claims.services import purge_expired_claims


class Command(BaseCommand):
    help = 'Delete SELECTING claims whose expiry has passed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many claims would be deleted without deleting them',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']

        count = purge_expired_claims(dry_run=True)
        if count == 0:
            self.stdout.write(self.style.SUCCESS('No expired claims. All good!'))
            return

        self.stdout.write(f'Found {count} expired claim(s).')

        if dry_run:
            self.stdout.write(self.style.WARNING('--dry-run mode: No changes made.'))
            return

        deleted = purge_expired_claims()
        self.stdout.write(self.style.SUCCESS(f'Deleted {deleted} expired claim(s).'))
