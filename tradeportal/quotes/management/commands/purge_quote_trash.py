"""
Permanently delete quotes that have been in the trash longer than the retention period.
Usage: python manage.py purge_quote_trash [--days 30]
"""
from django.core.management.base import BaseCommand

from tradeportal.core.cache_signals import suspend_cache_signals, invalidate_dashboard_cache_manual
from tradeportal.quotes import services


class Command(BaseCommand):
    help = 'Permanently delete quotes trashed more than N days ago'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Retention in days (default: QUOTE_TRASH_RETENTION_DAYS)',
        )

    def handle(self, *args, **options):
        # One invalidation for the whole batch instead of one per quote
        with suspend_cache_signals():
            purged = services.purge_old_trash(days=options['days'])
        if purged:
            invalidate_dashboard_cache_manual()
        self.stdout.write(self.style.SUCCESS(f'Purged {purged} quotes from the trash'))
