"""
Remind about quotes close to their valid_until date and optionally expire overdue ones.
Usage: python manage.py check_expiring_quotes [--days 3] [--expire] [--dry-run]
Meant to run daily from cron.
"""
from django.core.management.base import BaseCommand

from tradeportal.quotes import services


class Command(BaseCommand):
    help = 'Send expiry reminders for quotes about to expire and expire overdue quotes'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Remind about quotes expiring within this many days (default: QUOTE_EXPIRY_REMINDER_DAYS)',
        )
        parser.add_argument(
            '--expire',
            action='store_true',
            help='Also mark quotes past their valid_until date as expired',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would happen without sending or changing anything',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        if dry_run:
            self.stdout.write(self.style.WARNING('Dry run: no e-mails are sent and no quotes are changed'))

        summary = services.send_expiry_reminders(days=options['days'], dry_run=dry_run)
        self.stdout.write(
            f"Checked {summary['checked']} expiring quotes: {summary['reminded']} reminded, "
            f"{summary['skipped']} skipped, {summary['failed']} failed"
        )

        if options['expire']:
            expired = services.expire_overdue_quotes(dry_run=dry_run)
            self.stdout.write(f"Expired {expired} overdue quotes")

        if summary['failed']:
            self.stdout.write(self.style.ERROR(f"{summary['failed']} reminders could not be sent"))
        else:
            self.stdout.write(self.style.SUCCESS('Done'))
