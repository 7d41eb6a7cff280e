from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission

from tradeportal.core.permissions import ROLE_GROUPS

STAFF_APP_LABELS = ['catalog', 'crm', 'quotes', 'orders', 'portal']


class Command(BaseCommand):
    help = 'Create Django user groups for RBAC: Admin, Staff, Customer'

    def handle(self, *args, **options):
        groups_config = [
            {
                'name': ROLE_GROUPS['admin'],
                'description': 'Owners and developers - full system access including settings and users',
            },
            {
                'name': ROLE_GROUPS['staff'],
                'description': 'Sales and operations team - CRM, quotes, orders and catalog',
            },
            {
                'name': ROLE_GROUPS['customer'],
                'description': 'Portal customers - own cart, quote requests, quotes, orders and invoices',
            },
        ]

        created_count = 0
        existing_count = 0

        for group_config in groups_config:
            group, created = Group.objects.get_or_create(name=group_config['name'])

            if created:
                self.stdout.write(self.style.SUCCESS(f'Created group: {group_config["name"]}'))
                created_count += 1
            else:
                self.stdout.write(f'  Group already exists: {group_config["name"]}')
                existing_count += 1

            if group_config['name'] == ROLE_GROUPS['admin']:
                group.permissions.set(Permission.objects.all())
                self.stdout.write('  Added all permissions to Admin group')
            elif group_config['name'] == ROLE_GROUPS['staff']:
                group.permissions.set(Permission.objects.filter(content_type__app_label__in=STAFF_APP_LABELS))
                self.stdout.write('  Added business module permissions to Staff group')
            else:
                # Portal access is checked by role, not model permissions
                group.permissions.clear()

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} groups created, {existing_count} groups already existed'
        ))
