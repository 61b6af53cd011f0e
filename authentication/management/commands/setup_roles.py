from django.core.management.base import BaseCommand
from django.db import transaction

from authentication.services import sync_default_roles


class Command(BaseCommand):
    help = 'Create or refresh the default roles and their module permissions'

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('Setting up roles...'))

        with transaction.atomic():
            results = sync_default_roles()

        for role, created in results:
            if created:
                self.stdout.write(self.style.SUCCESS(f'Created role: {role.get_name_display()}'))
            else:
                self.stdout.write(self.style.WARNING(f'Updated role: {role.get_name_display()}'))

        self.stdout.write(self.style.SUCCESS('Roles are up to date'))
