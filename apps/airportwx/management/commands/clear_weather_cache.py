from django.core.management.base import BaseCommand, CommandError

from apps.airportwx.airports import normalize_airport_id, validate_airport_id
from apps.airportwx.views import get_delivery


class Command(BaseCommand):
    help = 'Delete cached weather snapshots so the next request refetches'

    def add_arguments(self, parser):
        parser.add_argument(
            'airports',
            nargs='*',
            help='Airport id(s) to clear. Default: all',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting',
        )

    def handle(self, *args, **options):
        store = get_delivery().store
        dry_run = options['dry_run']

        airport_ids = []
        for raw_id in options['airports']:
            if not validate_airport_id(raw_id):
                raise CommandError(f'Invalid airport ID: {raw_id}')
            airport_ids.append(normalize_airport_id(raw_id))
        targets = airport_ids or [None]

        if dry_run:
            paths = [path for airport_id in targets for path in store.paths(airport_id)]
            self.stdout.write(f'Would delete {len(paths)} cache files')
            for path in paths:
                self.stdout.write(f'  - {path.name}')
            return

        removed = [path for airport_id in targets for path in store.clear(airport_id)]
        self.stdout.write(self.style.SUCCESS(f'Deleted {len(removed)} cache files'))
