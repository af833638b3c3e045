"""
Management command to refresh cached weather, ignoring freshness.

Usage:
    python manage.py refresh_weather kspb          # One airport
    python manage.py refresh_weather kspb kczk     # Several airports
    python manage.py refresh_weather --all         # Every configured airport
"""

from django.core.management.base import BaseCommand, CommandError

from apps.airportwx.airports import ConfigurationError, normalize_airport_id, validate_airport_id
from apps.airportwx.views import get_delivery


class Command(BaseCommand):
    help = 'Fetch weather for airports and overwrite their cached snapshots'

    def add_arguments(self, parser):
        parser.add_argument(
            'airports',
            nargs='*',
            help='Airport id(s) to refresh',
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help='Refresh every configured airport',
        )

    def handle(self, *args, **options):
        delivery = get_delivery()

        try:
            if options['all']:
                airports = delivery.airports.all()
            elif options['airports']:
                airports = []
                for raw_id in options['airports']:
                    if not validate_airport_id(raw_id):
                        raise CommandError(f'Invalid airport ID: {raw_id}')
                    airport = delivery.airports.get(normalize_airport_id(raw_id))
                    if airport is None:
                        raise CommandError(f'Airport not found: {raw_id}')
                    airports.append(airport)
            else:
                raise CommandError('Specify airport id(s) or --all')
        except ConfigurationError as e:
            raise CommandError(str(e))

        failed = 0
        for airport in airports:
            self.stdout.write(f'Refreshing {airport.id}...')
            if delivery.refresh_and_store(airport) is None:
                failed += 1
                self.stdout.write(self.style.ERROR(f'  {airport.id} failed'))
            else:
                self.stdout.write(self.style.SUCCESS(f'  {airport.id} done'))

        if failed:
            raise CommandError(f'{failed} of {len(airports)} airport(s) failed to refresh')
        self.stdout.write(self.style.SUCCESS('Refresh complete'))
