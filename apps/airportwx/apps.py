from django.apps import AppConfig


class AirportWxConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.airportwx'
    delivery = None

    def ready(self):
        from .services import WeatherDelivery

        # Process-wide: shares the background refresher and config reload state
        self.delivery = WeatherDelivery()
