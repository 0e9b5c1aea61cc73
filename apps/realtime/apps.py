import atexit

from django.apps import AppConfig
from django.conf import settings


class RealtimeConfig(AppConfig):
    name = 'apps.realtime'
    label = 'realtime'
    verbose_name = 'Realtime change feed'

    client = None

    def ready(self):
        from .feed import connect_signals
        from .transport import LocalRealtimeClient

        self.client = LocalRealtimeClient()
        atexit.register(self.client.close)

        if settings.REALTIME_PUBLISH_CHANGES:
            connect_signals()
