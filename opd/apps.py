from django.apps import AppConfig


class OpdConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'opd'
    verbose_name = 'Outpatient department'

    broadcaster = None

    def ready(self):
        from .realtime.broadcaster import QueueBroadcaster

        # One broadcaster per process; services receive it by injection.
        self.broadcaster = QueueBroadcaster.from_settings()


def get_broadcaster():
    from django.apps import apps

    return apps.get_app_config('opd').broadcaster
