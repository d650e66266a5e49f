from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'payments'
    gateway = None

    def ready(self):
        # Built once per process from validated settings; a missing key stops startup
        from .gateway import build_gateway
        self.gateway = build_gateway()
