"""
Django AppConfig do Reservoir.
"""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class ReservoirConfig(AppConfig):
    name = "reservoir"
    label = "reservoir"
    verbose_name = _("Reservas de Estoque")
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        """Registra os backends de broadcast configurados em RESERVOIR["BROADCAST_BACKENDS"]."""
        from reservoir.contrib.realtime.service import load_configured_backends

        load_configured_backends()
