import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class FleetConfig(AppConfig):
    """
    Owns the process-wide FleetDispatchService. Views receive it from here
    unless one is injected explicitly (tests do that).
    """
    name = "fleet"
    verbose_name = "Live fleet dispatch"

    service = None
    scheduler = None

    def ready(self):
        from dispatch.policy import policy_from_env
        from dispatch.scheduler import TickScheduler
        from dispatch.service import FleetDispatchService

        self.service = FleetDispatchService(policy_from_env(), zones=getattr(settings, "FLEET_ZONES", None))
        self.scheduler = TickScheduler(self.service)

        if getattr(settings, "FLEET_TICKER_AUTOSTART", False):
            self.scheduler.start()
        logger.info(f"Fleet dispatch service ready ({len(self.service.zone_index)} zones)")
