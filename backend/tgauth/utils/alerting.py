# /tgauth/utils/alerting.py

import httpx
import logging
from typing import Optional, Dict, Any

from tgauth.config.settings import settings
from tgauth.services.cache_service import cache_service
from tgauth.services.db_service import utcnow

# Critical failures (the update source cannot start, long polling keeps
# failing) are posted to ALERTING_WEBHOOK_URL. The same alert is sent at most
# once per ALERT_REPEAT_SECONDS across workers when Redis is available.

logger = logging.getLogger(__name__)

ALERT_REPEAT_SECONDS = 900


class AlertingService:
    def __init__(self, webhook_url: Optional[str]):
        self.webhook_url = webhook_url
        self.client = httpx.AsyncClient(timeout=5.0) if webhook_url else None

    async def send_critical_alert(self, error: str, context: Dict[str, Any]) -> bool:
        """Returns True when the alert was posted."""
        if not self.client:
            return False
        if not await cache_service.claim_once(f"alert:{error}", ttl=ALERT_REPEAT_SECONDS):
            logger.debug(f"Suppressing repeated alert: {error}")
            return False
        payload = {
            "severity": "critical",
            "service": "tgauth",
            "error": error,
            "context": context,
            "timestamp": utcnow().isoformat(),
            "environment": settings.environment,
        }
        try:
            response = await self.client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send critical alert '{error}': {e}")
            return False
        return True

    async def cleanup(self):
        if self.client:
            await self.client.aclose()


# Globally accessible instance
alerting_service = AlertingService(settings.alerting_webhook_url)
