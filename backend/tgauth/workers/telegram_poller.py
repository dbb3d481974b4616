# /tgauth/workers/telegram_poller.py

import asyncio
import logging
from typing import Optional

from tgauth.config.settings import settings
from tgauth.services.bot_service import process_update
from tgauth.services.telegram_service import telegram_service
from tgauth.utils.alerting import alerting_service

# Long-polling consumer of Telegram updates, used when the service is not
# reachable through a public webhook URL. Runs as one background task inside
# the API process.

logger = logging.getLogger(__name__)

FAILURES_BEFORE_ALERT = 5


class TelegramPoller:
    def __init__(self, poll_timeout: int = 25, error_backoff: float = 5.0):
        self.poll_timeout = poll_timeout
        self.error_backoff = error_backoff
        self.offset: Optional[int] = None
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self.consecutive_failures = 0

    async def start(self):
        # getUpdates is refused while a webhook is registered.
        await telegram_service.delete_webhook()
        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info("Telegram long polling started.")

    async def stop(self):
        self.running = False
        if self.task:
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)
            self.task = None
        logger.info("Telegram long polling stopped.")

    async def poll_once(self) -> int:
        """Fetches one batch and dispatches it in order. Returns the batch size."""
        updates = await telegram_service.get_updates(self.offset, self.poll_timeout)
        for update in updates:
            self.offset = update["update_id"] + 1
            await process_update(update)
        return len(updates)

    async def _run(self):
        while self.running:
            try:
                await self.poll_once()
                self.consecutive_failures = 0
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await self._on_poll_error(e)
                await asyncio.sleep(self.error_backoff)

    async def _on_poll_error(self, error: Exception):
        self.consecutive_failures += 1
        logger.error(f"Telegram polling error ({self.consecutive_failures} in a row): {error}")
        if self.consecutive_failures == FAILURES_BEFORE_ALERT:
            await alerting_service.send_critical_alert(
                "Telegram long polling is failing",
                {"consecutive_failures": self.consecutive_failures, "error": str(error)},
            )


# Globally accessible instance
telegram_poller = TelegramPoller(settings.telegram_poll_timeout)
