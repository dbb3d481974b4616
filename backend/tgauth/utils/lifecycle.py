# /tgauth/utils/lifecycle.py

import logging
import sentry_sdk
from contextlib import asynccontextmanager
from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.pymongo import PyMongoIntegration
from sentry_sdk.integrations.redis import RedisIntegration

from tgauth.config.settings import settings
from tgauth.utils.logging import setup_logging
from tgauth.utils.alerting import alerting_service
from tgauth.services.db_service import db_service
from tgauth.services.cache_service import cache_service
from tgauth.services.telegram_service import telegram_service
from tgauth.workers.telegram_poller import telegram_poller

# Startup: logging, indexes, and the Telegram update source selected by
# TELEGRAM_UPDATE_MODE. Shutdown releases every client.

logger = logging.getLogger(__name__)

def setup_sentry():
    """Error tracking, enabled by SENTRY_DSN."""
    if not settings.sentry_dsn:
        return
    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            traces_sample_rate=0.1,
            integrations=[
                FastApiIntegration(),
                HttpxIntegration(),
                RedisIntegration(),
                PyMongoIntegration(),
            ],
            send_default_pii=False,
        )
        logger.info(f"Sentry initialized for environment {settings.sentry_environment}")
    except Exception as e:
        logger.error(f"Sentry initialization failed: {e}")

async def start_update_source():
    mode = settings.telegram_update_mode
    if mode == "polling":
        await telegram_poller.start()
    elif mode == "webhook":
        await telegram_service.set_webhook(settings.telegram_webhook_url, settings.telegram_webhook_secret)
        logger.info(f"Telegram webhook registered at {settings.telegram_webhook_url}")
    else:
        logger.info("Telegram update ingestion disabled.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    setup_sentry()

    logger.info("Application starting up...")

    await db_service.create_indexes()
    try:
        await start_update_source()
    except Exception as e:
        logger.error(f"Telegram update source failed to start: {e}")
        await alerting_service.send_critical_alert("Telegram update source failed to start", {"error": str(e)})

    logger.info("Application startup complete. Ready to accept requests.")

    yield

    logger.info("Application shutting down...")

    await telegram_poller.stop()
    await telegram_service.close()
    await alerting_service.cleanup()
    await cache_service.close()
    db_service.close()
