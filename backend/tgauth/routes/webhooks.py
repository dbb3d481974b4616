# /tgauth/routes/webhooks.py

import asyncio
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from tgauth.models.errors import ValidationError
from tgauth.services.bot_service import process_update
from tgauth.services.cache_service import cache_service
from tgauth.utils.dependencies import verify_telegram_secret

# Telegram delivers updates here in webhook mode. The update is acknowledged
# immediately and processed in the background; Telegram retries deliveries,
# so update ids are de-duplicated first.

router = APIRouter(
    tags=["Webhooks"]
)

log = structlog.get_logger(__name__)

UPDATE_DEDUP_TTL = 3600

@router.post("/telegram", dependencies=[Depends(verify_telegram_secret)])
async def handle_telegram_webhook(request: Request):
    try:
        update = await request.json()
    except ValueError:
        raise ValidationError("invalid update payload")
    if not isinstance(update, dict):
        raise ValidationError("invalid update payload")

    update_id = update.get("update_id")
    if update_id is not None and not await cache_service.claim_once(f"tg_update:{update_id}", ttl=UPDATE_DEDUP_TTL):
        log.info("Skipping duplicate Telegram update.", update_id=update_id)
        return JSONResponse({"status": "duplicate"})

    log.debug("Telegram update received.", update_id=update_id)
    asyncio.create_task(process_update(update))
    return JSONResponse({"status": "ok"})
