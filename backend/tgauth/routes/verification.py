# /tgauth/routes/verification.py

import structlog
from typing import Dict, Any
from fastapi import APIRouter, Depends, Request

from tgauth.config.settings import settings
from tgauth.config import strings
from tgauth.models.api import NotifyRequest, PhoneRequest, VerifyRequest, StatusResponse, CheckResponse
from tgauth.models.errors import DeliveryError, ValidationError
from tgauth.services.otp_service import otp_service
from tgauth.services.session_service import session_service
from tgauth.services.telegram_service import telegram_service
from tgauth.utils.dependencies import require_project
from tgauth.utils.rate_limiter import limiter, project_or_remote_address

# Server-to-server endpoints used by project backends, authenticated with the
# project's API key (x-project-key).

router = APIRouter(tags=["Verification"])

log = structlog.get_logger(__name__)

@router.post("/notify", response_model=StatusResponse)
async def notify(body: NotifyRequest, project: Dict[str, Any] = Depends(require_project)):
    """Sends a caller-chosen code straight to a Telegram chat id."""
    try:
        chat_id = int(body.user_id)
    except (TypeError, ValueError):
        raise ValidationError("user_id and code required")
    code = str(body.code).strip()
    if not code:
        raise ValidationError("user_id and code required")

    try:
        await telegram_service.send_message(chat_id, strings.VERIFICATION_CODE.format(code=code))
    except Exception as e:
        log.error("Notify delivery failed.", project_id=str(project["_id"]), chat_id=chat_id, error=str(e))
        raise DeliveryError("cannot send to user_id")
    return {"status": "sent"}

@router.post("/auth/request", response_model=StatusResponse)
@limiter.limit(f"{settings.auth_rate_limit_per_minute}/minute", key_func=project_or_remote_address)
async def request_code(request: Request, body: PhoneRequest, project: Dict[str, Any] = Depends(require_project)):
    await otp_service.issue_code(project["_id"], body.phone)
    return {"status": "sent"}

@router.post("/auth/check", response_model=CheckResponse)
async def check_phone(body: PhoneRequest, project: Dict[str, Any] = Depends(require_project)):
    return {"check": await session_service.is_linked(project["_id"], body.phone)}

@router.post("/auth/verify", response_model=StatusResponse)
@limiter.limit(f"{settings.auth_rate_limit_per_minute}/minute", key_func=project_or_remote_address)
async def verify_code(request: Request, body: VerifyRequest, project: Dict[str, Any] = Depends(require_project)):
    await otp_service.verify_code(project["_id"], body.phone, body.code)
    return {"status": "verified"}
