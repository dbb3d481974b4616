# /tgauth/utils/dependencies.py

import structlog
from typing import Dict, Any
from fastapi import Request, HTTPException

from tgauth.config.settings import settings
from tgauth.models.errors import AuthError, AdminDisabled, ValidationError
from tgauth.services.security_service import SecurityService
from tgauth.services.project_service import project_service
from tgauth.utils.request_utils import get_remote_address

log = structlog.get_logger(__name__)


async def require_admin(request: Request) -> None:
    if not settings.admin_api_key:
        raise AdminDisabled()
    provided = request.headers.get("x-admin-key")
    if not SecurityService.keys_match(provided, settings.admin_api_key):
        log.warning("Rejected admin key.", client_ip=get_remote_address(request))
        raise AuthError("invalid admin key")


async def require_project(request: Request) -> Dict[str, Any]:
    """Resolves the calling project from x-project-key; only active projects pass."""
    project_key = request.headers.get("x-project-key")
    if not project_key:
        raise ValidationError("project key required")

    project = await project_service.get_active_by_key(project_key)
    if not project:
        log.warning("Rejected project key.", client_ip=get_remote_address(request))
        raise AuthError("invalid project key")

    request.state.project = project
    return project


async def verify_telegram_secret(request: Request) -> None:
    expected = settings.telegram_webhook_secret
    if not expected:
        return
    provided = request.headers.get("X-Telegram-Bot-Api-Secret-Token")
    if not SecurityService.keys_match(provided, expected):
        log.error("Invalid Telegram webhook secret.", client_ip=get_remote_address(request))
        raise HTTPException(status_code=403, detail="Invalid secret token")


async def verify_metrics_access(request: Request):
    if settings.api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not SecurityService.keys_match(provided_key, settings.api_key):
            raise HTTPException(status_code=403, detail="Invalid or missing API key")
