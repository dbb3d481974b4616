# /tgauth/services/telegram_service.py

import httpx
import logging
import tenacity
from typing import Optional, Dict, Any, List

from tgauth.config.settings import settings
from tgauth.config import strings
from tgauth.models.domain import CallbackPrefix
from tgauth.utils.circuit_breaker import RedisCircuitBreaker
from tgauth.utils.metrics import telegram_messages_counter
from tgauth.services.cache_service import cache_service

logger = logging.getLogger(__name__)


class TelegramAPIError(Exception):
    """The Bot API answered with ok=false."""

    def __init__(self, method: str, description: str, error_code: Optional[int] = None):
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"{method} failed ({error_code}): {description}")


class TelegramService:
    def __init__(self, bot_token: str, api_url: str):
        self.base_url = f"{api_url.rstrip('/')}/bot{bot_token}"
        self.http_client = httpx.AsyncClient(timeout=15.0)
        self.circuit_breaker = RedisCircuitBreaker(cache_service.redis, "telegram")

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await self.circuit_breaker.call(func, *args, **kwargs)

    async def call_api(self, method: str, payload: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        """Calls a Bot API method and returns its `result`."""
        url = f"{self.base_url}/{method}"
        request_kwargs: Dict[str, Any] = {"json": payload or {}}
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        try:
            response = await self.resilient_api_call(self.http_client.post, url, **request_kwargs)
        except Exception:
            telegram_messages_counter.labels(method=method, status="transport_error").inc()
            raise

        try:
            data = response.json()
        except ValueError:
            telegram_messages_counter.labels(method=method, status="bad_response").inc()
            raise TelegramAPIError(method, f"non-JSON response (HTTP {response.status_code})", response.status_code)

        if not data.get("ok"):
            telegram_messages_counter.labels(method=method, status="api_error").inc()
            raise TelegramAPIError(method, data.get("description", "unknown error"), data.get("error_code"))

        telegram_messages_counter.labels(method=method, status="ok").inc()
        return data.get("result")

    async def send_message(self, chat_id: int, text: str, reply_markup: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text[:4096]}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        result = await self.call_api("sendMessage", payload)
        logger.info(f"Telegram message sent to chat {chat_id}, message_id: {(result or {}).get('message_id')}")
        return result

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await self.call_api("answerCallbackQuery", payload)

    async def get_updates(self, offset: Optional[int], poll_timeout: int) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "timeout": poll_timeout,
            "allowed_updates": ["message", "callback_query"],
        }
        if offset is not None:
            payload["offset"] = offset
        return await self.call_api("getUpdates", payload, timeout=poll_timeout + 10) or []

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        return await self.call_api("setWebhook", payload)

    async def delete_webhook(self) -> bool:
        return await self.call_api("deleteWebhook", {"drop_pending_updates": False})

    async def close(self):
        await self.http_client.aclose()

    # --- Keyboards ---

    @staticmethod
    def contact_request_keyboard() -> Dict[str, Any]:
        return {
            "keyboard": [[{"text": strings.SHARE_PHONE_BUTTON, "request_contact": True}]],
            "resize_keyboard": True,
            "one_time_keyboard": True,
        }

    @staticmethod
    def confirmation_keyboard(action_id: str) -> Dict[str, Any]:
        return {
            "inline_keyboard": [
                [{"text": strings.CONFIRM_BUTTON, "callback_data": f"{CallbackPrefix.CONFIRM}{action_id}"}],
                [{"text": strings.CANCEL_BUTTON, "callback_data": f"{CallbackPrefix.CANCEL}{action_id}"}],
            ]
        }


# Globally accessible instance
telegram_service = TelegramService(settings.bot_token, settings.telegram_api_url)
