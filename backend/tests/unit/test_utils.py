# backend/tests/unit/test_utils.py
import time
import pytest
from unittest.mock import AsyncMock, MagicMock
from starlette.requests import Request

from tgauth.config.settings import settings
from tgauth.utils.alerting import AlertingService
from tgauth.utils.circuit_breaker import RedisCircuitBreaker, CircuitOpenError
from tgauth.utils.rate_limiter import project_or_remote_address
from tgauth.utils.logging import mask_phone, mask_phone_fields, scrub_bot_token
from tgauth.workers.telegram_poller import TelegramPoller, FAILURES_BEFORE_ALERT


# --- Logging processors ---

def test_mask_phone():
    assert mask_phone("+998901234567") == "+998..."
    assert mask_phone(None) == ""


def test_phone_fields_are_masked():
    event = mask_phone_fields(None, "info", {"event": "linked", "phone": "+998901234567"})
    assert event["phone"] == "+998..."


def test_bot_token_is_scrubbed():
    line = f"POST https://api.telegram.org/bot{settings.bot_token}/getUpdates failed"
    event = scrub_bot_token(None, "error", {"event": line})
    assert settings.bot_token not in event["event"]
    assert "<bot-token>" in event["event"]


# --- Alerting ---

@pytest.mark.asyncio
async def test_alerting_disabled_without_webhook():
    assert await AlertingService(None).send_critical_alert("boom", {}) is False


@pytest.mark.asyncio
async def test_alert_is_posted_once(mocker):
    service = AlertingService("https://alerts.example.com/hook")
    response = MagicMock(raise_for_status=MagicMock())
    mock_post = mocker.patch.object(service.client, "post", new_callable=AsyncMock, return_value=response)
    mocker.patch(
        "tgauth.utils.alerting.cache_service.claim_once", new_callable=AsyncMock, side_effect=[True, False]
    )

    assert await service.send_critical_alert("polling down", {"n": 5}) is True
    assert await service.send_critical_alert("polling down", {"n": 6}) is False

    mock_post.assert_awaited_once()
    payload = mock_post.call_args.kwargs["json"]
    assert payload["service"] == "tgauth"
    assert payload["error"] == "polling down"
    await service.cleanup()


@pytest.mark.asyncio
async def test_poller_alerts_after_repeated_failures(mocker):
    mock_alert = mocker.patch(
        "tgauth.workers.telegram_poller.alerting_service.send_critical_alert", new_callable=AsyncMock
    )
    poller = TelegramPoller(poll_timeout=0)

    for _ in range(FAILURES_BEFORE_ALERT + 2):
        await poller._on_poll_error(RuntimeError("Conflict: terminated by other getUpdates request"))

    mock_alert.assert_awaited_once()


# --- Circuit breaker ---

@pytest.mark.asyncio
async def test_circuit_breaker_passes_through_without_redis():
    breaker = RedisCircuitBreaker(None, "telegram")
    func = AsyncMock(return_value="ok")
    assert await breaker.call(func, 1, key="v") == "ok"
    func.assert_awaited_once_with(1, key="v")


@pytest.mark.asyncio
async def test_open_circuit_blocks_calls():
    redis = AsyncMock()
    redis.get.side_effect = [b"OPEN", str(time.time()).encode()]
    breaker = RedisCircuitBreaker(redis, "telegram")
    func = AsyncMock()

    with pytest.raises(CircuitOpenError):
        await breaker.call(func)
    func.assert_not_awaited()


@pytest.mark.asyncio
async def test_failures_open_the_circuit():
    redis = AsyncMock()
    redis.get.return_value = None
    redis.incr.return_value = 5
    breaker = RedisCircuitBreaker(redis, "telegram", failure_threshold=5)

    with pytest.raises(ConnectionError):
        await breaker.call(AsyncMock(side_effect=ConnectionError("down")))

    redis.set.assert_any_await("cb_state:telegram", "OPEN", ex=120)


# --- Rate limit keys ---

def test_rate_limit_key_prefers_project_key():
    def make_request(headers):
        scope = {
            "type": "http",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": ("10.0.0.9", 1234),
        }
        return Request(scope)

    key = "a" * 48
    assert project_or_remote_address(make_request({"x-project-key": key})) == "project:" + key[:12]
    assert project_or_remote_address(make_request({})) == "10.0.0.9"
    assert project_or_remote_address(make_request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})) == "1.2.3.4"
