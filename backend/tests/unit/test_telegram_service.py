# backend/tests/unit/test_telegram_service.py

import json

import httpx
import pytest

from tgauth.services.telegram_service import TelegramService, TelegramAPIError


def make_service(handler) -> TelegramService:
    service = TelegramService("TEST-TOKEN", "https://api.telegram.test")
    service.http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return service


@pytest.mark.asyncio
async def test_send_message_posts_to_bot_endpoint():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 42}})

    service = make_service(handler)
    result = await service.send_message(1001, "Tasdiqlash kodi: 123456", reply_markup=service.contact_request_keyboard())

    assert result == {"message_id": 42}
    assert seen["url"] == "https://api.telegram.test/botTEST-TOKEN/sendMessage"
    assert seen["body"]["chat_id"] == 1001
    assert seen["body"]["text"] == "Tasdiqlash kodi: 123456"
    assert seen["body"]["reply_markup"]["keyboard"][0][0]["request_contact"] is True
    await service.close()


@pytest.mark.asyncio
async def test_api_error_is_raised():
    def handler(request):
        return httpx.Response(403, json={"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"})

    service = make_service(handler)
    with pytest.raises(TelegramAPIError) as exc:
        await service.send_message(1001, "hi")

    assert exc.value.error_code == 403
    assert exc.value.method == "sendMessage"
    await service.close()


@pytest.mark.asyncio
async def test_non_json_response_is_an_api_error():
    service = make_service(lambda request: httpx.Response(502, text="Bad Gateway"))
    with pytest.raises(TelegramAPIError):
        await service.answer_callback_query("cb-1")
    await service.close()


@pytest.mark.asyncio
async def test_get_updates_sends_offset_and_timeout():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "result": [{"update_id": 10}]})

    service = make_service(handler)
    updates = await service.get_updates(offset=10, poll_timeout=0)

    assert updates == [{"update_id": 10}]
    assert seen["body"]["offset"] == 10
    assert seen["body"]["timeout"] == 0
    assert seen["body"]["allowed_updates"] == ["message", "callback_query"]
    await service.close()


@pytest.mark.asyncio
async def test_set_webhook_includes_secret():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "result": True})

    service = make_service(handler)
    assert await service.set_webhook("https://verify.example.com/webhooks/telegram", "s3cret") is True
    assert seen["url"].endswith("/setWebhook")
    assert seen["body"]["secret_token"] == "s3cret"
    await service.close()


def test_confirmation_keyboard_carries_action_id():
    keyboard = TelegramService.confirmation_keyboard("abc")["inline_keyboard"]
    assert keyboard[0][0]["callback_data"] == "add_project_confirm:abc"
    assert keyboard[1][0]["callback_data"] == "add_project_cancel:abc"
