# backend/tests/unit/test_admin_flow_service.py

import re
from datetime import timedelta

import pytest

from tgauth.models.domain import Collections, AdminStep
from tgauth.models.errors import ActionExpired, ValidationError
from tgauth.services.admin_flow_service import admin_flow_service
from tgauth.services.db_service import utcnow

ADMIN_CHAT = 777


async def _pending_confirmation(name="Acme"):
    action = await admin_flow_service.start(ADMIN_CHAT)
    return await admin_flow_service.submit_name(action, name)


def test_is_admin():
    assert admin_flow_service.is_admin(ADMIN_CHAT)
    assert not admin_flow_service.is_admin(ADMIN_CHAT + 1)
    assert not admin_flow_service.is_admin(None)


@pytest.mark.asyncio
async def test_start_awaits_name(mock_db):
    await admin_flow_service.start(ADMIN_CHAT)

    action = await admin_flow_service.awaiting_name(ADMIN_CHAT)
    assert action["step"] == AdminStep.AWAIT_NAME.value
    assert action["payload"] == {}


@pytest.mark.asyncio
async def test_submit_name_moves_to_confirmation(mock_db):
    action = await _pending_confirmation("  Acme  ")

    assert action["step"] == AdminStep.AWAIT_CONFIRMATION.value
    assert action["payload"] == {"name": "Acme"}
    assert await admin_flow_service.awaiting_name(ADMIN_CHAT) is None


@pytest.mark.asyncio
async def test_submit_name_rejects_commands_and_blanks(mock_db):
    action = await admin_flow_service.start(ADMIN_CHAT)
    with pytest.raises(ValidationError):
        await admin_flow_service.submit_name(action, "/start")
    with pytest.raises(ValidationError):
        await admin_flow_service.submit_name(action, "   ")
    assert (await admin_flow_service.awaiting_name(ADMIN_CHAT))["_id"] == action["_id"]


@pytest.mark.asyncio
async def test_confirm_creates_exactly_one_project(mock_db):
    action = await _pending_confirmation()

    project = await admin_flow_service.confirm(ADMIN_CHAT, str(action["_id"]))

    assert project.name == "Acme"
    assert re.fullmatch(r"[0-9a-f]{48}", project.key)
    assert re.fullmatch(r"[0-9a-f]{8}", project.code)
    assert await mock_db[Collections.PROJECTS].count_documents({}) == 1
    stored = await mock_db[Collections.ADMIN_ACTIONS].find_one({"_id": action["_id"]})
    assert stored["step"] == AdminStep.COMPLETED.value
    assert await admin_flow_service.get_active(ADMIN_CHAT) is None


@pytest.mark.asyncio
async def test_replayed_confirm_is_rejected(mock_db):
    action = await _pending_confirmation()
    await admin_flow_service.confirm(ADMIN_CHAT, str(action["_id"]))

    with pytest.raises(ActionExpired):
        await admin_flow_service.confirm(ADMIN_CHAT, str(action["_id"]))
    assert await mock_db[Collections.PROJECTS].count_documents({}) == 1


@pytest.mark.asyncio
async def test_cancel_creates_nothing(mock_db):
    action = await _pending_confirmation()

    await admin_flow_service.cancel(ADMIN_CHAT, str(action["_id"]))

    assert await mock_db[Collections.PROJECTS].count_documents({}) == 0
    with pytest.raises(ActionExpired):
        await admin_flow_service.confirm(ADMIN_CHAT, str(action["_id"]))


@pytest.mark.asyncio
async def test_superseded_action_cannot_be_confirmed(mock_db):
    stale = await _pending_confirmation("Old")
    await admin_flow_service.start(ADMIN_CHAT)

    with pytest.raises(ActionExpired):
        await admin_flow_service.confirm(ADMIN_CHAT, str(stale["_id"]))
    assert await mock_db[Collections.PROJECTS].count_documents({}) == 0


@pytest.mark.asyncio
async def test_expired_action_cannot_be_confirmed(mock_db):
    action = await _pending_confirmation()
    await mock_db[Collections.ADMIN_ACTIONS].update_one(
        {"_id": action["_id"]}, {"$set": {"expires_at": utcnow() - timedelta(seconds=1)}}
    )

    assert await admin_flow_service.get_active(ADMIN_CHAT) is None
    with pytest.raises(ActionExpired):
        await admin_flow_service.confirm(ADMIN_CHAT, str(action["_id"]))


@pytest.mark.asyncio
async def test_confirm_from_another_chat_or_bad_id(mock_db):
    action = await _pending_confirmation()

    with pytest.raises(ActionExpired):
        await admin_flow_service.confirm(ADMIN_CHAT + 1, str(action["_id"]))
    with pytest.raises(ActionExpired):
        await admin_flow_service.confirm(ADMIN_CHAT, "garbage")
    assert await mock_db[Collections.PROJECTS].count_documents({}) == 0
