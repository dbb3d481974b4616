# /tgauth/services/bot_service.py

import logging
from typing import Dict, Any, Optional, Tuple

from tgauth.config import strings
from tgauth.models.domain import CallbackPrefix
from tgauth.models.errors import (
    ValidationError, ProjectNotFound, SessionNotFound, ProjectInactive, ActionExpired, IdentityConflict,
)
from tgauth.services.admin_flow_service import admin_flow_service
from tgauth.services.session_service import session_service
from tgauth.services.telegram_service import telegram_service
from tgauth.utils.metrics import telegram_updates_counter

# Entry point for every inbound Telegram update, whether it arrived through
# long polling or the webhook. Domain errors become chat replies here.

logger = logging.getLogger(__name__)


def parse_command(text: str) -> Tuple[Optional[str], str]:
    """Splits '/cmd@Bot arg' into ('/cmd', 'arg'); non-commands give (None, text)."""
    stripped = (text or "").strip()
    if not stripped.startswith("/"):
        return None, stripped
    head, _, rest = stripped.partition(" ")
    return head.split("@", 1)[0].lower(), rest.strip()


async def reply(chat_id: int, text: str, reply_markup: Optional[Dict[str, Any]] = None) -> None:
    """Best-effort chat reply; a failed send is logged, not raised."""
    try:
        await telegram_service.send_message(chat_id, text, reply_markup=reply_markup)
    except Exception as e:
        logger.error(f"Reply to chat {chat_id} failed: {e}")


async def answer(callback_query_id: str, text: Optional[str] = None) -> None:
    try:
        await telegram_service.answer_callback_query(callback_query_id, text)
    except Exception as e:
        logger.error(f"Answering callback {callback_query_id} failed: {e}")


# --- Handlers ---

async def handle_start(chat_id: int, invite_code: str) -> None:
    if not invite_code:
        await reply(chat_id, strings.START_WITHOUT_CODE)
        return
    try:
        await session_service.begin_session(chat_id, invite_code)
    except ProjectNotFound:
        await reply(chat_id, strings.PROJECT_CODE_NOT_FOUND)
        return
    await reply(chat_id, strings.ASK_PHONE, reply_markup=telegram_service.contact_request_keyboard())


async def handle_add_project(chat_id: int, user_id: Optional[int]) -> None:
    if not admin_flow_service.is_admin(user_id):
        await reply(chat_id, strings.NOT_ALLOWED)
        return
    await admin_flow_service.start(chat_id)
    await reply(chat_id, strings.ASK_PROJECT_NAME)


async def handle_contact(message: Dict[str, Any]) -> None:
    chat_id = message["chat"]["id"]
    contact = message.get("contact") or {}
    sender = message.get("from") or {}

    if not contact.get("phone_number"):
        await reply(chat_id, strings.PHONE_MISSING)
        return
    # Only the sender's own contact card may be linked.
    if contact.get("user_id") and sender.get("id") and contact["user_id"] != sender["id"]:
        await reply(chat_id, strings.FOREIGN_CONTACT)
        return

    try:
        identity = await session_service.resolve_session(chat_id, contact["phone_number"], sender.get("username"))
    except SessionNotFound:
        await reply(chat_id, strings.SESSION_NOT_FOUND)
        return
    except ProjectInactive:
        await reply(chat_id, strings.PROJECT_INACTIVE)
        return
    except ValidationError:
        await reply(chat_id, strings.PHONE_MISSING)
        return
    except IdentityConflict:
        await reply(chat_id, strings.PHONE_LINK_CONFLICT)
        return
    await reply(chat_id, strings.PHONE_LINKED.format(phone=identity["phone"]))


async def handle_text(chat_id: int, user_id: Optional[int], text: str) -> None:
    if admin_flow_service.is_admin(user_id):
        action = await admin_flow_service.awaiting_name(chat_id)
        if action:
            try:
                updated = await admin_flow_service.submit_name(action, text)
            except ValidationError:
                await reply(chat_id, strings.NAME_AS_PLAIN_TEXT)
                return
            except ActionExpired:
                await reply(chat_id, strings.SESSION_EXPIRED)
                return
            await reply(
                chat_id,
                strings.CONFIRM_PROJECT_NAME.format(name=updated["payload"]["name"]),
                reply_markup=telegram_service.confirmation_keyboard(str(updated["_id"])),
            )
            return

    await reply(chat_id, strings.GENERIC_PROMPT)


async def handle_callback_query(query: Dict[str, Any]) -> None:
    query_id = query.get("id")
    chat_id = ((query.get("message") or {}).get("chat") or {}).get("id")
    if not chat_id:
        return

    if not admin_flow_service.is_admin((query.get("from") or {}).get("id")):
        await answer(query_id, strings.NOT_ALLOWED)
        return

    data = query.get("data") or ""
    if data.startswith(CallbackPrefix.CONFIRM):
        action_id = data[len(CallbackPrefix.CONFIRM):]
        try:
            project = await admin_flow_service.confirm(chat_id, action_id)
        except ActionExpired:
            await answer(query_id, strings.SESSION_EXPIRED)
            return
        except Exception:
            # The action is already spent, so the callback still needs an answer.
            logger.exception(f"Project creation for admin action {action_id} failed")
            await answer(query_id, strings.ERROR_GENERAL)
            await reply(chat_id, strings.ERROR_GENERAL)
            return
        await answer(query_id, strings.PROJECT_CREATED_SHORT)
        await reply(chat_id, strings.PROJECT_CREATED.format(
            name=project.name, id=project.id, key=project.key, code=project.code,
        ))
    elif data.startswith(CallbackPrefix.CANCEL):
        action_id = data[len(CallbackPrefix.CANCEL):]
        try:
            await admin_flow_service.cancel(chat_id, action_id)
        except ActionExpired:
            await answer(query_id, strings.SESSION_EXPIRED)
            return
        await answer(query_id, strings.CANCELLED_SHORT)
        await reply(chat_id, strings.CREATION_CANCELLED)
    else:
        await answer(query_id)


async def handle_message(message: Dict[str, Any]) -> None:
    chat_id = message["chat"]["id"]
    user_id = (message.get("from") or {}).get("id")

    if message.get("contact"):
        telegram_updates_counter.labels(kind="contact").inc()
        await handle_contact(message)
        return

    text = message.get("text")
    if not text:
        telegram_updates_counter.labels(kind="ignored").inc()
        return

    command, argument = parse_command(text)
    if command == "/start":
        telegram_updates_counter.labels(kind="start").inc()
        await handle_start(chat_id, argument)
    elif command == "/add_project":
        telegram_updates_counter.labels(kind="add_project").inc()
        await handle_add_project(chat_id, user_id)
    else:
        telegram_updates_counter.labels(kind="text").inc()
        await handle_text(chat_id, user_id, text)


async def process_update(update: Dict[str, Any]) -> None:
    """Routes one Telegram update. Never raises."""
    chat_id = None
    try:
        if update.get("callback_query"):
            telegram_updates_counter.labels(kind="callback_query").inc()
            await handle_callback_query(update["callback_query"])
            return

        message = update.get("message")
        if not message or not (message.get("chat") or {}).get("id"):
            telegram_updates_counter.labels(kind="ignored").inc()
            return
        chat_id = message["chat"]["id"]
        await handle_message(message)
    except Exception:
        logger.exception(f"Failed to process Telegram update {update.get('update_id')}")
        if chat_id:
            await reply(chat_id, strings.ERROR_GENERAL)
