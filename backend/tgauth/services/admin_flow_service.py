# /tgauth/services/admin_flow_service.py

"""
Chat-driven project provisioning for the privileged Telegram identity.

One conversation per (chat, action type) lives in the admin_actions
collection:

    await_name -> await_confirmation -> completed | cancelled

Only the newest non-expired action of a chat is ever advanced. Each step
change is a conditional update on the expected current step, so a replayed
or concurrent button press cannot advance the same action twice. Terminal
actions are expired immediately.
"""

import logging
from datetime import timedelta
from typing import Optional, Dict, Any
from pymongo import ReturnDocument

from tgauth.config.settings import settings
from tgauth.models.domain import Collections, AdminActionType, AdminStep, NEWEST_FIRST, Project
from tgauth.models.errors import ValidationError, ActionExpired
from tgauth.services.db_service import db_service, utcnow, to_object_id
from tgauth.services.project_service import project_service
from tgauth.utils.metrics import admin_actions_counter

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/"
DEFAULT_PROJECT_NAME = "Untitled"
TERMINAL_STEPS = (AdminStep.COMPLETED.value, AdminStep.CANCELLED.value)


class AdminFlowService:
    def __init__(self, action_ttl_seconds: int, admin_telegram_id: int):
        self.action_ttl_seconds = action_ttl_seconds
        self.admin_telegram_id = admin_telegram_id

    @property
    def actions(self):
        return db_service.db[Collections.ADMIN_ACTIONS]

    def is_admin(self, user_id: Optional[int]) -> bool:
        if not self.admin_telegram_id:
            return False
        return user_id == self.admin_telegram_id

    def _expiry(self):
        return utcnow() + timedelta(seconds=self.action_ttl_seconds)

    async def start(self, chat_id: int, action_type: AdminActionType = AdminActionType.ADD_PROJECT) -> Dict[str, Any]:
        now = utcnow()
        action = {
            "chat_id": chat_id,
            "type": action_type.value,
            "step": AdminStep.AWAIT_NAME.value,
            "payload": {},
            "expires_at": self._expiry(),
            "created_at": now,
            "updated_at": now,
        }
        result = await self.actions.insert_one(action)
        action["_id"] = result.inserted_id
        admin_actions_counter.labels(step=AdminStep.AWAIT_NAME.value).inc()
        logger.info(f"Admin action {action['_id']} started for chat {chat_id}")
        return action

    async def get_active(self, chat_id: int, action_type: AdminActionType = AdminActionType.ADD_PROJECT) -> Optional[Dict[str, Any]]:
        """The authoritative action of the chat, or None."""
        action = await self.actions.find_one({"chat_id": chat_id, "type": action_type.value}, sort=NEWEST_FIRST)
        if not action:
            return None
        if action["expires_at"] < utcnow() or action.get("step") in TERMINAL_STEPS:
            return None
        return action

    async def awaiting_name(self, chat_id: int) -> Optional[Dict[str, Any]]:
        action = await self.get_active(chat_id)
        if action and action.get("step") == AdminStep.AWAIT_NAME.value:
            return action
        return None

    async def submit_name(self, action: Dict[str, Any], text: str) -> Dict[str, Any]:
        """Stores the proposed project name and moves the action to confirmation."""
        name = (text or "").strip()
        if not name or name.startswith(COMMAND_PREFIX):
            raise ValidationError("name must be plain text")

        updated = await self.actions.find_one_and_update(
            {"_id": action["_id"], "step": AdminStep.AWAIT_NAME.value, "expires_at": {"$gte": utcnow()}},
            {"$set": {
                "step": AdminStep.AWAIT_CONFIRMATION.value,
                "payload": {"name": name},
                "expires_at": self._expiry(),
                "updated_at": utcnow(),
            }},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise ActionExpired()
        admin_actions_counter.labels(step=AdminStep.AWAIT_CONFIRMATION.value).inc()
        return updated

    async def _claim(self, chat_id: int, action_id: str, final_step: AdminStep) -> Dict[str, Any]:
        """Moves the chat's pending confirmation to a terminal step, once."""
        oid = to_object_id(action_id)
        active = await self.get_active(chat_id)
        if (
            oid is None
            or active is None
            or active["_id"] != oid
            or active.get("step") != AdminStep.AWAIT_CONFIRMATION.value
        ):
            raise ActionExpired()

        now = utcnow()
        claimed = await self.actions.find_one_and_update(
            {
                "_id": oid,
                "chat_id": chat_id,
                "step": AdminStep.AWAIT_CONFIRMATION.value,
                "expires_at": {"$gte": now},
            },
            {"$set": {
                "step": final_step.value,
                "expires_at": now - timedelta(seconds=1),
                "updated_at": now,
            }},
            return_document=ReturnDocument.AFTER,
        )
        if claimed is None:
            raise ActionExpired()
        admin_actions_counter.labels(step=final_step.value).inc()
        return claimed

    async def confirm(self, chat_id: int, action_id: str) -> Project:
        action = await self._claim(chat_id, action_id, AdminStep.COMPLETED)
        name = (action.get("payload") or {}).get("name") or DEFAULT_PROJECT_NAME
        project = await project_service.create_project(name, source="telegram")
        logger.info(f"Admin action {action_id} completed, project {project.id} created")
        return project

    async def cancel(self, chat_id: int, action_id: str) -> None:
        await self._claim(chat_id, action_id, AdminStep.CANCELLED)
        logger.info(f"Admin action {action_id} cancelled")


# Globally accessible instance
admin_flow_service = AdminFlowService(settings.admin_action_ttl_seconds, settings.admin_telegram_id)
