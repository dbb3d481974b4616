# /tgauth/services/session_service.py

import logging
from datetime import timedelta
from typing import Optional, Dict, Any
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from tgauth.config.settings import settings
from tgauth.models.domain import Collections, NEWEST_FIRST
from tgauth.models.errors import (
    ValidationError, ProjectNotFound, SessionNotFound, ProjectInactive, IdentityConflict,
)
from tgauth.services.db_service import db_service, utcnow
from tgauth.services.project_service import project_service
from tgauth.services.security_service import SecurityService
from tgauth.utils.logging import mask_phone
from tgauth.utils.metrics import identity_links_counter

# Start sessions bind a chat to a project between the deep-link /start and
# the moment the user shares a phone number. Resolving one upserts the
# durable (project, phone) -> chat binding.

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(self, session_ttl_seconds: int):
        self.session_ttl_seconds = session_ttl_seconds

    @property
    def sessions(self):
        return db_service.db[Collections.START_SESSIONS]

    @property
    def identities(self):
        return db_service.db[Collections.LINKED_IDENTITIES]

    async def begin_session(self, chat_id: int, invite_code: str) -> Dict[str, Any]:
        """Opens a start session for the active project behind invite_code."""
        project = await project_service.get_active_by_code((invite_code or "").strip())
        if not project:
            raise ProjectNotFound()

        now = utcnow()
        session = {
            "chat_id": chat_id,
            "project_id": project["_id"],
            "expires_at": now + timedelta(seconds=self.session_ttl_seconds),
            "created_at": now,
        }
        result = await self.sessions.insert_one(session)
        session["_id"] = result.inserted_id
        logger.info(f"Start session opened for chat {chat_id} on project {project['_id']}")
        return session

    async def get_latest_session(self, chat_id: int) -> Optional[Dict[str, Any]]:
        """The newest start session of the chat, or None when absent or expired."""
        session = await self.sessions.find_one({"chat_id": chat_id}, sort=NEWEST_FIRST)
        if not session or session["expires_at"] < utcnow():
            return None
        return session

    async def resolve_session(self, chat_id: int, raw_phone, username: Optional[str] = None) -> Dict[str, Any]:
        """
        Links the shared phone to the chat within the project of the chat's
        latest start session. Returns the stored identity.
        """
        phone = SecurityService.normalize_phone(raw_phone)
        if not phone:
            raise ValidationError("phone required")

        session = await self.get_latest_session(chat_id)
        if not session:
            identity_links_counter.labels(result="no_session").inc()
            raise SessionNotFound()

        project = await project_service.get_project(session["project_id"])
        if not project or not project.get("is_active"):
            identity_links_counter.labels(result="project_inactive").inc()
            raise ProjectInactive()

        identity = await self._upsert_identity(project["_id"], phone, chat_id, username or "")
        identity_links_counter.labels(result="linked").inc()
        logger.info(f"Phone {mask_phone(phone)} linked to chat {chat_id} on project {project['_id']}")
        return identity

    async def _upsert_identity(self, project_id, phone: str, chat_id: int, username: str) -> Dict[str, Any]:
        # A chat holds at most one binding per project: drop the one it had
        # for a different phone before taking over this phone.
        await self.identities.delete_many({
            "project_id": project_id,
            "telegram_id": chat_id,
            "phone": {"$ne": phone},
        })

        now = utcnow()
        query = {"project_id": project_id, "phone": phone}
        update = {
            "$set": {"telegram_id": chat_id, "username": username, "updated_at": now},
            "$setOnInsert": {"created_at": now},
        }
        try:
            identity = await self.identities.find_one_and_update(
                query, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Lost an insert race with a concurrent upsert of the same key.
            identity = await self.identities.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        if identity is None:
            # The winning document was removed again before the retry.
            logger.warning(f"Identity upsert for {mask_phone(phone)} lost the race twice")
            identity_links_counter.labels(result="conflict").inc()
            raise IdentityConflict()
        return identity

    async def get_identity(self, project_id, raw_phone) -> Optional[Dict[str, Any]]:
        phone = SecurityService.normalize_phone(raw_phone)
        if not phone:
            return None
        return await self.identities.find_one({"project_id": project_id, "phone": phone})

    async def is_linked(self, project_id, raw_phone) -> bool:
        phone = SecurityService.normalize_phone(raw_phone)
        if not phone:
            raise ValidationError("phone required")
        found = await self.identities.find_one({"project_id": project_id, "phone": phone}, {"_id": 1})
        return found is not None


# Globally accessible instance
session_service = SessionService(settings.start_session_ttl_seconds)
