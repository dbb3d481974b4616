# /tgauth/services/project_service.py

import logging
from typing import List, Optional, Dict, Any
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from tgauth.models.domain import Collections, Project
from tgauth.models.errors import ValidationError, ProjectNotFound
from tgauth.services.db_service import db_service, utcnow, to_object_id
from tgauth.services.security_service import SecurityService
from tgauth.utils.metrics import database_operations_counter, projects_created_counter

logger = logging.getLogger(__name__)

# Generated keys colliding with an existing one is astronomically unlikely,
# but the unique indexes make it detectable, so a few retries are allowed.
MAX_KEY_COLLISIONS = 3


class ProjectService:
    """Project Registry: tenant records addressed by API key or invite code."""

    @property
    def collection(self):
        return db_service.db[Collections.PROJECTS]

    async def create_project(self, name: str, source: str = "api") -> Project:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("name required")

        for _ in range(MAX_KEY_COLLISIONS):
            now = utcnow()
            doc = {
                "name": clean_name,
                "key": SecurityService.generate_api_key(),
                "code": SecurityService.generate_invite_code(),
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            }
            try:
                result = await self.collection.insert_one(doc)
            except DuplicateKeyError:
                logger.warning("Generated project key or code collided, regenerating.")
                continue
            doc["_id"] = result.inserted_id
            database_operations_counter.labels(operation="create_project", status="success").inc()
            projects_created_counter.labels(source=source).inc()
            logger.info(f"Project created: {doc['_id']} ({clean_name}) via {source}")
            return Project.from_document(doc)

        database_operations_counter.labels(operation="create_project", status="failed").inc()
        raise ValidationError("could not allocate a unique project key")

    async def list_projects(self) -> List[Project]:
        cursor = self.collection.find({}).sort([("created_at", -1), ("_id", -1)])
        return [Project.from_document(doc) async for doc in cursor]

    async def get_project(self, project_id) -> Optional[Dict[str, Any]]:
        oid = to_object_id(project_id)
        if oid is None:
            return None
        return await self.collection.find_one({"_id": oid})

    async def get_active_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        if not key:
            return None
        return await self.collection.find_one({"key": key, "is_active": True})

    async def get_active_by_code(self, code: str) -> Optional[Dict[str, Any]]:
        if not code:
            return None
        return await self.collection.find_one({"code": code, "is_active": True})

    async def set_active(self, project_id: str, is_active: bool) -> Project:
        oid = to_object_id(project_id)
        if oid is None:
            raise ProjectNotFound()
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": {"is_active": is_active, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise ProjectNotFound()
        logger.info(f"Project {project_id} is_active set to {is_active}")
        return Project.from_document(doc)


# Globally accessible instance
project_service = ProjectService()
