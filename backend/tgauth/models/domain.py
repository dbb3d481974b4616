# /tgauth/models/domain.py

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel

# Core records as stored in MongoDB. Services pass raw documents around;
# these models are used where a typed view is needed (API output, bot replies).


class Collections:
    """A single source of truth for collection names."""
    PROJECTS = "projects"
    START_SESSIONS = "start_sessions"
    LINKED_IDENTITIES = "linked_identities"
    VERIFICATION_CODES = "verification_codes"
    ADMIN_ACTIONS = "admin_actions"


class AdminActionType(str, Enum):
    ADD_PROJECT = "add_project"


class AdminStep(str, Enum):
    """Steps of the admin conversation. COMPLETED and CANCELLED are terminal."""
    AWAIT_NAME = "await_name"
    AWAIT_CONFIRMATION = "await_confirmation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CallbackPrefix:
    """Callback data prefixes of the inline confirmation buttons."""
    CONFIRM = "add_project_confirm:"
    CANCEL = "add_project_cancel:"


# Newest first, with the ObjectId as tiebreaker for equal timestamps.
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


class Project(BaseModel):
    id: str
    name: str
    key: str
    code: str
    is_active: bool = True
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Project":
        return cls(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            key=doc.get("key", ""),
            code=doc.get("code", ""),
            is_active=bool(doc.get("is_active", True)),
            created_at=doc.get("created_at"),
        )

    def to_public(self) -> Dict[str, Any]:
        """Shape used by the admin HTTP API."""
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "key": self.key,
            "isActive": self.is_active,
        }
