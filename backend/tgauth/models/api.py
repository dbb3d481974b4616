# /tgauth/models/api.py

from pydantic import BaseModel, Field
from typing import List, Union

# Request and response bodies of the HTTP API. Field names follow the public
# wire format (camelCase where existing clients expect it).


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class ProjectUpdateRequest(BaseModel):
    isActive: bool


class ProjectResponse(BaseModel):
    id: str
    name: str
    key: str
    code: str
    isActive: bool = True


class ProjectListResponse(BaseModel):
    projects: List[ProjectResponse]


class NotifyRequest(BaseModel):
    user_id: Union[int, str]
    code: Union[str, int]


class PhoneRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=32)


class VerifyRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=32)
    code: Union[str, int]


class StatusResponse(BaseModel):
    status: str


class CheckResponse(BaseModel):
    check: bool
