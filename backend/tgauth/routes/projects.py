# /tgauth/routes/projects.py

import logging
from fastapi import APIRouter, Depends, Request

from tgauth.config.settings import settings
from tgauth.models.api import ProjectCreateRequest, ProjectUpdateRequest, ProjectResponse, ProjectListResponse
from tgauth.services.project_service import project_service
from tgauth.utils.dependencies import require_admin
from tgauth.utils.rate_limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/projects",
    tags=["Projects"],
    dependencies=[Depends(require_admin)]
)

@router.post("", response_model=ProjectResponse, response_model_exclude={"isActive"})
@limiter.limit(f"{settings.admin_rate_limit_per_minute}/minute")
async def create_project(request: Request, body: ProjectCreateRequest):
    """Creates a project with a fresh API key and invite code."""
    project = await project_service.create_project(body.name, source="api")
    return project.to_public()

@router.get("", response_model=ProjectListResponse)
async def list_projects(request: Request):
    """All projects, newest first."""
    projects = await project_service.list_projects()
    return {"projects": [p.to_public() for p in projects]}

@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(project_id: str, body: ProjectUpdateRequest):
    project = await project_service.set_active(project_id, body.isActive)
    return project.to_public()
