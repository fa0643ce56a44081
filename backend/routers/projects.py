"""
Project endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, Query as QueryParam
from sqlalchemy.orm import sessionmaker

import models
import schemas
from analytics import compute_analytics
from auth.dependencies import get_current_user
from auth.permissions import require_member
from cascade import PROJECT_CHILDREN, cascade_delete
from database import get_session_factory
from predicates import Query
from repository import DocumentRepository
from routers.dependencies import get_repository
from storage import ImageStorage, get_image_storage, image_changes, upload_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("", response_model=schemas.DataResponse[schemas.DocumentList[schemas.Project]])
def list_projects(
    workspace_id: str = QueryParam(..., alias="workspaceId"),
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """List the projects of a workspace, newest first."""
    require_member(repo, workspace_id, current_user.id)

    projects = repo.list(
        "projects",
        [Query.equal("workspace_id", workspace_id), Query.order_desc("created_at")],
    )
    logger.debug(f"Found {len(projects)} projects in workspace {workspace_id}")
    return schemas.DataResponse(
        data=schemas.DocumentList(
            total=len(projects),
            documents=[schemas.Project.model_validate(project) for project in projects],
        )
    )


@router.post("", response_model=schemas.DataResponse[schemas.Project])
async def create_project(
    name: str = Form(..., min_length=1, max_length=255),
    workspace_id: str = Form(..., alias="workspaceId", min_length=1),
    image: Optional[UploadFile] = File(None),
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    storage: ImageStorage = Depends(get_image_storage),
):
    logger.info(f"User {current_user.id} creating project '{name}' in workspace {workspace_id}")
    require_member(repo, workspace_id, current_user.id)

    image_url = await upload_image(storage, image) if image is not None and image.filename else None
    project = repo.create(
        "projects",
        {"workspace_id": workspace_id, "name": name.strip(), "image_url": image_url},
    )

    logger.info(f"Project created successfully: id={project.id}")
    return schemas.DataResponse(data=schemas.Project.model_validate(project))


@router.get("/{project_id}", response_model=schemas.DataResponse[schemas.Project])
def get_project(
    project_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    project = repo.get("projects", project_id)
    require_member(repo, project.workspace_id, current_user.id)
    return schemas.DataResponse(data=schemas.Project.model_validate(project))


@router.patch("/{project_id}", response_model=schemas.DataResponse[schemas.Project])
async def update_project(
    project_id: str,
    request: Request,
    name: Optional[str] = Form(None, min_length=1, max_length=255),
    image: Optional[UploadFile] = File(None),
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    storage: ImageStorage = Depends(get_image_storage),
):
    """Rename a project or change its image."""
    existing = repo.get("projects", project_id)
    require_member(repo, existing.workspace_id, current_user.id)

    # Read from the raw form: FastAPI maps an empty form value to "missing"
    form = await request.form()
    changes = await image_changes(storage, image, form.get("imageUrl"))
    if name is not None:
        changes["name"] = name.strip()

    project = repo.update("projects", project_id, changes)
    logger.info(f"User {current_user.id} updated project {project_id}: fields={sorted(changes)}")
    return schemas.DataResponse(data=schemas.Project.model_validate(project))


@router.delete("/{project_id}", response_model=schemas.DataResponse[schemas.DeletedDocument])
def delete_project(
    project_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Delete a project together with its tasks and their comments."""
    project = repo.get("projects", project_id)
    require_member(repo, project.workspace_id, current_user.id)

    logger.info(f"User {current_user.id} deleting project {project_id}")
    cascade_delete(repo, "projects", [Query.equal("id", project_id)], PROJECT_CHILDREN)
    return schemas.DataResponse(data=schemas.DeletedDocument(id=project_id))


@router.get("/{project_id}/analytics", response_model=schemas.DataResponse[schemas.Analytics])
def project_analytics(
    project_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Month-over-month task counts restricted to one project."""
    project = repo.get("projects", project_id)
    workspace_id = project.workspace_id
    member_id = require_member(repo, workspace_id, current_user.id).id

    # The counts open their own sessions; don't hold a pooled connection meanwhile
    repo.release()
    snapshot = compute_analytics(
        session_factory,
        workspace_id,
        member_id,
        scope=[Query.equal("project_id", project_id)],
    )
    return schemas.DataResponse(data=schemas.Analytics.model_validate(snapshot))
