"""
Workspace endpoints: CRUD, invite codes, join and analytics.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import sessionmaker

import models
import schemas
from analytics import compute_analytics
from auth.dependencies import get_current_user
from auth.permissions import require_member
from cascade import WORKSPACE_CHILDREN, cascade_delete
from database import get_session_factory
from invites import generate_invite_code, join_workspace
from predicates import Query
from repository import DocumentRepository
from routers.dependencies import get_repository
from storage import ImageStorage, get_image_storage, image_changes, upload_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workspaces", tags=["workspaces"])


@router.get("", response_model=schemas.DataResponse[schemas.DocumentList[schemas.Workspace]])
def list_workspaces(
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """List the workspaces the current user is a member of."""
    memberships = repo.list("members", [Query.equal("user_id", current_user.id)])
    if not memberships:
        return schemas.DataResponse(data=schemas.DocumentList(total=0, documents=[]))

    workspace_ids = [member.workspace_id for member in memberships]
    workspaces = repo.list(
        "workspaces",
        [Query.contains("id", workspace_ids), Query.order_desc("created_at")],
    )
    logger.debug(f"User {current_user.id} belongs to {len(workspaces)} workspaces")
    return schemas.DataResponse(
        data=schemas.DocumentList(
            total=len(workspaces),
            documents=[schemas.Workspace.model_validate(workspace) for workspace in workspaces],
        )
    )


@router.post("", response_model=schemas.DataResponse[schemas.Workspace])
async def create_workspace(
    name: str = Form(..., min_length=1, max_length=255),
    image: Optional[UploadFile] = File(None),
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    storage: ImageStorage = Depends(get_image_storage),
):
    """Create a workspace; the creator becomes its first ADMIN."""
    logger.info(f"User {current_user.id} creating workspace '{name}'")
    image_url = await upload_image(storage, image) if image is not None and image.filename else None

    with repo.transaction():
        workspace = repo.create(
            "workspaces",
            {
                "name": name.strip(),
                "user_id": current_user.id,
                "image_url": image_url,
                "invite_code": generate_invite_code(),
            },
        )
        repo.create(
            "members",
            {"workspace_id": workspace.id, "user_id": current_user.id, "role": models.MemberRole.ADMIN},
        )

    logger.info(f"Workspace created successfully: id={workspace.id}")
    return schemas.DataResponse(data=schemas.Workspace.model_validate(workspace))


@router.get("/{workspace_id}", response_model=schemas.DataResponse[schemas.Workspace])
def get_workspace(
    workspace_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    workspace = repo.get("workspaces", workspace_id)
    require_member(repo, workspace_id, current_user.id)
    return schemas.DataResponse(data=schemas.Workspace.model_validate(workspace))


@router.get("/{workspace_id}/info", response_model=schemas.DataResponse[schemas.WorkspaceInfo])
def get_workspace_info(
    workspace_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Name and image of a workspace, for the join page. Membership is not required."""
    logger.debug(f"User {current_user.id} fetching info of workspace {workspace_id}")
    workspace = repo.get("workspaces", workspace_id)
    return schemas.DataResponse(data=schemas.WorkspaceInfo.model_validate(workspace))


@router.patch("/{workspace_id}", response_model=schemas.DataResponse[schemas.Workspace])
async def update_workspace(
    workspace_id: str,
    request: Request,
    name: Optional[str] = Form(None, min_length=1, max_length=255),
    image: Optional[UploadFile] = File(None),
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    storage: ImageStorage = Depends(get_image_storage),
):
    """Rename a workspace or change its image (admins only)."""
    repo.get("workspaces", workspace_id)
    require_member(repo, workspace_id, current_user.id, models.MemberRole.ADMIN)

    # Read from the raw form: FastAPI maps an empty form value to "missing"
    form = await request.form()
    changes = await image_changes(storage, image, form.get("imageUrl"))
    if name is not None:
        changes["name"] = name.strip()

    workspace = repo.update("workspaces", workspace_id, changes)
    logger.info(f"User {current_user.id} updated workspace {workspace_id}: fields={sorted(changes)}")
    return schemas.DataResponse(data=schemas.Workspace.model_validate(workspace))


@router.delete("/{workspace_id}", response_model=schemas.DataResponse[schemas.DeletedDocument])
def delete_workspace(
    workspace_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Delete a workspace with all its members, projects, tasks and comments (admins only)."""
    repo.get("workspaces", workspace_id)
    require_member(repo, workspace_id, current_user.id, models.MemberRole.ADMIN)

    logger.info(f"User {current_user.id} deleting workspace {workspace_id}")
    cascade_delete(repo, "workspaces", [Query.equal("id", workspace_id)], WORKSPACE_CHILDREN)
    return schemas.DataResponse(data=schemas.DeletedDocument(id=workspace_id))


@router.post("/{workspace_id}/reset-invite-code", response_model=schemas.DataResponse[schemas.Workspace])
def reset_invite_code(
    workspace_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Replace the invite code; the old code stops working immediately (admins only)."""
    repo.get("workspaces", workspace_id)
    require_member(repo, workspace_id, current_user.id, models.MemberRole.ADMIN)

    workspace = repo.update("workspaces", workspace_id, {"invite_code": generate_invite_code()})
    logger.info(f"User {current_user.id} reset the invite code of workspace {workspace_id}")
    return schemas.DataResponse(data=schemas.Workspace.model_validate(workspace))


@router.post("/{workspace_id}/join", response_model=schemas.DataResponse[schemas.Workspace])
def join(
    workspace_id: str,
    request: schemas.JoinWorkspace,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    workspace = join_workspace(repo, workspace_id, current_user.id, request.code)
    return schemas.DataResponse(data=schemas.Workspace.model_validate(workspace))


@router.get("/{workspace_id}/analytics", response_model=schemas.DataResponse[schemas.Analytics])
def workspace_analytics(
    workspace_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Month-over-month task counts for the whole workspace."""
    repo.get("workspaces", workspace_id)
    member_id = require_member(repo, workspace_id, current_user.id).id

    # The counts open their own sessions; don't hold a pooled connection meanwhile
    repo.release()
    snapshot = compute_analytics(session_factory, workspace_id, member_id)
    return schemas.DataResponse(data=schemas.Analytics.model_validate(snapshot))
