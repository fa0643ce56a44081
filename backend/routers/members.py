"""
Workspace member endpoints.

Every workspace keeps at least one member and at least one ADMIN: the last
admin can neither be demoted nor removed, and the only member cannot leave.
"""

import logging

from fastapi import APIRouter, Depends, Query as QueryParam

import models
import schemas
from auth.dependencies import get_current_user
from auth.permissions import count_admins, has_role, require_member
from errors import UnauthorizedError, ValidationError
from predicates import Query
from repository import DocumentRepository
from routers.dependencies import get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/members", tags=["members"])


@router.get("", response_model=schemas.DataResponse[schemas.DocumentList[schemas.Member]])
def list_members(
    workspace_id: str = QueryParam(..., alias="workspaceId"),
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """List the members of a workspace with their names and emails."""
    require_member(repo, workspace_id, current_user.id)

    members = repo.list(
        "members",
        [Query.equal("workspace_id", workspace_id), Query.order_asc("created_at")],
    )
    user_ids = [member.user_id for member in members]
    if user_ids:
        # Loads the users into the session so member.name/email need no extra queries
        repo.list("users", [Query.contains("id", user_ids)])

    return schemas.DataResponse(
        data=schemas.DocumentList(
            total=len(members),
            documents=[schemas.Member.model_validate(member) for member in members],
        )
    )


@router.patch("/{member_id}", response_model=schemas.DataResponse[schemas.Member])
def update_member(
    member_id: str,
    request: schemas.MemberUpdate,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Change a member's role (admins only)."""
    member = repo.get("members", member_id)
    require_member(repo, member.workspace_id, current_user.id, models.MemberRole.ADMIN)

    demoting = member.role == models.MemberRole.ADMIN and request.role != models.MemberRole.ADMIN
    if demoting and count_admins(repo, member.workspace_id) <= 1:
        logger.info(f"Refusing to demote the last admin of workspace {member.workspace_id}")
        raise ValidationError("Cannot downgrade the only admin")

    updated = repo.update("members", member_id, {"role": request.role})
    logger.info(f"User {current_user.id} set role of member {member_id} to {request.role.value}")
    return schemas.DataResponse(data=schemas.Member.model_validate(updated))


@router.delete("/{member_id}", response_model=schemas.DataResponse[schemas.DeletedDocument])
def delete_member(
    member_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Remove a member. Admins may remove anyone; members may remove themselves."""
    member = repo.get("members", member_id)
    caller = require_member(repo, member.workspace_id, current_user.id)

    if caller.id != member.id and not has_role(caller, models.MemberRole.ADMIN):
        logger.info(f"User {current_user.id} may not remove member {member_id}")
        raise UnauthorizedError()

    if repo.count("members", [Query.equal("workspace_id", member.workspace_id)]) <= 1:
        logger.info(f"Refusing to remove the only member of workspace {member.workspace_id}")
        raise ValidationError("Cannot delete the only member")

    if member.role == models.MemberRole.ADMIN and count_admins(repo, member.workspace_id) <= 1:
        logger.info(f"Refusing to remove the last admin of workspace {member.workspace_id}")
        raise ValidationError("Cannot delete the only admin")

    # Tasks keep their history; the assignee is cleared instead of dangling
    with repo.transaction():
        for task in repo.list("tasks", [Query.equal("assignee_id", member_id)]):
            repo.update("tasks", task.id, {"assignee_id": None})
        repo.delete("members", member_id)

    logger.info(f"User {current_user.id} removed member {member_id} from workspace {member.workspace_id}")
    return schemas.DataResponse(data=schemas.DeletedDocument(id=member_id))
