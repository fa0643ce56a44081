"""
Workspace invite codes and self-service join.
"""

import logging
import secrets
import string

from sqlalchemy.exc import IntegrityError

from auth.permissions import get_member
from errors import ValidationError
from models import MemberRole, Workspace
from repository import DocumentRepository

logger = logging.getLogger(__name__)

INVITE_CODE_LENGTH = 10
INVITE_CODE_ALPHABET = string.ascii_letters + string.digits


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    """Random alphanumeric invite code."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def join_workspace(repo: DocumentRepository, workspace_id: str, user_id: str, code: str) -> Workspace:
    """
    Join a workspace with its invite code.

    Args:
        repo: Document repository
        workspace_id: Workspace to join
        user_id: Joining user
        code: Invite code supplied by the user (case-sensitive)

    Returns:
        The joined workspace

    Raises:
        NotFoundError: workspace does not exist
        ValidationError: already a member, or wrong invite code
    """
    logger.debug(f"User {user_id} joining workspace {workspace_id}")
    workspace = repo.get("workspaces", workspace_id)

    if get_member(repo, workspace_id, user_id) is not None:
        logger.info(f"User {user_id} is already a member of workspace {workspace_id}")
        raise ValidationError("Already a member")

    if not secrets.compare_digest(str(code).encode("utf-8"), workspace.invite_code.encode("utf-8")):
        logger.info(f"User {user_id} supplied an invalid invite code for workspace {workspace_id}")
        raise ValidationError("Invalid invite code")

    try:
        repo.create(
            "members",
            {"workspace_id": workspace_id, "user_id": user_id, "role": MemberRole.MEMBER},
        )
    except IntegrityError:
        # A concurrent join from the same user won the race
        logger.info(f"Duplicate membership rejected for user {user_id} in workspace {workspace_id}")
        raise ValidationError("Already a member") from None

    logger.info(f"User {user_id} joined workspace {workspace_id}")
    return workspace
