"""
Workspace-level permission checking utilities.

This module provides the membership guard: every mutating or
workspace-scoped read operation resolves the caller's membership in the
target workspace first, and fails with UnauthorizedError when there is none
(or when the operation requires ADMIN and the member is not one).
"""

import logging
from typing import Optional

from errors import UnauthorizedError
from models import Member, MemberRole
from predicates import Query
from repository import DocumentRepository

logger = logging.getLogger(__name__)

# Role hierarchy for workspace permissions
ROLE_HIERARCHY = {MemberRole.MEMBER: 0, MemberRole.ADMIN: 1}


def get_member(repo: DocumentRepository, workspace_id: str, user_id: str) -> Optional[Member]:
    """
    Look up a user's membership record in a workspace.

    Args:
        repo: Document repository
        workspace_id: ID of the workspace
        user_id: ID of the user

    Returns:
        The Member if the user belongs to the workspace, None otherwise

    Example:
        >>> member = get_member(repo, workspace.id, user.id)
        >>> if member is None:
        ...     raise UnauthorizedError()
    """
    logger.debug(f"Looking up membership for user {user_id} in workspace {workspace_id}")
    members = repo.list(
        "members",
        [
            Query.equal("workspace_id", workspace_id),
            Query.equal("user_id", user_id),
            Query.limit(1),
        ],
    )
    return members[0] if members else None


def has_role(member: Member, required_role: MemberRole) -> bool:
    """Check whether a member's role is at least ``required_role``."""
    member_level = ROLE_HIERARCHY.get(MemberRole(member.role), 0)
    return member_level >= ROLE_HIERARCHY[required_role]


def require_member(
    repo: DocumentRepository,
    workspace_id: str,
    user_id: str,
    required_role: Optional[MemberRole] = None,
) -> Member:
    """
    Require a user to be a member of a workspace, or raise UnauthorizedError.

    Args:
        repo: Document repository
        workspace_id: ID of the workspace
        user_id: ID of the user
        required_role: Minimum role required (None accepts any member)

    Returns:
        The caller's Member record

    Raises:
        UnauthorizedError: no membership, or the member lacks the required role

    Example:
        >>> require_member(repo, workspace_id, user.id, MemberRole.ADMIN)
        >>> # If we get here, user is a workspace admin
    """
    member = get_member(repo, workspace_id, user_id)
    if member is None:
        logger.info(f"User {user_id} has no membership in workspace {workspace_id}")
        raise UnauthorizedError()

    if required_role is not None and not has_role(member, required_role):
        logger.info(
            f"User {user_id} has role '{member.role.value}' in workspace {workspace_id}, "
            f"but '{required_role.value}' is required"
        )
        raise UnauthorizedError()

    logger.debug(f"Permission check passed for user {user_id} on workspace {workspace_id}")
    return member


def count_admins(repo: DocumentRepository, workspace_id: str) -> int:
    """Number of ADMIN members in a workspace (last-admin protection)."""
    return repo.count(
        "members",
        [Query.equal("workspace_id", workspace_id), Query.equal("role", MemberRole.ADMIN)],
    )
