"""
Bulk reorder of Kanban tasks.

The board sends the new (status, position) of every task touched by a drag
and drop. The batch is validated as a whole before anything is written:

1. Every position is an integer in [MIN_POSITION, MAX_POSITION] and no id
   appears twice.
2. All referenced tasks are fetched in one query; they must belong to
   exactly one workspace (an empty fetch fails here too).
3. Every requested id must have resolved to a task.
4. The caller must be a member of that workspace.

The updates are then applied inside a single repository transaction, so a
failure part-way through leaves no task modified.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from auth.permissions import require_member
from errors import NotFoundError, ValidationError
from models import Task, TaskStatus
from positions import MAX_POSITION, MIN_POSITION, is_valid_position
from predicates import Query
from repository import DocumentRepository

logger = logging.getLogger(__name__)

# Largest board a client can reorder in one request
MAX_BATCH_SIZE = 500


@dataclass(frozen=True)
class PositionUpdate:
    task_id: str
    status: TaskStatus
    position: int


def validate_updates(updates: Sequence[PositionUpdate]) -> None:
    """Reject malformed batches before any read or write."""
    if len(updates) > MAX_BATCH_SIZE:
        raise ValidationError(f"Maximum {MAX_BATCH_SIZE} tasks per bulk update")

    seen = set()
    for update in updates:
        if not is_valid_position(update.position):
            logger.info(f"Task {update.task_id}: invalid position {update.position!r}")
            raise ValidationError(
                f"Position must be an integer between {MIN_POSITION} and {MAX_POSITION}"
            )
        if update.task_id in seen:
            logger.info(f"Task {update.task_id} appears twice in bulk update")
            raise ValidationError(f"Duplicate task id in bulk update: {update.task_id}")
        seen.add(update.task_id)


def bulk_update_tasks(
    repo: DocumentRepository,
    user_id: str,
    updates: Sequence[PositionUpdate],
) -> List[Task]:
    """
    Apply a batch of (status, position) updates.

    Args:
        repo: Document repository
        user_id: ID of the authenticated caller
        updates: Requested updates

    Returns:
        The updated tasks, in request order

    Raises:
        ValidationError: bad position, duplicate id, or tasks spanning zero or several workspaces
        NotFoundError: a requested id does not resolve to a task
        UnauthorizedError: caller is not a member of the workspace
    """
    logger.info(f"User {user_id} bulk updating {len(updates)} tasks")
    validate_updates(updates)

    task_ids = [update.task_id for update in updates]
    tasks = repo.list("tasks", [Query.contains("id", task_ids)]) if task_ids else []

    workspace_ids = {task.workspace_id for task in tasks}
    if len(workspace_ids) != 1:
        logger.info(f"Bulk update rejected: tasks span {len(workspace_ids)} workspaces")
        raise ValidationError("All tasks must belong to the same workspace")
    workspace_id = workspace_ids.pop()

    found_ids = {task.id for task in tasks}
    missing = [task_id for task_id in task_ids if task_id not in found_ids]
    if missing:
        logger.info(f"Bulk update rejected: tasks not found: {missing}")
        raise NotFoundError(f"Tasks not found: {', '.join(missing)}")

    require_member(repo, workspace_id, user_id)

    updated = []
    with repo.transaction():
        for update in updates:
            updated.append(
                repo.update(
                    "tasks",
                    update.task_id,
                    {"status": update.status, "position": update.position},
                )
            )

    logger.info(f"Bulk updated {len(updated)} tasks in workspace {workspace_id}")
    return updated
