"""
Position allocation for Kanban lanes.

A lane is the set of tasks sharing a workspace and a status, ordered by
``position``. Positions are sparse integers: new tasks go
``POSITION_STEP`` after the current highest position, which leaves room for
manual reordering between neighbours without renumbering the lane.

Note: allocation reads the current maximum and the caller writes the new
task later, without a lock. Two concurrent creations in the same lane can
receive the same position; ordering is advisory, so this is accepted.

Allocation is also unbounded: once a bulk reorder has put a task at
``MAX_POSITION``, the next task appended to that lane lands above it, and a
later bulk update that sends that position back is rejected by
``is_valid_position``. Clients renumber the lane to recover.
"""

import logging

from models import TaskStatus
from predicates import Query
from repository import DocumentRepository

logger = logging.getLogger(__name__)

POSITION_STEP = 1000
MIN_POSITION = 1000
MAX_POSITION = 1_000_000


def next_position(repo: DocumentRepository, workspace_id: str, status: TaskStatus) -> int:
    """
    Compute the position for a task appended to a lane.

    Args:
        repo: Document repository
        workspace_id: Workspace of the lane
        status: Status of the lane

    Returns:
        Highest position in the lane + POSITION_STEP, or MIN_POSITION for an empty lane
    """
    highest = repo.list(
        "tasks",
        [
            Query.equal("workspace_id", workspace_id),
            Query.equal("status", status),
            Query.order_desc("position"),
            Query.limit(1),
        ],
    )
    if not highest:
        logger.debug(f"Lane {workspace_id}/{status.value} is empty, starting at {MIN_POSITION}")
        return MIN_POSITION

    position = highest[0].position + POSITION_STEP
    logger.debug(f"Next position in lane {workspace_id}/{status.value}: {position}")
    return position


def is_valid_position(position) -> bool:
    """Positions set by clients must be integers within [MIN_POSITION, MAX_POSITION]."""
    # bool is an int subclass; True/False are never positions
    if isinstance(position, bool) or not isinstance(position, int):
        return False
    return MIN_POSITION <= position <= MAX_POSITION
