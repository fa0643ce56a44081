"""
Task and comment endpoints.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query as QueryParam
from sqlalchemy.exc import SQLAlchemyError

import models
import schemas
from auth.dependencies import get_current_user
from auth.permissions import has_role, require_member
from bulk_reorder import PositionUpdate, bulk_update_tasks
from cascade import TASK_CHILDREN, cascade_delete
from errors import UnauthorizedError, ValidationError
from notifications import EmailNotifier, build_assignee_email, get_notifier
from positions import next_position
from predicates import Query
from repository import DocumentRepository
from routers.dependencies import get_repository
from time_utils import day_window, ensure_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

MAX_PAGE_SIZE = 500
DEFAULT_PAGE_SIZE = 100


def _by_id(repo: DocumentRepository, collection: str, ids: Iterable[Optional[str]]) -> Dict[str, object]:
    """Fetch documents for a join with a single contains query."""
    unique_ids = sorted({doc_id for doc_id in ids if doc_id})
    if not unique_ids:
        return {}
    return {doc.id: doc for doc in repo.list(collection, [Query.contains("id", unique_ids)])}


def _task_document(task: models.Task, project=None, assignee=None) -> schemas.TaskDocument:
    return schemas.TaskDocument(
        **schemas.Task.model_validate(task).model_dump(exclude={"is_overdue"}),
        project=schemas.Project.model_validate(project) if project is not None else None,
        assignee=schemas.Member.model_validate(assignee) if assignee is not None else None,
    )


def _populate(repo: DocumentRepository, tasks) -> List[schemas.TaskDocument]:
    """Join tasks with their projects and assignees."""
    projects = _by_id(repo, "projects", (task.project_id for task in tasks))
    members = _by_id(repo, "members", (task.assignee_id for task in tasks))
    # Loads the users into the session so member.name/email need no extra queries
    _by_id(repo, "users", (member.user_id for member in members.values()))
    return [
        _task_document(task, projects.get(task.project_id), members.get(task.assignee_id))
        for task in tasks
    ]


def _check_references(
    repo: DocumentRepository,
    workspace_id: str,
    project_id: Optional[str],
    assignee_id: Optional[str],
) -> None:
    """The project and the assignee must both live in the task's workspace."""
    if project_id is not None:
        project = repo.get("projects", project_id)
        if project.workspace_id != workspace_id:
            logger.info(f"Project {project_id} is not in workspace {workspace_id}")
            raise ValidationError("Project does not belong to this workspace")
    if assignee_id is not None:
        assignee = repo.get("members", assignee_id)
        if assignee.workspace_id != workspace_id:
            logger.info(f"Member {assignee_id} is not in workspace {workspace_id}")
            raise ValidationError("Assignee is not a member of this workspace")


def _notify_assignee(
    background_tasks: BackgroundTasks,
    notifier: EmailNotifier,
    repo: DocumentRepository,
    task: models.Task,
    subject: str,
    first_paragraph: str,
) -> None:
    """Queue an email to the task's assignee; never fails the request."""
    try:
        email = build_assignee_email(repo, task.assignee_id, task, subject, first_paragraph)
    except SQLAlchemyError as e:
        logger.warning(f"Could not resolve assignee of task {task.id} for notification: {e}")
        return
    if email is not None:
        background_tasks.add_task(notifier.send, email)


@router.get("", response_model=schemas.DataResponse[schemas.DocumentList[schemas.TaskDocument]])
def list_tasks(
    workspace_id: str = QueryParam(..., alias="workspaceId"),
    project_id: Optional[str] = QueryParam(None, alias="projectId"),
    assignee_id: Optional[str] = QueryParam(None, alias="assigneeId"),
    status: Optional[models.TaskStatus] = QueryParam(None),
    priority: Optional[models.TaskPriority] = QueryParam(None),
    due_date: Optional[datetime] = QueryParam(None, alias="dueDate"),
    search: Optional[str] = QueryParam(None, max_length=255),
    limit: int = QueryParam(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = QueryParam(0, ge=0),
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """List the tasks of a workspace, newest first, with optional filters."""
    logger.debug(f"User {current_user.id} listing tasks of workspace {workspace_id}")
    require_member(repo, workspace_id, current_user.id)

    filters = [Query.equal("workspace_id", workspace_id)]
    if project_id:
        filters.append(Query.equal("project_id", project_id))
    if assignee_id:
        filters.append(Query.equal("assignee_id", assignee_id))
    if status:
        filters.append(Query.equal("status", status))
    if priority:
        filters.append(Query.equal("priority", priority))
    if due_date:
        start, end = day_window(ensure_utc(due_date).date())
        filters.append(Query.greater_than_equal("due_date", start))
        filters.append(Query.less_than("due_date", end))
    if search and search.strip():
        filters.append(Query.search("name", search.strip()))

    total = repo.count("tasks", filters)
    tasks = repo.list(
        "tasks",
        filters + [Query.order_desc("created_at"), Query.limit(limit), Query.offset(offset)],
    )
    logger.debug(f"Found {total} tasks in workspace {workspace_id}, returning {len(tasks)}")
    return schemas.DataResponse(data=schemas.DocumentList(total=total, documents=_populate(repo, tasks)))


@router.post("", response_model=schemas.DataResponse[schemas.Task])
def create_task(
    task: schemas.TaskCreate,
    background_tasks: BackgroundTasks,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Create a task at the bottom of its status lane."""
    logger.info(f"User {current_user.id} creating task '{task.name}' in workspace {task.workspace_id}")
    require_member(repo, task.workspace_id, current_user.id)
    _check_references(repo, task.workspace_id, task.project_id, task.assignee_id)

    position = next_position(repo, task.workspace_id, task.status)
    db_task = repo.create("tasks", {**task.model_dump(), "position": position})

    _notify_assignee(
        background_tasks, notifier, repo, db_task,
        subject="New task assigned",
        first_paragraph="You have a new task assigned to you: ",
    )
    logger.info(f"Task created successfully: id={db_task.id} position={position}")
    return schemas.DataResponse(data=schemas.Task.model_validate(db_task))


@router.post("/bulk-update", response_model=schemas.DataResponse[List[schemas.Task]])
def bulk_update(
    request: schemas.BulkTaskUpdate,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Move tasks between lanes and reorder them in one all-or-nothing batch."""
    updates = [PositionUpdate(item.id, item.status, item.position) for item in request.tasks]
    tasks = bulk_update_tasks(repo, current_user.id, updates)
    return schemas.DataResponse(data=[schemas.Task.model_validate(task) for task in tasks])


@router.get("/{task_id}", response_model=schemas.DataResponse[schemas.TaskDetail])
def get_task(
    task_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Get a task with its project, assignee and comments (oldest first)."""
    logger.debug(f"User {current_user.id} fetching task {task_id}")
    task = repo.get("tasks", task_id)
    require_member(repo, task.workspace_id, current_user.id)

    document = _populate(repo, [task])[0]
    comments = repo.list("comments", [Query.equal("task_id", task_id), Query.order_asc("created_at")])
    detail = schemas.TaskDetail(
        **document.model_dump(exclude={"is_overdue"}),
        comments=[schemas.Comment.model_validate(comment) for comment in comments],
    )
    return schemas.DataResponse(data=detail)


@router.patch("/{task_id}", response_model=schemas.DataResponse[schemas.Task])
def update_task(
    task_id: str,
    task_update: schemas.TaskUpdate,
    background_tasks: BackgroundTasks,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Partially update a task. The workspace of a task cannot change."""
    existing = repo.get("tasks", task_id)
    require_member(repo, existing.workspace_id, current_user.id)

    changes = task_update.model_dump(exclude_unset=True)
    logger.info(f"User {current_user.id} updating task {task_id}: fields={sorted(changes)}")
    _check_references(repo, existing.workspace_id, changes.get("project_id"), changes.get("assignee_id"))

    db_task = repo.update("tasks", task_id, changes)

    _notify_assignee(
        background_tasks, notifier, repo, db_task,
        subject="Task updated",
        first_paragraph="The task has been updated: ",
    )
    logger.info(f"Task {task_id} updated successfully")
    return schemas.DataResponse(data=schemas.Task.model_validate(db_task))


@router.delete("/{task_id}", response_model=schemas.DataResponse[schemas.DeletedDocument])
def delete_task(
    task_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Delete a task and its comments."""
    task = repo.get("tasks", task_id)
    require_member(repo, task.workspace_id, current_user.id)

    logger.info(f"User {current_user.id} deleting task {task_id}")
    cascade_delete(repo, "tasks", [Query.equal("id", task_id)], TASK_CHILDREN)
    return schemas.DataResponse(data=schemas.DeletedDocument(id=task_id))


# ============== Comments ==============

@router.post("/{task_id}/comments", response_model=schemas.DataResponse[schemas.Comment])
def create_comment(
    task_id: str,
    comment: schemas.CommentCreate,
    background_tasks: BackgroundTasks,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Add a comment to a task and notify its assignee."""
    task = repo.get("tasks", task_id)
    require_member(repo, task.workspace_id, current_user.id)

    db_comment = repo.create(
        "comments",
        {
            "workspace_id": task.workspace_id,
            "task_id": task_id,
            "user_id": current_user.id,
            "user_name": current_user.name or current_user.email,
            "text": comment.text,
        },
    )

    _notify_assignee(
        background_tasks, notifier, repo, task,
        subject="New comment on your task",
        first_paragraph="A new comment has been added to your task: ",
    )
    logger.info(f"User {current_user.id} commented on task {task_id}: comment={db_comment.id}")
    return schemas.DataResponse(data=schemas.Comment.model_validate(db_comment))


@router.delete("/{task_id}/comments/{comment_id}", response_model=schemas.DataResponse[schemas.DeletedDocument])
def delete_comment(
    task_id: str,
    comment_id: str,
    current_user: models.User = Depends(get_current_user),
    repo: DocumentRepository = Depends(get_repository),
):
    """Delete a comment. Only its author or a workspace admin may do so."""
    comment = repo.get("comments", comment_id)
    if comment.task_id != task_id:
        logger.info(f"Comment {comment_id} does not belong to task {task_id}")
        raise ValidationError("Comment does not belong to this task")

    member = require_member(repo, comment.workspace_id, current_user.id)
    if comment.user_id != current_user.id and not has_role(member, models.MemberRole.ADMIN):
        logger.info(f"User {current_user.id} may not delete comment {comment_id} by {comment.user_id}")
        raise UnauthorizedError()

    repo.delete("comments", comment_id)
    logger.info(f"User {current_user.id} deleted comment {comment_id}")
    return schemas.DataResponse(data=schemas.DeletedDocument(id=comment_id))
