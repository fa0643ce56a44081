"""
Tests for bulk reorder of Kanban tasks.

A batch is validated as a whole (positions, single workspace, existence,
membership) and applied all-or-nothing.
"""

import logging

import pytest
from sqlalchemy.exc import SQLAlchemyError

import models
from bulk_reorder import MAX_BATCH_SIZE, PositionUpdate, bulk_update_tasks
from errors import NotFoundError, UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)


@pytest.fixture
def other_project(test_db, user) -> models.Project:
    """Project in a second workspace also administered by ``user``."""
    workspace = models.Workspace(name="Second", user_id=user.id, invite_code="SecondCode")
    test_db.add(workspace)
    test_db.commit()
    test_db.add(models.Member(workspace_id=workspace.id, user_id=user.id, role=models.MemberRole.ADMIN))
    project = models.Project(workspace_id=workspace.id, name="Second project")
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)
    return project


def positions_of(test_db, *tasks):
    test_db.expire_all()
    return [(test_db.get(models.Task, task.id).status, test_db.get(models.Task, task.id).position) for task in tasks]


def test_bulk_update_moves_tasks(client, test_db, auth_headers, project, make_task):
    first = make_task(project, "First", position=1000)
    second = make_task(project, "Second", position=2000)

    response = client.post(
        "/api/tasks/bulk-update",
        json={
            "tasks": [
                {"$id": second.id, "status": "IN_PROGRESS", "position": 1000},
                {"$id": first.id, "status": "TODO", "position": 5000},
            ]
        },
        headers=auth_headers,
    )

    assert response.status_code == 200, response.json()
    data = response.json()["data"]
    assert [task["$id"] for task in data] == [second.id, first.id]
    assert data[0]["status"] == "IN_PROGRESS"
    assert positions_of(test_db, first, second) == [
        (models.TaskStatus.TODO, 5000),
        (models.TaskStatus.IN_PROGRESS, 1000),
    ]
    logger.info("✓ bulk update applies every (status, position) pair")


def test_cross_workspace_batch_is_rejected(client, test_db, auth_headers, project, other_project, make_task):
    mine = make_task(project, "Mine", position=1000)
    theirs = make_task(other_project, "Theirs", position=1000)

    response = client.post(
        "/api/tasks/bulk-update",
        json={
            "tasks": [
                {"$id": mine.id, "status": "DONE", "position": 3000},
                {"$id": theirs.id, "status": "DONE", "position": 3000},
            ]
        },
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json() == {"error": "All tasks must belong to the same workspace"}
    assert positions_of(test_db, mine, theirs) == [
        (models.TaskStatus.TODO, 1000),
        (models.TaskStatus.TODO, 1000),
    ]
    logger.info("✓ cross-workspace batch rejected without partial updates")


@pytest.mark.parametrize("position", [999, 1_000_001, 1500.0, 1500.5, "2000", None])
def test_invalid_position_is_rejected_before_any_update(client, test_db, auth_headers, project, make_task, position):
    first = make_task(project, "First", position=1000)
    second = make_task(project, "Second", position=2000)

    response = client.post(
        "/api/tasks/bulk-update",
        json={
            "tasks": [
                {"$id": first.id, "status": "DONE", "position": 4000},
                {"$id": second.id, "status": "DONE", "position": position},
            ]
        },
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert "error" in response.json()
    assert positions_of(test_db, first, second) == [
        (models.TaskStatus.TODO, 1000),
        (models.TaskStatus.TODO, 2000),
    ]


def test_boundary_positions_are_accepted(client, auth_headers, project, make_task):
    first = make_task(project, "First")
    second = make_task(project, "Second")

    response = client.post(
        "/api/tasks/bulk-update",
        json={
            "tasks": [
                {"$id": first.id, "status": "TODO", "position": 1000},
                {"$id": second.id, "status": "TODO", "position": 1_000_000},
            ]
        },
        headers=auth_headers,
    )
    assert response.status_code == 200, response.json()


def test_non_member_cannot_reorder(client, test_db, outsider_headers, project, make_task):
    task = make_task(project, "Task", position=1000)

    response = client.post(
        "/api/tasks/bulk-update",
        json={"tasks": [{"$id": task.id, "status": "DONE", "position": 2000}]},
        headers=outsider_headers,
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert positions_of(test_db, task) == [(models.TaskStatus.TODO, 1000)]


def test_missing_task_is_not_found(client, auth_headers, project, make_task):
    task = make_task(project, "Task")

    response = client.post(
        "/api/tasks/bulk-update",
        json={
            "tasks": [
                {"$id": task.id, "status": "DONE", "position": 2000},
                {"$id": "does-not-exist", "status": "DONE", "position": 3000},
            ]
        },
        headers=auth_headers,
    )
    assert response.status_code == 404


def test_empty_batch_is_rejected(repo, user):
    with pytest.raises(ValidationError):
        bulk_update_tasks(repo, user.id, [])


def test_duplicate_ids_are_rejected(repo, user, project, make_task):
    task = make_task(project, "Task")
    updates = [
        PositionUpdate(task.id, models.TaskStatus.TODO, 2000),
        PositionUpdate(task.id, models.TaskStatus.DONE, 3000),
    ]
    with pytest.raises(ValidationError):
        bulk_update_tasks(repo, user.id, updates)


def test_oversized_batch_is_rejected(repo, user):
    updates = [PositionUpdate(f"task-{i}", models.TaskStatus.TODO, 1000) for i in range(MAX_BATCH_SIZE + 1)]
    with pytest.raises(ValidationError):
        bulk_update_tasks(repo, user.id, updates)


def test_errors_map_to_domain_exceptions(repo, outsider, user, project, make_task):
    task = make_task(project, "Task")
    with pytest.raises(UnauthorizedError):
        bulk_update_tasks(repo, outsider.id, [PositionUpdate(task.id, models.TaskStatus.DONE, 2000)])
    with pytest.raises(NotFoundError):
        bulk_update_tasks(
            repo,
            user.id,
            [
                PositionUpdate(task.id, models.TaskStatus.DONE, 2000),
                PositionUpdate("missing", models.TaskStatus.DONE, 3000),
            ],
        )


def test_failure_mid_batch_leaves_no_task_modified(repo, test_db, user, project, make_task, monkeypatch):
    first = make_task(project, "First", position=1000)
    second = make_task(project, "Second", position=2000)

    original_update = repo.update
    calls = []

    def flaky_update(collection, doc_id, fields):
        calls.append(doc_id)
        if len(calls) == 2:
            raise SQLAlchemyError("connection lost")
        return original_update(collection, doc_id, fields)

    monkeypatch.setattr(repo, "update", flaky_update)

    with pytest.raises(SQLAlchemyError):
        bulk_update_tasks(
            repo,
            user.id,
            [
                PositionUpdate(first.id, models.TaskStatus.DONE, 7000),
                PositionUpdate(second.id, models.TaskStatus.DONE, 8000),
            ],
        )

    assert positions_of(test_db, first, second) == [
        (models.TaskStatus.TODO, 1000),
        (models.TaskStatus.TODO, 2000),
    ]
    logger.info("✓ bulk update is all-or-nothing")
