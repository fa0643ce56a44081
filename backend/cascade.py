"""
Cascade delete for documents linked by foreign key.

Children are declared explicitly instead of relying on database-level
ON DELETE rules, so the same behaviour holds on backends that do not
enforce foreign keys (SQLite without PRAGMA foreign_keys).
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from predicates import Predicate, Query
from repository import DocumentRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChildRelation:
    """Documents in ``collection`` whose ``foreign_key`` holds a parent id."""

    collection: str
    foreign_key: str
    children: Tuple["ChildRelation", ...] = ()


def _delete_children(repo: DocumentRepository, parent_id: str, relations: Sequence[ChildRelation]) -> int:
    deleted = 0
    for relation in relations:
        documents = repo.list(relation.collection, [Query.equal(relation.foreign_key, parent_id)])
        for document in documents:
            # Grandchildren before their parent
            deleted += _delete_children(repo, document.id, relation.children)
            repo.delete(relation.collection, document.id)
            deleted += 1
    return deleted


def cascade_delete(
    repo: DocumentRepository,
    collection: str,
    predicates: Sequence[Predicate],
    children: Sequence[ChildRelation] = (),
) -> List[str]:
    """
    Delete the documents matching ``predicates`` together with their children.

    Children are deleted before their roots, all inside one transaction,
    so concurrent readers never see orphans and a failure deletes nothing.

    Args:
        repo: Document repository
        collection: Root collection
        predicates: Selects the root documents
        children: Child relations to delete with each root

    Returns:
        IDs of the deleted root documents

    Example:
        >>> cascade_delete(
        ...     repo, "tasks", [Query.equal("id", task_id)],
        ...     [ChildRelation("comments", "task_id")],
        ... )
    """
    roots = repo.list(collection, predicates)
    deleted_ids = []
    child_count = 0

    with repo.transaction():
        for root in roots:
            child_count += _delete_children(repo, root.id, children)
            repo.delete(collection, root.id)
            deleted_ids.append(root.id)

    logger.info(
        f"Cascade deleted {len(deleted_ids)} {collection} document(s) "
        f"and {child_count} child document(s)"
    )
    return deleted_ids


TASK_CHILDREN = (ChildRelation("comments", "task_id"),)

PROJECT_CHILDREN = (ChildRelation("tasks", "project_id", children=TASK_CHILDREN),)

WORKSPACE_CHILDREN = (
    ChildRelation("comments", "workspace_id"),
    ChildRelation("tasks", "workspace_id"),
    ChildRelation("projects", "workspace_id"),
    ChildRelation("members", "workspace_id"),
)
