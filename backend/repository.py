"""
Document repository: the persistence interface used by every component.

Collections are addressed by name ("tasks", "members", ...) and documents by
their opaque id. Filtering, ordering and pagination are expressed with the
predicate algebra from ``predicates.py``, so the core logic (membership
guard, position allocator, bulk reorder, analytics, cascade delete) never
touches SQLAlchemy directly and can be exercised against any backend that
implements the same contract.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import String, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from errors import NotFoundError
from predicates import Operator, Predicate, filters_only

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "users": models.User,
    "workspaces": models.Workspace,
    "members": models.Member,
    "projects": models.Project,
    "tasks": models.Task,
    "comments": models.Comment,
}

# Human-readable names for NotFound messages
DOCUMENT_NAMES = {
    "users": "User",
    "workspaces": "Workspace",
    "members": "Member",
    "projects": "Project",
    "tasks": "Task",
    "comments": "Comment",
}


class DocumentRepository(ABC):
    """Create/get/list/update/delete documents by collection and id."""

    @abstractmethod
    def find(self, collection: str, doc_id: str) -> Optional[Any]:
        """Return the document or None."""

    def get(self, collection: str, doc_id: str) -> Any:
        """Return the document or raise NotFoundError."""
        document = self.find(collection, doc_id)
        if document is None:
            name = DOCUMENT_NAMES.get(collection, "Document")
            logger.info(f"{name} {doc_id} not found")
            raise NotFoundError(f"{name} not found")
        return document

    @abstractmethod
    def list(self, collection: str, predicates: Sequence[Predicate] = ()) -> List[Any]:
        """Return documents matching every predicate."""

    @abstractmethod
    def count(self, collection: str, predicates: Sequence[Predicate] = ()) -> int:
        """Count documents matching the filter predicates (ordering and limits are ignored)."""

    @abstractmethod
    def create(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> Any:
        """Create a document; the id is generated when not supplied."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> Any:
        """Apply a partial update and return the updated document."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document by id (NotFoundError if it does not exist)."""

    @abstractmethod
    def transaction(self) -> ContextManager["DocumentRepository"]:
        """Group writes so they are applied all-or-nothing."""

    def release(self) -> None:
        """Give back any connection held between operations."""


class SqlAlchemyRepository(DocumentRepository):
    """
    DocumentRepository backed by a SQLAlchemy session.

    Outside ``transaction()`` every write commits immediately. Inside it,
    writes are only flushed; the outermost block commits on success and
    rolls back on any exception.
    """

    def __init__(self, db: Session):
        self.db = db
        self._transaction_depth = 0

    # ============== Helpers ==============

    @staticmethod
    def _model(collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _column(model, field: str):
        if field not in model.__mapper__.columns:
            raise ValueError(f"Unknown field '{field}' for {model.__tablename__}")
        return getattr(model, field)

    def _apply(self, query, model, predicates: Sequence[Predicate]):
        limit = None
        offset = None
        for predicate in predicates:
            op = predicate.operator
            if op == Operator.LIMIT:
                limit = predicate.value
                continue
            if op == Operator.OFFSET:
                offset = predicate.value
                continue

            column = self._column(model, predicate.field)
            if op == Operator.EQUAL:
                query = query.filter(column.is_(None) if predicate.value is None else column == predicate.value)
            elif op == Operator.NOT_EQUAL:
                query = query.filter(column.isnot(None) if predicate.value is None else column != predicate.value)
            elif op == Operator.LESS_THAN:
                query = query.filter(column < predicate.value)
            elif op == Operator.LESS_THAN_EQUAL:
                query = query.filter(column <= predicate.value)
            elif op == Operator.GREATER_THAN_EQUAL:
                query = query.filter(column >= predicate.value)
            elif op == Operator.CONTAINS:
                query = query.filter(column.in_(list(predicate.value)))
            elif op == Operator.SEARCH:
                query = query.filter(
                    func.lower(column, type_=String).contains(str(predicate.value).lower(), autoescape=True)
                )
            elif op == Operator.ORDER_ASC:
                query = query.order_by(column.asc())
            elif op == Operator.ORDER_DESC:
                query = query.order_by(column.desc())
            else:
                raise ValueError(f"Unsupported operator: {op}")

        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query

    def _commit(self) -> None:
        if self._transaction_depth > 0:
            self.db.flush()
            return
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def release(self) -> None:
        # Ending the read transaction returns the connection to the pool
        if self._transaction_depth == 0 and self.db.in_transaction():
            self.db.commit()

    # ============== Reads ==============

    def find(self, collection: str, doc_id: str) -> Optional[Any]:
        if not doc_id:
            return None
        return self.db.get(self._model(collection), doc_id)

    def list(self, collection: str, predicates: Sequence[Predicate] = ()) -> List[Any]:
        model = self._model(collection)
        query = self._apply(self.db.query(model), model, predicates)
        return query.all()

    def count(self, collection: str, predicates: Sequence[Predicate] = ()) -> int:
        model = self._model(collection)
        query = self._apply(self.db.query(model), model, filters_only(predicates))
        return query.count()

    # ============== Writes ==============

    def create(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> Any:
        model = self._model(collection)
        for field in fields:
            self._column(model, field)
        document = model(**fields)
        if doc_id is not None:
            document.id = doc_id
        self.db.add(document)
        self._commit()
        logger.debug(f"Created {collection} document {document.id}")
        return document

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> Any:
        model = self._model(collection)
        document = self.get(collection, doc_id)
        for field, value in fields.items():
            self._column(model, field)
            setattr(document, field, value)
        self._commit()
        logger.debug(f"Updated {collection} document {doc_id}: {sorted(fields)}")
        return document

    def delete(self, collection: str, doc_id: str) -> None:
        document = self.get(collection, doc_id)
        self.db.delete(document)
        self._commit()
        logger.debug(f"Deleted {collection} document {doc_id}")

    @contextmanager
    def transaction(self) -> Iterator["SqlAlchemyRepository"]:
        self._transaction_depth += 1
        try:
            yield self
        except Exception:
            self._transaction_depth -= 1
            if self._transaction_depth == 0:
                logger.info("Rolling back transaction")
                self.db.rollback()
            raise
        self._transaction_depth -= 1
        if self._transaction_depth == 0:
            self._commit()


@contextmanager
def repository_scope(session_factory: Callable[[], Session]) -> Iterator[SqlAlchemyRepository]:
    """Yield a repository on a fresh session, closing the session afterwards."""
    db = session_factory()
    try:
        yield SqlAlchemyRepository(db)
    finally:
        db.close()
