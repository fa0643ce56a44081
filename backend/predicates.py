"""
Query predicate algebra for the document repository.

Predicates are plain values, independent of any database library, so route
handlers and core components describe *what* they want (equality, ranges,
set membership, ordering, limits) and each repository backend decides how
to execute it.

Example:
    >>> predicates = [
    ...     Query.equal("workspace_id", workspace_id),
    ...     Query.equal("status", TaskStatus.TODO),
    ...     Query.order_desc("position"),
    ...     Query.limit(1),
    ... ]
    >>> repo.list("tasks", predicates)
"""

import enum
from dataclasses import dataclass
from typing import Any, Iterable, List, Sequence


class Operator(str, enum.Enum):
    EQUAL = "equal"
    NOT_EQUAL = "notEqual"
    LESS_THAN = "lessThan"
    LESS_THAN_EQUAL = "lessThanEqual"
    GREATER_THAN_EQUAL = "greaterThanEqual"
    CONTAINS = "contains"
    SEARCH = "search"
    ORDER_ASC = "orderAsc"
    ORDER_DESC = "orderDesc"
    LIMIT = "limit"
    OFFSET = "offset"


# Operators that filter rows; the rest shape the result set
FILTER_OPERATORS = frozenset({
    Operator.EQUAL,
    Operator.NOT_EQUAL,
    Operator.LESS_THAN,
    Operator.LESS_THAN_EQUAL,
    Operator.GREATER_THAN_EQUAL,
    Operator.CONTAINS,
    Operator.SEARCH,
})


@dataclass(frozen=True)
class Predicate:
    operator: Operator
    field: str = ""
    value: Any = None

    @property
    def is_filter(self) -> bool:
        return self.operator in FILTER_OPERATORS


class Query:
    """Constructors for predicates."""

    @staticmethod
    def equal(field: str, value: Any) -> Predicate:
        return Predicate(Operator.EQUAL, field, value)

    @staticmethod
    def not_equal(field: str, value: Any) -> Predicate:
        return Predicate(Operator.NOT_EQUAL, field, value)

    @staticmethod
    def less_than(field: str, value: Any) -> Predicate:
        return Predicate(Operator.LESS_THAN, field, value)

    @staticmethod
    def less_than_equal(field: str, value: Any) -> Predicate:
        return Predicate(Operator.LESS_THAN_EQUAL, field, value)

    @staticmethod
    def greater_than_equal(field: str, value: Any) -> Predicate:
        return Predicate(Operator.GREATER_THAN_EQUAL, field, value)

    @staticmethod
    def contains(field: str, values: Iterable[Any]) -> Predicate:
        """Set membership: the field equals any of ``values``."""
        return Predicate(Operator.CONTAINS, field, tuple(values))

    @staticmethod
    def search(field: str, text: str) -> Predicate:
        """Case-insensitive substring match."""
        return Predicate(Operator.SEARCH, field, text)

    @staticmethod
    def order_asc(field: str) -> Predicate:
        return Predicate(Operator.ORDER_ASC, field)

    @staticmethod
    def order_desc(field: str) -> Predicate:
        return Predicate(Operator.ORDER_DESC, field)

    @staticmethod
    def limit(count: int) -> Predicate:
        if count < 0:
            raise ValueError(f"limit must be non-negative, got {count}")
        return Predicate(Operator.LIMIT, value=count)

    @staticmethod
    def offset(count: int) -> Predicate:
        if count < 0:
            raise ValueError(f"offset must be non-negative, got {count}")
        return Predicate(Operator.OFFSET, value=count)


def filters_only(predicates: Sequence[Predicate]) -> List[Predicate]:
    """Drop ordering and pagination predicates (used for counting)."""
    return [p for p in predicates if p.is_filter]
