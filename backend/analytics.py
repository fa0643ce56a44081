"""
Month-over-month task analytics.

For each metric the engine counts tasks created in the current calendar
month and in the previous one, then reports the current count together with
the difference between the two. The ten underlying counts (5 metrics x 2
windows) are independent read-only queries; they run concurrently on a
thread pool, each with its own database session, and all of them are
awaited before any difference is computed.

Windowing is by creation date, while "overdue" compares the due date with
``now`` at call time. A task created last month that is overdue today
therefore counts as overdue in last month's window, not this month's.
"""

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from config import ANALYTICS_MAX_WORKERS, QUERY_TIMEOUT_SECONDS
from errors import ServiceUnavailableError
from models import TaskStatus
from predicates import Predicate, Query
from repository import repository_scope
from time_utils import ensure_utc, month_window, subtract_month, utc_now

logger = logging.getLogger(__name__)

METRICS = (
    "task_count",
    "assigned_task_count",
    "incomplete_task_count",
    "completed_task_count",
    "overdue_task_count",
)


@dataclass(frozen=True)
class MetricDelta:
    count: int
    difference: int


@dataclass(frozen=True)
class AnalyticsSnapshot:
    task_count: MetricDelta
    assigned_task_count: MetricDelta
    incomplete_task_count: MetricDelta
    completed_task_count: MetricDelta
    overdue_task_count: MetricDelta


def metric_predicates(member_id: str, now: datetime) -> Dict[str, List[Predicate]]:
    """Predicate that selects each metric's tasks, before windowing."""
    return {
        "task_count": [],
        "assigned_task_count": [Query.equal("assignee_id", member_id)],
        "incomplete_task_count": [Query.not_equal("status", TaskStatus.DONE)],
        "completed_task_count": [Query.equal("status", TaskStatus.DONE)],
        "overdue_task_count": [
            Query.not_equal("status", TaskStatus.DONE),
            Query.less_than("due_date", now),
        ],
    }


def analytics_windows(now: datetime) -> Dict[str, Tuple[datetime, datetime]]:
    """Inclusive creation-date windows for this month and last month."""
    return {
        "this_month": month_window(now),
        "last_month": month_window(subtract_month(now)),
    }


def _count_tasks(session_factory: Callable[[], Session], predicates: Sequence[Predicate]) -> int:
    with repository_scope(session_factory) as repo:
        return repo.count("tasks", predicates)


def compute_analytics(
    session_factory: Callable[[], Session],
    workspace_id: str,
    member_id: str,
    now: Optional[datetime] = None,
    scope: Sequence[Predicate] = (),
    max_workers: int = ANALYTICS_MAX_WORKERS,
    timeout: float = QUERY_TIMEOUT_SECONDS,
) -> AnalyticsSnapshot:
    """
    Compute the analytics snapshot of a workspace.

    Args:
        session_factory: Opens one session per concurrent count
        workspace_id: Workspace to aggregate
        member_id: Caller's member id (for the "assigned to me" metric)
        now: Reference instant (defaults to the current UTC time)
        scope: Extra predicates narrowing every count (e.g. one project)
        max_workers: Thread pool size
        timeout: Seconds to wait for all counts

    Returns:
        AnalyticsSnapshot with {count, difference} per metric

    Raises:
        ServiceUnavailableError: the counts did not finish within ``timeout``
    """
    now = ensure_utc(now or utc_now())
    windows = analytics_windows(now)
    logger.debug(
        f"Computing analytics for workspace {workspace_id} (member {member_id}) "
        f"at {now.isoformat()}, scope={list(scope)}"
    )

    pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="analytics")
    try:
        futures = {}
        for metric, predicates in metric_predicates(member_id, now).items():
            for window, (start, end) in windows.items():
                query = [
                    Query.equal("workspace_id", workspace_id),
                    *scope,
                    *predicates,
                    Query.greater_than_equal("created_at", start),
                    Query.less_than_equal("created_at", end),
                ]
                futures[(metric, window)] = pool.submit(_count_tasks, session_factory, query)

        done, not_done = wait(futures.values(), timeout=timeout, return_when=FIRST_EXCEPTION)
        for future in done:
            error = future.exception()
            if error is not None:
                logger.error(f"Analytics count failed for workspace {workspace_id}: {error}")
                raise error
        if not_done:
            logger.warning(
                f"Analytics for workspace {workspace_id} timed out after {timeout}s "
                f"({len(not_done)} of {len(futures)} counts pending)"
            )
            raise ServiceUnavailableError("Analytics query timed out, please retry")

        counts = {key: future.result() for key, future in futures.items()}
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    deltas = {}
    for metric in METRICS:
        current = counts[(metric, "this_month")]
        previous = counts[(metric, "last_month")]
        deltas[metric] = MetricDelta(count=current, difference=current - previous)

    logger.info(
        f"Analytics computed for workspace {workspace_id}: "
        + ", ".join(f"{name}={delta.count}({delta.difference:+d})" for name, delta in deltas.items())
    )
    return AnalyticsSnapshot(**deltas)
