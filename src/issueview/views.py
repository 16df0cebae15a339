"""The two mutually exclusive views and the selector that refreshes them."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from .errors import classify_error
from .events import EventEmitter
from .interfaces import ConfigurationSource, IssueRetriever, MilestoneRetriever
from .logging import get_logger
from .milestones import EXCLUDE_FROM_DATE, sort_milestones
from .models import NO_MILESTONE, Milestone, PagingOptions, ResolvedIssue

T = TypeVar("T")

ISSUES_CONFIGURATION = "issues"
CUSTOM_QUERY_CONFIGURATION = "customQuery"
IGNORE_MILESTONES_CONFIGURATION = "ignoreMilestones"
EXCLUDE_FROM_DATE_CONFIGURATION = "excludeFromDate"


class CellState(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class ViewCell(Generic[T]):
    """A view value that is pending, ready or failed.

    Pending cells wrap an asyncio task; the cell settles itself when the task
    finishes so ``state`` and ``peek`` never need to await.
    """

    def __init__(self) -> None:
        self._state = CellState.PENDING
        self._value: T | None = None
        self._error: BaseException | None = None
        self._task: asyncio.Task[T] | None = None

    @classmethod
    def ready(cls, value: T) -> ViewCell[T]:
        cell: ViewCell[T] = cls()
        cell._state = CellState.READY
        cell._value = value
        return cell

    @classmethod
    def failed(cls, error: BaseException) -> ViewCell[T]:
        cell: ViewCell[T] = cls()
        cell._state = CellState.FAILED
        cell._error = error
        return cell

    @classmethod
    def spawn(cls, coro: Coroutine[Any, Any, T]) -> ViewCell[T]:
        """Start ``coro`` on the running loop and track its outcome."""
        cell: ViewCell[T] = cls()
        task = asyncio.ensure_future(coro)
        cell._task = task
        task.add_done_callback(cell._settle)
        return cell

    def _settle(self, task: asyncio.Task[T]) -> None:
        if self._state is not CellState.PENDING:
            return
        if task.cancelled():
            self._state = CellState.FAILED
            self._error = asyncio.CancelledError()
            return
        error = task.exception()
        if error is not None:
            self._state = CellState.FAILED
            self._error = error
            return
        self._state = CellState.READY
        self._value = task.result()

    def _sync(self) -> None:
        # The done-callback runs one loop iteration after the task finishes
        if self._task is not None and self._task.done():
            self._settle(self._task)

    @property
    def state(self) -> CellState:
        self._sync()
        return self._state

    @property
    def error(self) -> BaseException | None:
        self._sync()
        return self._error

    def peek(self) -> T | None:
        """The value if ready, else None."""
        self._sync()
        return self._value if self._state is CellState.READY else None

    async def result(self) -> T:
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        self._sync()
        if self._state is CellState.FAILED:
            assert self._error is not None
            raise self._error
        return self._value  # type: ignore[return-value]

    async def wait(self) -> None:
        """Wait until the cell settles, without raising its error."""
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        self._sync()

    def on_settled(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the cell has settled (immediately if it has)."""
        if self._task is None or self._task.done():
            self._sync()
            callback()
            return
        # Registered after _settle, so the cell is settled when this runs
        self._task.add_done_callback(lambda _task: callback())

    def __repr__(self) -> str:
        return f"ViewCell({self._state.value})"


@dataclass(frozen=True)
class ByIssue:
    issues: ViewCell[list[ResolvedIssue]]


@dataclass(frozen=True)
class ByMilestone:
    milestones: ViewCell[list[Milestone]]


IssueData = ByIssue | ByMilestone


class ViewSelector:
    """Owns the query state and the two view cells.

    ``select_and_fetch`` replaces both cells synchronously (one pending, one
    an empty ready list) and publishes ``on_did_change_issue_data`` when the
    fetch settles, unless a newer refresh has started in the meantime.
    """

    def __init__(
        self,
        issues: IssueRetriever,
        milestones: MilestoneRetriever,
        configuration: ConfigurationSource,
        on_did_change_issue_data: EventEmitter,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self._issue_retriever = issues
        self._milestone_retriever = milestones
        self._configuration = configuration
        self._on_did_change = on_did_change_issue_data
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.query: str | None = None
        self._issues: ViewCell[list[ResolvedIssue]] = ViewCell.ready([])
        self._milestones: ViewCell[list[Milestone]] = ViewCell.ready([])
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def issues(self) -> ViewCell[list[ResolvedIssue]]:
        return self._issues

    @property
    def milestones(self) -> ViewCell[list[Milestone]]:
        return self._milestones

    @property
    def issue_data(self) -> IssueData:
        if self.query:
            return ByIssue(self._issues)
        return ByMilestone(self._milestones)

    def read_query(self) -> str | None:
        value = self._configuration.get(ISSUES_CONFIGURATION, CUSTOM_QUERY_CONFIGURATION, None)
        return value or None

    def select_and_fetch(self) -> ViewCell[Any]:
        """Start a refresh of the view selected by ``query``; return its cell.

        Must be called from a running event loop.
        """
        self._generation += 1
        generation = self._generation
        cell: ViewCell[Any]
        if self.query:
            view = "issues"
            self._milestones = ViewCell.ready([])
            self._issues = cell = ViewCell.spawn(self._fetch_issues(generation, self.query))
        else:
            view = "milestones"
            self._issues = ViewCell.ready([])
            self._milestones = cell = ViewCell.spawn(self._fetch_milestones(generation))
        cell.on_settled(lambda: self._completed(view, generation))
        return cell

    async def _fetch_issues(self, generation: int, query: str) -> list[ResolvedIssue]:
        start = time.perf_counter()
        try:
            response = await self._issue_retriever.get_issues(PagingOptions(), query)
        except Exception as exc:
            self._report_failure("issues", generation, exc)
            raise
        items = list(response.items)
        get_logger().log_performance(
            "fetch_issues",
            (time.perf_counter() - start) * 1000,
            view="issues",
            generation=generation,
            count=len(items),
        )
        return items

    async def _fetch_milestones(self, generation: int) -> list[Milestone]:
        start = time.perf_counter()
        now = self._clock()
        skip = list(
            self._configuration.get(ISSUES_CONFIGURATION, IGNORE_MILESTONES_CONFIGURATION, [])
            or []
        )
        exclude = list(
            self._configuration.get(
                ISSUES_CONFIGURATION, EXCLUDE_FROM_DATE_CONFIGURATION, list(EXCLUDE_FROM_DATE)
            )
            or []
        )
        try:
            response = await self._milestone_retriever.get_milestones(
                PagingOptions(), NO_MILESTONE not in skip
            )
        except Exception as exc:
            self._report_failure("milestones", generation, exc)
            raise
        ordered = sort_milestones(
            response.items, skip_titles=skip, now=now, exclude_from_date=exclude
        )
        get_logger().log_performance(
            "fetch_milestones",
            (time.perf_counter() - start) * 1000,
            view="milestones",
            generation=generation,
            count=len(ordered),
        )
        return ordered

    def _report_failure(self, view: str, generation: int, exc: BaseException) -> None:
        info = classify_error(exc)
        get_logger().log_error(
            f"{view} refresh failed",
            error=info.message,
            category=info.category,
            transient=info.transient,
            view=view,
            generation=generation,
        )

    def _completed(self, view: str, generation: int) -> None:
        if generation != self._generation:
            get_logger().debug(
                "discarding superseded refresh",
                operation="refresh",
                view=view,
                generation=generation,
            )
            return
        self._on_did_change.publish()


__all__ = [
    "ByIssue",
    "ByMilestone",
    "CUSTOM_QUERY_CONFIGURATION",
    "CellState",
    "EXCLUDE_FROM_DATE_CONFIGURATION",
    "IGNORE_MILESTONES_CONFIGURATION",
    "ISSUES_CONFIGURATION",
    "IssueData",
    "ViewCell",
    "ViewSelector",
]
