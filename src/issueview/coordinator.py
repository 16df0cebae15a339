"""Lifecycle and refresh coordination for the issue view cache.

Typical use::

    coordinator = RefreshCoordinator(manager, retriever, retriever, retriever,
                                     configuration, repository)
    await coordinator.initialize()
    data = coordinator.issue_data
    if isinstance(data, ByMilestone):
        milestones = await data.milestones.result()

``initialize`` waits for the repository manager to report
``REPOSITORIES_LOADED``. Every other public operation requires the READY state
and raises :class:`~issueview.errors.NotInitializedError` before it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from .collaborators import CollaboratorDirectory
from .errors import NotInitializedError
from .events import DisposableStore, EventEmitter
from .interfaces import (
    CollaboratorRetriever,
    ConfigurationSource,
    IssueRetriever,
    ManagerState,
    MilestoneRetriever,
    RepositoryManager,
    RepositoryRef,
)
from .listeners import ChangeListeners
from .logging import get_logger
from .resolved_cache import DEFAULT_CAPACITY, ResolvedObjectCache
from .views import IssueData, ViewCell, ViewSelector


class CoordinatorState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class RefreshCoordinator:
    def __init__(
        self,
        manager: RepositoryManager,
        issues: IssueRetriever,
        milestones: MilestoneRetriever,
        collaborators: CollaboratorRetriever,
        configuration: ConfigurationSource,
        repository: RepositoryRef,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self._manager = manager
        self._configuration = configuration
        self._repository = repository
        self.resolved_issues = ResolvedObjectCache(DEFAULT_CAPACITY)
        self.users = CollaboratorDirectory(collaborators)
        self.on_refresh_cache_needed = EventEmitter("refresh cache needed")
        self.on_did_change_issue_data = EventEmitter("issue data changed")
        self._selector = ViewSelector(
            issues, milestones, configuration, self.on_did_change_issue_data, clock=clock
        )
        self._listeners = ChangeListeners(self, configuration, repository)
        self._disposables = DisposableStore()
        self._state = CoordinatorState.UNINITIALIZED
        self._init_task: asyncio.Task[None] | None = None
        self._last_ref: str | None = None

    # --- state ------------------------------------------------------------
    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def query(self) -> str | None:
        return self._selector.query

    @property
    def last_ref(self) -> str | None:
        return self._last_ref

    @property
    def issue_data(self) -> IssueData:
        self._require_ready("issue_data")
        return self._selector.issue_data

    # --- lifecycle --------------------------------------------------------
    async def initialize(self) -> None:
        if self._init_task is None:
            self._state = CoordinatorState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._initialize())
        task = self._init_task
        try:
            await asyncio.shield(task)
        except Exception:
            # A failed initialization may be retried by calling initialize again
            if task.done() and self._init_task is task:
                self._init_task = None
                self._state = CoordinatorState.UNINITIALIZED
            raise

    async def _initialize(self) -> None:
        await self._repositories_loaded()
        await self._do_initialize()

    async def _repositories_loaded(self) -> None:
        if self._manager.state is ManagerState.REPOSITORIES_LOADED:
            return
        loop = asyncio.get_running_loop()
        loaded: asyncio.Future[None] = loop.create_future()

        def _on_state_changed(*_: object) -> None:
            if self._manager.state is ManagerState.REPOSITORIES_LOADED and not loaded.done():
                subscription.dispose()
                loaded.set_result(None)

        subscription = self._disposables.add(
            self._manager.on_did_change_state.subscribe(_on_state_changed)
        )
        get_logger().debug("waiting for repositories", operation="initialize")
        await loaded

    async def _do_initialize(self) -> None:
        logger = get_logger()
        with logger.timed_operation("initialize"):
            self._selector.query = self._selector.read_query()
            self._last_ref = self._repository.current_ref
            await self.users.refresh()
            await self._selector.select_and_fetch().wait()
            self._listeners.attach()
            self._disposables.add(self.on_refresh_cache_needed.subscribe(self._refresh))
            self._state = CoordinatorState.READY
        logger.info(
            "issue view cache ready",
            operation="initialize",
            view="issues" if self._selector.query else "milestones",
        )

    def dispose(self) -> None:
        self._listeners.dispose()
        self._disposables.dispose()

    # --- refresh ----------------------------------------------------------
    def refresh_cache_needed(self) -> None:
        """Ask for a refresh; listeners of ``on_refresh_cache_needed`` do the work."""
        self._require_ready("refresh_cache_needed")
        self.on_refresh_cache_needed.publish()

    def set_query(self, query: str | None) -> None:
        self._selector.query = query

    def record_ref(self, ref: str | None) -> bool:
        """Remember ``ref``; return False when it equals the recorded one."""
        if ref == self._last_ref:
            return False
        self._last_ref = ref
        return True

    def _refresh(self) -> ViewCell[object]:
        get_logger().log_operation(
            "refresh",
            view="issues" if self._selector.query else "milestones",
            generation=self._selector.generation + 1,
        )
        return self._selector.select_and_fetch()

    def _require_ready(self, operation: str) -> None:
        if self._state is not CoordinatorState.READY:
            raise NotInitializedError(
                f"{operation} called while the coordinator is {self._state.value}"
            )


__all__ = ["CoordinatorState", "RefreshCoordinator"]
