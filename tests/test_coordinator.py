from __future__ import annotations

import asyncio

import pytest
from fakes import FakeRef, FakeRetriever, issue, make_coordinator, milestone

from issueview.config import ConfigurationStore
from issueview.coordinator import CoordinatorState
from issueview.errors import NotInitializedError
from issueview.interfaces import ManagerState
from issueview.models import Account
from issueview.repository import RepositoryStateManager
from issueview.views import ByIssue, ByMilestone, CellState


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_initialize_when_repositories_loaded():
    coordinator, retriever, _, _, _ = make_coordinator()
    changes: list[int] = []
    coordinator.on_did_change_issue_data.subscribe(lambda: changes.append(1))

    await coordinator.initialize()

    assert coordinator.state is CoordinatorState.READY
    assert coordinator.last_ref == "abc123"
    assert coordinator.users.lookup("octocat") == Account(login="octocat", name="Mona")
    data = coordinator.issue_data
    assert isinstance(data, ByMilestone)
    assert data.milestones.state is CellState.READY
    assert [m.title for m in await data.milestones.result()] == ["v1"]
    assert retriever.milestone_calls == [True]
    assert changes == [1]


@pytest.mark.asyncio
async def test_initialize_waits_for_repositories_loaded():
    manager = RepositoryStateManager(ManagerState.LOADING)
    coordinator, retriever, _, _, _ = make_coordinator(manager=manager)

    task = asyncio.ensure_future(coordinator.initialize())
    await _settle()
    assert coordinator.state is CoordinatorState.INITIALIZING
    assert retriever.user_calls == 0

    manager.set_state(ManagerState.NEEDS_AUTHENTICATION)
    await _settle()
    assert retriever.user_calls == 0

    manager.set_state(ManagerState.REPOSITORIES_LOADED)
    await task
    assert coordinator.state is CoordinatorState.READY
    assert retriever.user_calls == 1
    # The one-shot state listener is gone
    assert len(manager.on_did_change_state) == 0


@pytest.mark.asyncio
async def test_initialize_runs_once():
    coordinator, retriever, _, _, _ = make_coordinator()
    await asyncio.gather(coordinator.initialize(), coordinator.initialize())
    await coordinator.initialize()
    assert retriever.user_calls == 1
    assert retriever.milestone_calls == [True]


def test_operations_before_ready_are_rejected():
    coordinator, _, _, _, _ = make_coordinator()
    assert coordinator.state is CoordinatorState.UNINITIALIZED
    with pytest.raises(NotInitializedError):
        _ = coordinator.issue_data
    with pytest.raises(NotInitializedError):
        coordinator.refresh_cache_needed()


@pytest.mark.asyncio
async def test_initialize_with_configured_query_uses_issue_view():
    store = ConfigurationStore({"issues": {"customQuery": "is:open"}})
    retriever = FakeRetriever(issues=[issue(5)])
    coordinator, _, _, _, _ = make_coordinator(retriever, store=store)
    await coordinator.initialize()
    data = coordinator.issue_data
    assert isinstance(data, ByIssue)
    assert await data.issues.result() == [issue(5)]
    assert retriever.milestone_calls == []


@pytest.mark.asyncio
async def test_failed_fetch_does_not_fail_initialize():
    retriever = FakeRetriever()
    retriever.error = ConnectionError("connection reset by peer")
    coordinator, _, _, _, _ = make_coordinator(retriever)
    await coordinator.initialize()
    data = coordinator.issue_data
    assert isinstance(data, ByMilestone)
    assert data.milestones.state is CellState.FAILED
    with pytest.raises(ConnectionError):
        await data.milestones.result()


@pytest.mark.asyncio
async def test_refresh_cache_needed_triggers_refetch():
    coordinator, retriever, _, _, _ = make_coordinator()
    await coordinator.initialize()
    fired: list[int] = []
    coordinator.on_refresh_cache_needed.subscribe(lambda: fired.append(1))

    coordinator.refresh_cache_needed()
    await _settle()

    assert fired == [1]
    assert retriever.milestone_calls == [True, True]


@pytest.mark.asyncio
async def test_query_change_switches_to_issue_view():
    retriever = FakeRetriever(issues=[issue(9)], milestones=[milestone("v1")])
    coordinator, _, store, _, _ = make_coordinator(retriever)
    await coordinator.initialize()
    changes: list[int] = []
    coordinator.on_did_change_issue_data.subscribe(lambda: changes.append(1))

    store.update("issues", "customQuery", "label:bug")

    data = coordinator.issue_data
    assert isinstance(data, ByIssue)
    assert await data.issues.result() == [issue(9)]
    await _settle()
    assert retriever.issue_calls == ["label:bug"]
    assert coordinator.query == "label:bug"
    assert changes == [1]

    store.update("issues", "customQuery", None)
    data = coordinator.issue_data
    assert isinstance(data, ByMilestone)
    await data.milestones.wait()
    assert len(retriever.milestone_calls) == 2


@pytest.mark.asyncio
async def test_unrelated_configuration_change_is_ignored():
    coordinator, retriever, store, _, _ = make_coordinator()
    await coordinator.initialize()
    store.update("issues", "ignoreMilestones", ["v0"])
    store.update("logging", "level", "DEBUG")
    await _settle()
    assert retriever.milestone_calls == [True]


@pytest.mark.asyncio
async def test_ref_change_dedup():
    coordinator, retriever, _, ref, _ = make_coordinator()
    await coordinator.initialize()

    ref.move("abc123")  # same as the ref recorded at initialization
    await _settle()
    assert len(retriever.milestone_calls) == 1

    ref.move("def456")
    ref.move("def456")
    await _settle()
    assert len(retriever.milestone_calls) == 2
    assert coordinator.last_ref == "def456"


@pytest.mark.asyncio
async def test_dispose_stops_listening():
    coordinator, retriever, store, ref, _ = make_coordinator(ref=FakeRef("a"))
    await coordinator.initialize()
    coordinator.dispose()
    ref.move("b")
    store.update("issues", "customQuery", "is:open")
    await _settle()
    assert retriever.milestone_calls == [True]
    assert retriever.issue_calls == []


@pytest.mark.asyncio
async def test_resolved_issue_cache_is_owned_per_coordinator():
    first, _, _, _, _ = make_coordinator()
    second, _, _, _, _ = make_coordinator()
    first.resolved_issues.set("acme/widgets#1", issue(1))
    assert first.resolved_issues.get("acme/widgets#1") == issue(1)
    assert second.resolved_issues.get("acme/widgets#1") is None
    assert first.resolved_issues.capacity == 50


@pytest.mark.asyncio
async def test_refreshed_view_is_readable_as_soon_as_the_fetch_finishes():
    retriever = FakeRetriever(milestones=[milestone("v1", due="2024-09-01")])
    coordinator, _, _, _, _ = make_coordinator(retriever)
    await coordinator.initialize()
    retriever.immediate = True
    retriever.milestone_batches = [[milestone("v2", due="2024-10-01")]]

    coordinator.refresh_cache_needed()
    await asyncio.sleep(0)

    data = coordinator.issue_data
    assert isinstance(data, ByMilestone)
    assert [m.title for m in await data.milestones.result()] == ["v2"]


@pytest.mark.asyncio
async def test_refresh_failure_is_raised_as_soon_as_the_fetch_finishes():
    coordinator, retriever, _, _, _ = make_coordinator()
    await coordinator.initialize()
    retriever.immediate = True
    retriever.error = ConnectionError("connection reset by peer")

    coordinator.refresh_cache_needed()
    await asyncio.sleep(0)

    data = coordinator.issue_data
    assert isinstance(data, ByMilestone)
    with pytest.raises(ConnectionError):
        await data.milestones.result()
