"""Contracts for the collaborators issueview talks to.

Retrieval is asynchronous; everything else is a plain attribute read plus an
``EventEmitter`` to subscribe to.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import Any, Protocol

from .events import EventEmitter
from .models import Account, ItemsResponse, Milestone, PagingOptions, ResolvedIssue


class ManagerState(Enum):
    LOADING = "loading"
    NEEDS_AUTHENTICATION = "needs_authentication"
    REPOSITORIES_LOADED = "repositories_loaded"


class ConfigurationChange:
    """Payload of a configuration change: the dotted keys that changed."""

    def __init__(self, keys: Iterable[str]):
        self.keys = frozenset(keys)

    def affects_configuration(self, section: str) -> bool:
        return any(k == section or k.startswith(section + ".") for k in self.keys)

    def __repr__(self) -> str:
        return f"ConfigurationChange({sorted(self.keys)!r})"


class IssueRetriever(Protocol):
    async def get_issues(
        self, paging: PagingOptions, query: str
    ) -> ItemsResponse[ResolvedIssue]: ...


class MilestoneRetriever(Protocol):
    async def get_milestones(
        self, paging: PagingOptions, include_no_milestone: bool
    ) -> ItemsResponse[Milestone]: ...


class CollaboratorRetriever(Protocol):
    async def get_assignable_users(self) -> Mapping[str, Sequence[Account]]: ...


class ConfigurationSource(Protocol):
    on_did_change_configuration: EventEmitter

    def get(self, namespace: str, key: str, default: Any = None) -> Any: ...


class RepositoryRef(Protocol):
    on_did_change_ref: EventEmitter

    @property
    def current_ref(self) -> str | None: ...


class RepositoryManager(Protocol):
    on_did_change_state: EventEmitter

    @property
    def state(self) -> ManagerState: ...


__all__ = [
    "CollaboratorRetriever",
    "ConfigurationChange",
    "ConfigurationSource",
    "IssueRetriever",
    "ManagerState",
    "MilestoneRetriever",
    "RepositoryManager",
    "RepositoryRef",
]
