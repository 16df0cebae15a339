"""issueview - invalidating view cache over GitHub issues and milestones.

High-level public API:

from issueview import RefreshCoordinator, ByIssue, ByMilestone

coordinator = RefreshCoordinator(manager, retriever, retriever, retriever,
                                 configuration, repository)
await coordinator.initialize()
data = coordinator.issue_data
if isinstance(data, ByMilestone):
    for milestone in await data.milestones.result():
        print(milestone.title)

The CLI (``issueview view`` / ``issueview users``) wires the same pieces to
the GitHub REST API.
"""

from __future__ import annotations

from .collaborators import CollaboratorDirectory
from .config import ConfigurationStore, ViewCacheConfig, load_config
from .coordinator import CoordinatorState, RefreshCoordinator
from .errors import NotInitializedError, ViewCacheError
from .events import EventEmitter, Subscription
from .milestones import sort_milestones
from .models import NO_MILESTONE, Account, Milestone, ResolvedIssue
from .resolved_cache import ResolvedObjectCache
from .views import ByIssue, ByMilestone, CellState, ViewCell

__version__ = "0.1.0"

__all__ = [
    "Account",
    "ByIssue",
    "ByMilestone",
    "CellState",
    "CollaboratorDirectory",
    "ConfigurationStore",
    "CoordinatorState",
    "EventEmitter",
    "Milestone",
    "NO_MILESTONE",
    "NotInitializedError",
    "RefreshCoordinator",
    "ResolvedIssue",
    "ResolvedObjectCache",
    "Subscription",
    "ViewCacheConfig",
    "ViewCacheError",
    "ViewCell",
    "__version__",
    "load_config",
    "sort_milestones",
]
