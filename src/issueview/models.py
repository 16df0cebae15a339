from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Title of the synthetic bucket holding issues that have no milestone
NO_MILESTONE = "No Milestone"


@dataclass(frozen=True)
class Account:
    """A collaborator that can be assigned issues, keyed by ``login``."""

    login: str
    name: str | None = None
    avatar_url: str | None = None
    url: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Account:
        return cls(
            login=str(data.get("login") or ""),
            name=data.get("name"),
            avatar_url=data.get("avatar_url"),
            url=data.get("html_url") or data.get("url"),
        )


@dataclass(frozen=True)
class ResolvedIssue:
    """Issue fetched from upstream.

    Only ``key`` is meaningful to the cache; the remaining fields are carried
    for consumers.
    """

    key: str
    number: int
    title: str
    state: str = "open"
    url: str | None = None
    milestone: str | None = None
    labels: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any], repo: str) -> ResolvedIssue:
        number = int(data.get("number") or 0)
        ms = data.get("milestone")
        milestone_title = ms.get("title") if isinstance(ms, dict) else None
        labels = tuple(
            str(lbl.get("name")) for lbl in data.get("labels") or [] if isinstance(lbl, dict)
        )
        assignees = tuple(
            str(a.get("login")) for a in data.get("assignees") or [] if isinstance(a, dict)
        )
        return cls(
            key=f"{repo}#{number}",
            number=number,
            title=str(data.get("title") or ""),
            state=str(data.get("state") or "open"),
            url=data.get("html_url"),
            milestone=milestone_title,
            labels=labels,
            assignees=assignees,
        )


@dataclass
class Milestone:
    """A milestone together with the issues filed under it.

    ``issues`` is ``None`` when the issues were not fetched; an empty sequence
    means the milestone is known to be empty.
    """

    title: str
    id: str | None = None
    number: int | None = None
    due_on: datetime | None = None
    created_at: datetime | None = None
    issues: Sequence[ResolvedIssue] | None = None


def milestone_key(milestone: Milestone) -> str:
    """Key correlating a milestone with its resolved date: id, else title."""
    return milestone.id if milestone.id else milestone.title


@dataclass(frozen=True)
class PagingOptions:
    fetch_next_page: bool = False


@dataclass
class ItemsResponse(Generic[T]):
    items: list[T] = field(default_factory=list)
    has_more_pages: bool = False


__all__ = [
    "Account",
    "ItemsResponse",
    "Milestone",
    "NO_MILESTONE",
    "PagingOptions",
    "ResolvedIssue",
    "milestone_key",
]
