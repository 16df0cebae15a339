"""Milestone filtering, date resolution and display ordering.

Each kept milestone gets a single resolved date:

1. its due date, when set;
2. otherwise its title parsed as a date once the excluded words are removed
   (``"Recovery March 2024"`` -> 2024-03-01);
3. otherwise its creation date.

The most recent resolved date strictly before ``now`` is the *threshold*.
Milestones older than the threshold come first, newest to oldest, followed by
the threshold milestone and everything after it, oldest to newest. When no
milestone lies in the past there is no threshold and the whole list runs
newest to oldest.

Ordering is done as two stable sorts over a partition instead of a pairwise
comparator: the pairwise rule is not transitive across the threshold for some
inputs, while the partition gives the same result whenever it is well defined.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from dateutil import parser as date_parser

from .logging import get_logger
from .models import Milestone, milestone_key

EXCLUDE_FROM_DATE: tuple[str, ...] = ("Recovery",)

# Two defaults differing in every field a title might omit; a title only
# counts as a date when both parses agree on the year.
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2004, 1, 1)
# Years outside this range come from numbers that are not dates ("Iteration 100")
_MIN_YEAR = 1900
_MAX_YEAR = 2100

_FALLBACK_DATE = datetime.min.replace(tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def remove_date_exclude_strings(title: str, exclude: Iterable[str] = EXCLUDE_FROM_DATE) -> str:
    for word in exclude:
        if word:
            title = title.replace(word, "")
    return title


def parse_title_date(text: str) -> datetime | None:
    """Parse a free-text milestone title as a date, or return None.

    Words that are not part of a date are ignored (fuzzy parsing). Titles
    without a year (``"Sprint 4"``) or with a year outside 1900-2100 are
    rejected.
    """
    text = text.strip()
    if not text:
        return None
    try:
        first = date_parser.parse(text, fuzzy=True, default=_DEFAULT_A)
        second = date_parser.parse(text, fuzzy=True, default=_DEFAULT_B)
    except (ValueError, OverflowError):
        return None
    if first.year != second.year or not _MIN_YEAR <= first.year <= _MAX_YEAR:
        return None
    return as_utc(first)


def resolve_milestone_date(
    milestone: Milestone, exclude: Iterable[str] = EXCLUDE_FROM_DATE
) -> datetime:
    if milestone.due_on is not None:
        return as_utc(milestone.due_on)
    parsed = parse_title_date(remove_date_exclude_strings(milestone.title, exclude))
    if parsed is not None:
        return parsed
    if milestone.created_at is not None:
        return as_utc(milestone.created_at)
    get_logger().warning(
        "milestone has no usable date; ordering it as oldest",
        operation="milestone_sort",
        milestone=milestone.title,
    )
    return _FALLBACK_DATE


def is_skipped(milestone: Milestone, skip_titles: Iterable[str]) -> bool:
    if milestone.issues is not None and len(milestone.issues) == 0:
        return True
    return milestone.title in set(skip_titles)


@dataclass
class ResolvedDates:
    """Dates keyed by ``milestone_key`` plus the past/future threshold."""

    dates: dict[str, datetime]
    threshold: datetime | None

    def date_of(self, milestone: Milestone) -> datetime:
        return self.dates[milestone_key(milestone)]


def resolve_dates(
    milestones: Sequence[Milestone],
    now: datetime,
    exclude: Iterable[str] = EXCLUDE_FROM_DATE,
) -> ResolvedDates:
    now = as_utc(now)
    exclude = tuple(exclude)
    dates: dict[str, datetime] = {}
    threshold: datetime | None = None
    for milestone in milestones:
        resolved = resolve_milestone_date(milestone, exclude)
        if resolved < now and (threshold is None or resolved > threshold):
            threshold = resolved
        dates[milestone_key(milestone)] = resolved
    return ResolvedDates(dates=dates, threshold=threshold)


def order_milestones(milestones: Sequence[Milestone], resolved: ResolvedDates) -> list[Milestone]:
    threshold = resolved.threshold
    if threshold is None:
        return sorted(milestones, key=resolved.date_of, reverse=True)
    older = [m for m in milestones if resolved.date_of(m) < threshold]
    recent = [m for m in milestones if resolved.date_of(m) >= threshold]
    return sorted(older, key=resolved.date_of, reverse=True) + sorted(
        recent, key=resolved.date_of
    )


def sort_milestones(
    milestones: Iterable[Milestone],
    *,
    skip_titles: Iterable[str] = (),
    now: datetime | None = None,
    exclude_from_date: Iterable[str] = EXCLUDE_FROM_DATE,
) -> list[Milestone]:
    """Filter, date-resolve and order ``milestones`` for display.

    Returns a new list; the input is not modified.
    """
    now = now or datetime.now(timezone.utc)
    skip = set(skip_titles)
    kept = [m for m in milestones if not is_skipped(m, skip)]
    resolved = resolve_dates(kept, now, exclude_from_date)
    return order_milestones(kept, resolved)


__all__ = [
    "EXCLUDE_FROM_DATE",
    "ResolvedDates",
    "as_utc",
    "is_skipped",
    "order_milestones",
    "parse_title_date",
    "remove_date_exclude_strings",
    "resolve_dates",
    "resolve_milestone_date",
    "sort_milestones",
]
