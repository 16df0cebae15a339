"""GitHub REST adapters for the retrieval contracts.

``GitHubRestClient`` is a small blocking client (requests) exposing exactly the
reads the view cache needs. ``GitHubRetriever`` wraps one client per git remote
and implements the asynchronous retriever protocols by running the blocking
calls in the event loop's default executor.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests
from dateutil import parser as date_parser

from .models import (
    NO_MILESTONE,
    Account,
    ItemsResponse,
    Milestone,
    PagingOptions,
    ResolvedIssue,
)
from .retry import run_with_retries

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "issueview-rest/0.1.0"
HTTP_ERROR_STATUS = 400
PAGE_SIZE = 100

# Creation date given to the synthetic "No Milestone" bucket
NO_MILESTONE_CREATED_AT = datetime(1970, 1, 1, tzinfo=timezone.utc)


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub REST API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date_parser.isoparse(value)
    except ValueError:
        return None


@dataclass
class GitHubRestClient:
    """Lightweight read-only REST client scoped to one repository."""

    token: str | None
    repo: str
    base_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        if self.token:
            self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- REST helpers -------------------------------------------------
    def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> Any:
        url = path if path.startswith("http") else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

        def _run() -> requests.Response:
            return self._session.request(
                method,
                url,
                params=params,
                headers=self._session.headers,
                timeout=30,
            )

        response = run_with_retries(_run)
        if response.status_code >= HTTP_ERROR_STATUS:
            raise GitHubAPIError(
                f"GitHub API {method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        if response.text:
            return response.json()
        return None

    def _first_page(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        params = dict(params or {})
        params.setdefault("per_page", PAGE_SIZE)
        params.setdefault("page", 1)
        data = self._request("GET", path, params=params)
        return data if isinstance(data, list) else []

    def _paginate(self, path: str, *, params: dict[str, Any] | None = None) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", PAGE_SIZE)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=params)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < per_page:
                break
            params["page"] = params.get("page", 1) + 1
        return results

    # ---- reads ----------------------------------------------------------
    def search_issues(self, query: str) -> tuple[list[dict[str, Any]], int]:
        """First page of an issue search; returns (items, total_count)."""
        q = query if "repo:" in query else f"repo:{self.repo} {query}"
        data = self._request("GET", "/search/issues", params={"q": q, "per_page": PAGE_SIZE})
        if not isinstance(data, dict):
            return [], 0
        items = [i for i in data.get("items") or [] if isinstance(i, dict)]
        return items, int(data.get("total_count") or len(items))

    def list_milestones(self, *, state: str = "open") -> list[dict[str, Any]]:
        entries = self._first_page(f"/repos/{self.repo}/milestones", {"state": state})
        return [e for e in entries if isinstance(e, dict)]

    def list_issues(self, *, milestone: int | str, state: str = "open") -> list[dict[str, Any]]:
        """First page of issues under a milestone number, or ``"none"``."""
        entries = self._first_page(
            f"/repos/{self.repo}/issues", {"milestone": milestone, "state": state}
        )
        # The issues endpoint also returns pull requests
        return [e for e in entries if isinstance(e, dict) and "pull_request" not in e]

    def list_assignees(self) -> list[dict[str, Any]]:
        entries = self._paginate(f"/repos/{self.repo}/assignees")
        return [e for e in entries if isinstance(e, dict)]


class GitHubRetriever:
    """Issue, milestone and collaborator retrieval over one client per remote.

    Issues and milestones come from the first remote; assignable users are
    gathered from every remote.
    """

    def __init__(self, clients: Mapping[str, GitHubRestClient]):
        if not clients:
            raise ValueError("at least one remote is required")
        self._clients = dict(clients)

    @property
    def primary(self) -> GitHubRestClient:
        return next(iter(self._clients.values()))

    async def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def get_issues(self, paging: PagingOptions, query: str) -> ItemsResponse[ResolvedIssue]:
        client = self.primary
        items, total = await self._call(client.search_issues, query)
        issues = [ResolvedIssue.from_api(i, client.repo) for i in items]
        return ItemsResponse(items=issues, has_more_pages=total > len(issues))

    async def get_milestones(
        self, paging: PagingOptions, include_no_milestone: bool
    ) -> ItemsResponse[Milestone]:
        client = self.primary
        raw = await self._call(client.list_milestones)
        milestones: list[Milestone] = []
        for entry in raw:
            number = entry.get("number")
            issues = await self._call(client.list_issues, milestone=number)
            milestones.append(
                Milestone(
                    title=str(entry.get("title") or ""),
                    id=str(entry.get("node_id") or entry.get("id") or "") or None,
                    number=number if isinstance(number, int) else None,
                    due_on=_parse_timestamp(entry.get("due_on")),
                    created_at=_parse_timestamp(entry.get("created_at")),
                    issues=[ResolvedIssue.from_api(i, client.repo) for i in issues],
                )
            )
        if include_no_milestone:
            issues = await self._call(client.list_issues, milestone="none")
            milestones.append(
                Milestone(
                    title=NO_MILESTONE,
                    created_at=NO_MILESTONE_CREATED_AT,
                    issues=[ResolvedIssue.from_api(i, client.repo) for i in issues],
                )
            )
        return ItemsResponse(items=milestones, has_more_pages=len(raw) >= PAGE_SIZE)

    async def get_assignable_users(self) -> dict[str, Sequence[Account]]:
        result: dict[str, Sequence[Account]] = {}
        for remote, client in self._clients.items():
            raw = await self._call(client.list_assignees)
            result[remote] = [Account.from_api(a) for a in raw if a.get("login")]
        return result


__all__ = [
    "GitHubAPIError",
    "GitHubRestClient",
    "GitHubRetriever",
    "NO_MILESTONE_CREATED_AT",
]
