import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from issueview.github_rest import (
    NO_MILESTONE_CREATED_AT,
    GitHubAPIError,
    GitHubRestClient,
    GitHubRetriever,
)
from issueview.models import NO_MILESTONE, PagingOptions


@dataclass
class _DummyResponse:
    status_code: int
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    @property
    def text(self) -> str:
        payload = self.payload
        if isinstance(payload, (dict, list)):
            return json.dumps(payload)
        return str(payload)


class _DummySession:
    def __init__(self, responses: list[_DummyResponse]):
        self._responses = responses
        self.request_log: list[tuple[str, str, dict[str, Any]]] = []
        self.headers: dict[str, str] = {}

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> _DummyResponse:
        self.request_log.append((method, url, {"headers": headers, "params": dict(params or {})}))
        if not self._responses:
            raise AssertionError("No response queued for request")
        return self._responses.pop(0)


def _client(responses: list[_DummyResponse], repo: str = "acme/widgets") -> tuple[
    GitHubRestClient, _DummySession
]:
    session = _DummySession(responses)
    client = GitHubRestClient(token="tkn", repo=repo, session=session)  # type: ignore[arg-type]
    return client, session


def test_rest_client_sets_auth_headers():
    client, session = _client([])
    assert session.headers["Authorization"] == "Bearer tkn"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert client.repo == "acme/widgets"


def test_search_prefixes_repository_scope():
    client, session = _client(
        [
            _DummyResponse(200, {"total_count": 3, "items": [{"number": 1, "title": "a"}]}),
            _DummyResponse(200, {"total_count": 0, "items": []}),
        ]
    )

    items, total = client.search_issues("is:open label:bug")
    assert total == 3
    assert items == [{"number": 1, "title": "a"}]
    assert session.request_log[0][1].endswith("/search/issues")
    assert session.request_log[0][2]["params"]["q"] == "repo:acme/widgets is:open label:bug"

    client.search_issues("repo:other/thing is:open")
    assert session.request_log[1][2]["params"]["q"] == "repo:other/thing is:open"


def test_list_issues_filters_pull_requests():
    client, session = _client(
        [
            _DummyResponse(
                200,
                [
                    {"number": 1, "title": "bug"},
                    {"number": 2, "title": "pr", "pull_request": {"url": "x"}},
                ],
            )
        ]
    )
    issues = client.list_issues(milestone=7)
    assert [i["number"] for i in issues] == [1]
    assert session.request_log[0][2]["params"]["milestone"] == 7


def test_list_assignees_paginates():
    first_page = [{"login": f"user{i}"} for i in range(100)]
    client, session = _client(
        [_DummyResponse(200, first_page), _DummyResponse(200, [{"login": "last"}])]
    )
    users = client.list_assignees()
    assert len(users) == 101
    assert [entry[2]["params"]["page"] for entry in session.request_log] == [1, 2]


def test_rest_client_raises_on_error():
    client, _ = _client([_DummyResponse(404, {"message": "Not Found"})])

    with pytest.raises(GitHubAPIError) as excinfo:
        client.list_milestones()
    assert excinfo.value.status == 404
    assert "Not Found" in (excinfo.value.response_text or "")


def test_retriever_builds_milestones_with_no_milestone_bucket():
    client, session = _client(
        [
            _DummyResponse(
                200,
                [
                    {
                        "number": 3,
                        "node_id": "MI_3",
                        "title": "v1.0",
                        "due_on": "2024-09-01T07:00:00Z",
                        "created_at": "2024-01-02T10:00:00Z",
                    }
                ],
            ),
            _DummyResponse(200, [{"number": 10, "title": "ship it", "labels": [{"name": "bug"}]}]),
            _DummyResponse(200, [{"number": 11, "title": "loose end"}]),
        ]
    )
    retriever = GitHubRetriever({"origin": client})

    response = asyncio.run(retriever.get_milestones(PagingOptions(), True))

    first, bucket = response.items
    assert first.title == "v1.0"
    assert first.id == "MI_3"
    assert first.due_on is not None and first.due_on.year == 2024
    assert [i.key for i in first.issues or []] == ["acme/widgets#10"]
    assert (first.issues or [])[0].labels == ("bug",)
    assert bucket.title == NO_MILESTONE
    assert bucket.created_at == NO_MILESTONE_CREATED_AT
    assert [i.number for i in bucket.issues or []] == [11]
    assert session.request_log[2][2]["params"]["milestone"] == "none"
    assert response.has_more_pages is False


def test_retriever_skips_no_milestone_bucket_when_not_requested():
    client, session = _client([_DummyResponse(200, [])])
    retriever = GitHubRetriever({"origin": client})
    response = asyncio.run(retriever.get_milestones(PagingOptions(), False))
    assert response.items == []
    assert len(session.request_log) == 1


def test_retriever_reports_more_pages_for_search():
    client, _ = _client(
        [_DummyResponse(200, {"total_count": 250, "items": [{"number": 4, "title": "x"}]})]
    )
    retriever = GitHubRetriever({"origin": client})
    response = asyncio.run(retriever.get_issues(PagingOptions(), "is:open"))
    assert [i.key for i in response.items] == ["acme/widgets#4"]
    assert response.has_more_pages is True


def test_retriever_collects_users_per_remote():
    origin, _ = _client([_DummyResponse(200, [{"login": "alice"}, {"name": "no login"}])])
    upstream, _ = _client([_DummyResponse(200, [{"login": "bob"}])], repo="acme/upstream")
    retriever = GitHubRetriever({"origin": origin, "upstream": upstream})

    users = asyncio.run(retriever.get_assignable_users())

    assert [a.login for a in users["origin"]] == ["alice"]
    assert [a.login for a in users["upstream"]] == ["bob"]


def test_retriever_requires_a_remote():
    with pytest.raises(ValueError):
        GitHubRetriever({})
