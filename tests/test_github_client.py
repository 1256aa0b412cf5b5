"""Tests for the GitHub GraphQL client, with httpx mocked out."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from team_insights.errors import DataLoadError, DataLoadErrorType
from team_insights.services import github as github_module
from team_insights.services.github import (
    INVALID_TOKEN_MESSAGE,
    NOT_FOUND_MESSAGE,
    GitHubGraphQLClient,
    create_batches,
    get_next_cursor,
    map_commit,
    map_pull_request,
    map_tag,
    parse_github_url,
)
from team_insights.services.rate_limiter import RateLimiter
from team_insights.services.session import BearerTokenProvider

from helpers import utc

RATE_LIMIT = {"limit": 5000, "remaining": 4990, "resetAt": "2024-01-01T01:00:00Z", "cost": 1}
LAST_PAGE = {"hasNextPage": False, "endCursor": None}


def _response(payload=None, status_code=200, text="", headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    response.headers = headers or {}
    return response


def _mock_http(side_effect):
    instance = AsyncMock()
    instance.post = AsyncMock(side_effect=side_effect)
    instance.__aenter__ = AsyncMock(return_value=instance)
    instance.__aexit__ = AsyncMock(return_value=False)
    return instance


def _client():
    return GitHubGraphQLClient(BearerTokenProvider("ghp_test"), rate_limiter=RateLimiter())


def _commit_node(oid, date, parents=1, message="Fix bug\n\nLonger body"):
    return {
        "oid": oid,
        "message": message,
        "additions": 10,
        "deletions": 3,
        "changedFilesIfAvailable": 2,
        "committedDate": date,
        "author": {"name": "Alice Smith", "email": "alice@acme.io", "date": date},
        "parents": {"totalCount": parents},
    }


def _pr_node(number, created, merged=None, state="MERGED"):
    return {
        "number": number,
        "title": f"PR {number}",
        "state": state,
        "author": {"login": "alice"},
        "createdAt": created,
        "mergedAt": merged,
        "additions": 5,
        "deletions": 1,
        "changedFiles": 1,
        "reviews": {"totalCount": 2},
    }


# ---------------------------------------------------------------------------
# Helpers and mappers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize("url,expected", [
        ("https://github.com/acme/widgets", ("acme", "widgets")),
        ("git@github.com:octocat/hello-world.git", ("octocat", "hello-world")),
        ("https://gitlab.com/acme/widgets", None),
    ])
    def test_parse_github_url(self, url, expected):
        assert parse_github_url(url) == expected

    def test_create_batches(self):
        assert create_batches([1, 2, 3, 4, 5, 6, 7], 3) == [[1, 2, 3], [4, 5, 6], [7]]
        assert create_batches([], 3) == []
        with pytest.raises(ValueError, match="Batch size must be positive"):
            create_batches([1], 0)

    def test_next_cursor(self):
        assert get_next_cursor({"hasNextPage": True, "endCursor": "abc"}) == "abc"
        assert get_next_cursor({"hasNextPage": True, "endCursor": None}) is None
        assert get_next_cursor(LAST_PAGE) is None

    def test_map_pull_request(self):
        node = _pr_node(4, "2024-01-02T00:00:00Z", "2024-01-03T00:00:00Z")
        node["author"] = None
        pr = map_pull_request(node)
        assert pr.state == "merged"
        assert pr.author == "unknown"
        assert pr.merged_at == utc(2024, 1, 3)
        assert pr.review_comment_count == 2

    def test_map_commit_keeps_first_message_line(self):
        commit = map_commit(_commit_node("abc", "2024-01-02T10:00:00Z"))
        assert commit.message == "Fix bug"
        assert commit.date == utc(2024, 1, 2, 10)
        assert commit.files_changed == 2

    def test_map_lightweight_tag(self):
        tag = map_tag({"name": "v1.0.0", "target": {"committedDate": "2024-01-05T00:00:00Z"}})
        assert tag.committed_date == utc(2024, 1, 5)
        assert tag.tagger_date is None


# ---------------------------------------------------------------------------
# execute_query and error classification
# ---------------------------------------------------------------------------


class TestExecuteQuery:
    @pytest.mark.asyncio
    async def test_sends_token_and_tracks_rate_limit(self):
        client = _client()
        instance = _mock_http([_response({"data": {"viewer": {"login": "alice"}, "rateLimit": RATE_LIMIT}})])

        with patch.object(github_module.httpx, "AsyncClient", return_value=instance):
            data = await client.execute_query("query { viewer { login } }")

        assert data["viewer"]["login"] == "alice"
        headers = instance.post.await_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer ghp_test"
        assert client.rate_limiter.rate_limit_info.remaining == 4990

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,text,error_type,message", [
        (401, "Bad credentials", DataLoadErrorType.AUTH_ERROR, INVALID_TOKEN_MESSAGE),
        (404, "", DataLoadErrorType.NOT_FOUND, NOT_FOUND_MESSAGE),
        (502, "Bad gateway", DataLoadErrorType.NETWORK_ERROR, "Failed querying GitHub: HTTP 502"),
    ])
    async def test_http_errors(self, status_code, text, error_type, message):
        instance = _mock_http([_response(status_code=status_code, text=text)])
        with patch.object(github_module.httpx, "AsyncClient", return_value=instance):
            with pytest.raises(DataLoadError) as exc_info:
                await _client().execute_query("query {}")
        assert exc_info.value.type == error_type
        assert exc_info.value.message == message

    @pytest.mark.asyncio
    async def test_rate_limited_response_carries_reset(self):
        response = _response(status_code=403, text="API rate limit exceeded", headers={"x-ratelimit-reset": "1704070800"})
        with patch.object(github_module.httpx, "AsyncClient", return_value=_mock_http([response])):
            with pytest.raises(DataLoadError) as exc_info:
                await _client().execute_query("query {}")
        assert exc_info.value.type == DataLoadErrorType.RATE_LIMIT_EXCEEDED
        assert exc_info.value.reset_at == utc(2024, 1, 1, 1)
        assert exc_info.value.retry_after_ms == 0

    @pytest.mark.asyncio
    async def test_forbidden_without_rate_limit(self):
        with patch.object(github_module.httpx, "AsyncClient", return_value=_mock_http([_response(status_code=403)])):
            with pytest.raises(DataLoadError) as exc_info:
                await _client().execute_query("query {}")
        assert exc_info.value.type == DataLoadErrorType.AUTH_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,error_type", [
        ({"type": "NOT_FOUND", "message": "Could not resolve to a Repository"}, DataLoadErrorType.NOT_FOUND),
        ({"message": "Bad credentials"}, DataLoadErrorType.AUTH_ERROR),
        ({"type": "RATE_LIMITED", "message": "API rate limit exceeded"}, DataLoadErrorType.RATE_LIMIT_EXCEEDED),
        ({"type": "SOMETHING", "message": "odd"}, DataLoadErrorType.UNKNOWN),
    ])
    async def test_graphql_errors(self, error, error_type):
        response = _response({"data": None, "errors": [error]})
        with patch.object(github_module.httpx, "AsyncClient", return_value=_mock_http([response])):
            with pytest.raises(DataLoadError) as exc_info:
                await _client().execute_query("query {}")
        assert exc_info.value.type == error_type

    @pytest.mark.asyncio
    async def test_timeout(self):
        instance = _mock_http(httpx.ReadTimeout("too slow"))
        with patch.object(github_module.httpx, "AsyncClient", return_value=instance):
            with pytest.raises(DataLoadError) as exc_info:
                await _client().execute_query("query {}", operation="fetching commits")
        assert exc_info.value.type == DataLoadErrorType.TIMEOUT
        assert exc_info.value.message == "Timeout during fetching commits"

    @pytest.mark.asyncio
    async def test_network_error(self):
        instance = _mock_http(httpx.ConnectError("connection refused"))
        with patch.object(github_module.httpx, "AsyncClient", return_value=instance):
            with pytest.raises(DataLoadError) as exc_info:
                await _client().execute_query("query {}")
        assert exc_info.value.type == DataLoadErrorType.NETWORK_ERROR


# ---------------------------------------------------------------------------
# Fetch operations
# ---------------------------------------------------------------------------


class TestFetching:
    @pytest.mark.asyncio
    async def test_validate_access_missing_repository(self):
        with patch.object(github_module.httpx, "AsyncClient", return_value=_mock_http([_response({"data": {"repository": None}})])):
            with pytest.raises(DataLoadError) as exc_info:
                await _client().validate_access("acme", "widgets")
        assert exc_info.value.type == DataLoadErrorType.NOT_FOUND

    @pytest.mark.asyncio
    async def test_get_log_follows_pages_and_skips_merges(self):
        def history(nodes, page_info):
            return _response({"data": {"repository": {"defaultBranchRef": {"target": {"history": {
                "nodes": nodes, "pageInfo": page_info,
            }}}}}})

        instance = _mock_http([
            history(
                [_commit_node("c1", "2024-01-03T00:00:00Z"), _commit_node("m1", "2024-01-02T00:00:00Z", parents=2)],
                {"hasNextPage": True, "endCursor": "cursor-1"},
            ),
            history([_commit_node("c2", "2024-01-01T00:00:00Z")], LAST_PAGE),
        ])

        with patch.object(github_module.httpx, "AsyncClient", return_value=instance):
            commits = await _client().get_log("acme", "widgets", since=utc(2024, 1, 1), until=utc(2024, 2, 1))

        assert [c.hash for c in commits] == ["c1", "c2"]
        second_variables = instance.post.await_args_list[1].kwargs["json"]["variables"]
        assert second_variables["after"] == "cursor-1"
        assert second_variables["since"] == "2024-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_get_log_on_empty_repository(self):
        response = _response({"data": {"repository": {"defaultBranchRef": None}}})
        with patch.object(github_module.httpx, "AsyncClient", return_value=_mock_http([response])):
            assert await _client().get_log("acme", "widgets") == []

    @pytest.mark.asyncio
    async def test_get_pull_requests_stops_at_range_start(self):
        page = _response({"data": {"repository": {"pullRequests": {
            "nodes": [
                _pr_node(3, "2024-02-10T00:00:00Z", "2024-02-11T00:00:00Z"),
                _pr_node(2, "2024-01-20T00:00:00Z", None, state="OPEN"),
                _pr_node(1, "2023-12-01T00:00:00Z", "2023-12-02T00:00:00Z"),
            ],
            "pageInfo": {"hasNextPage": True, "endCursor": "more"},
        }}}})
        instance = _mock_http([page])

        with patch.object(github_module.httpx, "AsyncClient", return_value=instance):
            prs = await _client().get_pull_requests("acme", "widgets", since=utc(2024, 1, 1))

        assert [pr.number for pr in prs] == [3, 2]
        assert prs[1].state == "open"
        assert instance.post.await_count == 1

    @pytest.mark.asyncio
    async def test_get_review_comments_per_pull_request(self):
        def respond(*args, **kwargs):
            number = kwargs["json"]["variables"]["prNumber"]
            return _response({"data": {"repository": {"pullRequest": {"comments": {
                "nodes": [{
                    "id": f"c{number}",
                    "author": {"login": "bob"},
                    "body": "nit",
                    "createdAt": "2024-01-05T00:00:00Z",
                }],
                "pageInfo": LAST_PAGE,
            }}}}})

        with patch.object(github_module.httpx, "AsyncClient", return_value=_mock_http(respond)):
            comments = await _client().get_review_comments("acme", "widgets", [1, 2, 3, 4, 5, 6])

        assert sorted(c.pull_request_number for c in comments) == [1, 2, 3, 4, 5, 6]
        assert {c.author for c in comments} == {"bob"}

    @pytest.mark.asyncio
    async def test_get_releases_stops_once_older_than_since(self):
        page = _response({"data": {"repository": {"releases": {
            "nodes": [
                {"tagName": "v2.0.0", "createdAt": "2024-02-01T00:00:00Z", "isDraft": False},
                {"tagName": "v1.0.0", "createdAt": "2023-06-01T00:00:00Z", "isDraft": False},
            ],
            "pageInfo": {"hasNextPage": True, "endCursor": "more"},
        }}}})
        instance = _mock_http([page])

        with patch.object(github_module.httpx, "AsyncClient", return_value=instance):
            releases = await _client().get_releases("acme", "widgets", since=utc(2024, 1, 1))

        assert [r.tag_name for r in releases] == ["v2.0.0", "v1.0.0"]
        assert instance.post.await_count == 1
