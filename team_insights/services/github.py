"""
GitHub GraphQL client.

Fetches commits, pull requests, review comments, releases, deployments and
tags for a repository and maps the GraphQL nodes onto the records in
team_insights.domain.git_types. Every response updates the shared
RateLimiter; failures surface as DataLoadError.
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone

import httpx

from .. import config
from ..domain.git_types import (
    Commit,
    Deployment,
    PullRequest,
    RateLimitInfo,
    Release,
    ReviewComment,
    Tag,
    ensure_utc,
    parse_timestamp,
    utc_now,
)
from ..errors import DataLoadError, DataLoadErrorType
from .rate_limiter import RateLimiter
from .session import SessionProvider

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

PAGE_SIZE = 100
REVIEW_COMMENT_BATCH_SIZE = 5

INVALID_TOKEN_MESSAGE = "Invalid GitHub token. Please sign in again."
FORBIDDEN_MESSAGE = (
    "You do not have permission to access this repository. "
    "Please verify you have read access or that the repository is not private."
)
NOT_FOUND_MESSAGE = (
    "Repository not found or you do not have permission to access it. "
    "Please check the repository URL and your access rights."
)


# =============================================================================
# QUERIES
# =============================================================================

RATE_LIMIT_FIELDS = """
    rateLimit {
      limit
      cost
      remaining
      resetAt
    }
"""

REPOSITORY_ACCESS_QUERY = """
query ValidateRepoAccess($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {
    id
  }
""" + RATE_LIMIT_FIELDS + "}"

PULL_REQUESTS_QUERY = """
query GetPullRequests($owner: String!, $repo: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    pullRequests(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes {
        number
        title
        state
        createdAt
        mergedAt
        author { login }
        additions
        deletions
        changedFiles
        reviews { totalCount }
        comments(first: 100) {
          nodes {
            id
            body
            createdAt
            author { login }
          }
          pageInfo { hasNextPage endCursor }
        }
      }
      pageInfo { hasNextPage endCursor }
    }
  }
""" + RATE_LIMIT_FIELDS + "}"

COMMITS_QUERY = """
query GetCommits($owner: String!, $repo: String!, $first: Int!, $after: String,
                 $since: GitTimestamp, $until: GitTimestamp) {
  repository(owner: $owner, name: $repo) {
    defaultBranchRef {
      target {
        ... on Commit {
          history(first: $first, after: $after, since: $since, until: $until) {
            nodes {
              oid
              author { name email date }
              committedDate
              message
              additions
              deletions
              changedFilesIfAvailable
              parents(first: 2) { totalCount }
            }
            pageInfo { hasNextPage endCursor }
          }
        }
      }
    }
  }
""" + RATE_LIMIT_FIELDS + "}"

REVIEW_COMMENTS_QUERY = """
query GetReviewComments($owner: String!, $repo: String!, $prNumber: Int!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $prNumber) {
      number
      comments(first: $first, after: $after) {
        nodes {
          id
          body
          createdAt
          author { login }
        }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
""" + RATE_LIMIT_FIELDS + "}"

RELEASES_QUERY = """
query GetReleases($owner: String!, $repo: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    releases(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes {
        name
        tagName
        createdAt
        publishedAt
        isPrerelease
        isDraft
      }
      pageInfo { hasNextPage endCursor }
    }
  }
""" + RATE_LIMIT_FIELDS + "}"

DEPLOYMENTS_QUERY = """
query GetDeployments($owner: String!, $repo: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    deployments(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes {
        id
        createdAt
        environment
        state
        ref { name }
        latestStatus { state createdAt }
      }
      pageInfo { hasNextPage endCursor }
    }
  }
""" + RATE_LIMIT_FIELDS + "}"

TAGS_QUERY = """
query GetTags($owner: String!, $repo: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    refs(refPrefix: "refs/tags/", first: $first, after: $after,
         orderBy: {field: TAG_COMMIT_DATE, direction: DESC}) {
      nodes {
        name
        target {
          ... on Commit { committedDate }
          ... on Tag { tagger { date } }
        }
      }
      pageInfo { hasNextPage endCursor }
    }
  }
""" + RATE_LIMIT_FIELDS + "}"

RATE_LIMIT_QUERY = "query {" + RATE_LIMIT_FIELDS + "}"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def parse_github_url(url: str) -> tuple[str, str] | None:
    """
    Extract (owner, repo) from https or ssh GitHub URLs.

    >>> parse_github_url("git@github.com:octocat/hello-world.git")
    ('octocat', 'hello-world')
    """
    match = re.search(r"github\.com[/:]([^/]+)/([^/.]+)", url)
    if not match:
        return None
    return match.group(1), match.group(2)


def get_next_cursor(page_info: dict) -> str | None:
    """Cursor for the next page, or None when paging should stop."""
    if page_info.get("hasNextPage") and page_info.get("endCursor") is not None:
        return page_info["endCursor"]
    return None


def create_batches(items: list, batch_size: int) -> list[list]:
    if batch_size <= 0:
        raise ValueError("Batch size must be positive")
    return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]


def map_pull_request(node: dict) -> PullRequest:
    state = (node.get("state") or "OPEN").lower()
    return PullRequest(
        number=node["number"],
        title=node["title"],
        state=state if state in ("open", "closed", "merged") else "open",
        author=(node.get("author") or {}).get("login") or "unknown",
        created_at=parse_timestamp(node["createdAt"]),
        merged_at=parse_timestamp(node.get("mergedAt")),
        additions=node.get("additions"),
        deletions=node.get("deletions"),
        changed_files=node.get("changedFiles"),
        review_comment_count=(node.get("reviews") or {}).get("totalCount", 0),
    )


def is_merge_commit(node: dict) -> bool:
    return (node.get("parents") or {}).get("totalCount", 0) > 1


def map_commit(node: dict) -> Commit:
    author = node.get("author") or {}
    return Commit(
        hash=node["oid"],
        author=author.get("name") or "Unknown",
        email=author.get("email") or "",
        date=parse_timestamp(author.get("date") or node.get("committedDate")),
        message=(node.get("message") or "").split("\n")[0],
        lines_added=node.get("additions") or 0,
        lines_deleted=node.get("deletions") or 0,
        files_changed=node.get("changedFilesIfAvailable") or 0,
    )


def map_review_comment(node: dict, pull_request_number: int) -> ReviewComment:
    return ReviewComment(
        id=str(node["id"]),
        pull_request_number=pull_request_number,
        author=(node.get("author") or {}).get("login") or "unknown",
        body=node.get("body") or "",
        created_at=parse_timestamp(node["createdAt"]),
    )


def map_release(node: dict) -> Release:
    return Release(
        tag_name=node["tagName"],
        created_at=parse_timestamp(node["createdAt"]),
        name=node.get("name"),
        published_at=parse_timestamp(node.get("publishedAt")),
        is_draft=bool(node.get("isDraft")),
        is_prerelease=bool(node.get("isPrerelease")),
    )


def map_deployment(node: dict) -> Deployment:
    return Deployment(
        id=node["id"],
        created_at=parse_timestamp(node["createdAt"]),
        environment=node.get("environment"),
        state=node.get("state"),
        ref=(node.get("ref") or {}).get("name"),
    )


def map_tag(node: dict) -> Tag:
    target = node.get("target") or {}
    return Tag(
        name=node["name"],
        committed_date=parse_timestamp(target.get("committedDate")),
        tagger_date=parse_timestamp((target.get("tagger") or {}).get("date")),
    )


def map_rate_limit(node: dict) -> RateLimitInfo:
    return RateLimitInfo(
        limit=node["limit"],
        remaining=node["remaining"],
        reset_at=parse_timestamp(node["resetAt"]),
        cost=node.get("cost", 1),
    )


def _rate_limit_reset(response: httpx.Response) -> datetime:
    reset_header = response.headers.get("x-ratelimit-reset")
    if reset_header and reset_header.isdigit():
        return datetime.fromtimestamp(int(reset_header), tz=timezone.utc)
    return utc_now() + timedelta(hours=1)


# =============================================================================
# CLIENT
# =============================================================================

class GitHubGraphQLClient:
    def __init__(
        self,
        session_provider: SessionProvider,
        endpoint: str | None = None,
        rate_limiter: RateLimiter | None = None,
        timeout: float | None = None,
    ):
        self.session_provider = session_provider
        self.endpoint = endpoint or config.GITHUB_GRAPHQL_URL
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout or config.GITHUB_TIMEOUT_SECONDS

    async def execute_query(self, query: str, variables: dict | None = None, operation: str = "querying GitHub") -> dict:
        """Run one GraphQL request and return its ``data`` payload."""
        token = await self.session_provider.get_access_token()
        await self.rate_limiter.wait_if_needed()

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.endpoint,
                    json={"query": query, "variables": variables or {}},
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                    timeout=self.timeout,
                )
        except httpx.TimeoutException:
            logger.error(f"Timeout during {operation}")
            raise DataLoadError(DataLoadErrorType.TIMEOUT, f"Timeout during {operation}")
        except httpx.HTTPError as e:
            logger.error(f"Network error during {operation}: {e}")
            raise DataLoadError(DataLoadErrorType.NETWORK_ERROR, f"Network error during {operation}: {e}")

        if response.status_code >= 400:
            raise self._http_error(response, operation)

        result = response.json()
        data = result.get("data") or {}
        if data.get("rateLimit"):
            self.rate_limiter.update(map_rate_limit(data["rateLimit"]))

        if result.get("errors"):
            raise self._graphql_error(result["errors"], operation)
        return data

    def _http_error(self, response: httpx.Response, operation: str) -> DataLoadError:
        status = response.status_code
        body = response.text
        logger.error(f"GitHub returned HTTP {status} while {operation}")

        if status == 403 and "rate limit" in body.lower():
            reset_at = _rate_limit_reset(response)
            retry_after_ms = max(0, int((reset_at - utc_now()).total_seconds() * 1000))
            return DataLoadError(
                DataLoadErrorType.RATE_LIMIT_EXCEEDED,
                f"GitHub API rate limit exceeded during {operation}",
                reset_at=reset_at,
                retry_after_ms=retry_after_ms,
            )
        if status == 401:
            return DataLoadError(DataLoadErrorType.AUTH_ERROR, INVALID_TOKEN_MESSAGE)
        if status == 403:
            return DataLoadError(DataLoadErrorType.AUTH_ERROR, FORBIDDEN_MESSAGE)
        if status == 404:
            return DataLoadError(DataLoadErrorType.NOT_FOUND, NOT_FOUND_MESSAGE)
        return DataLoadError(DataLoadErrorType.NETWORK_ERROR, f"Failed {operation}: HTTP {status}")

    def _graphql_error(self, errors: list[dict], operation: str) -> DataLoadError:
        first = errors[0]
        error_type = first.get("type")
        message = first.get("message", "")
        logger.error(f"GraphQL error while {operation}: {errors}")

        if error_type == "NOT_FOUND":
            return DataLoadError(DataLoadErrorType.NOT_FOUND, NOT_FOUND_MESSAGE)
        if "Bad credentials" in message or error_type == "AUTHENTICATION_FAILURE":
            return DataLoadError(DataLoadErrorType.AUTH_ERROR, INVALID_TOKEN_MESSAGE)
        if error_type == "FORBIDDEN":
            return DataLoadError(DataLoadErrorType.AUTH_ERROR, FORBIDDEN_MESSAGE)
        if error_type == "RATE_LIMITED":
            return DataLoadError(
                DataLoadErrorType.RATE_LIMIT_EXCEEDED,
                f"GitHub API rate limit exceeded during {operation}",
                reset_at=self.rate_limiter.rate_limit_info.reset_at if self.rate_limiter.rate_limit_info else None,
            )
        return DataLoadError(DataLoadErrorType.UNKNOWN, f"Failed {operation}: {message}")

    async def _paginate(self, query: str, variables: dict, connection, operation: str):
        """Yield the node list of each page; ``connection`` picks the connection out of ``data``."""
        cursor = None
        while True:
            data = await self.execute_query(query, {**variables, "first": PAGE_SIZE, "after": cursor}, operation)
            page = connection(data)
            if page is None:
                return
            yield page["nodes"]
            cursor = get_next_cursor(page["pageInfo"])
            if cursor is None:
                return

    # -------------------------------------------------------------------------
    # Repository
    # -------------------------------------------------------------------------

    async def validate_access(self, owner: str, repo: str) -> bool:
        logger.debug(f"Validating access to {owner}/{repo}")
        data = await self.execute_query(
            REPOSITORY_ACCESS_QUERY, {"owner": owner, "repo": repo}, "validating repository access"
        )
        if not data.get("repository"):
            raise DataLoadError(DataLoadErrorType.NOT_FOUND, NOT_FOUND_MESSAGE)
        logger.info(f"Access to {owner}/{repo} validated")
        return True

    async def get_rate_limit_status(self) -> RateLimitInfo:
        data = await self.execute_query(RATE_LIMIT_QUERY, operation="fetching rate limit status")
        return map_rate_limit(data["rateLimit"])

    # -------------------------------------------------------------------------
    # Commits, pull requests, review comments
    # -------------------------------------------------------------------------

    async def get_log(
        self,
        owner: str,
        repo: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Commit]:
        """Non-merge commits on the default branch."""
        variables = {
            "owner": owner,
            "repo": repo,
            "since": ensure_utc(since).isoformat() if since else None,
            "until": ensure_utc(until).isoformat() if until else None,
        }

        def history(data):
            branch = data["repository"]["defaultBranchRef"]
            if branch is None:
                logger.warning(f"{owner}/{repo} has no default branch or is empty")
                return None
            return branch["target"]["history"]

        commits = []
        async for nodes in self._paginate(COMMITS_QUERY, variables, history, "fetching commits"):
            for node in nodes:
                if is_merge_commit(node):
                    continue
                commit = map_commit(node)
                if commit.date is None:
                    logger.warning(f"Skipping commit {commit.hash} without a date")
                    continue
                commits.append(commit)

        logger.info(f"Fetched {len(commits)} commits for {owner}/{repo}")
        return commits

    async def get_pull_requests(
        self,
        owner: str,
        repo: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[PullRequest]:
        """Pull requests created in [since, until], newest first."""
        since = ensure_utc(since) if since else None
        until = ensure_utc(until) if until else None

        pull_requests = []
        pages = self._paginate(
            PULL_REQUESTS_QUERY,
            {"owner": owner, "repo": repo},
            lambda data: data["repository"]["pullRequests"],
            "fetching pull requests",
        )
        async for nodes in pages:
            prs = [map_pull_request(node) for node in nodes]
            pull_requests.extend(
                pr for pr in prs
                if (since is None or pr.created_at >= since) and (until is None or pr.created_at <= until)
            )
            if since and prs and prs[-1].created_at < since:
                logger.info("Reached PRs older than the range start, stopping pagination")
                break

        logger.info(f"Fetched {len(pull_requests)} pull requests for {owner}/{repo}")
        return pull_requests

    async def _get_comments_for_pr(self, owner: str, repo: str, number: int) -> list[ReviewComment]:
        comments = []
        pages = self._paginate(
            REVIEW_COMMENTS_QUERY,
            {"owner": owner, "repo": repo, "prNumber": number},
            lambda data: (data["repository"]["pullRequest"] or {}).get("comments"),
            f"fetching review comments for PR #{number}",
        )
        async for nodes in pages:
            comments.extend(map_review_comment(node, number) for node in nodes)
        return comments

    async def get_review_comments(self, owner: str, repo: str, pull_request_numbers: list[int]) -> list[ReviewComment]:
        comments = []
        for batch in create_batches(list(pull_request_numbers), REVIEW_COMMENT_BATCH_SIZE):
            results = await asyncio.gather(*(self._get_comments_for_pr(owner, repo, n) for n in batch))
            for pr_comments in results:
                comments.extend(pr_comments)

        logger.info(f"Fetched {len(comments)} review comments across {len(pull_request_numbers)} PRs")
        return comments

    # -------------------------------------------------------------------------
    # Deployment sources
    # -------------------------------------------------------------------------

    async def _collect_newest_first(self, query, owner, repo, connection, mapper, date_of, since, operation) -> list:
        records = []
        pages = self._paginate(query, {"owner": owner, "repo": repo}, connection, operation)
        async for nodes in pages:
            page = [mapper(node) for node in nodes]
            records.extend(page)
            if since and page:
                oldest = date_of(page[-1])
                if oldest is not None and oldest < since:
                    break
        return records

    async def get_releases(self, owner: str, repo: str, since: datetime | None = None) -> list[Release]:
        releases = await self._collect_newest_first(
            RELEASES_QUERY, owner, repo,
            lambda data: data["repository"]["releases"],
            map_release,
            lambda release: release.created_at,
            ensure_utc(since) if since else None,
            "fetching releases",
        )
        logger.debug(f"Fetched {len(releases)} releases for {owner}/{repo}")
        return releases

    async def get_deployments(self, owner: str, repo: str, since: datetime | None = None) -> list[Deployment]:
        deployments = await self._collect_newest_first(
            DEPLOYMENTS_QUERY, owner, repo,
            lambda data: data["repository"]["deployments"],
            map_deployment,
            lambda deployment: deployment.created_at,
            ensure_utc(since) if since else None,
            "fetching deployments",
        )
        logger.debug(f"Fetched {len(deployments)} deployments for {owner}/{repo}")
        return deployments

    async def get_tags(self, owner: str, repo: str, since: datetime | None = None) -> list[Tag]:
        tags = await self._collect_newest_first(
            TAGS_QUERY, owner, repo,
            lambda data: data["repository"]["refs"],
            map_tag,
            lambda tag: tag.tagger_date or tag.committed_date,
            ensure_utc(since) if since else None,
            "fetching tags",
        )
        logger.debug(f"Fetched {len(tags)} tags for {owner}/{repo}")
        return tags
