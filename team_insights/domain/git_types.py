"""
Plain records for data loaded from GitHub.

These are what the GitHub client returns after mapping GraphQL nodes, and what
every calculation in Team Insights consumes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO 8601 timestamp (e.g. 2024-01-15T10:00:00Z)."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with GitHub timestamps."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Commit:
    """A non-merge commit on the default branch"""
    hash: str
    author: str
    email: str
    date: datetime
    message: str
    lines_added: int = 0
    lines_deleted: int = 0
    files_changed: int = 0


@dataclass
class PullRequest:
    number: int
    title: str
    state: str  # "open", "closed" or "merged"
    author: str
    created_at: datetime
    merged_at: datetime | None = None
    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None
    review_comment_count: int = 0


@dataclass
class ReviewComment:
    id: str
    pull_request_number: int
    author: str
    body: str
    created_at: datetime


@dataclass
class Release:
    tag_name: str
    created_at: datetime
    name: str | None = None
    published_at: datetime | None = None
    is_draft: bool = False
    is_prerelease: bool = False


@dataclass
class Deployment:
    id: str
    created_at: datetime
    environment: str | None = None
    state: str | None = None
    ref: str | None = None


@dataclass
class Tag:
    name: str
    committed_date: datetime | None = None
    tagger_date: datetime | None = None


@dataclass
class RateLimitInfo:
    limit: int
    remaining: int
    reset_at: datetime
    cost: int = 1


@dataclass
class GitData:
    """Everything fetched for one repository and date range"""
    commits: list[Commit] = field(default_factory=list)
    pull_requests: list[PullRequest] = field(default_factory=list)
    review_comments: list[ReviewComment] = field(default_factory=list)
