"""Builders for test records."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from team_insights.domain.activity import ActivitySnapshot, Email, ImplementationActivity, Period, ReviewActivity
from team_insights.domain.contributor import Contributor
from team_insights.domain.git_types import Commit, PullRequest, ReviewComment

REPO_URL = "https://github.com/acme/widgets"


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_commit(email="alice@acme.io", author="Alice Smith", date=None, added=10, deleted=2, files=1, sha="abc"):
    return Commit(
        hash=sha,
        author=author,
        email=email,
        date=date or utc(2024, 1, 15, 10),
        message="Fix things",
        lines_added=added,
        lines_deleted=deleted,
        files_changed=files,
    )


def make_pr(
    number=1,
    author="alice",
    created=None,
    merged=None,
    state="merged",
    additions=10,
    deletions=5,
    changed_files=2,
    title="Add feature",
):
    created = created or utc(2024, 1, 15, 9)
    if merged is None and state == "merged":
        merged = created + timedelta(hours=4)
    return PullRequest(
        number=number,
        title=title,
        state=state,
        author=author,
        created_at=created,
        merged_at=merged,
        additions=additions,
        deletions=deletions,
        changed_files=changed_files,
    )


def make_comment(pr_number=1, author="bob", created=None, comment_id="c1"):
    return ReviewComment(
        id=comment_id,
        pull_request_number=pr_number,
        author=author,
        body="Looks good",
        created_at=created or utc(2024, 1, 16, 12),
    )


def make_contributor(
    contributor_id="contributor-alice",
    email="alice@acme.io",
    name="Alice Smith",
    commits=1,
    reviewed=0,
    timeline=(),
):
    return Contributor(
        id=contributor_id,
        primary_email=Email(email),
        display_name=name,
        implementation_activity=ImplementationActivity(commit_count=commits, lines_added=10, lines_deleted=2),
        review_activity=ReviewActivity(pull_requests_reviewed=reviewed),
        activity_timeline=timeline,
    )


def make_snapshot(date, commits=1, comments=0):
    return ActivitySnapshot(
        date=date,
        period=Period.DAY,
        implementation_activity=ImplementationActivity(commit_count=commits),
        review_activity=ReviewActivity(review_comment_count=comments),
    )


def make_github_client(commits=None, pull_requests=None, comments=None):
    """GitHub client double: one commit by alice, PRs by alice and bob, two comments by bob on PR #1."""
    client = MagicMock()
    client.validate_access = AsyncMock(return_value=True)
    client.get_log = AsyncMock(return_value=[make_commit()] if commits is None else commits)
    client.get_pull_requests = AsyncMock(
        return_value=[make_pr(number=1), make_pr(number=2, author="bob")] if pull_requests is None else pull_requests
    )
    client.get_review_comments = AsyncMock(
        return_value=[make_comment(pr_number=1, comment_id="c1"), make_comment(pr_number=1, comment_id="c2")]
        if comments is None else comments
    )
    client.get_releases = AsyncMock(return_value=[])
    client.get_deployments = AsyncMock(return_value=[])
    client.get_tags = AsyncMock(return_value=[])
    return client
