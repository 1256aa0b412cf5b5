"""
Per-contributor metrics from commits, pull requests and review comments.

Commits are keyed by author email, PRs and comments by GitHub login. The two
key spaces are not reconciled here; that is what identity merging is for.
"""

import logging
from collections import defaultdict
from datetime import datetime

from ..domain.activity import ActivitySnapshot, Email, ImplementationActivity, Period, ReviewActivity
from ..domain.contributor import Contributor
from ..domain.git_types import Commit, PullRequest, ReviewComment, ensure_utc
from ..utils import slugify

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "github.local"


def _day_of(moment: datetime) -> datetime:
    return ensure_utc(moment).replace(hour=0, minute=0, second=0, microsecond=0)


class MetricsCalculator:

    def calculate(
        self,
        commits: list[Commit],
        pull_requests: list[PullRequest],
        review_comments: list[ReviewComment],
    ) -> list[Contributor]:
        logger.info(
            f"Calculating metrics from {len(commits)} commits, {len(pull_requests)} PRs "
            f"and {len(review_comments)} review comments"
        )

        commits_by_key = defaultdict(list)
        for commit in commits:
            commits_by_key[commit.email.lower()].append(commit)

        prs_by_key = defaultdict(list)
        for pr in pull_requests:
            prs_by_key[pr.author.lower()].append(pr)

        comments_by_key = defaultdict(list)
        for comment in review_comments:
            comments_by_key[comment.author.lower()].append(comment)

        # dict keeps first-seen order: commit authors, then PR authors, then reviewers
        keys = dict.fromkeys([*commits_by_key, *prs_by_key, *comments_by_key])
        logger.info(f"Found {len(keys)} unique contributors")

        contributors = []
        for key in keys:
            try:
                contributors.append(
                    self.create_contributor(key, commits_by_key[key], prs_by_key[key], comments_by_key[key])
                )
            except ValueError as e:
                logger.warning(f"Failed to create contributor for '{key}': {e}")

        logger.info(f"Created {len(contributors)} contributors")
        return contributors

    def create_contributor(
        self,
        identifier: str,
        commits: list[Commit],
        pull_requests: list[PullRequest],
        review_comments: list[ReviewComment],
    ) -> Contributor:
        is_email = "@" in identifier
        email = Email(identifier if is_email else f"{identifier}@{PLACEHOLDER_EMAIL_DOMAIN}")
        display_name = (commits[0].author if commits else identifier) if is_email else identifier

        own_pr_numbers = {pr.number for pr in pull_requests}
        comments_on_others = [c for c in review_comments if c.pull_request_number not in own_pr_numbers]

        return Contributor(
            id=f"contributor-{slugify(identifier)}",
            primary_email=email,
            display_name=display_name,
            implementation_activity=self.implementation_activity(commits),
            review_activity=self.review_activity(pull_requests, comments_on_others),
            activity_timeline=tuple(self.daily_timeline(commits, pull_requests, comments_on_others)),
        )

    @staticmethod
    def implementation_activity(commits: list[Commit]) -> ImplementationActivity:
        return ImplementationActivity(
            commit_count=len(commits),
            lines_added=sum(c.lines_added for c in commits),
            lines_deleted=sum(c.lines_deleted for c in commits),
            lines_modified=0,
            files_changed=sum(c.files_changed for c in commits),
        )

    @staticmethod
    def review_activity(pull_requests: list[PullRequest], comments_on_others: list[ReviewComment]) -> ReviewActivity:
        """``comments_on_others`` must already exclude comments on the contributor's own PRs."""
        return ReviewActivity(
            pull_request_count=len(pull_requests),
            review_comment_count=len(comments_on_others),
            pull_requests_reviewed=len({c.pull_request_number for c in comments_on_others}),
        )

    def daily_timeline(
        self,
        commits: list[Commit],
        pull_requests: list[PullRequest],
        comments_on_others: list[ReviewComment],
    ) -> list[ActivitySnapshot]:
        commits_by_day = defaultdict(list)
        for commit in commits:
            commits_by_day[_day_of(commit.date)].append(commit)

        prs_by_day = defaultdict(list)
        for pr in pull_requests:
            prs_by_day[_day_of(pr.created_at)].append(pr)

        comments_by_day = defaultdict(list)
        for comment in comments_on_others:
            comments_by_day[_day_of(comment.created_at)].append(comment)

        days = sorted({*commits_by_day, *prs_by_day, *comments_by_day})
        return [
            ActivitySnapshot(
                date=day,
                period=Period.DAY,
                implementation_activity=self.implementation_activity(commits_by_day[day]),
                review_activity=self.review_activity(prs_by_day[day], comments_by_day[day]),
            )
            for day in days
        ]
