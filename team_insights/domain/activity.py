"""
Activity value objects: how much a contributor implemented and reviewed.

Scores:
- activity_score = commits * 5 + (lines added + lines deleted) * 0.5
- review_score   = PRs * 20 + review comments * 5 + PRs reviewed * 30
"""

import re
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class Period(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# =============================================================================
# CONFIGURATION
# =============================================================================

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 254

COMMIT_WEIGHT = 5
LINE_CHANGE_WEIGHT = 0.5
PULL_REQUEST_WEIGHT = 20
REVIEW_COMMENT_WEIGHT = 5
PR_REVIEWED_WEIGHT = 30


def _check_counts(obj, kind: str) -> None:
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"All {kind} metrics must be integers")
        if value < 0:
            raise ValueError(f"All {kind} metrics must be non-negative")


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class Email:
    value: str

    def __post_init__(self):
        trimmed = self.value.strip()
        if not EMAIL_PATTERN.match(trimmed):
            raise ValueError("Invalid email format")
        if len(trimmed) > MAX_EMAIL_LENGTH:
            raise ValueError(f"Email exceeds maximum length of {MAX_EMAIL_LENGTH} characters")
        object.__setattr__(self, "value", trimmed.lower())

    @property
    def domain(self) -> str:
        return self.value.split("@", 1)[1]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ImplementationActivity:
    commit_count: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    lines_modified: int = 0
    files_changed: int = 0

    def __post_init__(self):
        _check_counts(self, "activity")

    @classmethod
    def zero(cls) -> "ImplementationActivity":
        return cls()

    @property
    def total_line_changes(self) -> int:
        return self.lines_added + self.lines_deleted

    @property
    def net_line_changes(self) -> int:
        return self.lines_added - self.lines_deleted

    @property
    def activity_score(self) -> float:
        return self.commit_count * COMMIT_WEIGHT + self.total_line_changes * LINE_CHANGE_WEIGHT

    def add(self, other: "ImplementationActivity") -> "ImplementationActivity":
        return ImplementationActivity(
            commit_count=self.commit_count + other.commit_count,
            lines_added=self.lines_added + other.lines_added,
            lines_deleted=self.lines_deleted + other.lines_deleted,
            lines_modified=self.lines_modified + other.lines_modified,
            files_changed=self.files_changed + other.files_changed,
        )

    def to_dict(self) -> dict:
        return {
            "commitCount": self.commit_count,
            "linesAdded": self.lines_added,
            "linesDeleted": self.lines_deleted,
            "linesModified": self.lines_modified,
            "filesChanged": self.files_changed,
            "totalLineChanges": self.total_line_changes,
            "netLineChanges": self.net_line_changes,
            "activityScore": self.activity_score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImplementationActivity":
        return cls(
            commit_count=data["commitCount"],
            lines_added=data["linesAdded"],
            lines_deleted=data["linesDeleted"],
            lines_modified=data.get("linesModified", 0),
            files_changed=data["filesChanged"],
        )


@dataclass(frozen=True)
class ReviewActivity:
    pull_request_count: int = 0
    review_comment_count: int = 0
    pull_requests_reviewed: int = 0

    def __post_init__(self):
        _check_counts(self, "review")

    @classmethod
    def zero(cls) -> "ReviewActivity":
        return cls()

    @property
    def review_score(self) -> float:
        return (
            self.pull_request_count * PULL_REQUEST_WEIGHT
            + self.review_comment_count * REVIEW_COMMENT_WEIGHT
            + self.pull_requests_reviewed * PR_REVIEWED_WEIGHT
        )

    @property
    def average_comments_per_review(self) -> float:
        if self.pull_requests_reviewed == 0:
            return 0
        return self.review_comment_count / self.pull_requests_reviewed

    def add(self, other: "ReviewActivity") -> "ReviewActivity":
        return ReviewActivity(
            pull_request_count=self.pull_request_count + other.pull_request_count,
            review_comment_count=self.review_comment_count + other.review_comment_count,
            pull_requests_reviewed=self.pull_requests_reviewed + other.pull_requests_reviewed,
        )

    def to_dict(self) -> dict:
        return {
            "pullRequestCount": self.pull_request_count,
            "reviewCommentCount": self.review_comment_count,
            "pullRequestsReviewed": self.pull_requests_reviewed,
            "reviewScore": self.review_score,
            "averageCommentsPerReview": self.average_comments_per_review,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewActivity":
        return cls(
            pull_request_count=data["pullRequestCount"],
            review_comment_count=data["reviewCommentCount"],
            pull_requests_reviewed=data["pullRequestsReviewed"],
        )


@dataclass(frozen=True)
class ActivitySnapshot:
    """Activity of one contributor within one day, week or month"""
    date: datetime
    period: Period
    implementation_activity: ImplementationActivity
    review_activity: ReviewActivity

    def __post_init__(self):
        try:
            object.__setattr__(self, "period", Period(self.period))
        except ValueError:
            raise ValueError("Invalid period value")

    @property
    def total_score(self) -> float:
        return self.implementation_activity.activity_score + self.review_activity.review_score

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "period": self.period.value,
            "implementationActivity": self.implementation_activity.to_dict(),
            "reviewActivity": self.review_activity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActivitySnapshot":
        return cls(
            date=datetime.fromisoformat(data["date"]),
            period=data["period"],
            implementation_activity=ImplementationActivity.from_dict(data["implementationActivity"]),
            review_activity=ReviewActivity.from_dict(data["reviewActivity"]),
        )
