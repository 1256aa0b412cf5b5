"""
PR throughput: lead time of merged pull requests, grouped by PR size.

Size buckets (additions + deletions):
- S:  1-50 lines
- M:  51-200 lines
- L:  201-500 lines
- XL: 501+ lines

The insight names the bucket that merges fastest, unless there are fewer than
10 merged PRs or all buckets are within 20% of each other.
"""

import statistics
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .git_types import PullRequest, ensure_utc, utc_now
from .repository import DateRange


# =============================================================================
# CONFIGURATION
# =============================================================================

MIN_PRS_FOR_INSIGHT = 10
SIMILARITY_TOLERANCE = 1.2  # Slowest bucket within 20% of fastest = no difference

INSUFFICIENT_DATA_MESSAGE = (
    "Not enough data to determine optimal PR size. "
    "Analyze at least 10 merged PRs for meaningful insights."
)
NO_DIFFERENCE_MESSAGE = (
    "PR size has minimal impact on lead time. "
    "All size categories show similar merge speeds."
)


class SizeBucketType(str, Enum):
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"


class InsightType(str, Enum):
    OPTIMAL = "optimal"
    NO_DIFFERENCE = "no_difference"
    INSUFFICIENT_DATA = "insufficient_data"


BUCKET_LINE_RANGES = {
    SizeBucketType.S: "1-50",
    SizeBucketType.M: "51-200",
    SizeBucketType.L: "201-500",
    SizeBucketType.XL: "501+",
}

BUCKET_NAMES = {
    SizeBucketType.S: "Small",
    SizeBucketType.M: "Medium",
    SizeBucketType.L: "Large",
    SizeBucketType.XL: "Extra Large",
}


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class PRThroughputData:
    """One merged PR with its size and lead time."""
    pr_number: int
    title: str
    author: str
    created_at: datetime
    merged_at: datetime
    additions: int
    deletions: int
    changed_files: int

    def __post_init__(self):
        if self.pr_number <= 0:
            raise ValueError("PR number must be positive")
        if not self.title.strip():
            raise ValueError("PR title cannot be empty")
        if not self.author.strip():
            raise ValueError("PR author cannot be empty")
        if self.merged_at < self.created_at:
            raise ValueError("Merged date cannot be before created date")
        if self.additions < 0:
            raise ValueError("Additions cannot be negative")
        if self.deletions < 0:
            raise ValueError("Deletions cannot be negative")
        if self.changed_files < 0:
            raise ValueError("Changed files cannot be negative")
        object.__setattr__(self, "title", self.title.strip())
        object.__setattr__(self, "author", self.author.strip())

    @property
    def size(self) -> int:
        return self.additions + self.deletions

    @property
    def lead_time_hours(self) -> float:
        return (self.merged_at - self.created_at).total_seconds() / 3600

    @property
    def lead_time_days(self) -> float:
        return self.lead_time_hours / 24

    @property
    def size_bucket(self) -> SizeBucketType:
        size = self.size
        if size <= 50:
            return SizeBucketType.S
        if size <= 200:
            return SizeBucketType.M
        if size <= 500:
            return SizeBucketType.L
        return SizeBucketType.XL


@dataclass(frozen=True)
class SizeBucket:
    bucket: SizeBucketType
    line_range: str
    average_lead_time_hours: float
    pr_count: int
    percentage: float

    @classmethod
    def from_prs(cls, bucket: SizeBucketType, prs: list[PRThroughputData], total_pr_count: int) -> "SizeBucket":
        line_range = BUCKET_LINE_RANGES[bucket]
        if not prs:
            return cls(bucket, line_range, 0, 0, 0)

        average = sum(pr.lead_time_hours for pr in prs) / len(prs)
        percentage = len(prs) / total_pr_count * 100
        return cls(bucket, line_range, average, len(prs), percentage)

    @property
    def average_lead_time_days(self) -> float:
        return self.average_lead_time_hours / 24

    @property
    def name(self) -> str:
        return BUCKET_NAMES[self.bucket]

    def is_valid(self) -> bool:
        if self.pr_count < 0 or self.average_lead_time_hours < 0:
            return False
        if not 0 <= self.percentage <= 100:
            return False
        if self.pr_count == 0 and (self.average_lead_time_hours != 0 or self.percentage != 0):
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "bucket": self.bucket.value,
            "name": self.name,
            "lineRange": self.line_range,
            "averageLeadTimeHours": self.average_lead_time_hours,
            "averageLeadTimeDays": self.average_lead_time_days,
            "prCount": self.pr_count,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class ThroughputInsight:
    type: InsightType
    message: str
    optimal_bucket: SizeBucketType | None = None

    def __post_init__(self):
        if not self.message or not self.message.strip():
            raise ValueError("Message cannot be empty")
        if self.type == InsightType.OPTIMAL and self.optimal_bucket is None:
            raise ValueError("Optimal insight type requires a non-null optimal bucket")
        if self.type != InsightType.OPTIMAL and self.optimal_bucket is not None:
            raise ValueError(
                f"{self.type.value} insight type must have null optimal bucket, got {self.optimal_bucket.value}"
            )
        object.__setattr__(self, "message", self.message.strip())

    @classmethod
    def from_buckets(cls, buckets: list[SizeBucket], total_pr_count: int) -> "ThroughputInsight":
        if total_pr_count < 0:
            raise ValueError("Total PR count cannot be negative")
        if not buckets:
            raise ValueError("Bucket metrics cannot be empty")

        if total_pr_count < MIN_PRS_FOR_INSIGHT:
            return cls(InsightType.INSUFFICIENT_DATA, INSUFFICIENT_DATA_MESSAGE)

        with_prs = [b for b in buckets if b.pr_count > 0]
        if not with_prs:
            raise ValueError("No buckets with PRs found")

        lead_times = [b.average_lead_time_hours for b in with_prs]
        fastest, slowest = min(lead_times), max(lead_times)
        if fastest == 0:
            similar = slowest == 0
        else:
            similar = slowest <= fastest * SIMILARITY_TOLERANCE
        if similar:
            return cls(InsightType.NO_DIFFERENCE, NO_DIFFERENCE_MESSAGE)

        # min() keeps the first bucket on ties, so smaller sizes win
        optimal = min(with_prs, key=lambda b: b.average_lead_time_hours)
        message = (
            f"{optimal.name} PRs merge fastest on average. "
            "Consider breaking larger changes into smaller pull requests."
        )
        return cls(InsightType.OPTIMAL, message, optimal.bucket)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "optimalBucket": self.optimal_bucket.value if self.optimal_bucket else None,
        }


# =============================================================================
# ENTITY
# =============================================================================

@dataclass(frozen=True)
class PRThroughput:
    repository_url: str
    analyzed_at: datetime
    date_range: DateRange
    pr_data: tuple[PRThroughputData, ...]
    size_buckets: tuple[SizeBucket, ...]
    insight: ThroughputInsight

    @classmethod
    def create(cls, repository_url: str, pull_requests: list[PullRequest], date_range: DateRange) -> "PRThroughput":
        if not repository_url or not repository_url.strip():
            raise ValueError("Repository URL cannot be empty")
        if date_range.end < date_range.start:
            raise ValueError("Date range end cannot be before start")

        pr_data = []
        for pr in pull_requests:
            if pr.state != "merged" or pr.merged_at is None:
                continue
            for attr, label in (("additions", "additions"), ("deletions", "deletions"), ("changed_files", "changedFiles")):
                if getattr(pr, attr) is None:
                    raise ValueError(f"PR #{pr.number} is missing {label} field")
            try:
                pr_data.append(PRThroughputData(
                    pr_number=pr.number,
                    title=pr.title,
                    author=pr.author,
                    created_at=ensure_utc(pr.created_at),
                    merged_at=ensure_utc(pr.merged_at),
                    additions=pr.additions,
                    deletions=pr.deletions,
                    changed_files=pr.changed_files,
                ))
            except ValueError as e:
                raise ValueError(f"Failed to create PRThroughputData for PR #{pr.number}: {e}")

        total = len(pr_data)
        buckets = tuple(
            SizeBucket.from_prs(bucket, [pr for pr in pr_data if pr.size_bucket == bucket], total)
            for bucket in SizeBucketType
        )

        return cls(
            repository_url=repository_url,
            analyzed_at=utc_now(),
            date_range=date_range,
            pr_data=tuple(pr_data),
            size_buckets=buckets,
            insight=ThroughputInsight.from_buckets(list(buckets), total),
        )

    @property
    def total_merged_prs(self) -> int:
        return len(self.pr_data)

    @property
    def average_lead_time_hours(self) -> float:
        if not self.pr_data:
            return 0
        return sum(pr.lead_time_hours for pr in self.pr_data) / len(self.pr_data)

    @property
    def average_lead_time_days(self) -> float:
        return self.average_lead_time_hours / 24

    @property
    def median_lead_time_hours(self) -> float:
        if not self.pr_data:
            return 0
        return statistics.median(pr.lead_time_hours for pr in self.pr_data)

    @property
    def median_lead_time_days(self) -> float:
        return self.median_lead_time_hours / 24

    def bucket(self, bucket: SizeBucketType) -> SizeBucket:
        return next(b for b in self.size_buckets if b.bucket == bucket)

    def is_consistent(self) -> bool:
        """Bucket counts sum to the total and percentages to 100 (or 0)."""
        if sum(b.pr_count for b in self.size_buckets) != self.total_merged_prs:
            return False
        total_percentage = sum(b.percentage for b in self.size_buckets)
        if self.total_merged_prs == 0:
            return total_percentage == 0
        return abs(total_percentage - 100) <= 0.1
