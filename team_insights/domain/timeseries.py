"""
Weekly PR change aggregates, change trend and outlier weeks.

Weeks are ISO weeks (Monday 00:00 to Sunday 23:59:59.999, UTC).
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from .activity import TrendDirection
from .git_types import PullRequest, ensure_utc


# =============================================================================
# CONFIGURATION
# =============================================================================

MIN_WEEKS_FOR_ANALYSIS = 4
STABLE_THRESHOLD_PERCENT = 10
OUTLIER_STD_THRESHOLD = 2.0


def week_start_of(moment: datetime) -> datetime:
    """Monday 00:00 UTC of the ISO week containing moment."""
    moment = ensure_utc(moment)
    monday = moment - timedelta(days=moment.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def has_change_stats(pr: PullRequest) -> bool:
    return (
        pr.merged_at is not None
        and pr.additions is not None
        and pr.deletions is not None
        and pr.changed_files is not None
    )


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class WeeklyAggregate:
    week_start: datetime
    week_end: datetime
    additions: int
    deletions: int
    total_changes: int
    net_change: int
    pr_count: int
    average_pr_size: float
    changed_files_total: int

    @classmethod
    def from_prs(cls, week_start: datetime, prs: list[PullRequest]) -> "WeeklyAggregate":
        week_start = ensure_utc(week_start)
        if week_start.weekday() != 0:
            raise ValueError("weekStart must be a Monday (ISO week definition)")

        week_start = week_start.replace(hour=0, minute=0, second=0, microsecond=0)
        week_end = week_start + timedelta(days=6, hours=23, minutes=59, seconds=59, microseconds=999000)

        week_prs = [
            pr for pr in prs
            if has_change_stats(pr) and week_start <= ensure_utc(pr.merged_at) <= week_end
        ]

        additions = sum(pr.additions for pr in week_prs)
        deletions = sum(pr.deletions for pr in week_prs)
        total_changes = additions + deletions
        pr_count = len(week_prs)

        return cls(
            week_start=week_start,
            week_end=week_end,
            additions=additions,
            deletions=deletions,
            total_changes=total_changes,
            net_change=additions - deletions,
            pr_count=pr_count,
            average_pr_size=total_changes / pr_count if pr_count > 0 else 0,
            changed_files_total=sum(pr.changed_files for pr in week_prs),
        )

    def to_dict(self) -> dict:
        return {
            "weekStart": self.week_start.isoformat(),
            "weekEnd": self.week_end.isoformat(),
            "additions": self.additions,
            "deletions": self.deletions,
            "totalChanges": self.total_changes,
            "netChange": self.net_change,
            "prCount": self.pr_count,
            "averagePRSize": self.average_pr_size,
            "changedFilesTotal": self.changed_files_total,
        }


@dataclass(frozen=True)
class ChangeTrend:
    """Compares the mean weekly change volume of the first and second half."""
    direction: TrendDirection
    percent_change: float
    analyzed_weeks: int
    start_value: float
    end_value: float

    @classmethod
    def analyze(cls, weekly_totals: list[int]) -> "ChangeTrend":
        if len(weekly_totals) < MIN_WEEKS_FOR_ANALYSIS:
            raise ValueError("Insufficient data for trend analysis: requires at least 4 weeks")

        midpoint = len(weekly_totals) // 2
        first_half = weekly_totals[:midpoint]
        second_half = weekly_totals[midpoint:]

        start_value = sum(first_half) / len(first_half)
        end_value = sum(second_half) / len(second_half)
        raw_change = end_value - start_value
        percent_change = abs(raw_change / start_value) * 100 if start_value > 0 else 0

        if percent_change >= STABLE_THRESHOLD_PERCENT:
            direction = TrendDirection.INCREASING if raw_change >= 0 else TrendDirection.DECREASING
        else:
            direction = TrendDirection.STABLE

        return cls(direction, percent_change, len(weekly_totals), start_value, end_value)

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "percentChange": self.percent_change,
            "analyzedWeeks": self.analyzed_weeks,
            "startValue": self.start_value,
            "endValue": self.end_value,
        }


@dataclass(frozen=True)
class OutlierWeek:
    week_start: datetime
    total_changes: int
    pr_count: int
    z_score: float
    mean_value: float
    std_deviation: float

    @classmethod
    def detect(cls, weekly_data: list[WeeklyAggregate], threshold: float = OUTLIER_STD_THRESHOLD) -> list["OutlierWeek"]:
        if len(weekly_data) < MIN_WEEKS_FOR_ANALYSIS:
            return []

        totals = [week.total_changes for week in weekly_data]
        mean = sum(totals) / len(totals)
        # Population standard deviation
        std_dev = math.sqrt(sum((value - mean) ** 2 for value in totals) / len(totals))
        if std_dev == 0:
            return []

        upper_bound = mean + threshold * std_dev
        return [
            cls(
                week_start=week.week_start,
                total_changes=week.total_changes,
                pr_count=week.pr_count,
                z_score=(week.total_changes - mean) / std_dev,
                mean_value=mean,
                std_deviation=std_dev,
            )
            for week in weekly_data
            if week.total_changes > upper_bound
        ]

    def to_dict(self) -> dict:
        return {
            "weekStart": self.week_start.isoformat(),
            "totalChanges": self.total_changes,
            "prCount": self.pr_count,
            "zScore": self.z_score,
            "meanValue": self.mean_value,
            "stdDeviation": self.std_deviation,
        }
