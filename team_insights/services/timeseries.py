"""
Weekly code-change timeseries from merged pull requests.
"""

import logging
from collections import defaultdict

from ..domain.git_types import PullRequest
from ..domain.timeseries import (
    MIN_WEEKS_FOR_ANALYSIS,
    ChangeTrend,
    OutlierWeek,
    WeeklyAggregate,
    has_change_stats,
    week_start_of,
)

logger = logging.getLogger(__name__)


def summarize(weekly_data: list[WeeklyAggregate]) -> dict:
    total_prs = sum(w.pr_count for w in weekly_data)
    total_changes = sum(w.total_changes for w in weekly_data)
    return {
        "totalPRs": total_prs,
        "totalAdditions": sum(w.additions for w in weekly_data),
        "totalDeletions": sum(w.deletions for w in weekly_data),
        "averageWeeklyChanges": total_changes / len(weekly_data) if weekly_data else 0,
        "averagePRSize": total_changes / total_prs if total_prs else 0,
        "weeksAnalyzed": len(weekly_data),
    }


class CalculateChangesTimeseries:

    def execute(self, pull_requests: list[PullRequest]) -> dict:
        """
        Group merged PRs by the ISO week of their merge time.

        PRs without a merge time or without change stats are ignored. Weeks
        with no merged PRs are absent. Trend needs at least 4 weeks.
        """
        by_week = defaultdict(list)
        for pr in pull_requests:
            if has_change_stats(pr):
                by_week[week_start_of(pr.merged_at)].append(pr)

        weekly_data = [WeeklyAggregate.from_prs(week, by_week[week]) for week in sorted(by_week)]

        trend = None
        if len(weekly_data) >= MIN_WEEKS_FOR_ANALYSIS:
            try:
                trend = ChangeTrend.analyze([w.total_changes for w in weekly_data])
            except ValueError as e:
                logger.warning(f"Could not analyze change trend: {e}")

        outliers = OutlierWeek.detect(weekly_data)
        logger.info(f"Built change timeseries over {len(weekly_data)} weeks with {len(outliers)} outlier(s)")

        return {
            "weeklyData": [w.to_dict() for w in weekly_data],
            "trend": trend.to_dict() if trend else None,
            "outlierWeeks": [o.to_dict() for o in outliers],
            "summary": summarize(weekly_data),
        }
