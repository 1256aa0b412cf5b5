"""
Rolling contributor timelines up into periods, trends and comparisons.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..domain.activity import ActivitySnapshot, ImplementationActivity, Period, ReviewActivity, TrendDirection
from ..domain.contributor import Contributor
from ..domain.repository import DateRange

STABLE_SLOPE = 0.01
TOP_MOVERS = 5


@dataclass(frozen=True)
class Trend:
    direction: TrendDirection
    velocity: float  # slope of total score per snapshot

    def to_dict(self) -> dict:
        return {"direction": self.direction.value, "velocity": self.velocity}


@dataclass(frozen=True)
class Comparison:
    current_total: float
    previous_total: float
    percentage_change: float
    top_movers: list[dict] = field(default_factory=list)  # [{"id", "change"}]

    def to_dict(self) -> dict:
        return {
            "currentTotal": self.current_total,
            "previousTotal": self.previous_total,
            "percentageChange": self.percentage_change,
            "topMovers": list(self.top_movers),
        }


def _period_key(moment: datetime, period: Period) -> str:
    if period == Period.WEEK:
        # Weeks start on Sunday
        sunday = moment - timedelta(days=(moment.weekday() + 1) % 7)
        return sunday.strftime("%Y-%m-%d")
    if period == Period.MONTH:
        return moment.strftime("%Y-%m")
    return moment.strftime("%Y-%m-%d")


class ActivityAggregationService:

    @staticmethod
    def aggregate_by_period(timeline: list[ActivitySnapshot], period: Period) -> list[ActivitySnapshot]:
        """Sum snapshots per day, week or month. Each group is dated by its first snapshot."""
        period = Period(period)
        groups: dict[str, list[ActivitySnapshot]] = {}
        for snapshot in timeline:
            groups.setdefault(_period_key(snapshot.date, period), []).append(snapshot)

        aggregated = []
        for snapshots in groups.values():
            implementation = ImplementationActivity.zero()
            review = ReviewActivity.zero()
            for snapshot in snapshots:
                implementation = implementation.add(snapshot.implementation_activity)
                review = review.add(snapshot.review_activity)
            aggregated.append(ActivitySnapshot(snapshots[0].date, period, implementation, review))

        return sorted(aggregated, key=lambda s: s.date)

    @staticmethod
    def calculate_trends(timeline: list[ActivitySnapshot]) -> Trend:
        """Least-squares slope of total score against snapshot index."""
        if not timeline:
            raise ValueError("Cannot calculate trends from empty timeline")
        if len(timeline) == 1:
            return Trend(TrendDirection.STABLE, 0)

        n = len(timeline)
        ys = [snapshot.total_score for snapshot in timeline]
        sum_x = sum(range(n))
        sum_y = sum(ys)
        sum_xy = sum(x * y for x, y in enumerate(ys))
        sum_xx = sum(x * x for x in range(n))
        slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)

        if abs(slope) < STABLE_SLOPE:
            direction = TrendDirection.STABLE
        elif slope > 0:
            direction = TrendDirection.INCREASING
        else:
            direction = TrendDirection.DECREASING
        return Trend(direction, slope)

    @staticmethod
    def compare_periods(current: DateRange, previous: DateRange, contributors: list[Contributor]) -> Comparison:
        current_total = 0.0
        previous_total = 0.0
        changes = []

        for contributor in contributors:
            contributor_current = 0.0
            contributor_previous = 0.0
            for snapshot in contributor.activity_timeline:
                if current.contains(snapshot.date):
                    contributor_current += snapshot.total_score
                elif previous.contains(snapshot.date):
                    contributor_previous += snapshot.total_score
            current_total += contributor_current
            previous_total += contributor_previous
            changes.append({"id": contributor.id, "change": contributor_current - contributor_previous})

        if previous_total == 0:
            percentage_change = 100.0 if current_total > 0 else 0.0
        else:
            percentage_change = (current_total - previous_total) / previous_total * 100

        top_movers = sorted(changes, key=lambda c: abs(c["change"]), reverse=True)[:TOP_MOVERS]
        return Comparison(current_total, previous_total, percentage_change, top_movers)
