"""
Deployment events, deployment frequency and the DORA performance level.

A "deployment" is any of: a published GitHub Release, a GitHub Deployment
or a git tag. Frequency is measured over the span between the oldest and
newest event.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from .activity import TrendDirection
from .git_types import Deployment, Release, Tag, ensure_utc


# =============================================================================
# CONFIGURATION
# =============================================================================

DAYS_PER_MONTH = 30.44
MOVING_AVERAGE_WINDOW = 4
SLOPE_SIGNIFICANCE = 0.1
MIN_TREND_CONFIDENCE = 0.3

ELITE_PER_YEAR = 730  # 2+ per day
HIGH_PER_YEAR = 52  # weekly
MEDIUM_PER_YEAR = 12  # monthly


class DeploymentSource(str, Enum):
    RELEASE = "release"
    DEPLOYMENT = "deployment"
    TAG = "tag"


class DORALevel(str, Enum):
    ELITE = "elite"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INSUFFICIENT_DATA = "insufficient_data"


def normalize_tag_name(tag_name: str | None) -> str | None:
    """refs/tags/V1.2.0 -> 1.2.0"""
    if not tag_name:
        return None
    name = re.sub(r"^refs/tags/", "", tag_name).lower()
    return re.sub(r"^v", "", name)


# =============================================================================
# DEPLOYMENT EVENT
# =============================================================================

@dataclass(frozen=True)
class DeploymentEvent:
    id: str
    tag_name: str | None
    timestamp: datetime
    source: DeploymentSource
    environment: str | None = None
    display_name: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("DeploymentEvent: id is required")
        if self.timestamp is None:
            raise ValueError("DeploymentEvent: valid timestamp is required")
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @classmethod
    def from_release(cls, release: Release) -> "DeploymentEvent":
        return cls(
            id=f"release-{release.tag_name}",
            tag_name=normalize_tag_name(release.tag_name),
            timestamp=release.published_at or release.created_at,
            source=DeploymentSource.RELEASE,
            display_name=release.name or release.tag_name,
        )

    @classmethod
    def from_deployment(cls, deployment: Deployment) -> "DeploymentEvent":
        return cls(
            id=f"deployment-{deployment.id}",
            tag_name=normalize_tag_name(deployment.ref),
            timestamp=deployment.created_at,
            source=DeploymentSource.DEPLOYMENT,
            environment=deployment.environment,
            display_name=deployment.ref or deployment.id,
        )

    @classmethod
    def from_tag(cls, tag: Tag) -> "DeploymentEvent":
        return cls(
            id=f"tag-{tag.name}",
            tag_name=normalize_tag_name(tag.name),
            timestamp=tag.tagger_date or tag.committed_date,
            source=DeploymentSource.TAG,
            display_name=tag.name,
        )

    @property
    def week_start(self) -> datetime:
        """Monday 00:00 of the ISO week"""
        monday = self.timestamp - timedelta(days=self.timestamp.weekday())
        return monday.replace(hour=0, minute=0, second=0, microsecond=0)

    @property
    def week_key(self) -> str:
        """e.g. "W03-2024". The year is the ISO year, so 2024-12-30 is "W01-2025"."""
        iso_year, iso_week, _ = self.week_start.isocalendar()
        return f"W{iso_week:02d}-{iso_year}"

    @property
    def month_key(self) -> str:
        return self.timestamp.strftime("%Y-%m")

    def is_within_range(self, start: datetime | None = None, end: datetime | None = None) -> bool:
        if start and self.timestamp < ensure_utc(start):
            return False
        if end and self.timestamp > ensure_utc(end):
            return False
        return True

    def to_summary(self) -> dict:
        summary = {
            "displayName": self.display_name,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source.value,
        }
        if self.environment:
            summary["environment"] = self.environment
        return summary


# =============================================================================
# DEPLOYMENT FREQUENCY
# =============================================================================

@dataclass(frozen=True)
class WeeklyDeploymentData:
    week_key: str
    week_start_date: str  # YYYY-MM-DD
    deployment_count: int


@dataclass(frozen=True)
class MonthlyDeploymentData:
    month_key: str  # YYYY-MM
    month_name: str  # "January 2024"
    deployment_count: int


@dataclass(frozen=True)
class TrendAnalysis:
    direction: TrendDirection
    slope: float  # change in deployments per week
    confidence: float  # R^2, 0-1
    moving_average: list[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "slope": self.slope,
            "confidence": self.confidence,
            "movingAverage": list(self.moving_average),
        }


@dataclass(frozen=True)
class DeploymentFrequency:
    events: tuple[DeploymentEvent, ...]  # newest first
    weekly_data: tuple[WeeklyDeploymentData, ...]
    monthly_data: tuple[MonthlyDeploymentData, ...]
    total_count: int
    average_per_week: float
    average_per_month: float
    period_days: int
    deployments_per_year: float

    def __post_init__(self):
        if self.total_count < 0:
            raise ValueError("DeploymentFrequency: totalCount must be non-negative")
        if self.period_days < 0:
            raise ValueError("DeploymentFrequency: periodDays must be non-negative")

    @classmethod
    def create(cls, events: list[DeploymentEvent]) -> "DeploymentFrequency":
        if not events:
            return cls((), (), (), 0, 0, 0, 0, 0)

        ordered = sorted(events, key=lambda e: e.timestamp, reverse=True)
        newest, oldest = ordered[0], ordered[-1]
        span_days = (newest.timestamp - oldest.timestamp).total_seconds() / 86400
        period_days = max(1, math.ceil(span_days))

        weekly_counts: dict[str, int] = {}
        week_starts: dict[str, datetime] = {}
        monthly_counts: dict[str, int] = {}
        for event in ordered:
            weekly_counts[event.week_key] = weekly_counts.get(event.week_key, 0) + 1
            week_starts.setdefault(event.week_key, event.week_start)
            monthly_counts[event.month_key] = monthly_counts.get(event.month_key, 0) + 1

        weekly_data = sorted(
            (
                WeeklyDeploymentData(key, week_starts[key].strftime("%Y-%m-%d"), count)
                for key, count in weekly_counts.items()
            ),
            key=lambda w: w.week_start_date,
        )
        monthly_data = sorted(
            (
                MonthlyDeploymentData(key, datetime.strptime(key, "%Y-%m").strftime("%B %Y"), count)
                for key, count in monthly_counts.items()
            ),
            key=lambda m: m.month_key,
        )

        total = len(ordered)
        return cls(
            events=tuple(ordered),
            weekly_data=tuple(weekly_data),
            monthly_data=tuple(monthly_data),
            total_count=total,
            average_per_week=total / (period_days / 7),
            average_per_month=total / (period_days / DAYS_PER_MONTH),
            period_days=period_days,
            deployments_per_year=total / period_days * 365,
        )

    def weekly_count(self, week_key: str) -> int:
        return next((w.deployment_count for w in self.weekly_data if w.week_key == week_key), 0)

    def monthly_count(self, month_key: str) -> int:
        return next((m.deployment_count for m in self.monthly_data if m.month_key == month_key), 0)

    def recent(self, count: int) -> list[DeploymentEvent]:
        return list(self.events[:count])

    def filter_by_date_range(self, start: datetime | None = None, end: datetime | None = None) -> "DeploymentFrequency":
        return DeploymentFrequency.create([e for e in self.events if e.is_within_range(start, end)])

    def moving_average(self, window: int = MOVING_AVERAGE_WINDOW) -> list[float]:
        counts = [w.deployment_count for w in self.weekly_data]
        averages = []
        for i in range(len(counts)):
            values = counts[max(0, i - window + 1):i + 1]
            averages.append(sum(values) / len(values))
        return averages

    def analyze_trend(self, window: int = MOVING_AVERAGE_WINDOW) -> TrendAnalysis:
        """Least-squares line through the moving average of weekly counts."""
        if len(self.weekly_data) < 2:
            return TrendAnalysis(TrendDirection.STABLE, 0, 0, [])

        y = self.moving_average(window)
        n = len(y)
        x_mean = (n - 1) / 2
        y_mean = sum(y) / n

        numerator = sum((i - x_mean) * (y[i] - y_mean) for i in range(n))
        denominator = sum((i - x_mean) ** 2 for i in range(n))
        slope = numerator / denominator if denominator else 0

        ss_total = sum((value - y_mean) ** 2 for value in y)
        ss_residual = sum((y[i] - (y_mean + slope * (i - x_mean))) ** 2 for i in range(n))
        r_squared = 1 - ss_residual / ss_total if ss_total else 0
        confidence = max(0.0, min(1.0, r_squared))

        if abs(slope) < SLOPE_SIGNIFICANCE or confidence < MIN_TREND_CONFIDENCE:
            direction = TrendDirection.STABLE
        elif slope > 0:
            direction = TrendDirection.INCREASING
        else:
            direction = TrendDirection.DECREASING

        return TrendAnalysis(direction, slope, confidence, y)


# =============================================================================
# DORA PERFORMANCE LEVEL
# =============================================================================

@dataclass(frozen=True)
class DORAPerformanceLevel:
    level: DORALevel
    deployments_per_year: float
    description: str
    benchmark_range: str
    display_color: str
    improvement_suggestions: tuple[str, ...] = ()

    @classmethod
    def from_frequency(cls, frequency: DeploymentFrequency) -> "DORAPerformanceLevel":
        per_year = frequency.deployments_per_year

        if frequency.total_count == 0:
            return cls(
                DORALevel.INSUFFICIENT_DATA,
                0,
                "No deployment data available.",
                "0 deployments",
                "#64748B",
                (
                    "Start tracking deployments by creating GitHub Releases",
                    "Tag your commits with semantic versioning (v1.0.0)",
                    "Set up GitHub Actions to create Deployment events",
                ),
            )

        if per_year >= ELITE_PER_YEAR:
            return cls(
                DORALevel.ELITE,
                per_year,
                f"Elite performance! Your team deploys {round(per_year)} times per year "
                f"({per_year / 365:.1f} per day).",
                "730+ deployments per year (2+ per day)",
                "#FFD700",
            )

        if per_year >= HIGH_PER_YEAR:
            return cls(
                DORALevel.HIGH,
                per_year,
                f"High performance! Deploying {round(per_year)} times per year.",
                "52-729 deployments per year (1/week to <2/day)",
                "#22C55E",
                (
                    "Consider increasing deployment frequency to reach elite level (2+ per day)",
                    "Implement continuous deployment practices",
                    "Automate more of your deployment pipeline",
                ),
            )

        if per_year >= MEDIUM_PER_YEAR:
            return cls(
                DORALevel.MEDIUM,
                per_year,
                f"Medium performance. Deploying {round(per_year)} times per year.",
                "12-51 deployments per year (1/month to <1/week)",
                "#F59E0B",
                (
                    "Increase deployment frequency by deploying smaller changes more often",
                    "Improve CI/CD automation to reduce deployment friction",
                    "Consider feature flags to decouple deployment from release",
                    "Reduce batch sizes to enable more frequent deployments",
                ),
            )

        return cls(
            DORALevel.LOW,
            per_year,
            f"Low performance. Only {round(per_year)} deployments per year.",
            "1-11 deployments per year (<1/month)",
            "#EF4444",
            (
                "Establish a regular deployment cadence (at least monthly)",
                "Invest in CI/CD automation to make deployments easier",
                "Break down large changes into smaller, deployable increments",
                "Build confidence through automated testing",
                "Consider implementing continuous deployment",
            ),
        )

    def is_good(self) -> bool:
        return self.level in (DORALevel.ELITE, DORALevel.HIGH)

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "deploymentsPerYear": self.deployments_per_year,
            "description": self.description,
            "benchmarkRange": self.benchmark_range,
            "displayColor": self.display_color,
            "improvementSuggestions": list(self.improvement_suggestions),
        }
