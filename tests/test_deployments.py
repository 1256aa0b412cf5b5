"""Tests for deployment events, DORA levels and the deployment frequency use case."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from team_insights.domain.activity import TrendDirection
from team_insights.domain.deployments import (
    DeploymentEvent,
    DeploymentFrequency,
    DeploymentSource,
    DORALevel,
    DORAPerformanceLevel,
    normalize_tag_name,
)
from team_insights.domain.git_types import Deployment, Release, Tag
from team_insights.domain.repository import DateRange
from team_insights.errors import DataLoadError, DataLoadErrorType
from team_insights.services.deployments import CalculateDeploymentFrequency, deduplicate_events

from helpers import utc


def _event(moment, tag="1.0.0", source=DeploymentSource.RELEASE, event_id=None):
    return DeploymentEvent(
        id=event_id or f"{source.value}-{tag}-{moment.isoformat()}",
        tag_name=tag,
        timestamp=moment,
        source=source,
    )


class TestDeploymentEvent:
    @pytest.mark.parametrize("raw,expected", [
        ("refs/tags/V1.2.0", "1.2.0"),
        ("v2.0.0", "2.0.0"),
        ("release-7", "release-7"),
        (None, None),
        ("", None),
    ])
    def test_normalize_tag_name(self, raw, expected):
        assert normalize_tag_name(raw) == expected

    def test_week_and_month_keys(self):
        event = _event(utc(2024, 1, 3, 15))
        assert event.week_start == utc(2024, 1, 1)
        assert event.week_key == "W01-2024"
        assert event.month_key == "2024-01"

    def test_week_key_uses_iso_year(self):
        assert _event(utc(2024, 12, 31)).week_key == "W01-2025"

    def test_first_and_last_weeks_of_a_year_stay_apart(self):
        events = [_event(utc(2024, 1, 2), tag="1.0"), _event(utc(2024, 12, 31), tag="2.0")]
        frequency = DeploymentFrequency.create(events)
        assert [(w.week_key, w.deployment_count) for w in frequency.weekly_data] == [
            ("W01-2024", 1),
            ("W01-2025", 1),
        ]

    def test_release_prefers_published_date(self):
        release = Release(tag_name="v1.0.0", created_at=utc(2024, 1, 1), published_at=utc(2024, 1, 2))
        event = DeploymentEvent.from_release(release)
        assert event.timestamp == utc(2024, 1, 2)
        assert event.tag_name == "1.0.0"
        assert event.display_name == "v1.0.0"

    def test_tag_prefers_tagger_date(self):
        tag = Tag(name="v3.1.0", committed_date=utc(2024, 1, 1), tagger_date=utc(2024, 1, 5))
        assert DeploymentEvent.from_tag(tag).timestamp == utc(2024, 1, 5)

    def test_summary_includes_environment_when_known(self):
        deployment = Deployment(id="d1", created_at=utc(2024, 1, 1), environment="production", ref="v1.0.0")
        summary = DeploymentEvent.from_deployment(deployment).to_summary()
        assert summary["source"] == "deployment"
        assert summary["environment"] == "production"


class TestDeduplication:
    def test_release_beats_deployment_beats_tag(self):
        release = _event(utc(2024, 1, 10), source=DeploymentSource.RELEASE)
        deployment = _event(utc(2024, 1, 9), source=DeploymentSource.DEPLOYMENT)
        tag = _event(utc(2024, 1, 8), source=DeploymentSource.TAG)
        other_tag = _event(utc(2024, 1, 1), tag="0.9.0", source=DeploymentSource.TAG)

        events = deduplicate_events([release], [deployment], [tag, other_tag])

        assert [e.source for e in events] == [DeploymentSource.TAG, DeploymentSource.RELEASE]
        assert events[1].timestamp == utc(2024, 1, 10)

    def test_events_without_tag_are_dropped(self):
        assert deduplicate_events([], [_event(utc(2024, 1, 1), tag=None)], []) == []


class TestDeploymentFrequency:
    def test_no_events(self):
        frequency = DeploymentFrequency.create([])
        assert frequency.total_count == 0
        assert DORAPerformanceLevel.from_frequency(frequency).level == DORALevel.INSUFFICIENT_DATA

    def test_weekly_cadence_is_high(self):
        events = [_event(utc(2024, 1, 1) + timedelta(weeks=i), tag=f"1.{i}") for i in range(3)]
        frequency = DeploymentFrequency.create(events)

        assert frequency.period_days == 14
        assert frequency.average_per_week == 1.5
        assert frequency.deployments_per_year == pytest.approx(78.21, abs=0.01)
        assert [w.week_key for w in frequency.weekly_data] == ["W01-2024", "W02-2024", "W03-2024"]
        assert frequency.monthly_data[0].month_name == "January 2024"
        assert frequency.recent(1)[0].timestamp == utc(2024, 1, 15)

        level = DORAPerformanceLevel.from_frequency(frequency)
        assert level.level == DORALevel.HIGH
        assert level.is_good()

    def test_same_day_burst_is_elite(self):
        events = [_event(utc(2024, 1, 1, h), tag=f"1.{h}") for h in range(3)]
        frequency = DeploymentFrequency.create(events)
        assert frequency.period_days == 1
        assert DORAPerformanceLevel.from_frequency(frequency).level == DORALevel.ELITE

    def test_rare_deployments_are_low(self):
        frequency = DeploymentFrequency.create([_event(utc(2024, 1, 1), tag="1"), _event(utc(2024, 4, 10), tag="2")])
        level = DORAPerformanceLevel.from_frequency(frequency)
        assert level.level == DORALevel.LOW
        assert level.improvement_suggestions

    def test_monthly_cadence_is_medium(self):
        events = [_event(utc(2024, 1, 1) + timedelta(days=20 * i), tag=f"1.{i}") for i in range(4)]
        assert DORAPerformanceLevel.from_frequency(DeploymentFrequency.create(events)).level == DORALevel.MEDIUM

    def test_growing_weekly_counts_trend_upwards(self):
        events = []
        for week in range(5):
            for n in range(week + 1):
                events.append(_event(utc(2024, 1, 1) + timedelta(weeks=week, hours=n), tag=f"{week}.{n}"))
        frequency = DeploymentFrequency.create(events)

        trend = frequency.analyze_trend(window=1)

        assert trend.direction == TrendDirection.INCREASING
        assert trend.slope == pytest.approx(1)
        assert trend.confidence == pytest.approx(1)

    def test_moving_average_uses_partial_windows(self):
        events = [_event(utc(2024, 1, 1), tag="a"), _event(utc(2024, 1, 8), tag="b"), _event(utc(2024, 1, 9), tag="c")]
        assert DeploymentFrequency.create(events).moving_average(window=4) == [1, 1.5]

    def test_filter_by_date_range(self):
        events = [_event(utc(2024, 1, 1), tag="a"), _event(utc(2024, 2, 1), tag="b")]
        filtered = DeploymentFrequency.create(events).filter_by_date_range(start=utc(2024, 1, 15))
        assert filtered.total_count == 1


class TestCalculateDeploymentFrequency:
    RANGE = DateRange(utc(2024, 1, 1), utc(2024, 3, 1))

    def _client(self):
        client = MagicMock()
        client.get_releases = AsyncMock(return_value=[
            Release(tag_name="v0.9.0", created_at=utc(2023, 12, 1)),
            Release(tag_name="v1.0.0", created_at=utc(2024, 1, 10)),
            Release(tag_name="v1.1.0", created_at=utc(2024, 1, 12), is_draft=True),
        ])
        client.get_deployments = AsyncMock(return_value=[
            Deployment(id="d1", created_at=utc(2024, 1, 11), ref="v1.0.0"),
            Deployment(id="d2", created_at=utc(2024, 1, 20), environment="production", ref="refs/tags/v2.0.0"),
            Deployment(id="d3", created_at=utc(2024, 1, 21)),
        ])
        client.get_tags = AsyncMock(side_effect=DataLoadError(DataLoadErrorType.NETWORK_ERROR, "connection reset"))
        return client

    @pytest.mark.asyncio
    async def test_combines_sources_and_tolerates_failures(self):
        client = self._client()

        result = await CalculateDeploymentFrequency(client).execute("acme", "widgets", self.RANGE)

        client.get_releases.assert_awaited_once_with("acme", "widgets", utc(2024, 1, 1))
        assert result["totalDeployments"] == 2
        assert result["periodDays"] == 10
        assert result["doraLevel"]["level"] == "high"
        assert result["recentDeployments"][0] == {
            "displayName": "refs/tags/v2.0.0",
            "timestamp": utc(2024, 1, 20).isoformat(),
            "source": "deployment",
            "environment": "production",
        }
        assert result["recentDeployments"][1]["source"] == "release"
        assert "trendAnalysis" not in result

    @pytest.mark.asyncio
    async def test_all_sources_failing_gives_insufficient_data(self):
        client = MagicMock()
        error = DataLoadError(DataLoadErrorType.AUTH_ERROR, "bad token")
        client.get_releases = AsyncMock(side_effect=error)
        client.get_deployments = AsyncMock(side_effect=error)
        client.get_tags = AsyncMock(side_effect=error)

        result = await CalculateDeploymentFrequency(client).execute("acme", "widgets")

        assert result["totalDeployments"] == 0
        assert result["doraLevel"]["level"] == "insufficient_data"
        assert result["weeklyData"] == []
