"""Tests for PR throughput: size buckets, lead times and the optimal-size insight."""

from datetime import timedelta

import pytest

from team_insights.domain.repository import DateRange
from team_insights.domain.throughput import InsightType, PRThroughput, PRThroughputData, SizeBucketType
from team_insights.services.throughput import CalculateThroughputMetrics

from helpers import REPO_URL, make_pr, utc

RANGE = DateRange(utc(2024, 1, 1), utc(2024, 3, 1))


def _pr(number, size, lead_hours, state="merged"):
    created = utc(2024, 1, 10)
    return make_pr(
        number=number,
        created=created,
        merged=created + timedelta(hours=lead_hours) if state == "merged" else None,
        state=state,
        additions=size,
        deletions=0,
    )


class TestPRThroughputData:
    @pytest.mark.parametrize("size,bucket", [
        (1, SizeBucketType.S),
        (50, SizeBucketType.S),
        (51, SizeBucketType.M),
        (200, SizeBucketType.M),
        (201, SizeBucketType.L),
        (500, SizeBucketType.L),
        (501, SizeBucketType.XL),
    ])
    def test_size_bucket_boundaries(self, size, bucket):
        data = PRThroughputData(1, "t", "a", utc(2024, 1, 1), utc(2024, 1, 2), size, 0, 1)
        assert data.size_bucket == bucket

    def test_merge_before_creation_rejected(self):
        with pytest.raises(ValueError, match="Merged date cannot be before created date"):
            PRThroughputData(1, "t", "a", utc(2024, 1, 2), utc(2024, 1, 1), 1, 0, 1)

    def test_lead_time(self):
        data = PRThroughputData(1, "t", "a", utc(2024, 1, 1), utc(2024, 1, 2, 12), 1, 0, 1)
        assert data.lead_time_hours == 36
        assert data.lead_time_days == 1.5


class TestPRThroughput:
    def test_only_merged_prs_count(self):
        throughput = PRThroughput.create(REPO_URL, [_pr(1, 10, 2), _pr(2, 10, 0, state="open")], RANGE)
        assert throughput.total_merged_prs == 1
        assert throughput.is_consistent()

    def test_missing_stats_on_merged_pr(self):
        pr = _pr(5, 10, 2)
        pr.additions = None
        with pytest.raises(ValueError, match="PR #5 is missing additions field"):
            PRThroughput.create(REPO_URL, [pr], RANGE)

    def test_insufficient_data_below_ten_prs(self):
        throughput = PRThroughput.create(REPO_URL, [_pr(n, 10, 2) for n in range(1, 10)], RANGE)
        assert throughput.insight.type == InsightType.INSUFFICIENT_DATA
        assert throughput.insight.optimal_bucket is None

    def test_small_prs_are_optimal(self):
        prs = [_pr(n, 20, 2) for n in range(1, 7)] + [_pr(n, 600, 48) for n in range(7, 11)]
        throughput = PRThroughput.create(REPO_URL, prs, RANGE)

        assert throughput.insight.type == InsightType.OPTIMAL
        assert throughput.insight.optimal_bucket == SizeBucketType.S
        assert throughput.insight.message.startswith("Small PRs merge fastest")
        assert throughput.bucket(SizeBucketType.S).percentage == 60
        assert throughput.bucket(SizeBucketType.XL).average_lead_time_hours == 48
        assert throughput.bucket(SizeBucketType.M).pr_count == 0
        assert throughput.median_lead_time_hours == 2

    def test_similar_lead_times_give_no_difference(self):
        prs = [_pr(n, 20, 10) for n in range(1, 6)] + [_pr(n, 100, 11) for n in range(6, 11)]
        throughput = PRThroughput.create(REPO_URL, prs, RANGE)
        assert throughput.insight.type == InsightType.NO_DIFFERENCE

    def test_empty_repository_url(self):
        with pytest.raises(ValueError, match="Repository URL cannot be empty"):
            PRThroughput.create(" ", [], RANGE)


class TestCalculateThroughputMetrics:
    def test_result_shape(self):
        result = CalculateThroughputMetrics().execute(REPO_URL, [_pr(7, 30, 5)], RANGE)

        assert result["totalMergedPRs"] == 1
        assert result["averageLeadTimeHours"] == 5
        assert result["scatterData"] == [{"prNumber": 7, "size": 30, "leadTime": 5}]
        assert [b["bucket"] for b in result["sizeBuckets"]] == ["S", "M", "L", "XL"]
        assert result["insight"]["type"] == "insufficient_data"

    def test_requires_pull_requests(self):
        with pytest.raises(ValueError, match="Pull requests array cannot be null"):
            CalculateThroughputMetrics().execute(REPO_URL, None, RANGE)
