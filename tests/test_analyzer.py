"""Tests for the analysis pipeline with a mocked GitHub client."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from team_insights.domain.repository import DateRangePreset, RepositoryUrl
from team_insights.errors import AnalysisErrorCode, ApplicationError, DataLoadError, DataLoadErrorType
from team_insights.models import Analysis, Repository
from team_insights.services.analyzer import (
    AnalyzeRepository,
    FetchGitData,
    create_date_range,
    get_or_create_repository,
    get_stored_analysis,
    load_contributors,
    resolve_date_range,
    stored_analysis_to_dict,
)
from team_insights.services.cache import CacheKey, DataCache, DataType

from helpers import REPO_URL, make_github_client, utc

START = utc(2024, 1, 1)
END = utc(2024, 3, 1)


class TestCreateDateRange:
    def test_defaults_to_six_months(self):
        assert create_date_range().duration_months == 6

    def test_explicit_bounds(self):
        date_range = create_date_range(START, END)
        assert (date_range.start, date_range.end) == (START, END)

    def test_end_only_looks_back_six_months(self):
        assert create_date_range(end=utc(2024, 7, 1)).start == START

    def test_start_only_runs_to_now(self):
        date_range = create_date_range(start=START)
        assert date_range.start == START
        assert date_range.end > END

    def test_inverted_range(self):
        with pytest.raises(ValueError, match="Start date must be before end date"):
            create_date_range(END, START)

    def test_now_is_floored_to_the_minute(self):
        minute = utc(2024, 7, 1, 12, 30)
        with patch("team_insights.services.analyzer.utc_now", return_value=minute + timedelta(seconds=42.5)):
            first = create_date_range()
        with patch("team_insights.services.analyzer.utc_now", return_value=minute + timedelta(seconds=7)):
            second = create_date_range()

        assert first == second
        assert first.end == minute
        assert CacheKey.create("acme/widgets", DataType.COMMITS, first) == CacheKey.create(
            "acme/widgets", DataType.COMMITS, second
        )


class TestResolveDateRange:
    def test_preset_wins_over_dates(self):
        date_range = resolve_date_range(DateRangePreset.LAST_90_DAYS, START, END)
        assert date_range.duration_days == 90
        assert date_range.end.second == 0

    def test_preset_accepts_plain_values(self):
        assert resolve_date_range("last_year").duration_months == 12

    def test_custom_uses_dates(self):
        date_range = resolve_date_range(DateRangePreset.CUSTOM, START, END)
        assert (date_range.start, date_range.end) == (START, END)

    def test_custom_needs_both_dates(self):
        with pytest.raises(ValueError, match="Custom preset requires startDate and endDate"):
            resolve_date_range(DateRangePreset.CUSTOM, START)

    def test_without_preset_falls_back_to_dates(self):
        assert resolve_date_range(None, START, END).start == START


class TestFetchGitData:
    @pytest.mark.asyncio
    async def test_counts_review_comments_per_pull_request(self):
        client = make_github_client()

        data = await FetchGitData(client).execute(REPO_URL, create_date_range(START, END))

        client.validate_access.assert_awaited_once_with("acme", "widgets")
        client.get_log.assert_awaited_once_with("acme", "widgets", START, END)
        client.get_review_comments.assert_awaited_once_with("acme", "widgets", [1, 2])
        assert [pr.review_comment_count for pr in data.pull_requests] == [2, 0]

    @pytest.mark.asyncio
    async def test_uses_cache_between_runs(self, db_session):
        client = make_github_client()
        cache = DataCache(db_session)
        date_range = create_date_range(START, END)

        await FetchGitData(client, cache).execute(REPO_URL, date_range)
        data = await FetchGitData(client, cache).execute(REPO_URL, date_range)

        client.get_log.assert_awaited_once()
        client.get_pull_requests.assert_awaited_once()
        assert data.commits[0].email == "alice@acme.io"
        assert data.pull_requests[0].review_comment_count == 2

    @pytest.mark.asyncio
    async def test_access_failure_propagates(self):
        client = make_github_client()
        client.validate_access.side_effect = DataLoadError(DataLoadErrorType.NOT_FOUND, "Repository not found")

        with pytest.raises(DataLoadError):
            await FetchGitData(client).execute(REPO_URL, create_date_range(START, END))
        client.get_log.assert_not_awaited()


class TestAnalyzeRepository:
    @pytest.mark.asyncio
    async def test_completed_analysis_is_persisted(self, db_session):
        result = await AnalyzeRepository(db_session, make_github_client()).execute(REPO_URL, START, END)

        analysis = result["analysis"]
        assert analysis["status"] == "completed"
        assert analysis["repositoryUrl"] == REPO_URL
        assert {c["id"] for c in analysis["contributors"]} == {
            "contributor-alice-acme-io",
            "contributor-alice",
            "contributor-bob",
        }
        assert result["throughput"]["totalMergedPRs"] == 2
        assert result["timeseries"]["summary"]["totalPRs"] == 2
        assert result["deploymentFrequency"]["doraLevel"]["level"] == "insufficient_data"

        record = get_stored_analysis(db_session, analysis["id"])
        stored = stored_analysis_to_dict(record)
        assert stored["analysis"]["contributors"] == analysis["contributors"]
        assert stored["throughput"] == result["throughput"]
        assert [c.id for c in load_contributors(record)] == [c["id"] for c in analysis["contributors"]]

    @pytest.mark.asyncio
    async def test_invalid_url(self, db_session):
        with pytest.raises(ApplicationError) as exc_info:
            await AnalyzeRepository(db_session, make_github_client()).execute("https://example.com/x")
        assert exc_info.value.code == AnalysisErrorCode.INVALID_URL

    @pytest.mark.asyncio
    async def test_fetch_failure_is_recorded(self, db_session):
        client = make_github_client()
        client.validate_access.side_effect = DataLoadError(
            DataLoadErrorType.RATE_LIMIT_EXCEEDED, "GitHub API rate limit exceeded", reset_at=utc(2024, 1, 1, 1)
        )

        with pytest.raises(ApplicationError) as exc_info:
            await AnalyzeRepository(db_session, client).execute(REPO_URL, START, END)

        assert exc_info.value.code == AnalysisErrorCode.RATE_LIMIT_EXCEEDED
        assert exc_info.value.details == {"resetAt": "2024-01-01T01:00:00+00:00"}
        record = db_session.query(Analysis).one()
        assert record.status == "failed"
        assert record.error_message == "GitHub API rate limit exceeded"
        assert record.contributors_data is None

    @pytest.mark.asyncio
    async def test_no_activity_fails_the_analysis(self, db_session):
        client = make_github_client(commits=[], pull_requests=[], comments=[])

        with pytest.raises(ApplicationError) as exc_info:
            await AnalyzeRepository(db_session, client).execute(REPO_URL, START, END)

        assert exc_info.value.code == AnalysisErrorCode.REPO_NOT_FOUND
        assert db_session.query(Analysis).one().status == "failed"

    @pytest.mark.asyncio
    async def test_deployment_failure_is_not_fatal(self, db_session):
        client = make_github_client()
        error = DataLoadError(DataLoadErrorType.NETWORK_ERROR, "connection reset")
        client.get_releases.side_effect = error
        client.get_deployments.side_effect = error
        client.get_tags.side_effect = error

        result = await AnalyzeRepository(db_session, client).execute(REPO_URL, START, END)

        assert result["analysis"]["status"] == "completed"
        assert result["deploymentFrequency"]["totalDeployments"] == 0

    def test_missing_analysis(self, db_session):
        with pytest.raises(ApplicationError) as exc_info:
            get_stored_analysis(db_session, "nope")
        assert exc_info.value.code == AnalysisErrorCode.REPO_NOT_FOUND


class TestRepositoryRows:
    def test_get_or_create_is_idempotent(self, db_session):
        repo_url = RepositoryUrl.parse(REPO_URL)
        first = get_or_create_repository(db_session, repo_url)
        db_session.commit()
        second = get_or_create_repository(db_session, repo_url)

        assert first.id == second.id
        assert (second.owner, second.name) == ("acme", "widgets")
        assert db_session.query(Repository).count() == 1
