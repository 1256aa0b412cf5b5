"""
Repository analysis pipeline.

FetchGitData loads commits, pull requests and review comments (through the
data cache when one is given). AnalyzeRepository turns them into contributor
metrics plus the optional throughput, timeseries and deployment sections, and
persists the run so it can be fetched again by id.
"""

import json
import logging
import time
import uuid
from collections import Counter
from datetime import datetime

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.analysis import AnalysisStatus, RepositoryAnalysis
from ..domain.contributor import Contributor
from ..domain.git_types import Commit, GitData, PullRequest, ReviewComment, ensure_utc, utc_now
from ..domain.repository import DateRange, DateRangePreset, RepositoryUrl
from ..errors import AnalysisErrorCode, ApplicationError, DataLoadError
from ..models import Analysis, Repository
from .cache import DataCache, DataType
from .deployments import CalculateDeploymentFrequency
from .github import GitHubGraphQLClient
from .metrics import MetricsCalculator
from .throughput import CalculateThroughputMetrics
from .timeseries import CalculateChangesTimeseries

logger = logging.getLogger(__name__)

DEFAULT_RANGE_MONTHS = 6


# =============================================================================
# FETCH GIT DATA
# =============================================================================

class FetchGitData:
    def __init__(self, client: GitHubGraphQLClient, cache: DataCache | None = None):
        self.client = client
        self.cache = cache

    async def _cached(self, repo_url: RepositoryUrl, data_type: DataType, date_range: DateRange, fetch, record_type):
        if self.cache is None:
            return await fetch()
        return await self.cache.get_or_fetch(repo_url.full_name, data_type, date_range, fetch, record_type)

    async def execute(self, repository_url: str, date_range: DateRange) -> GitData:
        repo_url = RepositoryUrl.parse(repository_url)
        owner, repo = repo_url.owner, repo_url.repo
        logger.info(f"Fetching git data for {repo_url.full_name} from {date_range.start} to {date_range.end}")

        await self.client.validate_access(owner, repo)

        commits = await self._cached(
            repo_url, DataType.COMMITS, date_range,
            lambda: self.client.get_log(owner, repo, date_range.start, date_range.end),
            Commit,
        )
        logger.info(f"Fetched {len(commits)} commits")

        pull_requests = await self._cached(
            repo_url, DataType.PULL_REQUESTS, date_range,
            lambda: self.client.get_pull_requests(owner, repo, date_range.start),
            PullRequest,
        )
        logger.info(f"Fetched {len(pull_requests)} pull requests")

        pr_numbers = [pr.number for pr in pull_requests]
        review_comments = await self._cached(
            repo_url, DataType.REVIEW_COMMENTS, date_range,
            lambda: self.client.get_review_comments(owner, repo, pr_numbers),
            ReviewComment,
        )
        logger.info(f"Fetched {len(review_comments)} review comments")

        counts = Counter(comment.pull_request_number for comment in review_comments)
        for pr in pull_requests:
            pr.review_comment_count = counts.get(pr.number, 0)

        return GitData(commits=commits, pull_requests=pull_requests, review_comments=review_comments)


# =============================================================================
# SERIALIZATION
# =============================================================================

def analysis_to_dict(analysis: RepositoryAnalysis) -> dict:
    return {
        "id": analysis.id,
        "repositoryUrl": analysis.repository_url.value,
        "analyzedAt": analysis.analyzed_at.isoformat(),
        "dateRange": {
            "start": analysis.date_range.start.isoformat(),
            "end": analysis.date_range.end.isoformat(),
        },
        "status": analysis.status.value,
        "contributors": [c.to_dict() for c in analysis.contributors],
        "errorMessage": analysis.error_message,
    }


def _loads(value: str | None):
    return json.loads(value) if value else None


def stored_analysis_to_dict(record: Analysis) -> dict:
    return {
        "analysis": {
            "id": record.id,
            "repositoryUrl": record.repository.github_link,
            "analyzedAt": ensure_utc(record.analyzed_at).isoformat(),
            "dateRange": {
                "start": ensure_utc(record.range_start).isoformat(),
                "end": ensure_utc(record.range_end).isoformat(),
            },
            "status": record.status,
            "contributors": _loads(record.contributors_data) or [],
            "errorMessage": record.error_message,
        },
        "analysisTimeMs": record.analysis_time_ms,
        "throughput": _loads(record.throughput_data),
        "timeseries": _loads(record.timeseries_data),
        "deploymentFrequency": _loads(record.deployment_data),
    }


def get_stored_analysis(db: Session, analysis_id: str) -> Analysis:
    record = db.query(Analysis).filter(Analysis.id == analysis_id).first()
    if record is None:
        raise ApplicationError(AnalysisErrorCode.REPO_NOT_FOUND, f"Analysis not found: {analysis_id}")
    return record


def load_contributors(record: Analysis) -> list[Contributor]:
    return [Contributor.from_dict(data) for data in _loads(record.contributors_data) or []]


def get_or_create_repository(db: Session, repo_url: RepositoryUrl) -> Repository:
    """Get existing repository row or create one. Handles concurrent inserts."""
    repository = db.query(Repository).filter(Repository.github_link == repo_url.value).first()
    if not repository:
        try:
            repository = Repository(github_link=repo_url.value, owner=repo_url.owner, name=repo_url.repo)
            db.add(repository)
            db.flush()
        except IntegrityError:
            # Another request created it first
            db.rollback()
            repository = db.query(Repository).filter(Repository.github_link == repo_url.value).first()
            if not repository:
                raise
    return repository


# =============================================================================
# ANALYZE REPOSITORY
# =============================================================================

def cache_friendly_now() -> datetime:
    """Current time floored to the minute, so repeated "now" ranges share cache keys."""
    return utc_now().replace(second=0, microsecond=0)


def create_date_range(start: datetime | None = None, end: datetime | None = None) -> DateRange:
    if start is None and end is None:
        return DateRange.from_months(DEFAULT_RANGE_MONTHS, end=cache_friendly_now())
    if start is not None and end is not None:
        return DateRange(start=start, end=end)
    if start is not None:
        return DateRange(start=start, end=cache_friendly_now())
    return DateRange(start=end - relativedelta(months=DEFAULT_RANGE_MONTHS), end=end)


def resolve_date_range(
    preset: DateRangePreset | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> DateRange:
    """A non-custom preset wins over explicit dates; `custom` needs both dates."""
    if preset is not None:
        preset = DateRangePreset(preset)
        if preset != DateRangePreset.CUSTOM:
            return DateRange.from_preset(preset, end=cache_friendly_now())
        if start is None or end is None:
            raise ValueError("Custom preset requires startDate and endDate parameters")
    return create_date_range(start, end)


class AnalyzeRepository:
    def __init__(self, db: Session, client: GitHubGraphQLClient, cache: DataCache | None = None):
        self.db = db
        self.fetch_git_data = FetchGitData(client, cache)
        self.calculate_metrics = MetricsCalculator()
        self.calculate_throughput = CalculateThroughputMetrics()
        self.calculate_timeseries = CalculateChangesTimeseries()
        self.calculate_deployments = CalculateDeploymentFrequency(client)

    async def execute(
        self,
        repository_url: str,
        start: datetime | None = None,
        end: datetime | None = None,
        preset: DateRangePreset | None = None,
    ) -> dict:
        started = time.monotonic()
        logger.info(f"Starting analysis of {repository_url}")

        try:
            repo_url = RepositoryUrl.parse(repository_url)
        except ValueError as e:
            raise ApplicationError(AnalysisErrorCode.INVALID_URL, str(e))
        date_range = resolve_date_range(preset, start, end)
        analysis = RepositoryAnalysis.in_progress(str(uuid.uuid4()), repo_url, date_range)

        try:
            git_data = await self.fetch_git_data.execute(repo_url.value, date_range)
        except DataLoadError as e:
            logger.error(f"Fetching git data for {repo_url.full_name} failed: {e.message}")
            self._persist(analysis.fail(e.message), started)
            raise ApplicationError.from_data_load_error(e)

        contributors = self.calculate_metrics.calculate(
            git_data.commits, git_data.pull_requests, git_data.review_comments
        )

        throughput = None
        try:
            throughput = self.calculate_throughput.execute(repo_url.value, git_data.pull_requests, date_range)
        except ValueError as e:
            logger.warning(f"Failed to calculate PR throughput metrics: {e}")

        timeseries = None
        try:
            timeseries = self.calculate_timeseries.execute(git_data.pull_requests)
        except ValueError as e:
            logger.warning(f"Failed to calculate PR changes timeseries: {e}")

        deployment_frequency = None
        try:
            deployment_frequency = await self.calculate_deployments.execute(repo_url.owner, repo_url.repo, date_range)
        except (DataLoadError, ValueError) as e:
            logger.warning(f"Failed to calculate deployment frequency: {e}")

        if not contributors:
            message = "No contributors found in the selected date range"
            self._persist(analysis.fail(message), started)
            raise ApplicationError(AnalysisErrorCode.REPO_NOT_FOUND, message)

        analysis = analysis.complete(contributors)
        analysis_time_ms = self._persist(analysis, started, throughput, timeseries, deployment_frequency)
        logger.info(
            f"Analysis {analysis.id} completed: {len(contributors)} contributors in {analysis_time_ms}ms"
        )

        return {
            "analysis": analysis_to_dict(analysis),
            "analysisTimeMs": analysis_time_ms,
            "throughput": throughput,
            "timeseries": timeseries,
            "deploymentFrequency": deployment_frequency,
        }

    def _persist(self, analysis: RepositoryAnalysis, started: float, throughput=None, timeseries=None, deployments=None) -> int:
        analysis_time_ms = int((time.monotonic() - started) * 1000)

        repository = get_or_create_repository(self.db, analysis.repository_url)
        completed = analysis.status == AnalysisStatus.COMPLETED
        self.db.add(Analysis(
            id=analysis.id,
            repository_id=repository.id,
            status=analysis.status.value,
            analyzed_at=analysis.analyzed_at.replace(tzinfo=None),
            range_start=analysis.date_range.start.replace(tzinfo=None),
            range_end=analysis.date_range.end.replace(tzinfo=None),
            error_message=analysis.error_message,
            analysis_time_ms=analysis_time_ms,
            contributors_data=json.dumps([c.to_dict() for c in analysis.contributors]) if completed else None,
            throughput_data=json.dumps(throughput) if throughput is not None else None,
            timeseries_data=json.dumps(timeseries) if timeseries is not None else None,
            deployment_data=json.dumps(deployments) if deployments is not None else None,
        ))
        self.db.commit()
        return analysis_time_ms
