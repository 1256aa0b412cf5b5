import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import ANALYZE_RATE_LIMIT, DEFAULT_RATE_LIMIT
from ..database import get_db
from ..dependencies import get_github_client, limiter
from ..domain.activity import Period
from ..domain.contributor import Contributor
from ..models import Analysis
from ..schemas import AnalyzeRequest, MergeSuggestionsResponse
from ..services.aggregation import ActivityAggregationService
from ..services.analyzer import AnalyzeRepository, get_stored_analysis, load_contributors, stored_analysis_to_dict
from ..services.cache import DataCache
from ..services.github import GitHubGraphQLClient
from ..services.identity import MergeIdentities, apply_merge_preferences
from ..services.merge_detection import detect_merge_candidates
from ..services.preferences import get_merge_preferences, preference_pairs, repository_id_from_url
from ..services.storage import DatabaseStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze", tags=["analysis"])


def load_merged_contributors(db: Session, request: Request, record: Analysis) -> list[Contributor]:
    """Contributors of a stored analysis with server-side and cookie merges replayed."""
    contributors = load_contributors(record)
    repository_url = record.repository.github_link

    stored = MergeIdentities(DatabaseStorage(db)).load_merge_preferences(repository_url)
    pairs = [(m.primary_contributor_id, list(m.merged_contributor_ids)) for m in stored]
    pairs += preference_pairs(get_merge_preferences(request, repository_id_from_url(repository_url)))
    if not pairs:
        return contributors
    return apply_merge_preferences(contributors, pairs)


@router.post("")
@limiter.limit(ANALYZE_RATE_LIMIT)
async def analyze_repository(
    request: Request,
    body: AnalyzeRequest,
    db: Session = Depends(get_db),
    client: GitHubGraphQLClient = Depends(get_github_client),
):
    """
    Analyze a GitHub repository.

    Fetches commits, pull requests, review comments and deployment sources
    for the date range, computes contributor metrics, PR throughput, the
    changes timeseries and deployment frequency, and stores the result.
    """
    use_case = AnalyzeRepository(db, client, DataCache(db))
    try:
        return await use_case.execute(body.repo_url, body.start_date, body.end_date, body.preset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{analysis_id}")
@limiter.limit(DEFAULT_RATE_LIMIT)
def get_analysis(request: Request, analysis_id: str, db: Session = Depends(get_db)):
    """Get a stored analysis by ID, with saved identity merges applied."""
    record = get_stored_analysis(db, analysis_id)
    result = stored_analysis_to_dict(record)
    if record.contributors_data:
        try:
            contributors = load_merged_contributors(db, request, record)
        except ValueError as e:
            logger.warning(f"Could not replay merges for analysis {analysis_id}: {e}")
        else:
            result["analysis"]["contributors"] = [c.to_dict() for c in contributors]
    return result


@router.post("/{analysis_id}/merge-suggestions", response_model=MergeSuggestionsResponse)
@limiter.limit(DEFAULT_RATE_LIMIT)
def merge_suggestions(request: Request, analysis_id: str, db: Session = Depends(get_db)):
    """Suggest contributors that are probably the same person."""
    record = get_stored_analysis(db, analysis_id)
    if not record.contributors_data:
        raise HTTPException(status_code=400, detail="Analysis has no contributors")

    contributors = load_merged_contributors(db, request, record)
    suggestions = detect_merge_candidates(contributors)
    return MergeSuggestionsResponse(analysis_id=analysis_id, suggestions=[s.to_dict() for s in suggestions])


@router.get("/{analysis_id}/activity")
@limiter.limit(DEFAULT_RATE_LIMIT)
def get_activity(request: Request, analysis_id: str, period: Period = Period.WEEK, db: Session = Depends(get_db)):
    """Contributor timelines rolled up by day, week or month, with each contributor's trend."""
    record = get_stored_analysis(db, analysis_id)
    if not record.contributors_data:
        raise HTTPException(status_code=400, detail="Analysis has no contributors")

    rollups = []
    for contributor in load_merged_contributors(db, request, record):
        timeline = ActivityAggregationService.aggregate_by_period(list(contributor.activity_timeline), period)
        trend = ActivityAggregationService.calculate_trends(timeline) if timeline else None
        rollups.append({
            "id": contributor.id,
            "displayName": contributor.display_name,
            "timeline": [snapshot.to_dict() for snapshot in timeline],
            "trend": trend.to_dict() if trend else None,
        })
    return {"analysis_id": analysis_id, "period": period.value, "contributors": rollups}
