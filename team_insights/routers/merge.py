import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from ..config import DEFAULT_RATE_LIMIT
from ..database import get_db
from ..dependencies import limiter
from ..schemas import MergePreferencesResponse, MergeRequest
from ..services.analyzer import get_stored_analysis
from ..services.identity import MergeIdentities
from ..services.preferences import (
    clear_merge_preferences,
    get_merge_preferences,
    repository_id_from_url,
    save_merge_preference,
)
from ..services.storage import DatabaseStorage
from .analysis import load_merged_contributors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/merge", tags=["merge"])


@router.post("")
@limiter.limit(DEFAULT_RATE_LIMIT)
def merge_contributors(request: Request, response: Response, body: MergeRequest, db: Session = Depends(get_db)):
    """
    Merge contributors of an analysis into one identity.

    The merge is stored server-side for the repository and recorded in the
    identity-merges cookie so later views of the analysis replay it.
    """
    if len(set(body.merged_contributor_ids)) != len(body.merged_contributor_ids):
        raise HTTPException(status_code=400, detail="Merged contributor IDs must be unique")
    if body.primary_contributor_id in body.merged_contributor_ids:
        raise HTTPException(status_code=400, detail="Primary contributor cannot be in the merged list")

    record = get_stored_analysis(db, body.analysis_id)
    if not record.contributors_data:
        raise HTTPException(status_code=400, detail="Analysis has no contributors")

    repository_url = record.repository.github_link
    contributors = load_merged_contributors(db, request, record)
    outcome = MergeIdentities(DatabaseStorage(db)).execute(
        repository_url, body.primary_contributor_id, body.merged_contributor_ids, contributors
    )

    save_merge_preference(
        request,
        response,
        repository_id_from_url(repository_url),
        body.primary_contributor_id,
        body.merged_contributor_ids,
    )
    return outcome.to_dict()


@router.get("/preferences", response_model=MergePreferencesResponse)
@limiter.limit(DEFAULT_RATE_LIMIT)
def get_preferences(request: Request, repository_url: str, db: Session = Depends(get_db)):
    """Merges saved for a repository, in the cookie and on the server."""
    repository_id = repository_id_from_url(repository_url)
    stored = MergeIdentities(DatabaseStorage(db)).load_merge_preferences(repository_url.strip())
    return MergePreferencesResponse(
        repository_id=repository_id,
        preferences=get_merge_preferences(request, repository_id),
        stored_merges=[m.to_dict() for m in stored],
    )


@router.delete("/preferences")
@limiter.limit(DEFAULT_RATE_LIMIT)
def delete_preferences(request: Request, response: Response, repository_url: str):
    """Forget the cookie-saved merges for a repository."""
    repository_id = repository_id_from_url(repository_url)
    clear_merge_preferences(request, response, repository_id)
    logger.info(f"Cleared merge preferences for {repository_id}")
    return {"status": "cleared", "repository_id": repository_id}
