"""
Team Insights API Schema Definitions

Pydantic models for request bodies and the small fixed-shape responses.
Analysis payloads are returned as the JSON documents built by the services.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .domain.repository import DateRangePreset


# =============================================================================
# REQUESTS
# =============================================================================

class AnalyzeRequest(BaseModel):
    """Request body for POST /analyze endpoint"""
    repo_url: str = Field(..., description="Full GitHub URL to analyze (e.g., https://github.com/owner/repo)")
    start_date: datetime | None = Field(None, description="Start of the analyzed range (default: 6 months before end)")
    end_date: datetime | None = Field(None, description="End of the analyzed range (default: now)")
    preset: DateRangePreset | None = Field(
        None, description="Named range such as last_30_days; wins over the dates unless it is 'custom'"
    )


class MergeRequest(BaseModel):
    """Request body for POST /merge endpoint"""
    analysis_id: str = Field(..., description="Analysis whose contributors are merged")
    primary_contributor_id: str = Field(..., min_length=1, description="Contributor that absorbs the others")
    merged_contributor_ids: list[str] = Field(..., min_length=1, description="Contributors merged into the primary")


class CacheInvalidateRequest(BaseModel):
    """Request body for POST /cache/invalidate endpoint"""
    repository_url: str | None = Field(None, description="Drop cached GitHub data for this repository")
    clear_all: bool = Field(False, description="Drop every cache entry")


# =============================================================================
# RESPONSES
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    message: str


class CacheInvalidateResponse(BaseModel):
    status: str = Field(..., description="Always 'invalidated'")
    removed_entries: int = Field(..., ge=0, description="Number of cache entries deleted")


class MergeSuggestionsResponse(BaseModel):
    analysis_id: str
    suggestions: list[dict] = Field(default_factory=list, description="Merge suggestions, strongest first")


class MergePreferencesResponse(BaseModel):
    repository_id: str = Field(..., description="owner/name")
    preferences: list[dict] = Field(default_factory=list, description="Merges saved in the client cookie")
    stored_merges: list[dict] = Field(default_factory=list, description="Merges persisted on the server")
