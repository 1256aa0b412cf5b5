"""
RepositoryAnalysis: the lifecycle of one analysis run.

in_progress -> completed (needs at least one contributor)
in_progress -> failed (needs an error message)
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from .contributor import Contributor
from .git_types import utc_now
from .repository import DateRange, RepositoryUrl


class AnalysisStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RepositoryAnalysis:
    id: str
    repository_url: RepositoryUrl
    analyzed_at: datetime
    date_range: DateRange
    status: AnalysisStatus
    contributors: tuple[Contributor, ...] = ()
    error_message: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "contributors", tuple(self.contributors))
        if not self.id or not self.id.strip():
            raise ValueError("Analysis ID cannot be empty")
        try:
            object.__setattr__(self, "status", AnalysisStatus(self.status))
        except ValueError:
            raise ValueError("Invalid analysis status")
        if self.status == AnalysisStatus.COMPLETED and not self.contributors:
            raise ValueError("Cannot mark analysis as completed without contributors")
        if self.status == AnalysisStatus.FAILED and not self.error_message:
            raise ValueError("Error message is required when status is failed")

    @classmethod
    def in_progress(cls, analysis_id: str, repository_url: RepositoryUrl, date_range: DateRange) -> "RepositoryAnalysis":
        return cls(
            id=analysis_id,
            repository_url=repository_url,
            analyzed_at=utc_now(),
            date_range=date_range,
            status=AnalysisStatus.IN_PROGRESS,
        )

    def complete(self, contributors: list[Contributor]) -> "RepositoryAnalysis":
        if self.status != AnalysisStatus.IN_PROGRESS:
            raise ValueError("Can only complete analysis that is in progress")
        if not contributors:
            raise ValueError("Cannot complete analysis without contributors")
        return replace(self, status=AnalysisStatus.COMPLETED, contributors=tuple(contributors), error_message=None)

    def fail(self, error_message: str) -> "RepositoryAnalysis":
        if self.status != AnalysisStatus.IN_PROGRESS:
            raise ValueError("Can only fail analysis that is in progress")
        if not error_message or not error_message.strip():
            raise ValueError("Error message cannot be empty")
        return replace(self, status=AnalysisStatus.FAILED, error_message=error_message)
