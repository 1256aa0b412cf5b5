"""
Team Insights domain model

Immutable value objects and entities. Constructors validate their invariants
and raise ValueError with a readable message.
"""

from .activity import (
    ActivitySnapshot,
    Email,
    ImplementationActivity,
    Period,
    ReviewActivity,
    TrendDirection,
)
from .analysis import AnalysisStatus, RepositoryAnalysis
from .contributor import Contributor, IdentityMerge
from .deployments import (
    DeploymentEvent,
    DeploymentFrequency,
    DeploymentSource,
    DORALevel,
    DORAPerformanceLevel,
    TrendAnalysis,
    normalize_tag_name,
)
from .git_types import (
    Commit,
    Deployment,
    GitData,
    PullRequest,
    RateLimitInfo,
    Release,
    ReviewComment,
    Tag,
)
from .repository import DateRange, DateRangePreset, RepositoryUrl, parse_date_range
from .throughput import (
    InsightType,
    PRThroughput,
    PRThroughputData,
    SizeBucket,
    SizeBucketType,
    ThroughputInsight,
)
from .timeseries import ChangeTrend, OutlierWeek, WeeklyAggregate

__all__ = [
    "ActivitySnapshot",
    "Email",
    "ImplementationActivity",
    "Period",
    "ReviewActivity",
    "TrendDirection",
    "AnalysisStatus",
    "RepositoryAnalysis",
    "Contributor",
    "IdentityMerge",
    "DeploymentEvent",
    "DeploymentFrequency",
    "DeploymentSource",
    "DORALevel",
    "DORAPerformanceLevel",
    "TrendAnalysis",
    "normalize_tag_name",
    "Commit",
    "Deployment",
    "GitData",
    "PullRequest",
    "RateLimitInfo",
    "Release",
    "ReviewComment",
    "Tag",
    "DateRange",
    "DateRangePreset",
    "RepositoryUrl",
    "parse_date_range",
    "InsightType",
    "PRThroughput",
    "PRThroughputData",
    "SizeBucket",
    "SizeBucketType",
    "ThroughputInsight",
    "ChangeTrend",
    "OutlierWeek",
    "WeeklyAggregate",
]
