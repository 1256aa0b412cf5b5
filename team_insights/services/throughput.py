"""
PR throughput use case: lead time by PR size, shaped for charting.
"""

import logging

from ..domain.git_types import PullRequest
from ..domain.repository import DateRange
from ..domain.throughput import PRThroughput

logger = logging.getLogger(__name__)


def throughput_to_dict(throughput: PRThroughput) -> dict:
    return {
        "totalMergedPRs": throughput.total_merged_prs,
        "averageLeadTimeHours": throughput.average_lead_time_hours,
        "averageLeadTimeDays": throughput.average_lead_time_days,
        "medianLeadTimeHours": throughput.median_lead_time_hours,
        "medianLeadTimeDays": throughput.median_lead_time_days,
        "scatterData": [
            {"prNumber": pr.pr_number, "size": pr.size, "leadTime": pr.lead_time_hours}
            for pr in throughput.pr_data
        ],
        "sizeBuckets": [bucket.to_dict() for bucket in throughput.size_buckets],
        "insight": throughput.insight.to_dict(),
    }


class CalculateThroughputMetrics:

    def execute(self, repository_url: str, pull_requests: list[PullRequest] | None, date_range: DateRange | None) -> dict:
        if not repository_url or not repository_url.strip():
            raise ValueError("Repository URL cannot be empty")
        if pull_requests is None:
            raise ValueError("Pull requests array cannot be null or undefined")
        if date_range is None:
            raise ValueError("Date range cannot be null or undefined")

        throughput = PRThroughput.create(repository_url, pull_requests, date_range)
        logger.info(
            f"Throughput for {repository_url}: {throughput.total_merged_prs} merged PRs, "
            f"insight={throughput.insight.type.value}"
        )
        return throughput_to_dict(throughput)
