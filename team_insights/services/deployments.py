"""
DORA deployment frequency from releases, deployments and tags.

All three sources are fetched concurrently. A failing source is logged and
treated as empty. Events are deduplicated on their normalized tag name with
priority release > deployment > tag; events without a tag are dropped.
"""

import asyncio
import logging

from ..domain.deployments import (
    MOVING_AVERAGE_WINDOW,
    DeploymentEvent,
    DeploymentFrequency,
    DORAPerformanceLevel,
)
from ..domain.repository import DateRange
from ..errors import DataLoadError
from .github import GitHubGraphQLClient

logger = logging.getLogger(__name__)

RECENT_DEPLOYMENTS = 10


def deduplicate_events(
    releases: list[DeploymentEvent],
    deployments: list[DeploymentEvent],
    tags: list[DeploymentEvent],
) -> list[DeploymentEvent]:
    """One event per tag name, oldest first."""
    by_tag: dict[str, DeploymentEvent] = {}
    for source in (releases, deployments, tags):
        for event in source:
            if event.tag_name and event.tag_name not in by_tag:
                by_tag[event.tag_name] = event
    return sorted(by_tag.values(), key=lambda e: e.timestamp)


class CalculateDeploymentFrequency:
    def __init__(self, client: GitHubGraphQLClient):
        self.client = client

    async def _load(self, label: str, fetch) -> list:
        try:
            return await fetch
        except DataLoadError as e:
            logger.warning(f"Failed to fetch {label}: {e.message}")
            return []

    async def execute(self, owner: str, repo: str, date_range: DateRange | None = None) -> dict:
        since = date_range.start if date_range else None
        logger.info(f"Calculating deployment frequency for {owner}/{repo} since {since}")

        releases, deployments, tags = await asyncio.gather(
            self._load("releases", self.client.get_releases(owner, repo, since)),
            self._load("deployments", self.client.get_deployments(owner, repo, since)),
            self._load("tags", self.client.get_tags(owner, repo, since)),
        )
        logger.debug(f"Fetched {len(releases)} releases, {len(deployments)} deployments, {len(tags)} tags")

        release_events = [DeploymentEvent.from_release(r) for r in releases if not r.is_draft]
        deployment_events = [DeploymentEvent.from_deployment(d) for d in deployments]
        tag_events = [DeploymentEvent.from_tag(t) for t in tags if t.tagger_date or t.committed_date]

        events = deduplicate_events(release_events, deployment_events, tag_events)
        if date_range:
            events = [e for e in events if e.is_within_range(date_range.start, date_range.end)]
        logger.info(
            f"Deduplicated {len(release_events) + len(deployment_events) + len(tag_events)} "
            f"deployment events to {len(events)}"
        )

        frequency = DeploymentFrequency.create(events)
        dora_level = DORAPerformanceLevel.from_frequency(frequency)
        trend = (
            frequency.analyze_trend(MOVING_AVERAGE_WINDOW)
            if len(frequency.weekly_data) >= MOVING_AVERAGE_WINDOW
            else None
        )

        logger.info(
            f"Deployment frequency for {owner}/{repo}: {frequency.total_count} deployments, "
            f"level={dora_level.level.value}, ~{round(frequency.deployments_per_year)}/year"
        )

        result = {
            "doraLevel": dora_level.to_dict(),
            "totalDeployments": frequency.total_count,
            "deploymentsPerYear": frequency.deployments_per_year,
            "averagePerWeek": frequency.average_per_week,
            "averagePerMonth": frequency.average_per_month,
            "periodDays": frequency.period_days,
            "weeklyData": [
                {"weekKey": w.week_key, "weekStartDate": w.week_start_date, "deploymentCount": w.deployment_count}
                for w in frequency.weekly_data
            ],
            "monthlyData": [
                {"monthKey": m.month_key, "monthName": m.month_name, "deploymentCount": m.deployment_count}
                for m in frequency.monthly_data
            ],
            "recentDeployments": [e.to_summary() for e in frequency.recent(RECENT_DEPLOYMENTS)],
        }
        if trend is not None:
            result["trendAnalysis"] = trend.to_dict()
        return result
