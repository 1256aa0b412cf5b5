"""
Identity merging: combining several contributor records into one person.

- ContributorService.merge_contributors: the arithmetic of a merge
- apply_merge_preferences: replay saved merges over a fresh contributor list
- MergeIdentities: validate, merge and persist a user's merge decision
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from ..domain.activity import ActivitySnapshot
from ..domain.contributor import Contributor, IdentityMerge
from ..domain.git_types import utc_now
from ..domain.repository import RepositoryUrl
from ..errors import MergeError, MergeErrorCode
from ..utils import slugify
from .storage import DatabaseStorage

logger = logging.getLogger(__name__)


# =============================================================================
# CONTRIBUTOR SERVICE
# =============================================================================

class ContributorService:

    @staticmethod
    def merge_contributors(primary: Contributor, merged: list[Contributor]) -> Contributor:
        """
        Fold ``merged`` into ``primary``.

        Activity is summed, emails are unioned (the primary email stays
        primary) and timeline snapshots on the same date are added together.
        The result keeps the primary's id and display name.
        """
        if not merged:
            raise ValueError("Must provide at least one contributor to merge")
        merged_ids = [c.id for c in merged]
        if primary.id in merged_ids:
            raise ValueError("Cannot merge a contributor with itself")
        if len(set(merged_ids)) != len(merged_ids):
            raise ValueError("Merged contributors must be unique")

        everyone = [primary, *merged]

        emails = {}
        for contributor in everyone:
            for email in contributor.all_emails:
                emails.setdefault(email.value, email)
        merged_emails = tuple(e for value, e in emails.items() if value != primary.primary_email.value)

        implementation = primary.implementation_activity
        review = primary.review_activity
        for contributor in merged:
            implementation = implementation.add(contributor.implementation_activity)
            review = review.add(contributor.review_activity)

        snapshots: dict[datetime, ActivitySnapshot] = {}
        for contributor in everyone:
            for snapshot in contributor.activity_timeline:
                existing = snapshots.get(snapshot.date)
                if existing is None:
                    snapshots[snapshot.date] = snapshot
                else:
                    snapshots[snapshot.date] = ActivitySnapshot(
                        date=snapshot.date,
                        period=snapshot.period,
                        implementation_activity=existing.implementation_activity.add(snapshot.implementation_activity),
                        review_activity=existing.review_activity.add(snapshot.review_activity),
                    )

        return Contributor(
            id=primary.id,
            primary_email=primary.primary_email,
            display_name=primary.display_name,
            implementation_activity=implementation,
            review_activity=review,
            merged_emails=merged_emails,
            activity_timeline=tuple(sorted(snapshots.values(), key=lambda s: s.date)),
        )

    @staticmethod
    def can_merge(primary: Contributor, merged: list[Contributor]) -> bool:
        merged_ids = [c.id for c in merged]
        return bool(merged) and primary.id not in merged_ids and len(set(merged_ids)) == len(merged_ids)


def apply_merge_preferences(contributors: list[Contributor], preferences: Iterable[tuple[str, list[str]]]) -> list[Contributor]:
    """
    Replay saved (primary_id, merged_ids) decisions over ``contributors``.

    Preferences that no longer apply (primary missing, nothing left to merge)
    are skipped. Merged contributors are replaced by the combined record at
    the end of the list.
    """
    result = list(contributors)
    for primary_id, merged_ids in preferences:
        by_id = {c.id: c for c in result}
        primary = by_id.get(primary_id)
        if primary is None:
            continue
        merged = [by_id[cid] for cid in merged_ids if cid in by_id and cid != primary_id]
        if not merged or not ContributorService.can_merge(primary, merged):
            continue

        combined = ContributorService.merge_contributors(primary, merged)
        absorbed = {primary_id, *merged_ids}
        result = [c for c in result if c.id not in absorbed]
        result.append(combined)
    return result


# =============================================================================
# MERGE IDENTITIES USE CASE
# =============================================================================

@dataclass(frozen=True)
class MergeOutcome:
    merge: IdentityMerge
    merged_contributor: Contributor

    def to_dict(self) -> dict:
        return {
            "merge": {
                "id": self.merge.id,
                "primaryContributorId": self.merge.primary_contributor_id,
                "mergedContributorIds": list(self.merge.merged_contributor_ids),
                "createdAt": self.merge.created_at.isoformat(),
            },
            "mergedContributor": self.merged_contributor.to_dict(),
        }


def merge_storage_key(repository_url: str) -> str:
    return f"merges:{slugify(repository_url)}"


class MergeIdentities:
    def __init__(self, storage: DatabaseStorage):
        self.storage = storage

    def execute(
        self,
        repository_url: str,
        primary_contributor_id: str,
        merged_contributor_ids: list[str],
        contributors: list[Contributor],
    ) -> MergeOutcome:
        logger.info(
            f"Merging {len(merged_contributor_ids)} contributor(s) into "
            f"{primary_contributor_id} for {repository_url}"
        )

        try:
            repo_url = RepositoryUrl.parse(repository_url)
        except ValueError as e:
            raise MergeError(MergeErrorCode.INVALID_URL, f"Invalid repository URL: {e}")

        by_id = {c.id: c for c in contributors}
        primary = by_id.get(primary_contributor_id)
        if primary is None:
            raise MergeError(
                MergeErrorCode.CONTRIBUTOR_NOT_FOUND, f"Primary contributor not found: {primary_contributor_id}"
            )
        merged = []
        for contributor_id in merged_contributor_ids:
            if contributor_id not in by_id:
                raise MergeError(MergeErrorCode.CONTRIBUTOR_NOT_FOUND, f"Merged contributor not found: {contributor_id}")
            merged.append(by_id[contributor_id])

        if not ContributorService.can_merge(primary, merged):
            raise MergeError(MergeErrorCode.INVALID_MERGE, "Cannot merge: invalid contributor combination")

        try:
            merged_contributor = ContributorService.merge_contributors(primary, merged)
        except ValueError as e:
            raise MergeError(MergeErrorCode.INVALID_MERGE, f"Failed to merge contributors: {e}")

        now = utc_now()
        try:
            merge = IdentityMerge(
                id=f"merge-{repo_url.value}-{primary_contributor_id}-{int(now.timestamp() * 1000)}",
                repository_url=repo_url.value,
                primary_contributor_id=primary_contributor_id,
                merged_contributor_ids=tuple(merged_contributor_ids),
                created_at=now,
                last_applied_at=now,
            )
        except ValueError as e:
            raise MergeError(MergeErrorCode.INVALID_MERGE, f"Failed to create identity merge: {e}")

        self._save(repo_url.value, merge)
        logger.info(f"Merged identities as {merge.id}")
        return MergeOutcome(merge=merge, merged_contributor=merged_contributor)

    def _save(self, repository_url: str, merge: IdentityMerge) -> None:
        key = merge_storage_key(repository_url)
        try:
            stored = self.storage.load(key) or []
            for existing in stored:
                if (
                    existing["primaryContributorId"] == merge.primary_contributor_id
                    and set(existing["mergedContributorIds"]) == set(merge.merged_contributor_ids)
                ):
                    logger.info(f"Identical merge already stored as {existing['id']}, refreshing it")
                    refreshed = IdentityMerge.from_dict(existing).update_last_applied(merge.last_applied_at)
                    existing.update(refreshed.to_dict())
                    break
            else:
                stored.append(merge.to_dict())
            self.storage.save(key, stored)
        except SQLAlchemyError as e:
            self.storage.db.rollback()
            logger.warning(f"Failed to persist merge preference: {e}")

    def load_merge_preferences(self, repository_url: str) -> list[IdentityMerge]:
        stored = self.storage.load(merge_storage_key(repository_url)) or []
        return [IdentityMerge.from_dict(data) for data in stored]
