"""
Contributor and IdentityMerge entities.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime

from .activity import ActivitySnapshot, Email, ImplementationActivity, ReviewActivity
from .git_types import ensure_utc, utc_now


@dataclass(frozen=True)
class Contributor:
    """
    A person contributing to a repository, possibly under several emails.

    Invariants:
    - id and display_name are non-empty
    - merged_emails never repeat the primary email or each other
    - activity_timeline is sorted by date
    """
    id: str
    primary_email: Email
    display_name: str
    implementation_activity: ImplementationActivity = field(default_factory=ImplementationActivity.zero)
    review_activity: ReviewActivity = field(default_factory=ReviewActivity.zero)
    merged_emails: tuple[Email, ...] = ()
    activity_timeline: tuple[ActivitySnapshot, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "merged_emails", tuple(self.merged_emails))
        object.__setattr__(self, "activity_timeline", tuple(self.activity_timeline))

        if not self.id or not self.id.strip():
            raise ValueError("Contributor ID cannot be empty")
        if not self.display_name or not self.display_name.strip():
            raise ValueError("Display name cannot be empty")

        if any(email == self.primary_email for email in self.merged_emails):
            raise ValueError("Merged emails must not duplicate primary email")

        values = [email.value for email in self.all_emails]
        if len(set(values)) != len(values):
            raise ValueError("All emails must be unique")

        timeline = self.activity_timeline
        for previous, current in zip(timeline, timeline[1:]):
            if current.date < previous.date:
                raise ValueError("Activity timeline must be sorted chronologically")

    @property
    def all_emails(self) -> list[Email]:
        return [self.primary_email, *self.merged_emails]

    @property
    def total_activity_score(self) -> float:
        return self.implementation_activity.activity_score + self.review_activity.review_score

    def to_dict(self, include_timeline: bool = True) -> dict:
        data = {
            "id": self.id,
            "primaryEmail": self.primary_email.value,
            "mergedEmails": [email.value for email in self.merged_emails],
            "displayName": self.display_name,
            "implementationActivity": self.implementation_activity.to_dict(),
            "reviewActivity": self.review_activity.to_dict(),
            "totalActivityScore": self.total_activity_score,
        }
        if include_timeline:
            data["activityTimeline"] = [snapshot.to_dict() for snapshot in self.activity_timeline]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Contributor":
        return cls(
            id=data["id"],
            primary_email=Email(data["primaryEmail"]),
            display_name=data["displayName"],
            implementation_activity=ImplementationActivity.from_dict(data["implementationActivity"]),
            review_activity=ReviewActivity.from_dict(data["reviewActivity"]),
            merged_emails=tuple(Email(value) for value in data.get("mergedEmails", [])),
            activity_timeline=tuple(ActivitySnapshot.from_dict(s) for s in data.get("activityTimeline", [])),
        )


@dataclass(frozen=True)
class IdentityMerge:
    """A user decision that several contributor ids are the same person."""
    id: str
    repository_url: str
    primary_contributor_id: str
    merged_contributor_ids: tuple[str, ...]
    created_at: datetime
    last_applied_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "merged_contributor_ids", tuple(self.merged_contributor_ids))
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))
        object.__setattr__(self, "last_applied_at", ensure_utc(self.last_applied_at))

        if not self.id or not self.id.strip():
            raise ValueError("Identity merge ID cannot be empty")
        if not self.primary_contributor_id or not self.primary_contributor_id.strip():
            raise ValueError("Primary contributor ID cannot be empty")
        if not self.merged_contributor_ids:
            raise ValueError("Must have at least one merged contributor ID")
        if self.primary_contributor_id in self.merged_contributor_ids:
            raise ValueError("Merged contributors must be distinct from primary contributor")
        if len(set(self.merged_contributor_ids)) != len(self.merged_contributor_ids):
            raise ValueError("All merged contributor IDs must be unique")
        if any(not cid or not cid.strip() for cid in self.merged_contributor_ids):
            raise ValueError("Merged contributor IDs cannot be empty")
        if self.created_at > self.last_applied_at:
            raise ValueError("Last applied date cannot be before created date")

    def includes(self, contributor_id: str) -> bool:
        return contributor_id == self.primary_contributor_id or contributor_id in self.merged_contributor_ids

    @property
    def all_contributor_ids(self) -> list[str]:
        return [self.primary_contributor_id, *self.merged_contributor_ids]

    def update_last_applied(self, timestamp: datetime | None = None) -> "IdentityMerge":
        timestamp = ensure_utc(timestamp or utc_now())
        if timestamp < self.created_at:
            raise ValueError("Last applied timestamp cannot be before created date")
        return replace(self, last_applied_at=timestamp)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "repositoryUrl": self.repository_url,
            "primaryContributorId": self.primary_contributor_id,
            "mergedContributorIds": list(self.merged_contributor_ids),
            "createdAt": self.created_at.isoformat(),
            "lastAppliedAt": self.last_applied_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IdentityMerge":
        return cls(
            id=data["id"],
            repository_url=data["repositoryUrl"],
            primary_contributor_id=data["primaryContributorId"],
            merged_contributor_ids=tuple(data["mergedContributorIds"]),
            created_at=datetime.fromisoformat(data["createdAt"]),
            last_applied_at=datetime.fromisoformat(data["lastAppliedAt"]),
        )
