"""
Database-backed cache for data fetched from GitHub.

Entries are keyed by repository, data type and date range:

    repo:{owner}/{name}:type:{data_type}:range:{startISO}:{endISO}

An entry is fresh until its TTL runs out and stale afterwards. Stale entries
are refetched, but still served when GitHub cannot be reached. Once the total
size passes 80% of the limit, entries are evicted least-recently-used first
(stale ones before everything else) until usage is back under 60%.
"""

import dataclasses
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import config
from ..domain.git_types import ensure_utc, parse_timestamp
from ..domain.repository import DateRange
from ..errors import DataLoadError
from ..models import CacheEntry, utcnow_naive

logger = logging.getLogger(__name__)

STALE_EVICTION_BOOST = 1000
REPOSITORY_ID_PATTERN = re.compile(r"^[\w-]+/[\w-]+$")
CACHE_KEY_PATTERN = re.compile(
    r"^repo:([\w-]+/[\w-]+):type:(\w+):range:(\d{4}-\d{2}-\d{2}T[\d:.]+Z):(\d{4}-\d{2}-\d{2}T[\d:.]+Z)$"
)

# Record fields that hold datetimes when cached records are decoded
DATETIME_FIELDS = {"date", "created_at", "merged_at", "published_at", "committed_date", "tagger_date", "reset_at"}


class DataType(str, Enum):
    PULL_REQUESTS = "pull_requests"
    COMMITS = "commits"
    REVIEW_COMMENTS = "review_comments"
    RELEASES = "releases"
    DEPLOYMENTS = "deployments"
    TAGS = "tags"


class CacheStatus(str, Enum):
    HIT_FRESH = "hit_fresh"
    HIT_STALE = "hit_stale"
    MISS = "miss"


def to_iso_z(moment: datetime) -> str:
    """2024-01-15T10:00:00.000Z"""
    moment = ensure_utc(moment)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _naive(moment: datetime) -> datetime:
    return ensure_utc(moment).replace(tzinfo=None)


# =============================================================================
# CACHE KEY
# =============================================================================

@dataclass(frozen=True)
class CacheKey:
    value: str

    @classmethod
    def create(cls, repository_id: str, data_type: DataType, date_range: DateRange) -> "CacheKey":
        if not repository_id or "/" not in repository_id:
            raise ValueError("Repository ID must be in format 'owner/name'")
        owner, _, name = repository_id.partition("/")
        if not owner or not name:
            raise ValueError("Repository ID must have both owner and name")
        if not REPOSITORY_ID_PATTERN.match(repository_id):
            raise ValueError("Repository ID can only contain alphanumeric characters, hyphens, and underscores")

        data_type = DataType(data_type)
        return cls(
            f"repo:{repository_id}:type:{data_type.value}:range:"
            f"{to_iso_z(date_range.start)}:{to_iso_z(date_range.end)}"
        )

    @classmethod
    def parse(cls, value: str) -> "CacheKey":
        match = CACHE_KEY_PATTERN.match(value)
        if not match or match.group(2) not in {t.value for t in DataType}:
            raise ValueError(
                "Invalid cache key format. Expected: repo:{owner}/{name}:type:{dataType}:range:{startISO}:{endISO}"
            )
        return cls(value)

    @property
    def repository_id(self) -> str:
        return CACHE_KEY_PATTERN.match(self.value).group(1)

    @property
    def data_type(self) -> DataType:
        return DataType(CACHE_KEY_PATTERN.match(self.value).group(2))

    @property
    def range_bounds(self) -> tuple[datetime, datetime]:
        match = CACHE_KEY_PATTERN.match(self.value)
        return parse_timestamp(match.group(3)), parse_timestamp(match.group(4))

    def __str__(self) -> str:
        return self.value


# =============================================================================
# RECORD SERIALIZATION
# =============================================================================

def encode_records(records: list) -> list[dict]:
    encoded = []
    for record in records:
        row = dataclasses.asdict(record)
        for name, value in row.items():
            if isinstance(value, datetime):
                row[name] = ensure_utc(value).isoformat()
        encoded.append(row)
    return encoded


def decode_records(record_type, rows: list[dict]) -> list:
    decoded = []
    for row in rows:
        values = {
            name: parse_timestamp(value) if name in DATETIME_FIELDS and isinstance(value, str) else value
            for name, value in row.items()
        }
        decoded.append(record_type(**values))
    return decoded


# =============================================================================
# CACHE
# =============================================================================

@dataclass
class CacheLookup:
    status: CacheStatus
    data: object = None


class DataCache:
    def __init__(self, db: Session, ttl_seconds: int | None = None, max_size_bytes: int | None = None):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else config.CACHE_TTL_SECONDS)
        self.max_size_bytes = max_size_bytes if max_size_bytes is not None else config.CACHE_MAX_SIZE_BYTES

    def get(self, key: CacheKey) -> CacheLookup:
        entry = self.db.get(CacheEntry, key.value)
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return CacheLookup(CacheStatus.MISS)

        now = utcnow_naive()
        entry.last_accessed_at = now
        entry.access_count += 1
        self.db.commit()

        status = CacheStatus.HIT_STALE if now > entry.expires_at else CacheStatus.HIT_FRESH
        logger.debug(f"Cache {status.value}: {key}")
        return CacheLookup(status, json.loads(entry.data))

    def set(self, key: CacheKey, data) -> None:
        serialized = json.dumps(data)
        size_bytes = len(serialized.encode("utf-8"))
        if size_bytes <= 0:
            raise ValueError("Data size must be positive")

        start, end = key.range_bounds
        now = utcnow_naive()
        entry = self.db.get(CacheEntry, key.value)
        if entry is None:
            entry = CacheEntry(key=key.value, access_count=0)
            self.db.add(entry)

        entry.repository = key.repository_id
        entry.data_type = key.data_type.value
        entry.range_start = _naive(start)
        entry.range_end = _naive(end)
        entry.data = serialized
        entry.size_bytes = size_bytes
        entry.cached_at = now
        entry.expires_at = now + self.ttl
        entry.last_accessed_at = now
        self.db.commit()

        self.evict_if_needed()

    def total_size(self) -> int:
        return self.db.query(func.coalesce(func.sum(CacheEntry.size_bytes), 0)).scalar()

    def usage_percentage(self) -> float:
        return self.total_size() / self.max_size_bytes * 100

    def _eviction_score(self, entry: CacheEntry, now: datetime) -> float:
        score = (now - entry.last_accessed_at).total_seconds() / 86400
        if now > entry.expires_at:
            score += STALE_EVICTION_BOOST
        return score

    def evict_if_needed(self) -> int:
        """Evict down to the target size once the threshold is reached. Returns the number evicted."""
        current = self.total_size()
        if current < self.max_size_bytes * config.CACHE_EVICTION_THRESHOLD:
            return 0

        target = self.max_size_bytes * config.CACHE_EVICTION_TARGET
        bytes_to_free = current - target
        now = utcnow_naive()
        candidates = sorted(
            self.db.query(CacheEntry).all(),
            key=lambda entry: self._eviction_score(entry, now),
            reverse=True,
        )

        freed = 0
        evicted = 0
        for entry in candidates:
            if freed >= bytes_to_free:
                break
            freed += entry.size_bytes
            evicted += 1
            self.db.delete(entry)
        self.db.commit()

        logger.info(f"Cache eviction freed {freed} bytes across {evicted} entries")
        return evicted

    def invalidate(self, repository_id: str) -> int:
        count = self.db.query(CacheEntry).filter(CacheEntry.repository == repository_id).delete()
        self.db.commit()
        logger.info(f"Invalidated {count} cache entries for {repository_id}")
        return count

    def clear_all(self) -> int:
        count = self.db.query(CacheEntry).delete()
        self.db.commit()
        logger.info(f"Cleared {count} cache entries")
        return count

    async def get_or_fetch(self, repository_id: str, data_type: DataType, date_range: DateRange, fetch, record_type):
        """
        Cached records for the key, fetching from GitHub when missing or stale.

        ``fetch`` is a coroutine function returning a list of ``record_type``
        dataclasses. A stale entry is returned as-is when the refetch fails.
        """
        key = CacheKey.create(repository_id, data_type, date_range)
        lookup = self.get(key)
        if lookup.status == CacheStatus.HIT_FRESH:
            return decode_records(record_type, lookup.data)

        try:
            records = await fetch()
        except DataLoadError as e:
            if lookup.status == CacheStatus.HIT_STALE:
                logger.warning(f"Serving stale {data_type.value} for {repository_id}: {e.message}")
                return decode_records(record_type, lookup.data)
            raise

        self.set(key, encode_records(records))
        return records
