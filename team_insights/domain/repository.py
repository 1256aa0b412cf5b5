"""
Repository URL and date range value objects.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Mapping

from dateutil import parser as dtparse
from dateutil.relativedelta import relativedelta

from .git_types import ensure_utc, utc_now


# =============================================================================
# CONFIGURATION
# =============================================================================

MAX_URL_LENGTH = 500
GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/([\w-]+)/([\w-]+)$")

MAX_RANGE = timedelta(days=10 * 365)
# Allow requests built on a client whose clock runs slightly ahead
FUTURE_TOLERANCE = timedelta(minutes=1)
DEFAULT_MONTHS = 6


# =============================================================================
# REPOSITORY URL
# =============================================================================

@dataclass(frozen=True)
class RepositoryUrl:
    value: str
    owner: str
    repo: str

    @classmethod
    def parse(cls, url: str) -> "RepositoryUrl":
        trimmed = (url or "").strip()
        if not trimmed:
            raise ValueError("Repository URL cannot be empty")
        if len(trimmed) > MAX_URL_LENGTH:
            raise ValueError(f"Repository URL exceeds maximum length of {MAX_URL_LENGTH} characters")

        match = GITHUB_URL_PATTERN.match(trimmed)
        if not match:
            raise ValueError(
                "Invalid GitHub repository URL format. Expected: https://github.com/{owner}/{repo}"
            )
        return cls(value=trimmed, owner=match.group(1), repo=match.group(2))

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def api_base(self) -> str:
        return f"https://api.github.com/repos/{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return self.value


# =============================================================================
# DATE RANGE
# =============================================================================

class DateRangePreset(str, Enum):
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_90_DAYS = "last_90_days"
    LAST_6_MONTHS = "last_6_months"
    LAST_YEAR = "last_year"
    CUSTOM = "custom"


@dataclass(frozen=True)
class DateRange:
    """A closed time window in the past, at most ten years long."""
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))

        if self.start >= self.end:
            raise ValueError("Start date must be before end date")
        if self.end > utc_now() + FUTURE_TOLERANCE:
            raise ValueError("End date cannot be in the future")
        if self.end - self.start > MAX_RANGE:
            raise ValueError("Date range cannot exceed 10 years")

    @classmethod
    def from_months(cls, months: int, end: datetime | None = None) -> "DateRange":
        if months <= 0:
            raise ValueError("Months must be positive")
        end = end or utc_now()
        return cls(start=end - relativedelta(months=months), end=end)

    @classmethod
    def default(cls) -> "DateRange":
        return cls.from_months(DEFAULT_MONTHS)

    @classmethod
    def last_days(cls, days: int, end: datetime | None = None) -> "DateRange":
        end = end or utc_now()
        return cls(start=end - timedelta(days=days), end=end)

    @classmethod
    def from_preset(cls, preset: DateRangePreset, end: datetime | None = None) -> "DateRange":
        if preset == DateRangePreset.LAST_7_DAYS:
            return cls.last_days(7, end)
        if preset == DateRangePreset.LAST_30_DAYS:
            return cls.last_days(30, end)
        if preset == DateRangePreset.LAST_90_DAYS:
            return cls.last_days(90, end)
        if preset == DateRangePreset.LAST_6_MONTHS:
            return cls.from_months(6, end)
        if preset == DateRangePreset.LAST_YEAR:
            return cls.from_months(12, end)
        raise ValueError("Custom preset requires startDate and endDate parameters")

    @property
    def duration_days(self) -> int:
        return math.floor((self.end - self.start).total_seconds() / 86400)

    @property
    def duration_months(self) -> int:
        return (self.end.year - self.start.year) * 12 + (self.end.month - self.start.month)

    def contains(self, moment: datetime) -> bool:
        return self.start <= ensure_utc(moment) <= self.end


def parse_iso_date(value: str, label: str) -> datetime:
    try:
        return ensure_utc(dtparse.isoparse(value))
    except (ValueError, OverflowError):
        raise ValueError(f"Invalid {label} date: {value}")


def parse_date_range(params: Mapping[str, str | None]) -> tuple[DateRange, DateRangePreset]:
    """
    Build a DateRange from query-style parameters.

    A non-custom `preset` wins; otherwise `startDate` and `endDate` make a custom range;
    with neither, the last 30 days are used.
    """
    preset = params.get("preset")
    start_value = params.get("startDate")
    end_value = params.get("endDate")

    if preset:
        try:
            selected = DateRangePreset(preset)
        except ValueError:
            valid = ", ".join(p.value for p in DateRangePreset)
            raise ValueError(f"Invalid preset: {preset}. Valid values: {valid}")
        if selected != DateRangePreset.CUSTOM or not (start_value and end_value):
            return DateRange.from_preset(selected), selected

    if start_value and end_value:
        start = parse_iso_date(start_value, "start")
        end = parse_iso_date(end_value, "end")
        return DateRange(start=start, end=end), DateRangePreset.CUSTOM

    return DateRange.last_days(30), DateRangePreset.LAST_30_DAYS
