"""
SQLAlchemy models for Team Insights

- Repository: a GitHub repository that has been analyzed
- Analysis: one analysis run with its JSON results
- StoredValue: small key/value records (identity merge preferences)
- CacheEntry: cached GitHub data with TTL and LRU bookkeeping
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow_naive() -> datetime:
    """UTC without tzinfo; SQLite DateTime columns round-trip naive values."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Repository(Base):
    """A GitHub repository identified by its canonical URL"""
    __tablename__ = "repositories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    github_link = Column(String, nullable=False, unique=True)
    owner = Column(String, nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)

    analyses = relationship("Analysis", back_populates="repository", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Repository(id={self.id}, github_link='{self.github_link}')>"


class Analysis(Base):
    """A repository analysis run (owned by /analyze endpoint)"""
    __tablename__ = "analyses"

    id = Column(String, primary_key=True)  # uuid4
    repository_id = Column(Integer, ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False)  # "in_progress", "completed", "failed"
    analyzed_at = Column(DateTime, default=utcnow_naive, nullable=False)
    range_start = Column(DateTime, nullable=False)
    range_end = Column(DateTime, nullable=False)
    error_message = Column(Text)
    analysis_time_ms = Column(Integer)

    contributors_data = Column(Text)  # JSON: list of contributor dicts
    throughput_data = Column(Text)  # JSON: throughput result, null if unavailable
    timeseries_data = Column(Text)  # JSON: timeseries result, null if unavailable
    deployment_data = Column(Text)  # JSON: deployment frequency result, null if unavailable

    repository = relationship("Repository", back_populates="analyses")

    def __repr__(self):
        return f"<Analysis(id='{self.id}', status='{self.status}')>"


class StoredValue(Base):
    """JSON value stored under a string key"""
    __tablename__ = "stored_values"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False)

    def __repr__(self):
        return f"<StoredValue(key='{self.key}')>"


class CacheEntry(Base):
    """Cached GitHub data for one repository, data type and date range"""
    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    repository = Column(String, nullable=False, index=True)  # "owner/name"
    data_type = Column(String, nullable=False)
    range_start = Column(DateTime, nullable=False)
    range_end = Column(DateTime, nullable=False)
    data = Column(Text, nullable=False)  # JSON
    size_bytes = Column(Integer, nullable=False)
    cached_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    last_accessed_at = Column(DateTime, nullable=False)
    access_count = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<CacheEntry(key='{self.key}', size_bytes={self.size_bytes})>"
