"""
Runtime configuration for Team Insights.

Values come from the environment (a local .env file is loaded first).
"""

import os

from dotenv import load_dotenv

load_dotenv()


# =============================================================================
# CONFIGURATION
# =============================================================================

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# Database URL - Prefer Env, default to local team_insights.db
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./team_insights.db")

GITHUB_GRAPHQL_URL = os.getenv("GITHUB_GRAPHQL_URL", "https://api.github.com/graphql")
GITHUB_REST_URL = os.getenv("GITHUB_REST_URL", "https://api.github.com")
GITHUB_TIMEOUT_SECONDS = float(os.getenv("GITHUB_TIMEOUT_SECONDS", "30"))

# Cache of fetched GitHub data
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", str(60 * 60)))  # 1 hour
CACHE_MAX_SIZE_BYTES = int(os.getenv("CACHE_MAX_SIZE_BYTES", str(50 * 1024 * 1024)))  # 50MB
CACHE_EVICTION_THRESHOLD = 0.8  # Evict once usage passes 80% of max size
CACHE_EVICTION_TARGET = 0.6  # ...down to 60% of max size

# Per-IP rate limits for the HTTP API
ANALYZE_RATE_LIMIT = os.getenv("ANALYZE_RATE_LIMIT", "10/minute")
DEFAULT_RATE_LIMIT = os.getenv("DEFAULT_RATE_LIMIT", "30/minute")

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:5173,http://localhost:8080",
    ).split(",")
    if origin.strip()
]


def get_github_token() -> str | None:
    """Read the token at call time so tests and reloads see env changes."""
    return os.getenv("GITHUB_TOKEN")


def get_environment() -> str:
    return os.getenv("ENVIRONMENT", ENVIRONMENT).lower()
