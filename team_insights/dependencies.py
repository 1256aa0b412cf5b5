"""
Shared FastAPI plumbing: the per-IP rate limiter and the GitHub client dependency.
"""

from fastapi import Header
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import DEFAULT_RATE_LIMIT
from .services.github import GitHubGraphQLClient
from .services.rate_limiter import RateLimiter
from .services.session import create_session_provider

# Rate limiting
limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_RATE_LIMIT])

# GitHub's quota is per token, not per request
github_rate_limiter = RateLimiter()


def get_github_client(authorization: str | None = Header(None)) -> GitHubGraphQLClient:
    return GitHubGraphQLClient(create_session_provider(authorization), rate_limiter=github_rate_limiter)
