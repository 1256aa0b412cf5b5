"""
Where the GitHub access token for a request comes from.

- BearerTokenProvider: the API client sends its own token
  (Authorization: Bearer <token>). Used in production.
- EnvTokenProvider: GITHUB_TOKEN from the environment. Development and test
  only; the token is validated lazily against GET /user.
"""

import logging

import httpx

from .. import config
from ..errors import AnalysisErrorCode, ApplicationError
from ..utils import mask_token

logger = logging.getLogger(__name__)

VALID_TOKEN_PREFIXES = ("ghp_", "gho_", "ghs_", "github_pat_")
LOCAL_ENVIRONMENTS = ("development", "test")


class SessionProvider:
    async def get_access_token(self) -> str:
        raise NotImplementedError


class BearerTokenProvider(SessionProvider):
    def __init__(self, token: str | None):
        self.token = token

    async def get_access_token(self) -> str:
        if not self.token:
            raise ApplicationError(
                AnalysisErrorCode.AUTHENTICATION_REQUIRED,
                "Authentication required. Send a GitHub token as 'Authorization: Bearer <token>'.",
            )
        return self.token


class EnvTokenProvider(SessionProvider):
    def __init__(self, token: str | None = None, environment: str | None = None):
        environment = (environment or config.get_environment()).lower()
        if environment not in LOCAL_ENVIRONMENTS:
            raise ApplicationError(
                AnalysisErrorCode.INTERNAL_ERROR,
                "EnvTokenProvider can only be used in development or test mode. "
                "For production, send a token with each request.",
            )

        token = token or config.get_github_token()
        if not token:
            raise ApplicationError(
                AnalysisErrorCode.AUTHENTICATION_REQUIRED,
                "GITHUB_TOKEN environment variable is not set. "
                "Generate a token at: https://github.com/settings/tokens",
            )
        if not token.startswith(VALID_TOKEN_PREFIXES):
            raise ApplicationError(
                AnalysisErrorCode.INVALID_TOKEN,
                f"Invalid GitHub token format. Token must start with one of: {', '.join(VALID_TOKEN_PREFIXES)}",
            )

        self.token = token
        self.user_info: dict | None = None
        logger.info(f"EnvTokenProvider initialized with token: {mask_token(token)} ({environment} mode)")

    async def get_access_token(self) -> str:
        if self.user_info is None:
            self.user_info = await self.fetch_user_info()
        return self.token

    async def fetch_user_info(self) -> dict:
        """Validate the token by asking GitHub who it belongs to."""
        masked = mask_token(self.token)
        logger.debug("Fetching GitHub user info to validate token...")

        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{config.GITHUB_REST_URL}/user",
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github+json",
                },
                timeout=config.GITHUB_TIMEOUT_SECONDS,
            )

        if response.status_code == 401:
            message = (
                f"Invalid or expired GitHub token ({masked}). "
                "Please generate a new token at: https://github.com/settings/tokens"
            )
            logger.error(message)
            raise ApplicationError(AnalysisErrorCode.INVALID_TOKEN, message)
        if response.status_code == 403:
            message = f"GitHub token ({masked}) lacks required permissions. Required scopes: read:user, user:email, repo"
            logger.error(message)
            raise ApplicationError(AnalysisErrorCode.INSUFFICIENT_PERMISSIONS, message)
        if response.status_code >= 400:
            message = f"Failed to validate GitHub token: HTTP {response.status_code}"
            logger.error(message)
            raise ApplicationError(AnalysisErrorCode.INTERNAL_ERROR, message)

        data = response.json()
        user_info = {
            "login": data.get("login"),
            "name": data.get("name"),
            "email": data.get("email"),
            "id": data.get("id"),
        }
        logger.info(f"GitHub user authenticated: {user_info['login']} ({user_info['name'] or 'No name'})")
        return user_info


# One provider per process so GET /user runs once per token
_env_provider: EnvTokenProvider | None = None


def get_env_provider() -> EnvTokenProvider:
    global _env_provider
    token = config.get_github_token()
    if _env_provider is None or _env_provider.token != token:
        _env_provider = EnvTokenProvider(token)
    return _env_provider


def create_session_provider(authorization: str | None = None) -> SessionProvider:
    """
    Pick a provider for a request.

    An Authorization header always wins. Without one, GITHUB_TOKEN is used in
    development and test; in production the request must authenticate.
    """
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        token = credentials.strip() if scheme.lower() in ("bearer", "token") else authorization.strip()
        return BearerTokenProvider(token)

    if config.get_github_token() and config.get_environment() in LOCAL_ENVIRONMENTS:
        return get_env_provider()

    return BearerTokenProvider(None)
