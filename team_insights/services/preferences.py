"""
Identity merge preferences kept in the client's `identity-merges` cookie.

The cookie holds a JSON object mapping repository id ("owner/name") to the
list of merges the user applied: {primaryId, mergedIds, timestamp}.
"""

import json
import logging

from fastapi import Request, Response

from ..domain.git_types import utc_now

logger = logging.getLogger(__name__)

MERGE_COOKIE_NAME = "identity-merges"
MAX_AGE = 30 * 24 * 60 * 60  # 30 days


def repository_id_from_url(repository_url: str) -> str:
    """https://github.com/owner/name(.git) -> owner/name"""
    value = repository_url.strip().removeprefix("https://github.com/")
    return value.removesuffix(".git").strip("/")


def _read_cookie(request: Request) -> dict:
    raw = request.cookies.get(MERGE_COOKIE_NAME)
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring malformed {MERGE_COOKIE_NAME} cookie")
        return {}
    return value if isinstance(value, dict) else {}


def _write_cookie(response: Response, merges: dict) -> None:
    if not merges:
        response.delete_cookie(MERGE_COOKIE_NAME, path="/")
        return
    response.set_cookie(
        MERGE_COOKIE_NAME,
        json.dumps(merges, separators=(",", ":")),
        max_age=MAX_AGE,
        httponly=True,
        samesite="lax",
        path="/",
    )


def get_merge_preferences(request: Request, repository_id: str) -> list[dict]:
    preferences = _read_cookie(request).get(repository_id, [])
    if not isinstance(preferences, list):
        logger.warning(f"Ignoring malformed {MERGE_COOKIE_NAME} entry for {repository_id}")
        return []
    return [p for p in preferences if isinstance(p, dict)]


def save_merge_preference(
    request: Request,
    response: Response,
    repository_id: str,
    primary_id: str,
    merged_ids: list[str],
) -> dict:
    merges = _read_cookie(request)
    preference = {"primaryId": primary_id, "mergedIds": list(merged_ids), "timestamp": utc_now().isoformat()}
    existing = merges.get(repository_id)
    merges[repository_id] = (existing if isinstance(existing, list) else []) + [preference]
    _write_cookie(response, merges)
    return preference


def clear_merge_preferences(request: Request, response: Response, repository_id: str) -> None:
    merges = _read_cookie(request)
    merges.pop(repository_id, None)
    _write_cookie(response, merges)


def preference_pairs(preferences: list[dict]) -> list[tuple[str, list[str]]]:
    """(primary_id, merged_ids) pairs for apply_merge_preferences."""
    return [
        (p["primaryId"], list(p["mergedIds"]))
        for p in preferences
        if isinstance(p, dict) and "primaryId" in p and isinstance(p.get("mergedIds"), list)
    ]
