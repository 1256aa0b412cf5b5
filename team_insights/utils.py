"""
Small shared helpers: token masking and slugs.
"""

import re

# GitHub token shapes (classic, OAuth, server-to-server, fine-grained)
GITHUB_TOKEN_PATTERN = re.compile(r"\b(?:ghp_|gho_|ghs_|github_pat_)[A-Za-z0-9_]+")


def mask_token(token: str | None) -> str:
    """Mask a secret for logging, keeping the first and last 4 characters."""
    if not token or len(token) <= 8:
        return "****"
    return f"{token[:4]}****...****{token[-4:]}"


def redact_tokens(text: str) -> str:
    """Replace every GitHub token found in free text with its masked form."""
    return GITHUB_TOKEN_PATTERN.sub(lambda m: mask_token(m.group(0)), text)


def slugify(value: str) -> str:
    """Lowercase and replace every non-alphanumeric character with '-'."""
    return re.sub(r"[^a-z0-9]", "-", value.lower())
