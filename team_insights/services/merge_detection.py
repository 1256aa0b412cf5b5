"""
Merge suggestions: which contributors are probably the same person.

Two signals are combined:
- display-name similarity (Levenshtein ratio, substrings, initials, swapped
  first/last name)
- a shared corporate email domain (public mail providers never count)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from ..domain.contributor import Contributor

logger = logging.getLogger(__name__)

PUBLIC_EMAIL_DOMAINS = {
    "gmail.com",
    "yahoo.com",
    "hotmail.com",
    "outlook.com",
    "icloud.com",
    "protonmail.com",
}

NAME_SIMILARITY_THRESHOLD = 0.5
MEDIUM_CONFIDENCE_SIMILARITY = 0.6
LOW_CONFIDENCE_SIMILARITY = 0.4

NAME_SEPARATORS = re.compile(r"[\s.\-_]+")


class MergeConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


CONFIDENCE_ORDER = {MergeConfidence.HIGH: 0, MergeConfidence.MEDIUM: 1, MergeConfidence.LOW: 2}


# =============================================================================
# NAME SIMILARITY
# =============================================================================

def levenshtein_distance(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def calculate_similarity(a: str, b: str) -> float:
    """1.0 for identical names (case and surrounding whitespace ignored), 0.0 if either is empty."""
    a = a.lower().strip()
    b = b.lower().strip()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1 - levenshtein_distance(a, b) / max(len(a), len(b))


def _words(name: str) -> list[str]:
    return [word for word in NAME_SEPARATORS.split(name) if word]


def are_names_similar(a: str, b: str, threshold: float = NAME_SIMILARITY_THRESHOLD) -> bool:
    if calculate_similarity(a, b) >= threshold:
        return True

    a = a.lower().strip()
    b = b.lower().strip()
    if a in b or b in a:
        return True

    words_a = _words(a)
    words_b = _words(b)

    # "John Smith" vs "J. Smith"
    if len(words_a) >= 2 and len(words_b) >= 2:
        if words_a[-1] == words_b[-1] and words_a[0][0] == words_b[0][0]:
            return True

    # "Smith John" vs "John Smith"
    if len(words_a) == 2 and len(words_b) == 2:
        if calculate_similarity(a, f"{words_b[1]} {words_b[0]}") >= threshold:
            return True

    return False


def has_same_email_domain(email_a: str, email_b: str) -> bool:
    domain_a = email_a.partition("@")[2].lower()
    domain_b = email_b.partition("@")[2].lower()
    if not domain_a or not domain_b:
        return False
    if domain_a in PUBLIC_EMAIL_DOMAINS or domain_b in PUBLIC_EMAIL_DOMAINS:
        return False
    return domain_a == domain_b


# =============================================================================
# MERGE DETECTOR
# =============================================================================

@dataclass(frozen=True)
class MergeSuggestion:
    primary: Contributor
    candidates: tuple[Contributor, ...]
    confidence: MergeConfidence
    reason: str

    def to_dict(self) -> dict:
        return {
            "primary": self.primary.to_dict(include_timeline=False),
            "candidates": [c.to_dict(include_timeline=False) for c in self.candidates],
            "confidence": self.confidence.value,
            "reason": self.reason,
        }


def _merge_weight(contributor: Contributor) -> int:
    return contributor.implementation_activity.commit_count + contributor.review_activity.pull_requests_reviewed


def detect_merge_candidates(contributors: list[Contributor]) -> list[MergeSuggestion]:
    """
    Group likely duplicates, strongest evidence first.

    Each contributor lands in at most one suggestion. Within a group the most
    active contributor (commits + PRs reviewed) becomes the primary.
    """
    suggestions = []
    processed = set()

    for i, contributor in enumerate(contributors):
        if contributor.id in processed:
            continue

        candidates = []
        reasons = []
        confidence = MergeConfidence.LOW

        for other in contributors[i + 1:]:
            if other.id in processed:
                continue

            names_similar = are_names_similar(contributor.display_name, other.display_name)
            same_domain = has_same_email_domain(contributor.primary_email.value, other.primary_email.value)

            if names_similar and same_domain:
                candidates.append(other)
                confidence = MergeConfidence.HIGH
                reasons.append("Similar names and same email domain")
                processed.add(other.id)
            elif names_similar:
                similarity = calculate_similarity(contributor.display_name, other.display_name)
                if similarity >= MEDIUM_CONFIDENCE_SIMILARITY:
                    candidates.append(other)
                    if confidence != MergeConfidence.HIGH:
                        confidence = MergeConfidence.MEDIUM
                    reasons.append(f"Names are {round(similarity * 100)}% similar")
                    processed.add(other.id)
            elif same_domain:
                similarity = calculate_similarity(contributor.display_name, other.display_name)
                if similarity >= LOW_CONFIDENCE_SIMILARITY:
                    candidates.append(other)
                    reasons.append("Same email domain")
                    processed.add(other.id)

        if not candidates:
            continue

        group = [contributor, *candidates]
        primary = group[0]
        for member in group[1:]:
            if _merge_weight(member) > _merge_weight(primary):
                primary = member

        suggestions.append(MergeSuggestion(
            primary=primary,
            candidates=tuple(member for member in group if member.id != primary.id),
            confidence=confidence,
            reason=", ".join(reasons),
        ))
        processed.add(primary.id)

    suggestions.sort(key=lambda s: CONFIDENCE_ORDER[s.confidence])
    logger.debug(f"Detected {len(suggestions)} merge suggestions among {len(contributors)} contributors")
    return suggestions
