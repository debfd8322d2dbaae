"""Centralized constants for JudolWatch.

This module contains enums and constants used across multiple modules
to ensure consistency and reduce duplication.
"""

from __future__ import annotations

from enum import Enum


class VerificationStatus(str, Enum):
    """Verification decision attached to a domain or crawl."""

    JUDOL = "judol"  # Confirmed online gambling
    NON_JUDOL = "non_judol"  # Confirmed not gambling
    MANUAL_CHECK = "manual_check"  # Needs a human decision

    @classmethod
    def from_string(cls, value: str | None) -> "VerificationStatus":
        """Convert an API or CLI status to enum, defaulting to MANUAL_CHECK."""
        if not value:
            return cls.MANUAL_CHECK
        normalized = str(value).strip().lower().replace("-", "_")
        mapping = {
            "judol": cls.JUDOL,
            "non_judol": cls.NON_JUDOL,
            "manual_check": cls.MANUAL_CHECK,
            "not_verified": cls.MANUAL_CHECK,
        }
        return mapping.get(normalized, cls.MANUAL_CHECK)

    def __str__(self) -> str:
        return self.value


class StatusFilter(str, Enum):
    """Status filter accepted by the domain listing."""

    ALL = "all"
    JUDOL = "judol"
    NON_JUDOL = "non_judol"
    MANUAL_CHECK = "manual_check"


class ReasoningFilter(str, Enum):
    """Filter on whether a domain carries AI reasoning."""

    ALL = "all"
    HAS_REASONING = "has_reasoning"
    NO_REASONING = "no_reasoning"


class SortColumn(str, Enum):
    """Sortable columns of the domain listing."""

    DOMAIN = "domain"
    SCORE = "score"
    TIMESTAMP = "timestamp"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortOrder":
        return SortOrder.DESC if self is SortOrder.ASC else SortOrder.ASC


class CrawlEngine(str, Enum):
    """Search engines the crawler can use for keyword discovery."""

    GOOGLE = "google"
    BAIDU = "baidu"
    BING = "bing"

    @classmethod
    def from_string(cls, value: str | None) -> "CrawlEngine":
        """Parse an engine name; unknown names raise ValueError."""
        normalized = str(value or "").strip().lower()
        if normalized == "cse-google":
            normalized = "google"
        return cls(normalized)


class HealthStatus(str, Enum):
    """Health of a backend service."""

    OK = "ok"
    ERROR = "error"
    UNKNOWN = "unknown"


# Page sizes offered by the listing; anything else is rejected.
ALLOWED_PAGE_SIZES: tuple[int, ...] = (5, 10, 25, 50, 100)
DEFAULT_PAGE_SIZE = 10

PAGE_SIZE_PREFERENCE_KEY = "items_per_page"

MIN_SCORE = 0
MAX_SCORE = 100

# Temporary ids for keywords that only exist locally.
TEMP_KEYWORD_PREFIX = "temp-"

# Export fetches every row under the current filters in a single page.
EXPORT_PAGE_LIMIT = 999999

DEFAULT_TLD_WHITELIST: tuple[str, ...] = (
    ".ac.id",
    ".go.id",
    ".or.id",
    ".sch.id",
    ".mil.id",
    ".desa.id",
)

PLACEHOLDER_SCREENSHOT = "/screenshots/placeholder.png"
MISSING_SCREENSHOT = "/screenshots/404-not-found.svg"
