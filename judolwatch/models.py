"""Data models for the domain-review pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .constants import (
    MAX_SCORE,
    MIN_SCORE,
    MISSING_SCREENSHOT,
    PLACEHOLDER_SCREENSHOT,
    TEMP_KEYWORD_PREFIX,
    CrawlEngine,
    HealthStatus,
    ReasoningFilter,
    SortColumn,
    SortOrder,
    StatusFilter,
    VerificationStatus,
)

# JPEG, PNG, GIF, WebP base64 signatures.
_BASE64_IMAGE_TYPES: tuple[tuple[str, str], ...] = (
    ("/9j/", "image/jpeg"),
    ("iVBOR", "image/png"),
    ("R0lGO", "image/gif"),
    ("UklGR", "image/webp"),
)


def _coerce_score(value: Any) -> Optional[int]:
    """Clamp a confidence score into 0..100; None for missing/garbage."""
    if value is None or isinstance(value, bool):
        return None
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return max(MIN_SCORE, min(MAX_SCORE, score))


def _first(value: Any) -> Any:
    """Backends sometimes send per-crawl arrays; take the latest entry."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _text(value: Any) -> str:
    value = _first(value)
    return str(value).strip() if value is not None else ""


def format_screenshot(screenshot: Optional[str]) -> str:
    """Normalize a screenshot payload into something displayable.

    - Empty payloads become the placeholder image
    - data:image URLs pass through unchanged
    - Raw base64 with a known image signature becomes a data URL
    - Anything else is treated as missing
    """
    raw = (screenshot or "").strip()
    if not raw:
        return PLACEHOLDER_SCREENSHOT
    if raw.startswith("data:image"):
        return raw
    for prefix, mime_type in _BASE64_IMAGE_TYPES:
        if raw.startswith(prefix):
            return f"data:{mime_type};base64,{raw}"
    return MISSING_SCREENSHOT


@dataclass(frozen=True, order=True)
class QueryKey:
    """Full set of listing parameters; the cache index.

    Field order defines the total ordering. Two keys are equal iff every
    field is equal.
    """

    search: str = ""
    status: StatusFilter = StatusFilter.ALL
    min_score: int = MIN_SCORE
    max_score: int = MAX_SCORE
    reasoning: ReasoningFilter = ReasoningFilter.ALL
    page: int = 1
    page_size: int = 10
    sort_by: SortColumn = SortColumn.DOMAIN
    order: SortOrder = SortOrder.ASC

    def to_params(self) -> dict[str, Any]:
        """Build backend query parameters, omitting neutral filters."""
        params: dict[str, Any] = {}
        if self.search:
            params["search"] = self.search
        if self.status != StatusFilter.ALL:
            params["status"] = self.status.value
        params["min_score"] = self.min_score
        params["max_score"] = self.max_score
        if self.reasoning != ReasoningFilter.ALL:
            params["reasoning"] = self.reasoning.value
        params["page"] = self.page
        params["limit"] = self.page_size
        params["sort_by"] = self.sort_by.value
        params["order"] = self.order.value
        return params

    def with_page(self, page: int) -> "QueryKey":
        return replace(self, page=page)


@dataclass(frozen=True)
class DomainSummary:
    """One row of the domain listing."""

    id: str
    domain_name: str
    url: str = ""
    status: VerificationStatus = VerificationStatus.MANUAL_CHECK
    confidence_score: Optional[int] = None
    last_verified_at: Optional[str] = None
    verified_by: Optional[str] = None
    reasoning_available: bool = False
    screenshot: str = PLACEHOLDER_SCREENSHOT
    crawl_id: Optional[str] = None
    timestamp: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "DomainSummary":
        reasoning = data.get("reasoning")
        if isinstance(reasoning, str):
            # Listing reports "Ada"/"Tidak Ada" (present/absent) or free text.
            reasoning_available = reasoning.strip().lower() not in {"", "tidak ada", "none"}
        else:
            reasoning_available = bool(reasoning)
        crawl_id = _first(data.get("crawl_id"))
        timestamp = _first(data.get("timestamp_latest") or data.get("timestamp"))
        return cls(
            id=str(data.get("domain_id") or data.get("id") or ""),
            domain_name=_text(data.get("domain") or data.get("domain_name")),
            url=_text(data.get("url")),
            status=VerificationStatus.from_string(_first(data.get("status"))),
            confidence_score=_coerce_score(
                _first(data.get("score", data.get("confidence_score", data.get("confidenceScore"))))
            ),
            last_verified_at=data.get("last_verified_at") or data.get("verified_at"),
            verified_by=_first(data.get("verifikator") or data.get("verified_by")),
            reasoning_available=reasoning_available,
            screenshot=format_screenshot(_first(data.get("screenshot_path") or data.get("screenshot"))),
            crawl_id=str(crawl_id) if crawl_id is not None else None,
            timestamp=str(timestamp) if timestamp else None,
        )


@dataclass(frozen=True)
class PageResult:
    """A single page of the listing plus the filtered total."""

    items: tuple[DomainSummary, ...] = ()
    total: int = 0

    def __post_init__(self):
        if self.total < 0:
            raise ValueError("total must be >= 0")

    @classmethod
    def from_api(cls, data: dict) -> "PageResult":
        rows = data.get("domains")
        if rows is None:
            rows = data.get("data") or []
        items = tuple(DomainSummary.from_api(row) for row in rows if isinstance(row, dict))
        try:
            total = max(0, int(data.get("total") or 0))
        except (TypeError, ValueError):
            total = len(items)
        return cls(items=items, total=total)


@dataclass(frozen=True)
class CrawlItem:
    """One captured snapshot of a domain."""

    id: str
    url: str
    screenshot: str = PLACEHOLDER_SCREENSHOT
    extracted_text: str = ""
    keyword: str = ""
    confidence_score: Optional[int] = None
    status: VerificationStatus = VerificationStatus.MANUAL_CHECK
    reasoning: str = ""
    timestamp: Optional[str] = None
    is_amp: bool = False
    vit_score: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict) -> "CrawlItem":
        keyword = data.get("keyword")
        if isinstance(keyword, list):
            keyword = ", ".join(str(k) for k in keyword if k)
        return cls(
            id=str(data.get("crawl_id") or data.get("id") or ""),
            url=str(data.get("url") or ""),
            screenshot=format_screenshot(data.get("screenshot")),
            extracted_text=str(data.get("inner_text") or data.get("extracted_text") or ""),
            keyword=str(keyword or ""),
            confidence_score=_coerce_score(data.get("confidence_score")),
            status=VerificationStatus.from_string(data.get("status")),
            reasoning=str(data.get("reasoning") or ""),
            timestamp=data.get("timestamp"),
            is_amp=bool(data.get("is_amp")),
            vit_score=_coerce_score(data.get("vit_score")),
        )


@dataclass(frozen=True)
class DomainDetail:
    """Domain with its crawl history (newest first)."""

    domain_id: str
    domain_name: str
    crawls: tuple[CrawlItem, ...] = ()

    @classmethod
    def from_api(cls, data: dict) -> "DomainDetail":
        return cls(
            domain_id=str(data.get("domain_id") or data.get("id") or ""),
            domain_name=str(data.get("domain_name") or data.get("domain") or ""),
            crawls=tuple(
                CrawlItem.from_api(item) for item in data.get("crawls") or [] if isinstance(item, dict)
            ),
        )


@dataclass(frozen=True)
class VerificationDraft:
    """Local edit of a verification decision against its persisted baseline."""

    record_id: str
    baseline_status: VerificationStatus
    baseline_reasoning: str
    draft_status: VerificationStatus
    draft_reasoning: str

    @property
    def dirty(self) -> bool:
        return (
            self.draft_status != self.baseline_status
            or self.draft_reasoning != self.baseline_reasoning
        )

    @classmethod
    def seeded(cls, record_id: str, status: VerificationStatus, reasoning: str) -> "VerificationDraft":
        return cls(
            record_id=record_id,
            baseline_status=status,
            baseline_reasoning=reasoning,
            draft_status=status,
            draft_reasoning=reasoning,
        )

    def committed(self) -> "VerificationDraft":
        """Return a copy whose baseline equals the current draft."""
        return replace(
            self,
            baseline_status=self.draft_status,
            baseline_reasoning=self.draft_reasoning,
        )


@dataclass(frozen=True)
class KeywordRecord:
    """A crawl keyword, either persisted or local-only."""

    id: str
    keyword: str
    schedule: Optional[str] = None

    @property
    def is_persisted(self) -> bool:
        return not self.id.startswith(TEMP_KEYWORD_PREFIX)

    @classmethod
    def from_api(cls, data: dict) -> "KeywordRecord":
        return cls(
            id=str(data.get("id") or ""),
            keyword=str(data.get("keyword") or "").strip(),
            schedule=data.get("schedule"),
        )


@dataclass(frozen=True)
class KeywordPage:
    """Keyword listing as returned by the schedule endpoint."""

    items: tuple[KeywordRecord, ...] = ()
    total: int = 0
    page: int = 1
    limit: int = 0
    total_pages: int = 1
    schedule: Optional[str] = None
    crawl_engine: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "KeywordPage":
        items = tuple(
            KeywordRecord.from_api(row) for row in data.get("data") or [] if isinstance(row, dict)
        )

        def _int(name: str, default: int) -> int:
            try:
                return int(data.get(name) or default)
            except (TypeError, ValueError):
                return default

        return cls(
            items=items,
            total=_int("total", len(items)),
            page=_int("page", 1),
            limit=_int("limit", len(items)),
            total_pages=max(1, _int("total_pages", 1)),
            schedule=data.get("schedule"),
            crawl_engine=data.get("crawl_engine"),
        )


@dataclass
class KeywordScheduleConfig:
    """Keyword batch plus the schedule and engine it runs with."""

    keywords: list[str]
    cron_expression: str
    engine: CrawlEngine = CrawlEngine.GOOGLE
    tld_whitelist: list[str] = field(default_factory=list)

    def to_request(self) -> dict:
        return {
            "keywords": list(self.keywords),
            "schedule": self.cron_expression,
            "crawl_engine": self.engine.value,
        }


@dataclass(frozen=True)
class KeywordResult:
    """Per-keyword outcome of an ad-hoc crawl."""

    keyword: str
    success: bool
    total_saved: int
    inference_triggered: int
    message: str = ""


@dataclass(frozen=True)
class DispatchSummary:
    """Aggregate of an ad-hoc multi-keyword crawl."""

    keywords: tuple[str, ...]
    engine: CrawlEngine
    total_saved: int
    total_inference_triggered: int
    results: tuple[KeywordResult, ...] = ()


@dataclass(frozen=True)
class ServiceHealth:
    """Latest known health of a backend service."""

    id: str
    name: str
    endpoint: str
    status: HealthStatus = HealthStatus.UNKNOWN
    last_checked_at: Optional[str] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "endpoint": self.endpoint,
            "status": self.status.value,
            "last_checked_at": self.last_checked_at,
            "response_time_ms": self.response_time_ms,
            "error": self.error,
        }
