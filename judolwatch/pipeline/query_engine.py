"""Pagination, sorting and filtering state for the domain listing."""

from __future__ import annotations

import asyncio
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Optional

from ..cache import QueryCache
from ..constants import (
    ALLOWED_PAGE_SIZES,
    MAX_SCORE,
    MIN_SCORE,
    ReasoningFilter,
    SortColumn,
    SortOrder,
    StatusFilter,
    VerificationStatus,
)
from ..errors import JudolWatchError, ValidationError
from ..models import DomainSummary, PageResult, QueryKey
from ..storage.preferences import PreferenceStore, load_page_size, save_page_size

logger = logging.getLogger(__name__)

_UNSET = object()


def parse_status_filter(value: StatusFilter | str | None) -> StatusFilter:
    if isinstance(value, StatusFilter):
        return value
    raw = str(value or "all").strip().lower().replace("-", "_")
    if raw == "all":
        return StatusFilter.ALL
    if raw == "not_verified":
        return StatusFilter.MANUAL_CHECK
    return StatusFilter(raw)


def parse_reasoning_filter(value: ReasoningFilter | str | None) -> ReasoningFilter:
    if isinstance(value, ReasoningFilter):
        return value
    raw = str(value or "all").strip().lower()
    aliases = {"ada": "has_reasoning", "tidak-ada": "no_reasoning", "tidak_ada": "no_reasoning"}
    try:
        return ReasoningFilter(aliases.get(raw, raw))
    except ValueError:
        raise ValidationError(f"Unknown reasoning filter: {value!r}") from None


@dataclass(frozen=True)
class DomainFilters:
    search: str = ""
    status: StatusFilter = StatusFilter.ALL
    min_score: int = MIN_SCORE
    max_score: int = MAX_SCORE
    reasoning: ReasoningFilter = ReasoningFilter.ALL


class DomainQueryEngine:
    """
    Owns listing state and turns every change into a cache resolution.

    Mutators are synchronous: they update state, recompute the QueryKey and
    schedule a resolution tagged with a generation number. Only the newest
    generation may replace the displayed page; older results still land in
    the cache. Previous data stays visible while a newer key is loading.
    """

    def __init__(self, cache: QueryCache, preferences: PreferenceStore):
        self.cache = cache
        self.preferences = preferences

        self._filters = DomainFilters()
        self._page = 1
        self._page_size = load_page_size(preferences)
        self._sort_by = SortColumn.DOMAIN
        self._order = SortOrder.ASC

        self._generation = 0
        self._pending: Optional[asyncio.Task] = None
        self._displayed: Optional[PageResult] = None
        self._displayed_key: Optional[QueryKey] = None
        self._error: Optional[JudolWatchError] = None
        self._batch_depth = 0
        self._batch_dirty = False

        self.cache.subscribe(self._on_cache_update)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def current_key(self) -> QueryKey:
        f = self._filters
        return QueryKey(
            search=f.search,
            status=f.status,
            min_score=f.min_score,
            max_score=f.max_score,
            reasoning=f.reasoning,
            page=self._page,
            page_size=self._page_size,
            sort_by=self._sort_by,
            order=self._order,
        )

    @property
    def filters(self) -> DomainFilters:
        return self._filters

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def sort_by(self) -> SortColumn:
        return self._sort_by

    @property
    def order(self) -> SortOrder:
        return self._order

    @property
    def items(self) -> tuple[DomainSummary, ...]:
        return self._displayed.items if self._displayed else ()

    @property
    def total(self) -> int:
        return self._displayed.total if self._displayed else 0

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self._page_size))

    @property
    def has_next(self) -> bool:
        return self._page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self._page > 1

    @property
    def is_loading(self) -> bool:
        """True only for first paint: nothing has ever been displayed."""
        return self._displayed is None and self.is_fetching

    @property
    def is_fetching(self) -> bool:
        pending = self._pending is not None and not self._pending.done()
        return pending or self.cache.is_fetching(self.current_key)

    @property
    def is_placeholder(self) -> bool:
        """Displayed page belongs to an older key."""
        return self._displayed is not None and self._displayed_key != self.current_key

    @property
    def error(self) -> Optional[JudolWatchError]:
        return self._error

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def set_page(self, page: int) -> QueryKey:
        """
        Move to page, clamped into [1, total_pages].

        While the displayed page belongs to different filters or sorting its
        total says nothing about the current query, so only page 1 is allowed.
        """
        last = self.total_pages if self._total_is_current() else 1
        target = min(max(1, int(page)), last)
        if target != self._page:
            self._page = target
            self._request()
        return self.current_key

    def _total_is_current(self) -> bool:
        if self._displayed_key is None:
            return False
        return replace(self._displayed_key, page=self._page) == self.current_key

    def next_page(self) -> QueryKey:
        return self.set_page(self._page + 1)

    def previous_page(self) -> QueryKey:
        return self.set_page(self._page - 1)

    def set_page_size(self, size: int) -> QueryKey:
        size = int(size)
        if size not in ALLOWED_PAGE_SIZES:
            raise ValidationError(
                f"Page size must be one of {', '.join(str(s) for s in ALLOWED_PAGE_SIZES)}"
            )
        self._page_size = size
        self._page = 1
        save_page_size(self.preferences, size)
        self._request()
        return self.current_key

    def set_sort(self, column: SortColumn | str) -> QueryKey:
        """Same column flips the order; a new column sorts ascending."""
        try:
            column = SortColumn(column)
        except ValueError:
            raise ValidationError(f"Unknown sort column: {column!r}") from None
        if column == self._sort_by:
            self._order = self._order.flipped()
        else:
            self._sort_by = column
            self._order = SortOrder.ASC
        self._page = 1
        self._request()
        return self.current_key

    def set_filters(
        self,
        search=_UNSET,
        status=_UNSET,
        score_range=_UNSET,
        reasoning=_UNSET,
    ) -> QueryKey:
        """Update any subset of filters; a real change resets to page 1."""
        updated = self._filters
        if search is not _UNSET:
            updated = replace(updated, search=str(search or "").strip())
        if status is not _UNSET:
            try:
                updated = replace(updated, status=parse_status_filter(status))
            except ValueError:
                raise ValidationError(f"Unknown status filter: {status!r}") from None
        if score_range is not _UNSET:
            low, high = score_range
            low, high = int(low), int(high)
            if not (MIN_SCORE <= low <= high <= MAX_SCORE):
                raise ValidationError(
                    f"Score range must satisfy {MIN_SCORE} <= min <= max <= {MAX_SCORE}"
                )
            updated = replace(updated, min_score=low, max_score=high)
        if reasoning is not _UNSET:
            updated = replace(updated, reasoning=parse_reasoning_filter(reasoning))

        if updated != self._filters:
            self._filters = updated
            self._page = 1
            self._request()
        return self.current_key

    def reset_filters(self) -> QueryKey:
        return self.set_filters(
            search="",
            status=StatusFilter.ALL,
            score_range=(MIN_SCORE, MAX_SCORE),
            reasoning=ReasoningFilter.ALL,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @contextmanager
    def batch(self):
        """Apply several mutations and resolve only the final key."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_dirty:
                self._batch_dirty = False
                self._request()

    def _request(self, force: bool = False) -> Optional[asyncio.Task]:
        if self._batch_depth:
            self._batch_dirty = True
            return None
        self._generation += 1
        generation = self._generation
        key = self.current_key
        task = asyncio.ensure_future(self._resolve(key, generation, force))
        task.add_done_callback(_retrieve_exception)
        self._pending = task
        return task

    async def _resolve(self, key: QueryKey, generation: int, force: bool) -> PageResult:
        try:
            page = await self.cache.resolve(key, force=force)
        except JudolWatchError as e:
            if generation == self._generation:
                self._error = e
                logger.warning("Failed to load domains for page %s: %s", key.page, e)
            raise

        if generation == self._generation:
            self._displayed = page
            self._displayed_key = key
            self._error = None
            last = max(1, math.ceil(page.total / key.page_size))
            if key.page > last:
                logger.debug("Page %d is past the last page %d, moving back", key.page, last)
                self._page = last
                self._request()
        else:
            logger.debug("Discarding superseded result for %s", key)
        return page

    async def refresh(self, force: bool = False) -> PageResult:
        """Resolve the current key and wait for it."""
        if self._batch_depth:
            raise ValidationError("Cannot refresh inside a batch")
        return await self._request(force=force)

    async def wait(self) -> Optional[PageResult]:
        """Wait until the newest pending resolution settles."""
        while self._pending is not None:
            task = self._pending
            try:
                result = await asyncio.shield(task)
            except JudolWatchError:
                if task is self._pending:
                    raise
                continue
            if task is self._pending:
                return result
        return self._displayed

    def _on_cache_update(self, key: QueryKey, data: PageResult) -> None:
        if key == self.current_key and key == self._displayed_key:
            self._displayed = data

    def apply_verification(
        self,
        record_id: str,
        status: VerificationStatus,
        reasoning: str = "",
    ) -> int:
        """Reconcile cached summaries after a verification commit."""

        def _matches(item: DomainSummary) -> bool:
            return item.id == record_id

        def _patch(item: DomainSummary) -> DomainSummary:
            return replace(
                item,
                status=status,
                reasoning_available=item.reasoning_available or bool(reasoning.strip()),
            )

        patched = self.cache.update_items(_matches, _patch)
        if self._displayed is not None and self._displayed_key != self.current_key:
            items = tuple(_patch(i) if _matches(i) else i for i in self._displayed.items)
            self._displayed = replace(self._displayed, items=items)
        return patched

    def close(self) -> None:
        self.cache.unsubscribe(self._on_cache_update)
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()


def _retrieve_exception(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()
