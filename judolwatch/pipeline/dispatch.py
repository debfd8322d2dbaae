"""Keyword schedule configuration and ad-hoc crawl dispatch."""

from __future__ import annotations

import itertools
import logging
import math
from typing import Any, Iterable, Optional, Sequence

from ..api.scrape import ScrapeService
from ..constants import DEFAULT_TLD_WHITELIST, TEMP_KEYWORD_PREFIX, CrawlEngine
from ..errors import JudolWatchError, ServerError, ValidationError
from ..models import (
    DispatchSummary,
    KeywordPage,
    KeywordRecord,
    KeywordResult,
    KeywordScheduleConfig,
)
from ..utils.domains import normalize_tld, public_suffix, split_tld_input
from .scheduling import ScheduleOption, ScheduleTranslator

logger = logging.getLogger(__name__)


def count_field(value: Any) -> int:
    """Per-item counter; anything missing or non-numeric counts as zero."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return int(value)


def aggregate_results(results: Any) -> tuple[tuple[KeywordResult, ...], int, int]:
    """
    Fold a per-keyword result list into (results, total_saved, total_inference).

    Malformed items are counted as zero rather than failing the batch.
    """
    parsed: list[KeywordResult] = []
    total_saved = 0
    total_inference = 0
    for item in results if isinstance(results, list) else []:
        if not isinstance(item, dict):
            logger.debug("Skipping malformed crawl result: %r", item)
            continue
        saved = count_field(item.get("total_saved"))
        inference = count_field(item.get("inference_triggered"))
        total_saved += saved
        total_inference += inference
        parsed.append(
            KeywordResult(
                keyword=str(item.get("keyword") or ""),
                success=bool(item.get("success", True)),
                total_saved=saved,
                inference_triggered=inference,
                message=str(item.get("message") or ""),
            )
        )
    return tuple(parsed), total_saved, total_inference


def normalize_keywords(keywords: Iterable[str | KeywordRecord]) -> list[str]:
    """Trim keywords, keep order, reject empties and duplicates."""
    cleaned: list[str] = []
    seen: set[str] = set()
    for entry in keywords:
        value = entry.keyword if isinstance(entry, KeywordRecord) else str(entry or "")
        value = value.strip()
        if not value:
            raise ValidationError("Keyword must not be empty")
        folded = value.casefold()
        if folded in seen:
            raise ValidationError(f"Duplicate keyword: {value}")
        seen.add(folded)
        cleaned.append(value)
    return cleaned


class KeywordDraftList:
    """Admin keyword list; unsaved entries carry temp-<n> ids."""

    def __init__(self, records: Optional[Iterable[KeywordRecord]] = None):
        self._records: list[KeywordRecord] = list(records or [])
        self._temp_ids = itertools.count(1)

    def __iter__(self):
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple[KeywordRecord, ...]:
        return tuple(self._records)

    @property
    def keywords(self) -> list[str]:
        return [record.keyword for record in self._records]

    @property
    def unsaved(self) -> tuple[KeywordRecord, ...]:
        return tuple(r for r in self._records if not r.is_persisted)

    def find(self, keyword_id: str) -> Optional[KeywordRecord]:
        return next((r for r in self._records if r.id == keyword_id), None)

    def replace_all(self, records: Iterable[KeywordRecord]) -> None:
        self._records = list(records)

    def _reject_duplicate(self, value: str, ignore_id: Optional[str] = None) -> None:
        folded = value.casefold()
        if any(r.keyword.casefold() == folded and r.id != ignore_id for r in self._records):
            raise ValidationError(f"Duplicate keyword: {value}")

    def add(self, keyword: str, schedule: Optional[str] = None) -> KeywordRecord:
        value = (keyword or "").strip()
        if not value:
            raise ValidationError("Keyword must not be empty")
        self._reject_duplicate(value)
        record = KeywordRecord(
            id=f"{TEMP_KEYWORD_PREFIX}{next(self._temp_ids)}",
            keyword=value,
            schedule=schedule,
        )
        self._records.append(record)
        return record

    def rename_local(self, keyword_id: str, keyword: str) -> KeywordRecord:
        value = (keyword or "").strip()
        if not value:
            raise ValidationError("Keyword must not be empty")
        self._reject_duplicate(value, ignore_id=keyword_id)
        for index, record in enumerate(self._records):
            if record.id == keyword_id:
                updated = KeywordRecord(id=record.id, keyword=value, schedule=record.schedule)
                self._records[index] = updated
                return updated
        raise ValidationError(f"Unknown keyword id: {keyword_id}")

    def remove_local(self, keyword_id: str) -> None:
        before = len(self._records)
        self._records = [r for r in self._records if r.id != keyword_id]
        if len(self._records) == before:
            raise ValidationError(f"Unknown keyword id: {keyword_id}")


class TldWhitelist:
    """Ordered set of TLD suffixes sent with ad-hoc crawls."""

    def __init__(self, entries: Optional[Iterable[str]] = None):
        self._entries: list[str] = []
        for entry in DEFAULT_TLD_WHITELIST if entries is None else entries:
            self._append(entry)

    def _append(self, raw: str) -> bool:
        value = normalize_tld(raw)
        if not value or value in self._entries:
            return False
        if public_suffix(f"example{value}") != value:
            logger.debug("TLD %s is not a known public suffix", value)
        self._entries.append(value)
        return True

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, raw: str) -> list[str]:
        """Add one or more suffixes separated by whitespace, ',' or ';'."""
        added = []
        for part in split_tld_input(raw):
            value = normalize_tld(part)
            if self._append(value):
                added.append(value)
        return added

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._entries):
            raise ValidationError(f"No TLD at position {index}")

    def edit(self, index: int, raw: str) -> None:
        self._check_index(index)
        value = normalize_tld(raw)
        if not value:
            # Blank edit is treated as cancel.
            return
        if value in self._entries and self._entries.index(value) != index:
            raise ValidationError(f"Duplicate TLD: {value}")
        self._entries[index] = value

    def remove(self, index: int) -> str:
        self._check_index(index)
        return self._entries.pop(index)

    def as_param(self) -> str:
        return "; ".join(self._entries)


class CrawlDispatchCoordinator:
    """
    Saves keyword schedules and dispatches ad-hoc crawls.

    The server is the source of truth for keyword ids: every successful
    mutation is followed by a refetch of the keyword list.
    """

    def __init__(
        self,
        service: ScrapeService,
        translator: type[ScheduleTranslator] = ScheduleTranslator,
        keywords: Optional[KeywordDraftList] = None,
        tlds: Optional[TldWhitelist] = None,
        engine: CrawlEngine = CrawlEngine.GOOGLE,
        schedule: Optional[ScheduleOption] = None,
    ):
        self.service = service
        self.translator = translator
        self.keywords = keywords if keywords is not None else KeywordDraftList()
        self.tlds = tlds if tlds is not None else TldWhitelist()
        self.engine = engine
        self.schedule = schedule
        self.stale = False

    async def load_keywords(self, page: int = 1, limit: int = 100) -> KeywordPage:
        """Replace the local list with the server's and restore selections."""
        result = await self.service.get_keywords_schedule(page=page, limit=limit)
        self.keywords.replace_all(result.items)
        if result.schedule and self.translator.cron_to_label(result.schedule) is None:
            logger.warning("Unrecognized schedule from server: %s", result.schedule)
        self.schedule = self.translator.resolve_selection(result.schedule, self.schedule)
        if result.crawl_engine:
            try:
                self.engine = CrawlEngine.from_string(result.crawl_engine)
            except ValueError:
                logger.warning("Ignoring unknown crawl engine from server: %s", result.crawl_engine)
        return result

    async def save_configuration(
        self,
        keywords: Optional[Sequence[str | KeywordRecord]] = None,
        schedule_label: ScheduleOption | str | None = None,
        engine: CrawlEngine | str | None = None,
    ) -> KeywordPage:
        """
        Persist keywords + schedule + engine in one call, then refetch.

        Raises:
            ValidationError: no keywords, or no schedule selected
            ConfigError: schedule label has no cron mapping
        """
        values = normalize_keywords(self.keywords if keywords is None else keywords)
        if not values:
            raise ValidationError("Add at least one keyword before saving")
        label = schedule_label if schedule_label is not None else self.schedule
        if label is None:
            raise ValidationError("Select a schedule before saving")
        cron = self.translator.label_to_cron(label)
        crawl_engine = self._resolve_engine(engine)

        config = KeywordScheduleConfig(
            keywords=values,
            cron_expression=cron,
            engine=crawl_engine,
            tld_whitelist=self.tlds.entries,
        )
        response = await self.service.save_keywords_schedule(config)
        if not response.get("success"):
            message = str(response.get("message") or "Failed to save keyword schedule")
            raise ServerError(message, detail=message)

        self.schedule = self.translator.cron_to_label(cron)
        self.engine = crawl_engine
        logger.info(
            "Saved %d keywords with schedule %s on %s",
            len(values),
            cron,
            crawl_engine.value,
        )
        page = await self._reload_after_mutation()
        if page is None:
            return KeywordPage(
                items=self.keywords.records,
                total=len(values),
                limit=len(values),
                schedule=cron,
                crawl_engine=crawl_engine.value,
            )
        return page

    async def _reload_after_mutation(self) -> Optional[KeywordPage]:
        """
        Refetch the keyword list after a mutation the server already accepted.

        A failed refetch does not undo that mutation, so it is logged and
        `stale` is set instead of raising.
        """
        try:
            page = await self.load_keywords()
        except JudolWatchError as e:
            logger.warning("Saved, but reloading keywords failed: %s", e)
            self.stale = True
            return None
        self.stale = False
        return page

    async def dispatch_adhoc_crawl(
        self,
        keywords: Optional[Sequence[str | KeywordRecord]] = None,
        engine: CrawlEngine | str | None = None,
        ai_reasoning_enabled: bool = True,
        tld_whitelist: Optional[Iterable[str]] = None,
    ) -> DispatchSummary:
        """Fire one multi-keyword crawl and aggregate per-keyword results."""
        values = normalize_keywords(self.keywords if keywords is None else keywords)
        if not values:
            raise ValidationError("Add at least one keyword before starting a crawl")
        crawl_engine = self._resolve_engine(engine)
        tlds = self.tlds if tld_whitelist is None else TldWhitelist(tld_whitelist)

        response = await self.service.scrape_multi_keyword(
            keywords=values,
            crawl_engine=crawl_engine.value,
            ai_reasoning=ai_reasoning_enabled,
            tld_whitelist=tlds.as_param() or None,
        )
        results, total_saved, total_inference = aggregate_results(response.get("results"))
        logger.info(
            "Crawl on %s finished: %d keywords, %d saved, %d inference",
            crawl_engine.value,
            len(values),
            total_saved,
            total_inference,
        )
        return DispatchSummary(
            keywords=tuple(values),
            engine=crawl_engine,
            total_saved=total_saved,
            total_inference_triggered=total_inference,
            results=results,
        )

    def add_keyword(self, keyword: str) -> KeywordRecord:
        """Local-only addition; persisted by the next save_configuration."""
        schedule = self.translator.label_to_cron(self.schedule) if self.schedule else None
        return self.keywords.add(keyword, schedule=schedule)

    async def update_keyword(self, keyword_id: str, keyword: str) -> Optional[KeywordRecord]:
        """
        Rename a keyword.

        Unsaved keywords are renamed locally with no backend call. Persisted
        keywords are updated on the server (carrying the selected schedule)
        and the list is refetched.
        """
        record = self.keywords.find(keyword_id)
        if record is None:
            raise ValidationError(f"Unknown keyword id: {keyword_id}")
        if not record.is_persisted:
            return self.keywords.rename_local(keyword_id, keyword)

        value = (keyword or "").strip()
        if not value:
            raise ValidationError("Keyword must not be empty")
        schedule = self.translator.label_to_cron(self.schedule) if self.schedule else None
        updated = await self.service.update_keyword(keyword_id, value, schedule=schedule)
        await self._reload_after_mutation()
        return updated

    async def delete_keyword(self, keyword_id: str) -> None:
        record = self.keywords.find(keyword_id)
        if record is None:
            raise ValidationError(f"Unknown keyword id: {keyword_id}")
        if not record.is_persisted:
            self.keywords.remove_local(keyword_id)
            return
        await self.service.delete_keyword(keyword_id)
        await self._reload_after_mutation()

    def _resolve_engine(self, engine: CrawlEngine | str | None) -> CrawlEngine:
        if engine is None:
            return self.engine
        if isinstance(engine, CrawlEngine):
            return engine
        try:
            return CrawlEngine.from_string(engine)
        except ValueError:
            raise ValidationError(f"Unknown crawl engine: {engine!r}") from None
