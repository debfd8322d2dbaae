"""Scrape and keyword endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..models import KeywordPage, KeywordRecord, KeywordScheduleConfig
from .client import ApiClient

logger = logging.getLogger(__name__)


class ScrapeService:
    """Typed wrapper around /scrape and /keywords."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def scrape_multi_keyword(
        self,
        keywords: list[str],
        crawl_engine: str,
        ai_reasoning: bool,
        tld_whitelist: Optional[str] = None,
    ) -> dict:
        payload: dict[str, Any] = {
            "keywords": list(keywords),
            "crawl_engine": crawl_engine,
            "ai_reasoning": bool(ai_reasoning),
        }
        if tld_whitelist:
            payload["tld_whitelist"] = tld_whitelist
        data = await self.client.post("/scrape/multi-keyword", json=payload)
        return data if isinstance(data, dict) else {}

    async def get_keywords_schedule(self, page: int = 1, limit: int = 100) -> KeywordPage:
        data = await self.client.get("/keywords/schedule", params={"page": page, "limit": limit})
        return KeywordPage.from_api(data if isinstance(data, dict) else {})

    async def save_keywords_schedule(self, config: KeywordScheduleConfig) -> dict:
        data = await self.client.post("/keywords/schedule", json=config.to_request())
        return data if isinstance(data, dict) else {}

    async def update_keyword(
        self,
        keyword_id: str,
        keyword: str,
        schedule: Optional[str] = None,
    ) -> KeywordRecord:
        payload: dict[str, Any] = {"keyword": keyword}
        if schedule:
            payload["schedule"] = schedule
        data = await self.client.put(f"/keywords/{keyword_id}", json=payload)
        return KeywordRecord.from_api(data if isinstance(data, dict) else {})

    async def delete_keyword(self, keyword_id: str) -> dict:
        data = await self.client.delete(f"/keywords/{keyword_id}")
        return data if isinstance(data, dict) else {}
