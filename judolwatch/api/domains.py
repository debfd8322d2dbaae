"""Domain endpoints: listing, detail, verification status, LLM and export."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional

from ..constants import EXPORT_PAGE_LIMIT, VerificationStatus
from ..errors import JudolWatchError
from ..models import DomainDetail, PageResult, QueryKey
from .client import ApiClient

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Domain",
    "URL",
    "Status",
    "Confidence Score",
    "Timestamp",
    "Verified By",
]


@dataclass(frozen=True)
class StatusUpdateResult:
    success: bool
    message: str = ""


@dataclass(frozen=True)
class LLMResult:
    """Outcome of sending one domain to the reasoning service."""

    domain: str
    result: Optional[dict] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DomainService:
    """Typed wrapper around the /domains endpoints."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def list_domains(self, key: QueryKey) -> PageResult:
        data = await self.client.get("/domains", params=key.to_params())
        return PageResult.from_api(data if isinstance(data, dict) else {})

    async def get_domain_detail(self, domain_id: str) -> DomainDetail:
        data = await self.client.get(f"/domains/{domain_id}")
        return DomainDetail.from_api(data if isinstance(data, dict) else {})

    async def update_status(
        self,
        domain_id: str,
        status: VerificationStatus,
    ) -> StatusUpdateResult:
        data = await self.client.patch(
            f"/domains/{domain_id}/status",
            json={"status": status.value},
        )
        data = data if isinstance(data, dict) else {}
        return StatusUpdateResult(
            success=bool(data.get("success")),
            message=str(data.get("message") or ""),
        )

    async def send_to_llm(self, domain: str) -> dict:
        """Queue one domain for AI reasoning."""
        data = await self.client.post("/domains/llm", json={"domain": domain})
        return data if isinstance(data, dict) else {}

    async def send_bulk_to_llm(
        self,
        domains: list[str],
        on_progress: Optional[Callable[[int, int, str], None]] = None,
    ) -> list[LLMResult]:
        """
        Send domains to the reasoning service one after another.

        A failure on one domain is recorded and does not stop the rest.
        """
        results: list[LLMResult] = []
        total = len(domains)
        for index, domain in enumerate(domains, start=1):
            if on_progress:
                on_progress(index, total, domain)
            try:
                result = await self.send_to_llm(domain)
                results.append(LLMResult(domain=domain, result=result))
            except JudolWatchError as e:
                logger.warning("LLM request failed for %s: %s", domain, e)
                results.append(LLMResult(domain=domain, error=str(e)))
        return results

    async def export_csv(self, key: QueryKey, path: Path) -> int:
        """
        Export every domain under the current filters to CSV.

        Returns:
            Number of exported rows
        """
        export_key = replace(key, page=1, page_size=EXPORT_PAGE_LIMIT)
        page = await self.list_domains(export_key)

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)
        for item in page.items:
            writer.writerow([
                item.domain_name,
                item.url,
                item.status.value,
                "" if item.confidence_score is None else str(item.confidence_score),
                item.timestamp or "",
                item.verified_by or "",
            ])

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(buffer.getvalue(), encoding="utf-8")
        logger.info("Exported %d domains to %s", len(page.items), path)
        return len(page.items)
