"""Draft/commit state machine for a domain verification decision."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from ..api.domains import DomainService
from ..constants import VerificationStatus
from ..errors import ServerError, ValidationError
from ..models import DomainDetail, VerificationDraft

logger = logging.getLogger(__name__)

CommitCallback = Callable[[str, VerificationStatus, str], None]


class DraftState(str, Enum):
    CLEAN = "clean"  # draft == baseline
    DIRTY = "dirty"  # draft differs from baseline
    COMMITTING = "committing"  # backend update in flight


class VerificationDraftMachine:
    """
    Tracks one opened record's status/reasoning edit.

    The draft is held as a single frozen VerificationDraft and replaced
    wholesale on every transition, so status and reasoning never diverge
    mid-update. Switching crawls discards uncommitted edits without asking
    (last write wins).
    """

    def __init__(
        self,
        service: DomainService,
        on_commit: Optional[CommitCallback] = None,
    ):
        self.service = service
        self.on_commit = on_commit
        self.record: Optional[DomainDetail] = None
        self.selected_index = 0
        self._draft: Optional[VerificationDraft] = None
        self._state = DraftState.CLEAN
        self._closed = False
        self._open_token = 0

    @property
    def state(self) -> DraftState:
        return self._state

    @property
    def draft(self) -> VerificationDraft:
        if self._closed:
            raise ValidationError("Verification view is closed")
        if self._draft is None:
            raise ValidationError("No record loaded")
        return self._draft

    @property
    def dirty(self) -> bool:
        return self._draft is not None and self._draft.dirty

    @property
    def is_closed(self) -> bool:
        return self._closed

    def load(self, record: DomainDetail, selected_crawl_index: int = 0) -> VerificationDraft:
        """Seed baseline and draft from the selected crawl."""
        if self._closed:
            raise ValidationError("Verification view is closed")
        if not record.crawls:
            raise ValidationError(f"Domain {record.domain_name or record.domain_id} has no crawls")
        if not 0 <= selected_crawl_index < len(record.crawls):
            raise ValidationError(
                f"Crawl index {selected_crawl_index} out of range (0-{len(record.crawls) - 1})"
            )
        crawl = record.crawls[selected_crawl_index]
        self.record = record
        self.selected_index = selected_crawl_index
        self._draft = VerificationDraft.seeded(record.domain_id, crawl.status, crawl.reasoning or "")
        self._state = DraftState.CLEAN
        return self._draft

    async def open_record(self, record_id: str, selected_crawl_index: int = 0) -> Optional[VerificationDraft]:
        """
        Fetch a record's detail and load it.

        Returns None (and loads nothing) if the view was closed or another
        record was opened while the fetch was in flight.
        """
        if self._closed:
            raise ValidationError("Verification view is closed")
        self._open_token += 1
        token = self._open_token
        detail = await self.service.get_domain_detail(record_id)
        if self._closed or token != self._open_token:
            logger.debug("Ignoring detail for %s; view moved on", record_id)
            return None
        return self.load(detail, selected_crawl_index)

    def _require_editable(self) -> VerificationDraft:
        draft = self.draft
        if self._state == DraftState.COMMITTING:
            raise ValidationError("A commit is already in progress")
        return draft

    def _apply(self, draft: VerificationDraft) -> None:
        self._draft = draft
        self._state = DraftState.DIRTY if draft.dirty else DraftState.CLEAN

    def set_status(self, status: VerificationStatus | str) -> VerificationDraft:
        draft = self._require_editable()
        if not isinstance(status, VerificationStatus):
            try:
                status = VerificationStatus(str(status).strip().lower().replace("-", "_"))
            except ValueError:
                raise ValidationError(f"Unknown status: {status!r}") from None
        self._apply(
            VerificationDraft(
                record_id=draft.record_id,
                baseline_status=draft.baseline_status,
                baseline_reasoning=draft.baseline_reasoning,
                draft_status=status,
                draft_reasoning=draft.draft_reasoning,
            )
        )
        return self._draft

    def set_reasoning(self, reasoning: str) -> VerificationDraft:
        draft = self._require_editable()
        self._apply(
            VerificationDraft(
                record_id=draft.record_id,
                baseline_status=draft.baseline_status,
                baseline_reasoning=draft.baseline_reasoning,
                draft_status=draft.draft_status,
                draft_reasoning=reasoning or "",
            )
        )
        return self._draft

    def select_crawl(self, index: int) -> VerificationDraft:
        """Re-seed from another crawl, dropping any uncommitted edit."""
        self._require_editable()
        if self.record is None:
            raise ValidationError("No record loaded")
        if self.dirty:
            logger.debug(
                "Discarding uncommitted draft for %s when switching to crawl %d",
                self._draft.record_id,
                index,
            )
        return self.load(self.record, index)

    async def commit(self) -> str:
        """
        Persist the draft status.

        Returns:
            Server message (may be empty) on success

        Raises:
            ValidationError if there is nothing to commit; the backend error
            otherwise. On failure the draft stays dirty and untouched.
        """
        draft = self._require_editable()
        if not draft.dirty:
            raise ValidationError("Nothing to commit")

        self._state = DraftState.COMMITTING
        try:
            result = await self.service.update_status(draft.record_id, draft.draft_status)
            if not result.success:
                raise ServerError(result.message or "Failed to save status", detail=result.message)
        except Exception:
            if not self._closed:
                self._state = DraftState.DIRTY
            raise

        committed = draft.committed()
        if self._draft is draft:
            self._draft = committed
            self._state = DraftState.CLEAN
        logger.info("Verified %s as %s", draft.record_id, draft.draft_status.value)

        if self.on_commit is not None:
            try:
                self.on_commit(draft.record_id, draft.draft_status, draft.draft_reasoning)
            except Exception as e:  # pragma: no cover - listener bug
                logger.warning("Commit listener failed for %s: %s", draft.record_id, e)
        return result.message

    def close(self) -> None:
        """Destroy the draft; the machine is unusable afterwards."""
        self._closed = True
        self._draft = None
        self.record = None
        self._state = DraftState.CLEAN
