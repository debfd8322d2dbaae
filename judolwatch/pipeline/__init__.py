"""Listing, verification, scheduling and crawl dispatch logic."""

from .dispatch import CrawlDispatchCoordinator, KeywordDraftList, TldWhitelist
from .query_engine import DomainFilters, DomainQueryEngine
from .scheduling import ScheduleOption, ScheduleTranslator
from .verification import DraftState, VerificationDraftMachine

__all__ = [
    "CrawlDispatchCoordinator",
    "DomainFilters",
    "DomainQueryEngine",
    "DraftState",
    "KeywordDraftList",
    "ScheduleOption",
    "ScheduleTranslator",
    "TldWhitelist",
    "VerificationDraftMachine",
]
