"""Backend API clients for JudolWatch."""

from .client import ApiClient
from .domains import DomainService
from .scrape import ScrapeService
from .session import Session, SessionUser

__all__ = ["ApiClient", "DomainService", "ScrapeService", "Session", "SessionUser"]
