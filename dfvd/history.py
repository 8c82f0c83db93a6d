import logging
import math
from typing import List, Optional

from pydantic import BaseModel

from .errors import InvalidPageRequest
from .models import VERDICTS, StoredReport
from .store import ReportStore

logger = logging.getLogger("dfvd.history")

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

INVALID_PAGE_MESSAGE = (
    f"Invalid pagination parameters. Page must be >= 1, limit must be between 1 and {MAX_PAGE_SIZE}."
)


class HistoryPage(BaseModel):
    items: List[StoredReport]
    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool

    def pagination(self) -> dict:
        return {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "totalCount": self.total_count,
            "limit": self.page_size,
            "hasNextPage": self.has_next,
            "hasPrevPage": self.has_prev,
            "nextPage": self.page + 1 if self.has_next else None,
            "prevPage": self.page - 1 if self.has_prev else None,
        }


def normalize_verdict(verdict: Optional[str]) -> Optional[str]:
    """Upper-case a verdict filter; anything outside the verdict set means no filter."""
    if not verdict:
        return None
    v = verdict.strip().upper()
    return v if v in VERDICTS else None


class HistoryService:
    """Read-only, newest-first paging over the report store."""

    def __init__(self, store: ReportStore):
        self.store = store

    def list(self, page: int = DEFAULT_PAGE, page_size: int = DEFAULT_PAGE_SIZE, verdict: Optional[str] = None) -> HistoryPage:
        if page < 1 or page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise InvalidPageRequest(INVALID_PAGE_MESSAGE)

        verdict_filter = normalize_verdict(verdict)
        if verdict and verdict_filter is None:
            logger.info(f"Ignoring unrecognised verdict filter {verdict!r}")

        total_count = self.store.count(verdict_filter)
        items = self.store.find_page(verdict_filter, skip=(page - 1) * page_size, limit=page_size)
        total_pages = math.ceil(total_count / page_size)

        return HistoryPage(
            items=items,
            page=page,
            page_size=page_size,
            total_count=total_count,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )
