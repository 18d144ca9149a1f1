from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from cmcimock.storage.paging import order_records, page_window

# A record is the attribute map of one resource instance, e.g. {"program": "PROG001"}
Record = Dict[str, str]

DEFAULT_RESULT_SET_TTL = timedelta(minutes=15)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """Login state for one username.

    ``id`` is derived from the username, so re-authenticating reuses the record.
    """

    id: str
    username: str
    login_time: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)
    current_token: Optional[str] = None


@dataclass
class ResultPage:
    records: List[Record]
    displayed_count: int
    total_count: int


@dataclass
class RetainedResultSet:
    token: str
    resource_type: str
    records: List[Record]
    owner_session_id: str
    query: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime = field(default_factory=utcnow)
    ttl: timedelta = DEFAULT_RESULT_SET_TTL
    total_count: int = field(init=False)

    def __post_init__(self) -> None:
        self.records = list(self.records)
        self.total_count = len(self.records)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return ((now or utcnow()) - self.last_accessed_at) > self.ttl

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_accessed_at = now or utcnow()

    def page(
        self,
        index: Optional[int] = 1,
        count: Optional[int] = None,
        order_by: Sequence[str] = (),
    ) -> ResultPage:
        """Return one window of the set; stored records are never reordered."""
        self.touch()
        records = order_records(self.records, order_by) if order_by else self.records
        start, end = page_window(len(records), index, count)
        return ResultPage(
            records=list(records[start:end]),
            displayed_count=end - start,
            total_count=self.total_count,
        )
