from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from cmcimock.logging import get_logger
from cmcimock.protocol import SUMMARY_ONLY_DIRECTIVE, has_directive
from cmcimock.service.errors import (
    AccessDeniedError,
    MalformedResourceError,
    TokenNotFoundError,
)
from cmcimock.storage.memory import RetainedResultSetStore
from cmcimock.storage.models import (
    DEFAULT_RESULT_SET_TTL,
    Record,
    ResultPage,
    RetainedResultSet,
    utcnow,
)
from cmcimock.storage.paging import parse_order_by

logger = get_logger(__name__)

Signature = Tuple[str, str, str, Optional[str], bool]


@dataclass
class ResultCacheRead:
    token: str
    resource_type: str
    page: ResultPage
    retained: bool


class ResultCacheService:
    """Creation, lookup, paging and discard of retained result sets.

    Every compound operation (look up, check, page, discard) runs under one
    lock so operations on a single token are linearized.
    """

    def __init__(
        self,
        store: RetainedResultSetStore,
        *,
        ttl: timedelta = DEFAULT_RESULT_SET_TTL,
        default_count: int = 10,
        max_orderby_fields: int = 32,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.default_count = default_count
        self.max_orderby_fields = max_orderby_fields
        self._lock = threading.RLock()

    def signature(
        self, owner_session_id: str, resource_type: str, query: Mapping[str, str]
    ) -> Signature:
        """Key identifying requests that would produce an equivalent result set."""
        return (
            owner_session_id,
            resource_type,
            str(query.get("count") or self.default_count),
            query.get("simulate"),
            has_directive(query, SUMMARY_ONLY_DIRECTIVE),
        )

    def create(
        self,
        resource_type: str,
        records: Sequence[Record],
        owner_session_id: str,
        query: Optional[Mapping[str, str]] = None,
    ) -> RetainedResultSet:
        query = dict(query or {})
        with self._lock:
            result_set = RetainedResultSet(
                token=self.store.new_token(),
                resource_type=resource_type,
                records=list(records),
                owner_session_id=owner_session_id,
                query=query,
                ttl=self.ttl,
            )
            self.store.add(
                result_set, self.signature(owner_session_id, resource_type, query)
            )
        logger.info(
            "result_set_created",
            cache_token=result_set.token,
            resource_type=resource_type,
            session_id=owner_session_id,
            total_count=result_set.total_count,
        )
        return result_set

    def create_or_reuse(
        self,
        resource_type: str,
        owner_session_id: str,
        query: Mapping[str, str],
        generate: Callable[[], List[Record]],
    ) -> Tuple[RetainedResultSet, bool]:
        """Return a live equivalent result set of the same owner, or create one.

        ``generate`` is only called when a new set is needed. The boolean is
        True when an existing set was reused.
        """
        signature = self.signature(owner_session_id, resource_type, query)
        with self._lock:
            existing = self.store.find_by_signature(signature)
            if existing is not None and existing.is_expired():
                self._evict(existing.token, reason="expired")
                existing = None
            if existing is not None:
                existing.touch()
                logger.info(
                    "result_set_reused",
                    cache_token=existing.token,
                    resource_type=resource_type,
                    session_id=owner_session_id,
                )
                return existing, True
            return self.create(resource_type, generate(), owner_session_id, query), False

    def get(self, token: str) -> Optional[RetainedResultSet]:
        return self.store.get(token)

    def open(self, token: str, requester_session_id: str) -> RetainedResultSet:
        """Look up ``token`` for ``requester_session_id``.

        Raises TokenNotFoundError for unknown or expired tokens (expired sets
        are evicted on the spot) and AccessDeniedError for another session's set.
        """
        with self._lock:
            result_set = self.store.get(token)
            if result_set is None:
                logger.info("cache_token_not_found", cache_token=token)
                raise TokenNotFoundError()
            if result_set.is_expired():
                self._evict(token, reason="expired")
                raise TokenNotFoundError()
            if result_set.owner_session_id != requester_session_id:
                logger.warning(
                    "result_set_access_denied",
                    cache_token=token,
                    session_id=requester_session_id,
                )
                raise AccessDeniedError()
            return result_set

    def read(
        self,
        token: str,
        requester_session_id: str,
        *,
        index: Optional[int] = 1,
        count: Optional[int] = None,
        order_by: Optional[str] = None,
        retain: bool = False,
    ) -> ResultCacheRead:
        fields = self.parse_order_by(order_by)
        with self._lock:
            result_set = self.open(token, requester_session_id)
            page = result_set.page(index, count, fields)
            logger.debug(
                "result_set_paged",
                cache_token=token,
                index=index,
                count=count,
                order_by=fields,
                displayed_count=page.displayed_count,
            )
            self.discard_if_not_retained(token, retain)
        return ResultCacheRead(
            token=token,
            resource_type=result_set.resource_type,
            page=page,
            retained=retain,
        )

    def discard_if_not_retained(self, token: str, retain: bool) -> bool:
        """Remove the set unless the caller asked to retain it. Returns True if removed."""
        if retain:
            logger.debug("result_set_retained", cache_token=token)
            return False
        return self._evict(token, reason="not_retained")

    def parse_order_by(self, raw: Optional[str]) -> List[str]:
        fields = parse_order_by(raw)
        if len(fields) > self.max_orderby_fields:
            raise MalformedResourceError(
                f"orderby accepts at most {self.max_orderby_fields} fields",
                detail={"fields": len(fields)},
            )
        return fields

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._evict(token, reason="admin")

    def clear(self) -> int:
        with self._lock:
            count = self.store.clear()
        logger.info("result_sets_cleared", count=count)
        return count

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Evict every expired result set; returns the evicted tokens."""
        with self._lock:
            expired = self.store.evict_expired(now or utcnow())
        for token in expired:
            logger.info("result_set_expired", cache_token=token)
        return expired

    def _evict(self, token: str, *, reason: str) -> bool:
        removed = self.store.remove(token)
        if removed:
            logger.info("result_set_discarded", cache_token=token, reason=reason)
        return removed
