from __future__ import annotations

import secrets
import threading
from datetime import datetime
from typing import Dict, Hashable, List, Optional, Tuple

from cmcimock.logging import get_logger
from cmcimock.storage.models import RetainedResultSet, Session, utcnow

logger = get_logger(__name__)


def generate_cache_token() -> str:
    """16 upper-case hex characters, the shape CMCI uses for cache tokens."""
    return secrets.token_hex(8).upper()


def generate_bearer_token() -> str:
    """URL-safe random token standing in for an LtpaToken2 value."""
    return secrets.token_urlsafe(64)


class SessionStore:
    """Session records keyed by their username-derived id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self.lock = threading.RLock()

    def __len__(self) -> int:
        with self.lock:
            return len(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        with self.lock:
            return self._sessions.get(session_id)

    def upsert_login(
        self, session_id: str, username: str, now: Optional[datetime] = None
    ) -> Session:
        """Create the session on first login, otherwise refresh its activity."""
        now = now or utcnow()
        with self.lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(
                    id=session_id, username=username, login_time=now, last_activity=now
                )
                self._sessions[session_id] = session
            else:
                session.username = username
                session.last_activity = now
            return session

    def touch(self, session_id: str, now: Optional[datetime] = None) -> Optional[Session]:
        with self.lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_activity = now or utcnow()
            return session

    def set_token(self, session_id: str, token: Optional[str]) -> None:
        with self.lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.current_token = token

    def clear_tokens(self) -> None:
        """Drop the token reference from every session; the sessions persist."""
        with self.lock:
            for session in self._sessions.values():
                session.current_token = None

    def list(self) -> List[Session]:
        with self.lock:
            return list(self._sessions.values())

    def clear(self) -> int:
        with self.lock:
            count = len(self._sessions)
            self._sessions.clear()
            return count


class BearerTokenRegistry:
    """Maps opaque bearer tokens to the session they authenticate."""

    def __init__(self) -> None:
        self._tokens: Dict[str, str] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def issue(self, session_id: str) -> str:
        with self._lock:
            token = generate_bearer_token()
            while token in self._tokens:
                token = generate_bearer_token()
            self._tokens[token] = session_id
            return token

    def lookup(self, token: str) -> Optional[str]:
        with self._lock:
            return self._tokens.get(token)

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._tokens.pop(token, None) is not None

    def revoke_all(self) -> int:
        with self._lock:
            count = len(self._tokens)
            self._tokens.clear()
            return count

    def items(self) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._tokens.items())


class RetainedResultSetStore:
    """Token-keyed retained result sets with a signature index for reuse lookups."""

    def __init__(self) -> None:
        self._sets: Dict[str, RetainedResultSet] = {}
        self._by_signature: Dict[Hashable, str] = {}
        self._signature_of: Dict[str, Hashable] = {}
        self.lock = threading.RLock()

    def __len__(self) -> int:
        with self.lock:
            return len(self._sets)

    def __contains__(self, token: str) -> bool:
        with self.lock:
            return token in self._sets

    def new_token(self) -> str:
        with self.lock:
            token = generate_cache_token()
            while token in self._sets:
                token = generate_cache_token()
            return token

    def add(self, result_set: RetainedResultSet, signature: Optional[Hashable] = None) -> None:
        with self.lock:
            self._sets[result_set.token] = result_set
            if signature is not None:
                self._by_signature[signature] = result_set.token
                self._signature_of[result_set.token] = signature

    def get(self, token: str) -> Optional[RetainedResultSet]:
        with self.lock:
            return self._sets.get(token)

    def find_by_signature(self, signature: Hashable) -> Optional[RetainedResultSet]:
        with self.lock:
            token = self._by_signature.get(signature)
            if token is None:
                return None
            return self._sets.get(token)

    def remove(self, token: str) -> bool:
        with self.lock:
            removed = self._sets.pop(token, None)
            signature = self._signature_of.pop(token, None)
            if signature is not None and self._by_signature.get(signature) == token:
                del self._by_signature[signature]
            return removed is not None

    def evict_expired(self, now: Optional[datetime] = None) -> List[str]:
        now = now or utcnow()
        with self.lock:
            expired = [t for t, rs in self._sets.items() if rs.is_expired(now)]
            for token in expired:
                self.remove(token)
            return expired

    def list(self) -> List[RetainedResultSet]:
        with self.lock:
            return list(self._sets.values())

    def clear(self) -> int:
        with self.lock:
            count = len(self._sets)
            self._sets.clear()
            self._by_signature.clear()
            self._signature_of.clear()
            return count


class LegacyCache:
    """Serialized responses kept for the old ``cache=true`` flow; no owner, no expiry."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def put(self, body: str) -> str:
        with self._lock:
            token = generate_cache_token()
            while token in self._entries:
                token = generate_cache_token()
            self._entries[token] = body
            return token

    def get(self, token: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(token)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count


class MemoryStore:
    """Process-lifetime state of the mock server.

    Holds the four stores and implements the administrative operations that
    cascade across them.
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.sessions = SessionStore()
        self.tokens = BearerTokenRegistry()
        self.result_sets = RetainedResultSetStore()
        self.legacy_cache = LegacyCache()
        self._admin_lock = threading.RLock()

    def clear_sessions(self) -> Dict[str, int]:
        """Drop every session, bearer token and retained result set."""
        with self._admin_lock:
            counts = {
                "sessions": self.sessions.clear(),
                "ltpa_tokens": self.tokens.revoke_all(),
                "retained_result_sets": self.result_sets.clear(),
            }
        self.logger.info("sessions_cleared", **counts)
        return counts

    def clear_bearer_tokens(self) -> int:
        """Revoke every bearer token; sessions survive without a token."""
        with self._admin_lock:
            count = self.tokens.revoke_all()
            self.sessions.clear_tokens()
        self.logger.info("ltpa_tokens_cleared", count=count)
        return count

    def counts(self) -> Dict[str, int]:
        return {
            "active_sessions": len(self.sessions),
            "cache_entries": len(self.legacy_cache),
            "ltpa_tokens": len(self.tokens),
            "retained_result_sets": len(self.result_sets),
        }
