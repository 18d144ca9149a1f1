from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from cmcimock.logging import get_logger
from cmcimock.service.errors import (
    AuthenticationRequiredError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from cmcimock.storage.memory import BearerTokenRegistry, SessionStore
from cmcimock.storage.models import utcnow

logger = get_logger(__name__)


def derive_session_id(username: str) -> str:
    """Deterministic session id for ``username``.

    This is a mock simplification: anyone who knows a username can compute
    its session id. Real servers need unpredictable session identifiers.
    """
    return hashlib.md5(username.encode("utf-8")).hexdigest()[:16].upper()


class CredentialValidator:
    """Checks username/password pairs against a fixed table."""

    def __init__(self, pairs: Mapping[str, str]) -> None:
        self._pairs = dict(pairs)

    def is_valid(self, username: Optional[str], password: Optional[str]) -> bool:
        if not username or not password:
            return False
        expected = self._pairs.get(username)
        if expected is None:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), password.encode("utf-8"))


@dataclass
class AuthContext:
    session_id: str
    username: str
    via_token: bool = False
    # Set when a credential login needs the token attached to the response
    issued_token: Optional[str] = None


class AuthService:
    """Authentication gate: bearer token first, then Basic credentials."""

    def __init__(
        self,
        sessions: SessionStore,
        tokens: BearerTokenRegistry,
        validator: CredentialValidator,
    ) -> None:
        self.sessions = sessions
        self.tokens = tokens
        self.validator = validator
        self.logger = logger

    def authenticate(
        self, authorization: Optional[str], ltpa_token: Optional[str]
    ) -> AuthContext:
        if ltpa_token:
            return self._authenticate_token(ltpa_token)
        if not authorization:
            self.logger.info("authentication_required")
            raise AuthenticationRequiredError()
        credentials = self._extract_basic(authorization)
        if credentials is None:
            self.logger.info("authentication_scheme_unsupported")
            raise AuthenticationRequiredError()
        return self.login(*credentials)

    def login(self, username: str, password: str) -> AuthContext:
        if not self.validator.is_valid(username, password):
            self.logger.info("authentication_failed", username=username or "unknown")
            raise InvalidCredentialsError()

        session_id = derive_session_id(username)
        with self.sessions.lock:
            session = self.sessions.upsert_login(session_id, username)
            token = session.current_token
            if token and self.tokens.lookup(token) == session_id:
                self.logger.debug(
                    "ltpa_token_reused", username=username, session_id=session_id
                )
            else:
                # Never leave an older token aliasing the same session
                if token:
                    self.tokens.revoke(token)
                token = self.tokens.issue(session_id)
                self.sessions.set_token(session_id, token)
                self.logger.info(
                    "ltpa_token_issued", username=username, session_id=session_id
                )
        return AuthContext(session_id=session_id, username=username, issued_token=token)

    def _authenticate_token(self, token: str) -> AuthContext:
        session_id = self.tokens.lookup(token)
        session = self.sessions.touch(session_id, utcnow()) if session_id else None
        if session is None:
            self.logger.info("ltpa_token_rejected", ltpa_token=token)
            raise InvalidTokenError()
        return AuthContext(session_id=session.id, username=session.username, via_token=True)

    def _extract_basic(self, header: str) -> Optional[Tuple[str, str]]:
        scheme, _, encoded = header.partition(" ")
        if scheme.lower() != "basic":
            return None
        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return ("", "")
        username, _, password = decoded.partition(":")
        return username, password
