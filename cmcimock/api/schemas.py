from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "forbidden",
    "not_found",
    "validation_error",
    "server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {sorted(_VALID_ERROR_CODES)}"
            )
        return value


class Envelope(BaseModel):
    """JSON envelope used by the admin API and authentication failures."""

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


class SessionView(BaseModel):
    session_id: str
    username: str
    login_time: datetime
    last_activity: datetime
    ltpa_token: Optional[str] = None


class SessionListResponse(BaseModel):
    sessions: List[SessionView]
    count: int


class BearerTokenView(BaseModel):
    ltpa_token: str
    session_id: str
    username: str = "unknown"
    last_activity: Optional[datetime] = None


class BearerTokenListResponse(BaseModel):
    ltpa_tokens: List[BearerTokenView]
    count: int


class LegacyCacheResponse(BaseModel):
    tokens: List[str]
    count: int


class RetainedResultSetView(BaseModel):
    cache_token: str
    resource_type: str
    total_records: int
    session_id: str
    created_at: datetime
    last_accessed: datetime
    is_expired: bool
    query: Dict[str, str] = Field(default_factory=dict)


class RetainedResultSetListResponse(BaseModel):
    retained_result_sets: List[RetainedResultSetView]
    count: int


class ClearResponse(BaseModel):
    message: str
    count: int = 0


class SessionsClearedResponse(BaseModel):
    message: str
    session_count: int
    ltpa_token_count: int
    retained_result_sets_count: int


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    timestamp: datetime
    active_sessions: int
    cache_entries: int
    ltpa_tokens: int
    retained_result_sets: int
