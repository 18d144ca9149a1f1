from __future__ import annotations

from typing import Optional

from cmcimock.protocol import ResponseCode


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each class carries an HTTP ``status_code`` and a stable ``error_code``.
    Errors raised on CMCI resource paths additionally carry the CMCI
    ``response_code`` reported in the XML result summary.
    """

    status_code: int = 400
    error_code: str = "validation_error"
    response_code: Optional[ResponseCode] = None

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class AuthenticationRequiredError(AuthenticationError):
    def __init__(self, message: str = "Authentication required", **kwargs) -> None:
        super().__init__(message, **kwargs)


class InvalidCredentialsError(AuthenticationError):
    def __init__(self, message: str = "Invalid username or password", **kwargs) -> None:
        super().__init__(message, **kwargs)


class InvalidTokenError(AuthenticationError):
    def __init__(self, message: str = "Invalid or expired LtpaToken2", **kwargs) -> None:
        super().__init__(message, **kwargs)


class CmciError(ServiceError):
    """Failure reported to the client as a CMCI result summary."""
    response_code = ResponseCode.INVALIDDATA


class MalformedResourceError(CmciError):
    """Unknown resource type or unusable request parameter (400)."""
    status_code = 400
    error_code = "validation_error"
    response_code = ResponseCode.INVALIDPARM


class TokenNotFoundError(CmciError):
    """Cache token unknown, discarded or expired (404)."""
    status_code = 404
    error_code = "not_found"
    response_code = ResponseCode.NOTAVAILABLE

    def __init__(self, message: str = "Cache token not found", **kwargs) -> None:
        super().__init__(message, **kwargs)


class AccessDeniedError(CmciError):
    """Cache token belongs to another session (403)."""
    status_code = 403
    error_code = "forbidden"
    response_code = ResponseCode.NOTAVAILABLE

    def __init__(self, message: str = "Access denied", **kwargs) -> None:
        super().__init__(message, **kwargs)


class InternalError(CmciError):
    """Unexpected failure (500)."""
    status_code = 500
    error_code = "server_error"
    response_code = ResponseCode.INVALIDDATA


__all__ = [
    "ServiceError",
    "AuthenticationError",
    "AuthenticationRequiredError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "CmciError",
    "MalformedResourceError",
    "TokenNotFoundError",
    "AccessDeniedError",
    "InternalError",
]
