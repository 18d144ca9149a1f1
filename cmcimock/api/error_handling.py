from __future__ import annotations

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cmcimock.api.cookies import apply_token_cookie
from cmcimock.api.schemas import Envelope, ErrorBody
from cmcimock.api.wire import MEDIA_TYPE, build_response, result_summary
from cmcimock.logging import get_correlation_id, get_logger, sanitize_error_message
from cmcimock.protocol import CICS_SYSTEM_MANAGEMENT, ResponseCode
from cmcimock.service.errors import AuthenticationError, CmciError, InternalError
from cmcimock.service.runtime import get_runtime

logger = get_logger(__name__)

# Stable error codes mapped to HTTP status codes
_STATUS_TO_CODE = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    500: "server_error",
}


def _error_code_for_status(status_code: int) -> str:
    return _STATUS_TO_CODE.get(status_code, "server_error")


def _error_response(
    status_code: int,
    message: str,
    details: dict | list | None = None,
    code: str | None = None,
) -> JSONResponse:
    """Create a JSON error envelope."""
    error_code = code or _error_code_for_status(status_code)
    error_body = ErrorBody(code=error_code, message=message, details=details or None)
    envelope = Envelope(status="error", error=error_body)
    if get_correlation_id():
        envelope.request_id = get_correlation_id()
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def _is_cmci_path(request: Request) -> bool:
    return request.url.path.startswith(f"/{CICS_SYSTEM_MANAGEMENT}")


def _cmci_error_response(
    request: Request, status_code: int, code: ResponseCode, message: str
) -> Response:
    """XML result summary describing a failed CMCI request."""
    settings = get_runtime().settings
    summary = result_summary(
        code, function=request.method, message=message, recordcount=0
    )
    response = Response(
        content=build_response(summary, schema_base_url=settings.schema_base_url),
        status_code=status_code,
        media_type=MEDIA_TYPE,
    )
    # A login that succeeded before the failure still hands out its token
    apply_token_cookie(response, getattr(request.state, "auth", None), settings)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Install exception handlers: XML summaries for CMCI errors, JSON envelopes otherwise."""

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        logger.warning(
            "authentication_error",
            path=request.url.path,
            method=request.method,
            message=exc.message,
        )
        return _error_response(exc.status_code, exc.message, exc.detail, code=exc.error_code)

    @app.exception_handler(CmciError)
    async def handle_cmci_error(request: Request, exc: CmciError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "cmci_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            response_code=exc.response_code.alias,
            message=exc.message,
            detail=exc.detail,
        )
        return _cmci_error_response(
            request, exc.status_code, exc.response_code, exc.message
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        # Envelope built by routes._http_error
        if isinstance(exc.detail, dict) and isinstance(exc.detail.get("error"), dict):
            error_obj = exc.detail["error"]
            message = error_obj.get("message", "http error")
            code = error_obj.get("code")
            details = error_obj.get("details")
        else:
            message = str(exc.detail) if exc.detail else "http error"
            code = None
            details = None
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=message,
            )
        else:
            logger.warning(
                "http_client_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                error_code=code,
                message=message,
            )
        return _error_response(exc.status_code, message, details, code=code)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        if _is_cmci_path(request):
            error = InternalError(sanitize_error_message(str(exc)))
            return _cmci_error_response(
                request, error.status_code, error.response_code, error.message
            )
        return _error_response(500, "internal server error", code="server_error")
