from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response

from cmcimock.api.cookies import apply_token_cookie
from cmcimock.api.schemas import (
    BearerTokenListResponse,
    BearerTokenView,
    ClearResponse,
    Envelope,
    LegacyCacheResponse,
    RetainedResultSetListResponse,
    RetainedResultSetView,
    SessionListResponse,
    SessionsClearedResponse,
    SessionView,
)
from cmcimock.api.wire import MEDIA_TYPE, build_response, result_summary
from cmcimock.logging import get_logger
from cmcimock.protocol import (
    CICS_SYSTEM_MANAGEMENT,
    RESULT_CACHE_RESOURCE,
    RETAIN_DIRECTIVE,
    SUMMARY_ONLY_DIRECTIVE,
    ResponseCode,
    first_param,
    has_directive,
    normalize_resource_type,
)
from cmcimock.service.auth import AuthContext
from cmcimock.service.errors import MalformedResourceError, TokenNotFoundError
from cmcimock.service.mock_data import generate_records
from cmcimock.service.result_cache import ResultCacheRead
from cmcimock.service.runtime import get_runtime
from cmcimock.storage.models import Record

logger = get_logger(__name__)

router = APIRouter(tags=["cmci"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])

NODATA_SOURCE = "CICSPlex SM"


def _http_error(
    code: str, message: str, status_code: int, details: Optional[dict | str] = None
) -> HTTPException:
    payload: dict[str, object] = {
        "status": "error",
        "error": {"code": code, "message": message},
    }
    if details is not None:
        payload["error"]["details"] = details  # type: ignore[index]
    return HTTPException(status_code=status_code, detail=payload)


async def get_session_context(
    request: Request,
    authorization: Optional[str] = Header(None),
    ltpa_token_header: Optional[str] = Header(
        None, alias="LtpaToken2", convert_underscores=False
    ),
) -> AuthContext:
    runtime = get_runtime()
    ltpa_token = ltpa_token_header or request.cookies.get(
        runtime.settings.token_cookie_name
    )
    ctx = runtime.auth.authenticate(authorization, ltpa_token)
    # Error handlers read this to keep the cookie on failed requests
    request.state.auth = ctx
    return ctx


def _xml_response(
    ctx: AuthContext,
    summary: Dict[str, str],
    records: Optional[List[Record]] = None,
    resource_type: Optional[str] = None,
) -> Response:
    settings = get_runtime().settings
    body = build_response(
        summary, records, resource_type, schema_base_url=settings.schema_base_url
    )
    response = Response(content=body, media_type=MEDIA_TYPE)
    apply_token_cookie(response, ctx, settings)
    return response


def _resource_type(segments: List[str]) -> str:
    if not segments:
        raise MalformedResourceError("Resource type missing from path")
    resource_type = normalize_resource_type(segments[0])
    if resource_type is None:
        raise MalformedResourceError(
            f"Unknown resource type {segments[0]}",
            detail={"resource": segments[0]},
        )
    return resource_type


def _optional_int(raw: Optional[str], name: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise MalformedResourceError(
            f"{name} must be an integer", detail={name: raw}
        ) from None


def _read_response(
    ctx: AuthContext, read: ResultCacheRead, params: Dict[str, str]
) -> Response:
    page = read.page
    summary = result_summary(
        ResponseCode.OK,
        recordcount=page.total_count,
        displayed=page.displayed_count,
        cachetoken=read.token if read.retained else None,
    )
    records = None
    if not has_directive(params, SUMMARY_ONLY_DIRECTIVE) and page.records:
        records = page.records
    return _xml_response(ctx, summary, records, read.resource_type)


def _read_retained(
    ctx: AuthContext,
    token: str,
    params: Dict[str, str],
    *,
    index: Optional[int],
    count: Optional[int],
) -> Response:
    runtime = get_runtime()
    read = runtime.result_cache.read(
        token,
        ctx.session_id,
        index=index,
        count=count,
        order_by=first_param(params, "orderby", "ORDERBY"),
        retain=has_directive(params, RETAIN_DIRECTIVE),
    )
    return _read_response(ctx, read, params)


def _read_cached_token(
    ctx: AuthContext, token: str, params: Dict[str, str]
) -> Response:
    runtime = get_runtime()
    if runtime.result_cache.get(token) is not None:
        return _read_retained(
            ctx,
            token,
            params,
            index=_optional_int(params.get("index"), "index"),
            count=_optional_int(params.get("count"), "count"),
        )
    cached = runtime.legacy_cache.get(token)
    if cached is not None:
        logger.info("legacy_cache_hit", cache_token=token)
        response = Response(content=cached, media_type=MEDIA_TYPE)
        apply_token_cookie(response, ctx, runtime.settings)
        return response
    logger.info("cache_token_not_found", cache_token=token)
    raise TokenNotFoundError()


def _generate_response(
    ctx: AuthContext, resource_type: str, params: Dict[str, str]
) -> Response:
    runtime = get_runtime()
    count = _optional_int(params.get("count"), "count")
    if count is None:
        count = runtime.settings.default_record_count
    if count < 0:
        raise MalformedResourceError("count must not be negative", detail={"count": count})
    summary_only = has_directive(params, SUMMARY_ONLY_DIRECTIVE)

    if params.get("cache") == "true":
        records = generate_records(resource_type, count)
        summary = result_summary(
            ResponseCode.OK, recordcount=len(records), displayed=len(records)
        )
        body = build_response(
            summary,
            None if summary_only else records,
            resource_type,
            schema_base_url=runtime.settings.schema_base_url,
        )
        legacy_token = runtime.legacy_cache.put(body)
        logger.info("legacy_cache_stored", cache_token=legacy_token)
        summary["cachetoken"] = legacy_token
        return _xml_response(
            ctx, summary, None if summary_only else records, resource_type
        )

    result_set, _ = runtime.result_cache.create_or_reuse(
        resource_type,
        ctx.session_id,
        params,
        lambda: generate_records(resource_type, count),
    )
    summary = result_summary(
        ResponseCode.OK,
        recordcount=result_set.total_count,
        displayed=result_set.total_count,
        cachetoken=result_set.token,
    )
    records = None if summary_only else list(result_set.records)
    return _xml_response(ctx, summary, records, resource_type)


@router.get(f"/{CICS_SYSTEM_MANAGEMENT}", include_in_schema=False)
@router.get(f"/{CICS_SYSTEM_MANAGEMENT}/{{resource_path:path}}")
async def get_resource(
    request: Request,
    resource_path: str = "",
    ctx: AuthContext = Depends(get_session_context),
):
    """Read resources, page a retained result set, or replay a cached response.

    Path forms:
    - ``/CICSSystemManagement/{resource}[/{context}[/{scope}]]``
    - ``/CICSSystemManagement/CICSResultCache/{token}[/{index}[/{count}]]``
    """
    segments = [part for part in resource_path.split("/") if part]
    resource_type = _resource_type(segments)
    params = dict(request.query_params)
    logger.info(
        "cmci_get",
        resource_type=resource_type,
        session_id=ctx.session_id,
        path=request.url.path,
    )

    if resource_type == RESULT_CACHE_RESOURCE:
        if len(segments) < 2:
            raise MalformedResourceError("Use CICSResultCache/{token} format")
        return _read_retained(
            ctx,
            segments[1],
            params,
            index=_optional_int(segments[2] if len(segments) > 2 else None, "index"),
            count=_optional_int(segments[3] if len(segments) > 3 else None, "count"),
        )

    token = first_param(params, "cachetoken", "cacheToken")
    if token:
        return _read_cached_token(ctx, token, params)

    if params.get("simulate") == "nodata":
        summary = result_summary(
            ResponseCode.NODATA, recordcount=0, api_source=NODATA_SOURCE
        )
        return _xml_response(ctx, summary)

    return _generate_response(ctx, resource_type, params)


async def _acknowledge(request: Request, resource_path: str, ctx: AuthContext) -> Response:
    segments = [part for part in resource_path.split("/") if part]
    resource_type = _resource_type(segments)
    body = await request.body()
    logger.info(
        "cmci_request_acknowledged",
        method=request.method,
        resource_type=resource_type,
        session_id=ctx.session_id,
        body_bytes=len(body),
    )
    summary = result_summary(
        ResponseCode.OK, function=request.method, recordcount=1, displayed=1
    )
    return _xml_response(ctx, summary)


@router.post(f"/{CICS_SYSTEM_MANAGEMENT}", include_in_schema=False)
@router.post(f"/{CICS_SYSTEM_MANAGEMENT}/{{resource_path:path}}")
async def create_resource(
    request: Request,
    resource_path: str = "",
    ctx: AuthContext = Depends(get_session_context),
):
    return await _acknowledge(request, resource_path, ctx)


@router.put(f"/{CICS_SYSTEM_MANAGEMENT}", include_in_schema=False)
@router.put(f"/{CICS_SYSTEM_MANAGEMENT}/{{resource_path:path}}")
async def update_resource(
    request: Request,
    resource_path: str = "",
    ctx: AuthContext = Depends(get_session_context),
):
    return await _acknowledge(request, resource_path, ctx)


@router.delete(f"/{CICS_SYSTEM_MANAGEMENT}", include_in_schema=False)
@router.delete(f"/{CICS_SYSTEM_MANAGEMENT}/{{resource_path:path}}")
async def delete_resource(
    request: Request,
    resource_path: str = "",
    ctx: AuthContext = Depends(get_session_context),
):
    return await _acknowledge(request, resource_path, ctx)


# -- admin -----------------------------------------------------------------


@admin_router.get("/sessions", response_model=Envelope)
async def list_sessions():
    runtime = get_runtime()
    sessions = [
        SessionView(
            session_id=session.id,
            username=session.username,
            login_time=session.login_time,
            last_activity=session.last_activity,
            ltpa_token=session.current_token,
        )
        for session in runtime.store.sessions.list()
    ]
    return Envelope(
        status="ok", data=SessionListResponse(sessions=sessions, count=len(sessions))
    )


@admin_router.delete("/sessions", response_model=Envelope)
async def clear_sessions():
    runtime = get_runtime()
    counts = runtime.store.clear_sessions()
    return Envelope(
        status="ok",
        data=SessionsClearedResponse(
            message="All sessions, LtpaToken2 mappings, and retained result sets cleared",
            session_count=counts["sessions"],
            ltpa_token_count=counts["ltpa_tokens"],
            retained_result_sets_count=counts["retained_result_sets"],
        ),
    )


@admin_router.get("/ltpa-tokens", response_model=Envelope)
async def list_ltpa_tokens():
    runtime = get_runtime()
    tokens = []
    for token, session_id in runtime.store.tokens.items():
        session = runtime.store.sessions.get(session_id)
        tokens.append(
            BearerTokenView(
                ltpa_token=token,
                session_id=session_id,
                username=session.username if session else "unknown",
                last_activity=session.last_activity if session else None,
            )
        )
    return Envelope(
        status="ok", data=BearerTokenListResponse(ltpa_tokens=tokens, count=len(tokens))
    )


@admin_router.delete("/ltpa-tokens", response_model=Envelope)
async def clear_ltpa_tokens():
    runtime = get_runtime()
    count = runtime.store.clear_bearer_tokens()
    return Envelope(
        status="ok",
        data=ClearResponse(message="All LtpaToken2 mappings cleared", count=count),
    )


@admin_router.get("/cache", response_model=Envelope)
async def list_legacy_cache():
    runtime = get_runtime()
    tokens = runtime.legacy_cache.keys()
    return Envelope(
        status="ok", data=LegacyCacheResponse(tokens=tokens, count=len(tokens))
    )


@admin_router.delete("/cache", response_model=Envelope)
async def clear_legacy_cache():
    runtime = get_runtime()
    count = runtime.legacy_cache.clear()
    logger.info("legacy_cache_cleared", count=count)
    return Envelope(
        status="ok", data=ClearResponse(message="Legacy cache cleared", count=count)
    )


@admin_router.get("/retained-results", response_model=Envelope)
async def list_retained_results():
    runtime = get_runtime()
    views = [
        RetainedResultSetView(
            cache_token=result_set.token,
            resource_type=result_set.resource_type,
            total_records=result_set.total_count,
            session_id=result_set.owner_session_id,
            created_at=result_set.created_at,
            last_accessed=result_set.last_accessed_at,
            is_expired=result_set.is_expired(),
            query=result_set.query,
        )
        for result_set in runtime.store.result_sets.list()
    ]
    return Envelope(
        status="ok",
        data=RetainedResultSetListResponse(retained_result_sets=views, count=len(views)),
    )


@admin_router.delete("/retained-results", response_model=Envelope)
async def clear_retained_results():
    runtime = get_runtime()
    count = runtime.result_cache.clear()
    return Envelope(
        status="ok",
        data=ClearResponse(message="All retained result sets cleared", count=count),
    )


@admin_router.delete("/retained-results/{token}", response_model=Envelope)
async def delete_retained_result(token: str):
    runtime = get_runtime()
    if not runtime.result_cache.delete(token):
        raise _http_error(
            "not_found", f"Retained result set {token} not found", status_code=404
        )
    return Envelope(
        status="ok",
        data=ClearResponse(message=f"Retained result set {token} deleted", count=1),
    )
