from __future__ import annotations

from typing import Optional

from fastapi import Response

from cmcimock.config import Settings
from cmcimock.service.auth import AuthContext


def apply_token_cookie(
    response: Response, ctx: Optional[AuthContext], settings: Settings
) -> None:
    """Attach the LtpaToken2 cookie when the request logged in with credentials."""
    if ctx is None or not ctx.issued_token:
        return
    response.set_cookie(
        settings.token_cookie_name,
        ctx.issued_token,
        httponly=True,
        secure=settings.token_cookie_secure,
        samesite="lax",
        max_age=settings.token_cookie_max_age_seconds,
        path="/",
    )
