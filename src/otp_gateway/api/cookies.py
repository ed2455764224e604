"""Session cookies set after a successful login, named like Zitadel's own."""

from __future__ import annotations

import logging
import time

from fastapi import Response

from otp_gateway.config import Settings
from otp_gateway.services.auth_service import LoginResult

logger = logging.getLogger(__name__)


def cookie_name(settings: Settings, name: str) -> str:
    return f"{settings.cookie_prefix}:{name}"


def set_session_cookies(response: Response, result: LoginResult, settings: Settings) -> None:
    common = {"path": "/", "secure": settings.cookie_secure, "samesite": "lax"}

    response.set_cookie(
        cookie_name(settings, "session_token"),
        result.access_token,
        max_age=result.expires_in,
        httponly=True,
        **common,
    )
    if result.refresh_token:
        response.set_cookie(
            cookie_name(settings, "refresh_token"),
            result.refresh_token,
            max_age=settings.refresh_cookie_max_age,
            httponly=True,
            **common,
        )
    if result.id_token:
        response.set_cookie(
            cookie_name(settings, "id_token"),
            result.id_token,
            max_age=result.expires_in,
            httponly=True,
            **common,
        )
    # Readable from JS so the frontend knows when to refresh
    response.set_cookie(
        cookie_name(settings, "expires_at"),
        str(int(time.time()) + result.expires_in),
        max_age=result.expires_in,
        httponly=False,
        **common,
    )
    logger.info("🍪 Session cookies set for user %s", result.user_id)
