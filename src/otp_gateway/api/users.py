"""Direct user management and the token-protected profile endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from otp_gateway.api.cookies import cookie_name
from otp_gateway.api.deps import get_auth_service, get_settings
from otp_gateway.api.schemas import (
    MessageResponse,
    PhoneRequest,
    ProfileResponse,
    RegisterResponse,
    ResendCodeResponse,
    TokenInfo,
    UserIdRequest,
    VerifyPhoneRequest,
)
from otp_gateway.config import Settings
from otp_gateway.services.auth_service import AuthService, ProviderError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/users/register", response_model=RegisterResponse, status_code=201)
async def register_user(body: PhoneRequest, service: AuthService = Depends(get_auth_service)):
    """Create a user by phone without an OTP round-trip."""
    user = await service.register_user(body.phone)
    return RegisterResponse(
        user_id=user.user_id,
        phone_code=user.phone_code,
        message="User created successfully",
    )


@router.post("/users/verify-phone", response_model=MessageResponse)
async def verify_user_phone(
    body: VerifyPhoneRequest, service: AuthService = Depends(get_auth_service)
):
    await service.verify_user_phone(body.user_id, body.code)
    return MessageResponse(success=True, message="Phone verified successfully")


@router.post("/users/resend-code", response_model=ResendCodeResponse)
async def resend_verification_code(
    body: UserIdRequest, service: AuthService = Depends(get_auth_service)
):
    phone_code = await service.resend_phone_code(body.user_id)
    return ResendCodeResponse(phone_code=phone_code)


def _bearer_token(request: Request, settings: Settings) -> str | None:
    """Session cookie first, then ``Authorization: Bearer``."""
    token = request.cookies.get(cookie_name(settings, "session_token"))
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    request: Request,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Protected endpoint: the token is checked by IdP introspection."""
    token = _bearer_token(request, settings)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized - session token required")

    try:
        info = await service.introspect(token)
    except ProviderError as exc:
        logger.info("Token introspection failed: %s", exc.details)
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    if not info.active:
        logger.info("Inactive token presented for subject %s", info.subject)
        raise HTTPException(status_code=401, detail="Token is expired or revoked")

    logger.info("✅ Authorized access: user_id=%s username=%s", info.subject, info.username)
    return ProfileResponse(
        user_id=info.subject,
        username=info.username,
        token_info=TokenInfo(
            active=info.active, expires_at=info.expires_at, issued_at=info.issued_at
        ),
    )
