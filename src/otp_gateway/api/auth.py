"""Phone + OTP authentication endpoints.

Endpoints
---------
POST /api/auth/otp/send               → issue a code
POST /api/auth/otp/verify             → redeem a code, log in
POST /api/auth/otp/cancel             → drop a pending code
POST /api/auth/register/send-otp      → issue a code for registration
POST /api/auth/register/verify-otp    → redeem a code, create the user
POST /api/auth/login/send-otp         → issue a code for an existing user
POST /api/auth/login/verify-otp       → redeem a code, log in
POST /api/auth/refresh-token          → refresh OAuth tokens
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from otp_gateway.api.cookies import set_session_cookies
from otp_gateway.api.deps import get_auth_service, get_settings
from otp_gateway.api.schemas import (
    LoginResponse,
    MessageResponse,
    PhoneCodeRequest,
    PhoneRequest,
    RefreshTokenRequest,
    RegisterResponse,
    SendOTPResponse,
    TokenResponse,
)
from otp_gateway.config import Settings
from otp_gateway.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _sent(code: str, settings: Settings) -> SendOTPResponse:
    return SendOTPResponse(
        success=True,
        message="OTP code sent successfully",
        code=code if settings.expose_otp_in_response else None,
    )


# ── OTP login ────────────────────────────────────────────

@router.post("/otp/send", response_model=SendOTPResponse, response_model_exclude_none=True)
async def send_otp(
    body: PhoneRequest,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Generate an OTP for the phone.

    In a real deployment this would dispatch an SMS; here the code is logged.
    """
    code = service.send_otp(body.phone)
    return _sent(code, settings)


@router.post("/otp/verify", response_model=LoginResponse)
@router.post("/login/verify-otp", response_model=LoginResponse)
async def verify_otp(
    body: PhoneCodeRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Redeem an OTP and log the phone's user in."""
    result = await service.login_with_otp(body.phone, body.code)
    set_session_cookies(response, result, settings)
    logger.info("✅ Login successful for user %s (phone %s)", result.user_id, body.phone)
    return LoginResponse(
        user_id=result.user_id,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        id_token=result.id_token,
        token_type=result.token_type,
        expires_in=result.expires_in,
    )


@router.post("/otp/cancel", response_model=MessageResponse)
async def cancel_otp(body: PhoneRequest, service: AuthService = Depends(get_auth_service)):
    """Invalidate any pending code for the phone."""
    service.cancel_otp(body.phone)
    return MessageResponse(success=True, message="Pending OTP cancelled")


@router.post(
    "/login/send-otp", response_model=SendOTPResponse, response_model_exclude_none=True
)
async def login_send_otp(
    body: PhoneRequest,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Generate an OTP, but only for a phone that already has an account."""
    code = await service.send_login_otp(body.phone)
    return _sent(code, settings)


# ── OTP registration ─────────────────────────────────────

@router.post(
    "/register/send-otp", response_model=SendOTPResponse, response_model_exclude_none=True
)
async def register_send_otp(
    body: PhoneRequest,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    code = service.send_registration_otp(body.phone)
    return _sent(code, settings)


@router.post("/register/verify-otp", response_model=RegisterResponse, status_code=201)
async def register_verify_otp(
    body: PhoneCodeRequest, service: AuthService = Depends(get_auth_service)
):
    """Redeem an OTP and create the user with an already-verified phone."""
    user = await service.register_with_otp(body.phone, body.code)
    logger.info("User registered with verified phone: %s (%s)", user.user_id, body.phone)
    return RegisterResponse(
        user_id=user.user_id, message="User created successfully with verified phone"
    )


# ── Tokens ───────────────────────────────────────────────

@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(
    body: RefreshTokenRequest, service: AuthService = Depends(get_auth_service)
):
    tokens = await service.refresh(body.refresh_token)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token or body.refresh_token,
        id_token=tokens.id_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )
