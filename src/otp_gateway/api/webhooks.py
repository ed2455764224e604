"""Zitadel Actions v2 webhook targets."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from otp_gateway.api.deps import get_auth_service, get_phone_policy, get_settings
from otp_gateway.api.schemas import ZitadelWebhookRequest, ZitadelWebhookResponse
from otp_gateway.config import Settings
from otp_gateway.services.auth_service import AuthService
from otp_gateway.services.phone_policy import PhonePolicy, normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

PHONE_NOT_FOUND = "phone number not found in request"


# ──────────────────────────────────────────────────────────────
# POST /api/webhooks/preauth — gate login on a recent OTP pass
# ──────────────────────────────────────────────────────────────
@router.post("/preauth", response_model=ZitadelWebhookResponse, response_model_exclude_none=True)
async def preauth(
    body: ZitadelWebhookRequest,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """Let the login continue only if this phone just passed OTP.

    The verification flag is consumed, so one OTP pass unlocks one login.
    """
    logger.info("📨 PreAuth webhook received: %s", body.full_method)

    if not settings.preauth_require_otp:
        return ZitadelWebhookResponse(success=True)

    subject = body.extract_phone_number() or body.extract_username()
    if not subject:
        logger.warning("PreAuth webhook without phone or username")
        raise HTTPException(status_code=400, detail=PHONE_NOT_FOUND)

    subject = normalize_phone(subject)
    if service.authorize_preauth(subject):
        logger.info("✅ PreAuth passed for %s", subject)
        return ZitadelWebhookResponse(success=True)

    logger.info("PreAuth refused for %s: no pending OTP verification", subject)
    return JSONResponse(
        status_code=403,
        content=ZitadelWebhookResponse(
            success=False, error="phone number has not passed OTP verification"
        ).model_dump(),
    )


# ──────────────────────────────────────────────────────────────
# POST /api/webhooks/pre-registration — phone policy
# ──────────────────────────────────────────────────────────────
@router.post(
    "/pre-registration",
    response_model=ZitadelWebhookResponse,
    response_model_exclude_none=True,
)
async def pre_registration(
    body: ZitadelWebhookRequest, policy: PhonePolicy = Depends(get_phone_policy)
):
    """Refuse registrations from blacklisted or out-of-region phones."""
    logger.info("Received pre-registration webhook: %s", body.full_method)

    phone = body.extract_phone_number()
    if not phone:
        logger.info("Phone number not found in pre-registration webhook")
        raise HTTPException(status_code=400, detail=PHONE_NOT_FOUND)

    # PhoneRejected propagates to the 403 handler
    policy.check(normalize_phone(phone))

    logger.info("📨 Notifying CRM: new registration with phone %s", phone)
    logger.info("✅ Phone validation passed: %s", phone)
    return ZitadelWebhookResponse(success=True)


# ──────────────────────────────────────────────────────────────
# POST /api/webhooks/post-registration
# ──────────────────────────────────────────────────────────────
@router.post(
    "/post-registration",
    response_model=ZitadelWebhookResponse,
    response_model_exclude_none=True,
)
async def post_registration(body: ZitadelWebhookRequest):
    logger.info(
        "Post-registration processing: phone=%s username=%s org=%s",
        body.extract_phone_number(),
        body.extract_username(),
        body.extract_organization_id(),
    )
    return ZitadelWebhookResponse(success=True)
