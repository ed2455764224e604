"""Application factory: builds the stores, the IdP client and the routers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from otp_gateway.api.auth import router as auth_router
from otp_gateway.api.errors import register_exception_handlers
from otp_gateway.api.users import router as users_router
from otp_gateway.api.webhooks import router as webhooks_router
from otp_gateway.config import Settings, settings as default_settings
from otp_gateway.idp.zitadel import ZitadelClient
from otp_gateway.otp.store import OTPStore
from otp_gateway.otp.verification_store import VerificationStore
from otp_gateway.services.auth_service import AuthService
from otp_gateway.services.phone_policy import PhonePolicy

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    otp_store: OTPStore | None = None,
    verification_store: VerificationStore | None = None,
    idp: ZitadelClient | None = None,
) -> FastAPI:
    """Build the app and wire its components.

    The stores are created here, once per app, and live until the lifespan
    ends; pending challenges do not survive a restart.  Pre-built components
    can be passed in to share or stub them; closing an injected store is
    left to whoever built it.
    """
    settings = settings or default_settings
    owned_stores: list[OTPStore | VerificationStore] = []

    if otp_store is None:
        otp_store = OTPStore(
            ttl_seconds=settings.otp_ttl_seconds,
            max_attempts=settings.otp_max_attempts,
            code_length=settings.otp_code_length,
            sweep_interval=settings.otp_sweep_interval_seconds,
        )
        owned_stores.append(otp_store)
    if verification_store is None:
        verification_store = VerificationStore(
            ttl_seconds=settings.verification_ttl_seconds,
            sweep_interval=settings.verification_sweep_interval_seconds,
        )
        owned_stores.append(verification_store)
    if idp is None:
        idp = ZitadelClient.from_settings(settings)
    phone_policy = PhonePolicy.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        logger.info("Starting %s …", settings.app_name)
        logger.info("Zitadel issuer: %s", settings.issuer_url)
        yield
        logger.info("Shutting down %s …", settings.app_name)
        for store in owned_stores:
            store.close()

    app = FastAPI(
        title=settings.app_name,
        description="Phone number OTP authentication gateway in front of Zitadel",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.otp_store = otp_store
    app.state.verification_store = verification_store
    app.state.phone_policy = phone_policy
    app.state.auth_service = AuthService(
        otp_store=otp_store,
        verification_store=verification_store,
        idp=idp,
        phone_policy=phone_policy,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(webhooks_router)

    @app.get("/health")
    async def health_check(request: Request):
        """Simple liveness probe."""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "pending_otps": request.app.state.otp_store.pending_count,
            "active_verifications": request.app.state.verification_store.active_count,
        }

    return app

