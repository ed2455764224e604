"""Auth orchestrator — phone + OTP flows on top of the stores and the IdP.

Flow
----
1. A client asks for a code: :class:`OTPStore` issues it and we hand it to
   the delivery channel (for now the log).
2. The client submits phone + code: :class:`OTPStore` accepts or rejects it.
3. On acceptance the phone is flagged in :class:`VerificationStore` and the
   IdP is asked to find/create the user and issue credentials.
4. Later, the IdP's PreAuth webhook consumes the flag exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from otp_gateway.idp.zitadel import (
    CreatedUser,
    IdPError,
    Introspection,
    TokenSet,
    ZitadelClient,
)
from otp_gateway.otp.store import OTPStore
from otp_gateway.otp.verification_store import VerificationStore
from otp_gateway.services.phone_policy import PhonePolicy, PhoneRejected

logger = logging.getLogger(__name__)


class AuthServiceError(Exception):
    """An auth flow could not complete for a reason other than a bad OTP."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class UserNotFoundError(AuthServiceError):
    pass


class UserNotRegisteredError(AuthServiceError):
    """A login code was requested for a phone with no account yet."""


class ProviderError(AuthServiceError):
    """The Identity Provider rejected or failed a call."""


@dataclass
class LoginResult:
    """Credentials handed back to the client after a successful OTP login."""

    user_id: str
    access_token: str
    refresh_token: str
    expires_in: int
    id_token: str = ""
    token_type: str = "Bearer"
    # True when token exchange was unavailable and the IdP session token is used
    via_session: bool = False


@contextmanager
def _provider_call(message: str) -> Iterator[None]:
    try:
        yield
    except IdPError as exc:
        raise ProviderError(message, details=str(exc)) from exc


class AuthService:
    """Drives the OTP stores and the IdP for every phone-based auth flow."""

    def __init__(
        self,
        otp_store: OTPStore,
        verification_store: VerificationStore,
        idp: ZitadelClient,
        phone_policy: PhonePolicy,
    ) -> None:
        self._otp = otp_store
        self._verifications = verification_store
        self._idp = idp
        self._policy = phone_policy

    # ── Code issuance ────────────────────────────────────

    def send_otp(self, phone: str) -> str:
        """Issue a fresh code for *phone* and return it.

        There is no SMS provider yet, so delivery means logging the code.
        """
        code = self._otp.generate(phone)
        logger.info("📱 OTP for %s: %s", phone, code)
        return code

    def send_registration_otp(self, phone: str) -> str:
        """Issue a code for a phone that is allowed to register."""
        try:
            self._policy.check(phone)
        except PhoneRejected:
            self._otp.delete(phone)
            logger.info("Registration OTP refused for %s", phone)
            raise
        return self.send_otp(phone)

    async def send_login_otp(self, phone: str) -> str:
        """Issue a code only if a user already exists for *phone*."""
        with _provider_call("Failed to look up user"):
            user_id = await self._idp.find_user_by_phone(phone)
        if user_id is None:
            # A stale challenge for an unknown phone has nothing left to unlock
            self._otp.delete(phone)
            raise UserNotRegisteredError(
                "User with this phone number not found. Please register first."
            )
        logger.info("User found for login: user_id=%s phone=%s", user_id, phone)
        return self.send_otp(phone)

    def cancel_otp(self, phone: str) -> None:
        self._otp.delete(phone)
        logger.info("Pending OTP cancelled for %s", phone)

    # ── Code redemption ──────────────────────────────────

    async def register_with_otp(self, phone: str, code: str) -> CreatedUser:
        """Verify the code, then create the user with a pre-verified phone."""
        self._otp.verify(phone, code)
        logger.info("OTP verified for registration of %s", phone)
        with _provider_call("Failed to create user"):
            return await self._idp.create_user_by_phone(phone)

    async def login_with_otp(self, phone: str, code: str) -> LoginResult:
        """Verify the code, flag the phone, then issue credentials for its user."""
        self._otp.verify(phone, code)
        self._verifications.mark_verified(phone)
        logger.info("✅ OTP verified for login of %s", phone)

        with _provider_call("Failed to look up user"):
            user_id = await self._idp.find_user_by_phone(phone)
        if user_id is None:
            raise UserNotFoundError("User not found", details=f"no user with phone {phone}")

        return await self._issue_credentials(user_id)

    def authorize_preauth(self, subject: str) -> bool:
        """Redeem the verification flag set by a recent OTP login."""
        return self._verifications.consume(subject)

    # ── IdP pass-throughs ────────────────────────────────

    async def refresh(self, refresh_token: str) -> TokenSet:
        with _provider_call("Failed to refresh token"):
            return await self._idp.refresh_access_token(refresh_token)

    async def register_user(self, phone: str) -> CreatedUser:
        """Create a user without an OTP round-trip."""
        with _provider_call("Failed to create user"):
            return await self._idp.create_user_by_phone(phone)

    async def verify_user_phone(self, user_id: str, code: str) -> None:
        with _provider_call("Failed to verify phone"):
            await self._idp.verify_phone(user_id, code)

    async def resend_phone_code(self, user_id: str) -> str | None:
        with _provider_call("Failed to resend verification code"):
            return await self._idp.resend_phone_code(user_id)

    async def introspect(self, token: str) -> Introspection:
        with _provider_call("Invalid token"):
            return await self._idp.introspect_token(token)

    # ── Private helpers ──────────────────────────────────

    async def _issue_credentials(self, user_id: str) -> LoginResult:
        """Prefer OAuth tokens via impersonation; fall back to a session token."""
        if self._idp.can_impersonate:
            try:
                tokens = await self._idp.exchange_user_id_for_tokens(user_id)
            except IdPError as exc:
                logger.warning(
                    "Token exchange failed for user %s, falling back to session: %s",
                    user_id,
                    exc,
                )
            else:
                return LoginResult(
                    user_id=user_id,
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token,
                    id_token=tokens.id_token,
                    expires_in=tokens.expires_in,
                    token_type=tokens.token_type or "Bearer",
                )
        else:
            logger.info("Token exchange not configured, using session token")

        with _provider_call("Failed to create session"):
            session = await self._idp.create_session_for_user(user_id)
        return LoginResult(
            user_id=user_id,
            access_token=session.session_token,
            refresh_token=session.session_token,
            expires_in=session.expires_in,
            via_session=True,
        )
