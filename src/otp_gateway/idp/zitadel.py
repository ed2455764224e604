"""Zitadel client — async HTTP wrapper around the Identity Provider.

Covers the narrow slice of Zitadel the gateway needs: the v2 user and
session REST APIs (authenticated with a service-account token) and the
OAuth token / introspection endpoints (authenticated with the application's
client credentials).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from otp_gateway.config import Settings

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"
USER_ID_TOKEN_TYPE = "urn:zitadel:params:oauth:token-type:user_id"
ACCESS_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:access_token"
JWT_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:jwt"
DEFAULT_SCOPE = "openid profile email phone offline_access"


class IdPError(Exception):
    """A call to the Identity Provider failed."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass
class CreatedUser:
    user_id: str
    phone_code: str | None = None


@dataclass
class SessionTokens:
    session_id: str
    session_token: str
    expires_in: int


@dataclass
class TokenSet:
    access_token: str
    token_type: str = "Bearer"
    refresh_token: str = ""
    id_token: str = ""
    expires_in: int = 0
    scope: str = ""

    @classmethod
    def from_response(cls, data: dict) -> TokenSet:
        try:
            return cls(
                access_token=data["access_token"],
                token_type=data.get("token_type", "Bearer"),
                refresh_token=data.get("refresh_token", ""),
                id_token=data.get("id_token", ""),
                expires_in=int(data.get("expires_in", 0)),
                scope=data.get("scope", ""),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise IdPError(f"Malformed token response: {exc!r}") from exc


@dataclass
class Introspection:
    active: bool
    subject: str = ""
    username: str = ""
    token_type: str = ""
    expires_at: int = 0
    issued_at: int = 0
    client_id: str = ""


def phone_to_email(phone: str) -> str:
    """Placeholder email for phone-only users: ``+79991234567`` → ``79991234567@phone.local``."""
    return f"{phone.removeprefix('+')}@phone.local"


class ZitadelClient:
    """Async HTTP wrapper around the Zitadel user, session and OAuth APIs."""

    def __init__(
        self,
        issuer: str,
        service_token: str = "",
        org_id: str = "",
        client_id: str = "",
        client_secret: str = "",
        session_expires_in: int = 3600,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._issuer = issuer.rstrip("/")
        self._service_token = service_token
        self._org_id = org_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._session_expires_in = session_expires_in
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> ZitadelClient:
        return cls(
            issuer=settings.issuer_url,
            service_token=settings.zitadel_service_token,
            org_id=settings.zitadel_org_id,
            client_id=settings.zitadel_client_id,
            client_secret=settings.zitadel_client_secret,
            session_expires_in=settings.session_expires_in,
            timeout=settings.zitadel_timeout_seconds,
        )

    @property
    def can_impersonate(self) -> bool:
        """Token exchange needs both a service token (actor) and client credentials."""
        return bool(self._service_token and self._client_id)

    # ── Users ────────────────────────────────────────────

    async def find_user_by_phone(self, phone: str) -> str | None:
        """Return the ID of the user whose username is *phone*, or ``None``."""
        body = {"queries": [{"userNameQuery": {"userName": phone}}]}
        data = await self._api_post("/v2/users", body, action="User lookup")
        result = data.get("result") or []
        if not result:
            logger.info("No user found for phone %s", phone)
            return None
        user_id = result[0]["userId"]
        logger.info("Found user by phone %s: %s", phone, user_id)
        return user_id

    async def create_user_by_phone(self, phone: str) -> CreatedUser:
        """Create a human user with *phone* as username and verified phone."""
        if not self._org_id:
            raise IdPError("ZITADEL_ORG_ID is required to create users")
        body = {
            "organization": {"orgId": self._org_id},
            "username": phone,
            "profile": {"givenName": phone, "familyName": phone},
            "email": {"email": phone_to_email(phone), "isVerified": True},
            # Already proven through our own OTP
            "phone": {"phone": phone, "isVerified": True},
        }
        data = await self._api_post("/v2/users/human", body, action="User creation")
        user = CreatedUser(user_id=data["userId"], phone_code=data.get("phoneCode"))
        logger.info("User created: user_id=%s phone=%s", user.user_id, phone)
        return user

    async def verify_phone(self, user_id: str, verification_code: str) -> None:
        await self._api_post(
            f"/v2/users/{user_id}/phone/verify",
            {"verificationCode": verification_code},
            action="Phone verification",
        )
        logger.info("Phone verified for user %s", user_id)

    async def resend_phone_code(self, user_id: str) -> str | None:
        """Ask Zitadel for a new phone code; returns it when Zitadel echoes it."""
        data = await self._api_post(
            f"/v2/users/{user_id}/phone/resend",
            {"returnCode": {}},
            action="Phone code resend",
        )
        logger.info("Phone code resent for user %s", user_id)
        return data.get("verificationCode")

    # ── Sessions ─────────────────────────────────────────

    async def create_session_for_user(self, user_id: str) -> SessionTokens:
        """Open a session for *user_id*; the phone was already checked by us."""
        body = {"checks": {"user": {"userId": user_id}}}
        data = await self._api_post("/v2/sessions", body, action="Session creation")
        session = SessionTokens(
            session_id=data["sessionId"],
            session_token=data["sessionToken"],
            expires_in=self._session_expires_in,
        )
        logger.info("Session %s created for user %s", session.session_id, user_id)
        return session

    # ── OAuth ────────────────────────────────────────────

    async def exchange_user_id_for_tokens(self, user_id: str) -> TokenSet:
        """RFC 8693 token exchange impersonating *user_id*.

        The service token acts as the actor; Zitadel must have token
        exchange and impersonation enabled for the application.
        """
        form = {
            "grant_type": TOKEN_EXCHANGE_GRANT,
            "subject_token": user_id,
            "subject_token_type": USER_ID_TOKEN_TYPE,
            "actor_token": self._service_token,
            "actor_token_type": ACCESS_TOKEN_TYPE,
            "scope": DEFAULT_SCOPE,
            "requested_token_type": JWT_TOKEN_TYPE,
        }
        data = await self._oauth_post("/oauth/v2/token", form, action="Token exchange")
        logger.info("Token exchange succeeded for user %s", user_id)
        return TokenSet.from_response(data)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "scope": DEFAULT_SCOPE,
        }
        data = await self._oauth_post("/oauth/v2/token", form, action="Token refresh")
        return TokenSet.from_response(data)

    async def introspect_token(self, token: str) -> Introspection:
        data = await self._oauth_post(
            "/oauth/v2/introspect", {"token": token}, action="Token introspection"
        )
        result = Introspection(
            active=bool(data.get("active", False)),
            subject=data.get("sub", ""),
            username=data.get("username", ""),
            token_type=data.get("token_type", ""),
            expires_at=int(data.get("exp", 0)),
            issued_at=int(data.get("iat", 0)),
            client_id=data.get("client_id", ""),
        )
        logger.info("Token introspection: active=%s subject=%s", result.active, result.subject)
        return result

    # ── Private helpers ──────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._issuer, timeout=self._timeout, transport=self._transport
        )

    async def _api_post(self, path: str, body: dict, *, action: str) -> dict:
        headers = {"Authorization": f"Bearer {self._service_token}"}
        try:
            async with self._client() as client:
                resp = await client.post(path, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.exception("%s request error: %s", action, exc)
            raise IdPError(f"{action} request failed: {exc}") from exc
        return self._json_or_raise(resp, action)

    async def _oauth_post(self, path: str, form: dict, *, action: str) -> dict:
        try:
            async with self._client() as client:
                resp = await client.post(
                    path, data=form, auth=(self._client_id, self._client_secret)
                )
        except httpx.HTTPError as exc:
            logger.exception("%s request error: %s", action, exc)
            raise IdPError(f"{action} request failed: {exc}") from exc
        return self._json_or_raise(resp, action)

    @staticmethod
    def _json_or_raise(resp: httpx.Response, action: str) -> dict:
        if resp.is_success:
            if not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as exc:
                logger.error("%s returned a non-JSON body: %s", action, resp.text)
                raise IdPError(
                    f"{action} returned an invalid response body",
                    status_code=resp.status_code,
                    body=resp.text,
                ) from exc
        logger.error("%s failed: %s %s", action, resp.status_code, resp.text)
        raise IdPError(
            f"{action} failed with status {resp.status_code}",
            status_code=resp.status_code,
            body=resp.text,
        )
