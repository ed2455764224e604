"""Request / response models for the HTTP API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from otp_gateway.services.phone_policy import is_e164, normalize_phone


# ── Requests ─────────────────────────────────────────────

class PhoneRequest(BaseModel):
    phone: str = Field("", validate_default=True, description="Phone in E.164 format")

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, value: str) -> str:
        phone = normalize_phone(value)
        if not phone:
            raise ValueError("phone number is required")
        if not is_e164(phone):
            raise ValueError("invalid phone number")
        return phone


class PhoneCodeRequest(PhoneRequest):
    code: str = Field("", validate_default=True)

    @field_validator("code")
    @classmethod
    def _require_code(cls, value: str) -> str:
        code = value.strip()
        if not code:
            raise ValueError("verification code is required")
        return code


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field("", validate_default=True)

    @field_validator("refresh_token")
    @classmethod
    def _require_token(cls, value: str) -> str:
        if not value:
            raise ValueError("refresh token is required")
        return value


class UserIdRequest(BaseModel):
    user_id: str = Field("", validate_default=True)

    @field_validator("user_id")
    @classmethod
    def _require_user_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("user ID is required")
        return value.strip()


class VerifyPhoneRequest(UserIdRequest):
    code: str = Field("", validate_default=True)

    @field_validator("code")
    @classmethod
    def _require_code(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("verification code is required")
        return value.strip()


# ── Responses ────────────────────────────────────────────

class ErrorResponse(BaseModel):
    error: str
    details: str | None = None


class SendOTPResponse(BaseModel):
    success: bool
    message: str
    # Only populated when expose_otp_in_response is enabled (dev/test)
    code: str | None = None


class MessageResponse(BaseModel):
    success: bool
    message: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    user_id: str
    access_token: str
    refresh_token: str = ""
    id_token: str = ""
    token_type: str = "Bearer"
    expires_in: int


class RegisterResponse(BaseModel):
    success: bool = True
    user_id: str
    message: str
    phone_code: str | None = None


class ResendCodeResponse(BaseModel):
    success: bool = True
    message: str = "Verification code sent successfully"
    phone_code: str | None = None


class TokenResponse(BaseModel):
    success: bool = True
    access_token: str
    refresh_token: str
    id_token: str = ""
    token_type: str = "Bearer"
    expires_in: int


class TokenInfo(BaseModel):
    active: bool
    expires_at: int
    issued_at: int


class ProfileResponse(BaseModel):
    success: bool = True
    message: str = "Access granted"
    user_id: str
    username: str
    token_info: TokenInfo


# ── Zitadel Actions v2 webhooks ──────────────────────────

class ZitadelWebhookRequest(BaseModel):
    """Payload Zitadel posts to an Actions v2 target."""

    model_config = ConfigDict(populate_by_name=True)

    full_method: str = Field("", alias="fullMethod")
    request: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)

    def extract_phone_number(self) -> str | None:
        """``request.human.phone.phone`` if present."""
        human = self.request.get("human")
        if isinstance(human, dict):
            phone = human.get("phone")
            if isinstance(phone, dict) and isinstance(phone.get("phone"), str):
                return phone["phone"]
        return None

    def extract_username(self) -> str | None:
        username = self.request.get("username")
        return username if isinstance(username, str) else None

    def extract_organization_id(self) -> str | None:
        org_id = self.request.get("organizationId")
        return org_id if isinstance(org_id, str) else None


class ZitadelWebhookResponse(BaseModel):
    success: bool
    error: str | None = None
