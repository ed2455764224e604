"""OTP Gateway — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Gateway"
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8080"]

    # ── OTP challenges ────────────────────────────────────
    otp_ttl_seconds: float = 300
    otp_max_attempts: int = 3
    otp_code_length: int = 6
    otp_sweep_interval_seconds: float = 300
    # Dev only: echo the generated code back in the send-otp response
    expose_otp_in_response: bool = False

    # ── Verification flags ────────────────────────────────
    verification_ttl_seconds: float = 600
    verification_sweep_interval_seconds: float = 60

    # ── Phone policy ──────────────────────────────────────
    allowed_phone_prefix: str = "+7"
    phone_blacklist: list[str] = ["+79999999999", "+71111111111"]

    # ── Zitadel (Identity Provider) ───────────────────────
    zitadel_domain: str = "localhost"
    zitadel_issuer: str = ""
    zitadel_org_id: str = ""
    zitadel_service_token: str = ""
    zitadel_client_id: str = ""
    zitadel_client_secret: str = ""
    zitadel_timeout_seconds: float = 10

    # ── Sessions & cookies ────────────────────────────────
    session_expires_in: int = 3600
    refresh_cookie_max_age: int = 60 * 60 * 24 * 30
    cookie_prefix: str = "zitadel"
    cookie_secure: bool = False

    # ── Webhooks ──────────────────────────────────────────
    preauth_require_otp: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def issuer_url(self) -> str:
        """OAuth issuer; derived from the domain when not set explicitly."""
        if self.zitadel_issuer:
            return self.zitadel_issuer.rstrip("/")
        return f"http://{self.zitadel_domain}:8080"


# Singleton settings instance
settings = Settings()
