"""Shared fixtures: a controllable clock, isolated stores and a stub IdP."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from otp_gateway.app import create_app
from otp_gateway.config import Settings
from otp_gateway.idp.zitadel import ZitadelClient
from otp_gateway.otp.store import OTPStore
from otp_gateway.otp.verification_store import VerificationStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def otp_store(clock):
    """Store with default limits, driven by the fake clock, no background sweep."""
    store = OTPStore(clock=clock, sweep_interval=None)
    yield store
    store.close()


@pytest.fixture
def verification_store(clock):
    store = VerificationStore(clock=clock, sweep_interval=None)
    yield store
    store.close()


@pytest.fixture
def idp():
    """Mocked Zitadel client — never talks to a real IdP."""
    client = AsyncMock(spec=ZitadelClient)
    client.can_impersonate = False
    return client


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        expose_otp_in_response=True,
        allowed_phone_prefix="+7",
        phone_blacklist=["+79999999999"],
        session_expires_in=3600,
    )


@pytest.fixture
def app(settings, otp_store, verification_store, idp):
    return create_app(
        settings, otp_store=otp_store, verification_store=verification_store, idp=idp
    )


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
