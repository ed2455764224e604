"""Tests for the application factory's lifecycle."""

from __future__ import annotations

import pytest

from otp_gateway.app import create_app
from otp_gateway.otp.store import OTPStore


@pytest.mark.asyncio
async def test_lifespan_stops_sweepers_of_built_stores(settings, idp):
    app = create_app(settings, idp=idp)
    otp_store = app.state.otp_store
    verification_store = app.state.verification_store

    async with app.router.lifespan_context(app):
        assert otp_store.is_sweeping
        assert verification_store.is_sweeping

    assert not otp_store.is_sweeping
    assert not verification_store.is_sweeping


@pytest.mark.asyncio
async def test_lifespan_leaves_injected_store_running(settings, idp, verification_store):
    with OTPStore(sweep_interval=60) as otp_store:
        app = create_app(
            settings, otp_store=otp_store, verification_store=verification_store, idp=idp
        )

        async with app.router.lifespan_context(app):
            pass

        assert otp_store.is_sweeping
    assert not otp_store.is_sweeping


def test_stores_built_from_settings(settings, idp):
    custom = settings.model_copy(update={"otp_code_length": 8})
    app = create_app(custom, idp=idp)
    try:
        assert len(app.state.otp_store.generate("+79991234567")) == 8
    finally:
        app.state.otp_store.close()
        app.state.verification_store.close()
