"""End-to-end tests of the HTTP API against a stubbed IdP."""

from __future__ import annotations

import pytest

from otp_gateway.idp.zitadel import (
    CreatedUser,
    IdPError,
    Introspection,
    SessionTokens,
    TokenSet,
)

PHONE = "+79991234567"


def _set_cookies(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def _has_cookie(resp, name: str) -> bool:
    return any(header.startswith(f"{name}=") for header in _set_cookies(resp))


async def _send(client, phone: str = PHONE, path: str = "/api/auth/otp/send") -> str:
    resp = await client.post(path, json={"phone": phone})
    assert resp.status_code == 200, resp.text
    return resp.json()["code"]


@pytest.fixture
def known_user(idp):
    idp.find_user_by_phone.return_value = "u-1"
    idp.create_session_for_user.return_value = SessionTokens(
        session_id="s-1", session_token="session-tok", expires_in=3600
    )
    return "u-1"


# ──────────────────────────────────────────────────────────
# OTP login
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_send_and_verify_sets_cookies(client, known_user):
    code = await _send(client)

    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["user_id"] == known_user
    assert body["access_token"] == "session-tok"
    assert body["token_type"] == "Bearer"
    assert _has_cookie(resp, "zitadel:session_token")
    assert _has_cookie(resp, "zitadel:refresh_token")
    assert _has_cookie(resp, "zitadel:expires_at")


@pytest.mark.asyncio
async def test_login_verify_alias(client, known_user):
    code = await _send(client)
    resp = await client.post("/api/auth/login/verify-otp", json={"phone": PHONE, "code": code})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_formatted_phone_maps_to_same_subject(client, known_user):
    code = await _send(client, phone="+7 (999) 123-45-67")
    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_code_hidden_unless_exposed(app, client):
    app.state.settings = app.state.settings.model_copy(update={"expose_otp_in_response": False})

    resp = await client.post("/api/auth/otp/send", json={"phone": PHONE})

    assert resp.status_code == 200
    assert "code" not in resp.json()


@pytest.mark.asyncio
async def test_verify_without_send(client):
    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": "123456"})
    assert resp.status_code == 400
    assert resp.json() == {
        "error": "OTP code not found for this phone number",
        "details": "not_found",
    }


@pytest.mark.asyncio
async def test_wrong_code_until_attempts_exceeded(client, known_user):
    code = await _send(client)
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(3):
        resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": wrong})
        assert resp.status_code == 400
        assert resp.json()["details"] == "mismatch"

    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})
    assert resp.status_code == 400
    assert resp.json()["details"] == "attempts_exceeded"


@pytest.mark.asyncio
async def test_code_is_single_use(client, known_user):
    code = await _send(client)
    await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})

    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})
    assert resp.json()["details"] == "not_found"


@pytest.mark.asyncio
async def test_expired_code(client, clock):
    code = await _send(client)
    clock.advance(300)

    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})
    assert resp.status_code == 400
    assert resp.json()["details"] == "expired"


@pytest.mark.asyncio
async def test_cancel_pending_code(client):
    code = await _send(client)

    resp = await client.post("/api/auth/otp/cancel", json={"phone": PHONE})
    assert resp.status_code == 200

    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})
    assert resp.json()["details"] == "not_found"


@pytest.mark.asyncio
async def test_unknown_user_after_valid_code(client, idp):
    idp.find_user_by_phone.return_value = None
    code = await _send(client)

    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})
    assert resp.status_code == 404
    assert resp.json()["error"] == "User not found"


@pytest.mark.asyncio
async def test_token_exchange_response(client, idp):
    idp.can_impersonate = True
    idp.find_user_by_phone.return_value = "u-1"
    idp.exchange_user_id_for_tokens.return_value = TokenSet(
        access_token="at", refresh_token="rt", id_token="it", expires_in=900
    )
    code = await _send(client)

    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})

    body = resp.json()
    assert (body["access_token"], body["refresh_token"], body["id_token"]) == ("at", "rt", "it")
    assert _has_cookie(resp, "zitadel:id_token")


# ──────────────────────────────────────────────────────────
# Request validation
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, message",
    [
        ({}, "phone number is required"),
        ({"phone": "  "}, "phone number is required"),
        ({"phone": "not-a-phone"}, "invalid phone number"),
        ({"phone": PHONE}, "verification code is required"),
    ],
)
async def test_verify_validation(client, payload, message):
    resp = await client.post("/api/auth/otp/verify", json=payload)
    assert resp.status_code == 400
    assert resp.json()["error"] == message


@pytest.mark.asyncio
async def test_malformed_body(client):
    resp = await client.post(
        "/api/auth/otp/send", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request body"


# ──────────────────────────────────────────────────────────
# Registration & login issuance
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_register_flow(client, idp):
    idp.create_user_by_phone.return_value = CreatedUser(user_id="u-new")
    code = await _send(client, path="/api/auth/register/send-otp")

    resp = await client.post(
        "/api/auth/register/verify-otp", json={"phone": PHONE, "code": code}
    )

    assert resp.status_code == 201
    assert resp.json()["user_id"] == "u-new"


@pytest.mark.asyncio
@pytest.mark.parametrize("phone", ["+79999999999", "+15551234567"])
async def test_register_send_refused(client, phone):
    resp = await client.post("/api/auth/register/send-otp", json={"phone": phone})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_login_send_for_unknown_user(client, idp):
    idp.find_user_by_phone.return_value = None
    code = await _send(client)

    resp = await client.post("/api/auth/login/send-otp", json={"phone": PHONE})
    assert resp.status_code == 400
    assert "register first" in resp.json()["error"]

    # The stale pending code was dropped
    resp = await client.post("/api/auth/otp/verify", json={"phone": PHONE, "code": code})
    assert resp.json()["details"] == "not_found"


@pytest.mark.asyncio
async def test_login_send_for_known_user(client, known_user):
    code = await _send(client, path="/api/auth/login/send-otp")
    assert len(code) == 6


@pytest.mark.asyncio
async def test_idp_outage_is_bad_gateway(client, idp):
    idp.find_user_by_phone.side_effect = IdPError("User lookup request failed")
    resp = await client.post("/api/auth/login/send-otp", json={"phone": PHONE})
    assert resp.status_code == 502
    assert resp.json() == {
        "error": "Failed to look up user",
        "details": "User lookup request failed",
    }


# ──────────────────────────────────────────────────────────
# Tokens, users & profile
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_refresh_token(client, idp):
    idp.refresh_access_token.return_value = TokenSet(access_token="new-at", expires_in=60)

    resp = await client.post("/api/auth/refresh-token", json={"refresh_token": "rt"})

    assert resp.status_code == 200
    assert resp.json()["access_token"] == "new-at"
    # Zitadel may not rotate the refresh token
    assert resp.json()["refresh_token"] == "rt"


@pytest.mark.asyncio
async def test_refresh_token_required(client):
    resp = await client.post("/api/auth/refresh-token", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "refresh token is required"


@pytest.mark.asyncio
async def test_direct_user_registration(client, idp):
    idp.create_user_by_phone.return_value = CreatedUser(user_id="u-2", phone_code="4321")
    resp = await client.post("/api/users/register", json={"phone": PHONE})
    assert resp.status_code == 201
    assert resp.json()["phone_code"] == "4321"


@pytest.mark.asyncio
async def test_verify_user_phone(client, idp):
    resp = await client.post("/api/users/verify-phone", json={"user_id": "u-1", "code": "12"})
    assert resp.status_code == 200
    idp.verify_phone.assert_awaited_once_with("u-1", "12")


@pytest.mark.asyncio
async def test_resend_code_requires_user_id(client):
    resp = await client.post("/api/users/resend-code", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "user ID is required"


@pytest.mark.asyncio
async def test_profile_requires_token(client):
    resp = await client.get("/api/profile")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_profile_with_bearer_token(client, idp):
    idp.introspect_token.return_value = Introspection(
        active=True, subject="u-1", username=PHONE, expires_at=100, issued_at=50
    )

    resp = await client.get("/api/profile", headers={"Authorization": "Bearer tok"})

    assert resp.status_code == 200
    assert resp.json()["user_id"] == "u-1"
    assert resp.json()["token_info"] == {"active": True, "expires_at": 100, "issued_at": 50}
    idp.introspect_token.assert_awaited_once_with("tok")


@pytest.mark.asyncio
async def test_profile_with_cookie(client, idp):
    idp.introspect_token.return_value = Introspection(active=True, subject="u-1")
    client.cookies.set("zitadel:session_token", "cookie-tok")

    resp = await client.get("/api/profile")

    assert resp.status_code == 200
    idp.introspect_token.assert_awaited_once_with("cookie-tok")


@pytest.mark.asyncio
async def test_profile_inactive_token(client, idp):
    idp.introspect_token.return_value = Introspection(active=False)
    resp = await client.get("/api/profile", headers={"Authorization": "Bearer tok"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Token is expired or revoked"


@pytest.mark.asyncio
async def test_health(client):
    await _send(client)
    resp = await client.get("/health")
    assert resp.json() == {
        "status": "healthy",
        "app": "OTP Gateway",
        "pending_otps": 1,
        "active_verifications": 0,
    }
