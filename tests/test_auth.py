import asyncio
import json

import httpx
import pytest

from auth import AuthClient, AuthError


def make_client(handler) -> AuthClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AuthClient("https://project.example/auth/v1", api_key="anon-key", http_client=http)


def test_sign_in_uses_password_grant():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "access_token": "at", "refresh_token": "rt",
            "user": {"id": "u1", "email": "dr@example.com"},
        })

    session = asyncio.run(make_client(handler).sign_in("dr@example.com", "secret123"))

    assert seen["url"] == "https://project.example/auth/v1/token?grant_type=password"
    assert seen["body"] == {"email": "dr@example.com", "password": "secret123"}
    assert session.access_token == "at"
    assert session.user_id == "u1"
    assert not session.confirmation_required


def test_sign_up_pending_confirmation():
    def handler(request):
        return httpx.Response(200, json={"id": "u2", "email": "new@example.com"})

    session = asyncio.run(make_client(handler).sign_up("new@example.com", "secret123"))
    assert session.user_id == "u2"
    assert session.access_token is None
    assert session.confirmation_required


def test_provider_error_message_is_surfaced():
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})

    with pytest.raises(AuthError) as info:
        asyncio.run(make_client(handler).sign_in("dr@example.com", "nope-nope"))
    assert info.value.message == "Invalid login credentials"
    assert info.value.status_code == 400


def test_provider_outage():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(AuthError) as info:
        asyncio.run(make_client(handler).get_user("token"))
    assert info.value.status_code == 503


def test_get_user_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"id": "u1"})

    assert asyncio.run(make_client(handler).get_user("user-token")) == {"id": "u1"}
    assert seen["auth"] == "Bearer user-token"
