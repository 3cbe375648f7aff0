"""Tests for the Google OAuth client and the /google-auth endpoints.

WHAT:
    Token exchange against httpx.MockTransport, the consent URL, the
    callback's connection + account registration, and refresh/disconnect.

REFERENCES:
    app/services/google_oauth_client.py
    app/routers/google_oauth.py
"""

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.deps import get_identity_client, get_oauth_client
from app.exceptions import UnauthorizedError, UpstreamError
from app.models import AdsCustomer, GoogleOAuthConnection
from app.security import create_oauth_state
from app.services.google_oauth_client import GOOGLE_TOKEN_URL, GoogleOAuthClient
from app.services.identity_service import IdentityClient
from app.services.token_service import get_active_connection, get_refresh_token
from app.tests.fakes import customer_row

CUSTOMER = "1234567890"


def _google_handler(token_status=200, token_body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == GOOGLE_TOKEN_URL:
            body = token_body or {
                "access_token": "new-access",
                "refresh_token": "new-refresh",
                "expires_in": 3599,
                "scope": "https://www.googleapis.com/auth/adwords openid",
            }
            return httpx.Response(token_status, json=body)
        if "userinfo" in str(request.url):
            assert request.headers["Authorization"] == "Bearer new-access"
            return httpx.Response(200, json={"id": "google-user-1", "email": "owner@example.com"})
        return httpx.Response(404)
    return handler


def _oauth_client(**kwargs):
    return GoogleOAuthClient(
        "test-client-id", "test-client-secret", "http://api.test/google-auth/callback",
        transport=httpx.MockTransport(_google_handler(**kwargs)),
    )


def _identity_client(status_code=200):
    def handler(request):
        user_id = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(status_code, json={"id": user_id, "email": "owner@example.com"})
    return IdentityClient("https://identity.test", "test-service-role", transport=httpx.MockTransport(handler))


# ============================================================================
# OAuth client
# ============================================================================

def test_exchange_code_returns_tokens_and_profile():
    tokens, profile = asyncio.run(_oauth_client().exchange_code("auth-code"))

    assert tokens.access_token == "new-access"
    assert tokens.refresh_token == "new-refresh"
    assert tokens.expires_at is not None
    assert tokens.scopes == ("https://www.googleapis.com/auth/adwords", "openid")
    assert profile.id == "google-user-1"


def test_invalid_grant_is_unauthorized():
    client = _oauth_client(token_status=400, token_body={"error": "invalid_grant"})
    with pytest.raises(UnauthorizedError):
        asyncio.run(client.refresh("revoked"))


def test_other_token_errors_are_upstream():
    client = _oauth_client(token_status=500, token_body={"error": "backend_error"})
    with pytest.raises(UpstreamError):
        asyncio.run(client.refresh("refresh"))


def test_authorization_url_requests_offline_access():
    url = urlparse(_oauth_client().build_authorization_url("signed-state"))
    params = parse_qs(url.query)

    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert params["state"] == ["signed-state"]
    assert "https://www.googleapis.com/auth/adwords" in params["scope"][0]


# ============================================================================
# Endpoints
# ============================================================================

@pytest.fixture
def oauth_app(app):
    app.dependency_overrides[get_oauth_client] = lambda: _oauth_client()
    app.dependency_overrides[get_identity_client] = lambda: _identity_client()
    return app


def test_authorize_requires_authentication(client):
    assert client.get("/google-auth/authorize").status_code == 401


def test_authorize_returns_consent_url(oauth_app, client, auth_headers):
    response = client.get("/google-auth/authorize", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["authorization_url"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")


def test_callback_stores_connection_and_registers_accounts(
    oauth_app, client, test_db_session, fake_google_ads, codec, user_id,
):
    fake_google_ads.accessible = [CUSTOMER]
    fake_google_ads.set_rows(CUSTOMER, "customer", [customer_row(CUSTOMER, name="Acme")])
    state = create_oauth_state(user_id, "test-jwt-secret")

    response = client.get(
        "/google-auth/callback", params={"code": "auth-code", "state": state}, follow_redirects=False,
    )

    assert response.status_code in (302, 307)
    assert response.headers["location"] == "http://frontend.test/settings?google_ads=connected&accounts=1"
    connection = get_active_connection(test_db_session, user_id)
    assert connection.google_email == "owner@example.com"
    assert get_refresh_token(codec, connection) == "new-refresh"
    assert test_db_session.query(AdsCustomer).one().customer_name == "Acme"


def test_callback_keeps_connection_when_account_discovery_fails(
    oauth_app, client, test_db_session, fake_google_ads, user_id,
):
    fake_google_ads.accessible_error = RuntimeError("INTERNAL_ERROR")
    state = create_oauth_state(user_id, "test-jwt-secret")

    response = client.get(
        "/google-auth/callback", params={"code": "auth-code", "state": state}, follow_redirects=False,
    )

    assert response.headers["location"].endswith("google_ads=connected&accounts=0")
    assert test_db_session.query(GoogleOAuthConnection).count() == 1


def test_callback_rejects_bad_state(oauth_app, client, test_db_session):
    response = client.get(
        "/google-auth/callback", params={"code": "auth-code", "state": "forged"}, follow_redirects=False,
    )

    assert response.headers["location"] == "http://frontend.test/settings?google_ads=error&message=invalid_state"
    assert test_db_session.query(GoogleOAuthConnection).count() == 0


def test_callback_reports_consent_errors(oauth_app, client):
    response = client.get("/google-auth/callback", params={"error": "access_denied"}, follow_redirects=False)
    assert response.headers["location"].endswith("google_ads=error&message=access_denied")


def test_callback_for_unknown_user_stores_nothing(app, client, test_db_session, user_id):
    app.dependency_overrides[get_oauth_client] = lambda: _oauth_client()
    app.dependency_overrides[get_identity_client] = lambda: _identity_client(status_code=404)
    state = create_oauth_state(user_id, "test-jwt-secret")

    response = client.get(
        "/google-auth/callback", params={"code": "auth-code", "state": state}, follow_redirects=False,
    )

    assert "google_ads=error" in response.headers["location"]
    assert test_db_session.query(GoogleOAuthConnection).count() == 0


def test_connection_status_and_disconnect(oauth_app, client, auth_headers, oauth_connection):
    status = client.get("/google-auth/connection", headers=auth_headers).json()
    assert status["connected"] is True
    assert status["connection"]["google_email"] == "owner@example.com"
    assert "refresh_token_enc" not in status["connection"]

    assert client.delete("/google-auth/connection", headers=auth_headers).status_code == 200
    assert client.get("/google-auth/connection", headers=auth_headers).json() == {
        "connected": False, "connection": None,
    }
    assert client.delete("/google-auth/connection", headers=auth_headers).status_code == 401


def test_refresh_stores_new_access_token(oauth_app, client, auth_headers, oauth_connection, test_db_session, codec):
    response = client.post("/google-auth/refresh", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["refreshed"] is True
    test_db_session.refresh(oauth_connection)
    assert get_refresh_token(codec, oauth_connection) == "new-refresh"


def test_revoked_refresh_deactivates_connection(app, client, auth_headers, oauth_connection, test_db_session, user_id):
    app.dependency_overrides[get_oauth_client] = lambda: _oauth_client(
        token_status=400, token_body={"error": "invalid_grant"},
    )

    response = client.post("/google-auth/refresh", headers=auth_headers)

    assert response.status_code == 401
    assert get_active_connection(test_db_session, user_id) is None
