"""Tests for the OAuth credential store.

REFERENCES:
    app/services/token_service.py
"""

import uuid

import pytest

from app.exceptions import UnauthorizedError
from app.models import GoogleOAuthConnection
from app.services.google_oauth_client import GoogleProfile, OAuthTokens
from app.services.token_service import (
    deactivate_connection,
    get_access_token,
    get_active_connection,
    get_refresh_token,
    require_active_connection,
    store_refreshed_tokens,
    upsert_oauth_connection,
)


PROFILE = GoogleProfile(id="google-user-1", email="owner@example.com")


def test_tokens_are_stored_encrypted(test_db_session, codec, oauth_connection):
    assert oauth_connection.refresh_token_enc != "refresh-token-1"
    assert oauth_connection.access_token_enc != "access-token-1"
    assert get_refresh_token(codec, oauth_connection) == "refresh-token-1"
    assert get_access_token(codec, oauth_connection) == "access-token-1"


def test_reconnect_updates_the_same_row(test_db_session, codec, user_id, oauth_connection):
    updated = upsert_oauth_connection(
        test_db_session,
        codec,
        user_id,
        GoogleProfile(id="google-user-1", email="renamed@example.com"),
        OAuthTokens(access_token="access-token-2", refresh_token="refresh-token-2"),
    )

    assert updated.id == oauth_connection.id
    assert updated.google_email == "renamed@example.com"
    assert get_refresh_token(codec, updated) == "refresh-token-2"
    assert test_db_session.query(GoogleOAuthConnection).count() == 1


def test_reconnect_without_refresh_token_keeps_stored_one(test_db_session, codec, user_id, oauth_connection):
    updated = upsert_oauth_connection(
        test_db_session, codec, user_id, PROFILE, OAuthTokens(access_token="access-token-2"),
    )

    assert get_refresh_token(codec, updated) == "refresh-token-1"
    assert get_access_token(codec, updated) == "access-token-2"


def test_reconnect_reactivates_connection(test_db_session, codec, user_id, oauth_connection):
    deactivate_connection(test_db_session, oauth_connection)
    assert get_active_connection(test_db_session, user_id) is None

    upsert_oauth_connection(test_db_session, codec, user_id, PROFILE, OAuthTokens(access_token="a"))
    assert get_active_connection(test_db_session, user_id).id == oauth_connection.id


def test_same_google_identity_links_separately_per_user(test_db_session, codec, user_id, oauth_connection):
    teammate = uuid.uuid4()
    shared = upsert_oauth_connection(
        test_db_session, codec, teammate, PROFILE, OAuthTokens(access_token="a", refresh_token="teammate-refresh"),
    )

    assert shared.id != oauth_connection.id
    assert test_db_session.query(GoogleOAuthConnection).count() == 2

    deactivate_connection(test_db_session, shared)
    assert get_active_connection(test_db_session, teammate) is None
    assert get_refresh_token(codec, get_active_connection(test_db_session, user_id)) == "refresh-token-1"


def test_require_active_connection_raises_without_connection(test_db_session):
    with pytest.raises(UnauthorizedError):
        require_active_connection(test_db_session, uuid.uuid4())


def test_missing_or_unreadable_refresh_token_is_unauthorized(test_db_session, codec, oauth_connection):
    oauth_connection.refresh_token_enc = "garbage"
    with pytest.raises(UnauthorizedError):
        get_refresh_token(codec, oauth_connection)

    oauth_connection.refresh_token_enc = None
    with pytest.raises(UnauthorizedError):
        get_refresh_token(codec, oauth_connection)


def test_store_refreshed_tokens_rotates_refresh_token_only_when_given(test_db_session, codec, oauth_connection):
    store_refreshed_tokens(test_db_session, codec, oauth_connection, OAuthTokens(access_token="access-2"))
    assert get_refresh_token(codec, oauth_connection) == "refresh-token-1"
    assert get_access_token(codec, oauth_connection) == "access-2"

    store_refreshed_tokens(
        test_db_session, codec, oauth_connection, OAuthTokens(access_token="access-3", refresh_token="refresh-3"),
    )
    assert get_refresh_token(codec, oauth_connection) == "refresh-3"
