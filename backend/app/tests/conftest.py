"""Pytest configuration for app tests

WHAT: Shared fixtures for service and HTTP endpoint tests
WHY: Consistent test setup: in-memory database, a fake Google Ads SDK behind
     the real GAdsClient, encrypted credentials and authenticated requests
REFERENCES:
    - app/main.py: FastAPI application
    - app/database.py: Database configuration
    - app/deps.py: Dependency injection
    - app/services/google_ads_client.py: SDK client factory seam
"""

import os
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend is in path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment (before any app module reads it)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CRYPTO_SECRET", "7f" * 32)
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("SUPABASE_URL", "https://identity.test")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("GOOGLE_DEVELOPER_TOKEN", "test-dev-token")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

from jose import jwt  # noqa: E402

from app.models import Base  # noqa: E402
from app.security import TokenCodec  # noqa: E402
from app.services.google_ads_client import GAdsClient, GoogleAdsRateLimiter  # noqa: E402
from app.services.google_oauth_client import GoogleProfile, OAuthTokens  # noqa: E402
from app.services.token_service import upsert_oauth_connection  # noqa: E402
from app.tests.fakes import FakeGoogleAds  # noqa: E402


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory database shared across threads (TestClient runs sync endpoints in a pool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec.from_hex(os.environ["CRYPTO_SECRET"])


@pytest.fixture
def fake_google_ads() -> FakeGoogleAds:
    return FakeGoogleAds()


@pytest.fixture
def ads_client(fake_google_ads) -> GAdsClient:
    return GAdsClient(
        developer_token="test-dev-token",
        client_id="test-client-id",
        client_secret="test-client-secret",
        client_factory=fake_google_ads.factory,
        rate_limiter=GoogleAdsRateLimiter(capacity=10_000, refill_per_sec=10_000),
    )


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def oauth_connection(test_db_session, codec, user_id):
    """Active connection with refresh token "refresh-token-1"."""
    return upsert_oauth_connection(
        test_db_session,
        codec,
        user_id,
        GoogleProfile(id="google-user-1", email="owner@example.com"),
        OAuthTokens(
            access_token="access-token-1",
            refresh_token="refresh-token-1",
            expires_at=datetime.utcnow() + timedelta(hours=1),
            scopes=("https://www.googleapis.com/auth/adwords",),
        ),
    )


# ============================================================================
# Application & Client Fixtures
# ============================================================================

def make_bearer(user_id, email="owner@example.com", secret="test-jwt-secret") -> dict:
    token = jwt.encode(
        {
            "sub": str(user_id),
            "email": email,
            "aud": "authenticated",
            "exp": datetime.utcnow() + timedelta(minutes=5),
        },
        secret,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(test_db_session, ads_client):
    from app.database import get_db
    from app.deps import get_ads_client
    from app.main import create_app

    application = create_app()

    def _get_db():
        yield test_db_session

    application.dependency_overrides[get_db] = _get_db
    application.dependency_overrides[get_ads_client] = lambda: ads_client
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(user_id) -> dict:
    return make_bearer(user_id)


@pytest.fixture
def bearer_for():
    """Build auth headers for an arbitrary user id."""
    return make_bearer
