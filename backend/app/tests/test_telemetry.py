"""Sentry event scrubbing.

REFERENCES:
    app/telemetry/sentry.py
"""

from app.telemetry import scrub_event
from app.telemetry.sentry import FILTERED, init_sentry


def test_scrub_event_removes_oauth_material():
    event = {
        "request": {
            "headers": {"Authorization": "Bearer abc", "User-Agent": "pytest"},
            "query_string": "code=4/0Ab&state=eyJ&scope=adwords",
        },
        "extra": {"refresh_token": "1//0g", "customer_id": "1234567890"},
    }

    scrubbed = scrub_event(event)

    assert scrubbed["request"]["headers"] == {"Authorization": FILTERED, "User-Agent": "pytest"}
    assert scrubbed["request"]["query_string"] == f"code={FILTERED}&state={FILTERED}&scope=adwords"
    assert scrubbed["extra"] == {"refresh_token": FILTERED, "customer_id": "1234567890"}


def test_scrub_event_tolerates_events_without_request():
    assert scrub_event({"message": "boom"}) == {"message": "boom"}


def test_init_sentry_is_disabled_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    assert init_sentry() is False
