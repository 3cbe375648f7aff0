"""
Telemetry for the sync API: Sentry error tracking with OAuth scrubbing.

Usage:
    from app.telemetry import init_sentry
    init_sentry()
"""

from app.telemetry.sentry import capture_exception, init_sentry, scrub_event, set_user_context

__all__ = ["capture_exception", "init_sentry", "scrub_event", "set_user_context"]
