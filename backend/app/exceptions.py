"""
Sync Exceptions
===============

Error taxonomy shared by the account resolver, the sync services and the
routers.

WHY THIS FILE EXISTS
--------------------
Services raise domain errors; `app.main` maps each one to an HTTP status so
routers stay free of try/except blocks. Authorization and validation errors
are 4xx, upstream failures are 5xx.

RELATED FILES
-------------
- app/main.py: registers the `AdsSyncError` handler
- app/services/google_ads_client.py: raises UpstreamError / UnauthorizedError
- app/services/google_sync_service.py: records failures on the job row
"""

from typing import Optional


class AdsSyncError(Exception):
    """
    Base exception for all sync errors.

    ATTRIBUTES:
        message: Human-readable error description
        status_code: HTTP status the API layer responds with
    """

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_user_message(self) -> str:
        return self.message


class UnauthorizedError(AdsSyncError):
    """
    No active OAuth connection, or Google rejected the refresh token.

    RECOVERY:
        The user has to go through the Google consent screen again.
    """

    status_code = 401


class NotFoundError(AdsSyncError):
    """Referenced user, customer or account does not exist in the caller's scope."""

    status_code = 404


class ValidationError(AdsSyncError):
    """Malformed or logically invalid input, e.g. a date range ending in the future."""

    status_code = 400


class UpstreamError(AdsSyncError):
    """
    The Google Ads API call itself failed.

    WHAT:
        Wraps network, quota and query errors with the customer id the call
        was made for. The original exception is kept as `__cause__`.

    ATTRIBUTES:
        customer_id: Google Ads customer the failing call targeted
        kind: "quota" when the API reported RESOURCE_EXHAUSTED, else "api"
        retry_seconds: Cooldown hint parsed from quota errors, if any
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        customer_id: Optional[str] = None,
        kind: str = "api",
        retry_seconds: Optional[int] = None,
    ):
        super().__init__(message)
        self.customer_id = customer_id
        self.kind = kind
        self.retry_seconds = retry_seconds

    def to_user_message(self) -> str:
        if self.kind == "quota":
            return "Google Ads API quota exhausted. Please try again later."
        if self.customer_id:
            return f"Google Ads request failed for customer {self.customer_id}: {self.message}"
        return f"Google Ads request failed: {self.message}"


class RowSkipped(Exception):
    """
    A single upstream row lacks a required field.

    Non-fatal: raised by row mappers and caught by the ingestion loop, which
    logs it and moves on. Never reaches the API layer.
    """

    def __init__(self, reason: str, row_kind: str = "row"):
        super().__init__(f"{row_kind} skipped: {reason}")
        self.reason = reason
        self.row_kind = row_kind
