"""HTTP tests for the /google-ads endpoints.

WHAT:
    Auth, error mapping and the request/response shapes of accounts, sync
    and live routes, wired to the fake SDK through dependency overrides.

REFERENCES:
    app/routers/google_ads.py
    app/main.py (AdsSyncError handler)
"""

import uuid

import pytest

from app.models import AdsCustomer, SyncJob
from app.tests.fakes import (
    ad_group_row,
    campaign_row,
    customer_client_row,
    customer_row,
    keyword_row,
    search_term_row,
)

CUSTOMER = "1234567890"
MANAGER = "1000000001"


@pytest.fixture
def resolvable_accounts(fake_google_ads):
    fake_google_ads.accessible = [MANAGER, CUSTOMER]
    fake_google_ads.set_rows(MANAGER, "customer", [customer_row(MANAGER, name="Agency", manager=True)])
    fake_google_ads.set_rows(CUSTOMER, "customer", [customer_row(CUSTOMER, name="Acme")])
    return fake_google_ads


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer not-a-jwt"}, {"Authorization": "Basic abc"}])
def test_requests_without_valid_bearer_are_rejected(client, headers):
    assert client.get("/google-ads/customers", headers=headers).status_code == 401


def test_missing_connection_maps_to_401(client, bearer_for):
    response = client.get("/google-ads/accounts", headers=bearer_for(uuid.uuid4()))

    assert response.status_code == 401
    assert "connect" in response.json()["detail"]


def test_list_accounts_registers_customers(client, auth_headers, oauth_connection, resolvable_accounts, test_db_session):
    response = client.get("/google-ads/accounts", headers=auth_headers)

    assert response.status_code == 200
    accounts = {a["customer_id"]: a for a in response.json()}
    assert accounts[CUSTOMER]["login_customer_id"] == MANAGER
    assert accounts[MANAGER]["is_manager_account"] is True
    assert test_db_session.query(AdsCustomer).count() == 2

    customers = client.get("/google-ads/customers", headers=auth_headers).json()
    assert [c["customer_name"] for c in customers] == ["Acme", "Agency"]


def test_managed_accounts(client, auth_headers, oauth_connection, fake_google_ads):
    fake_google_ads.set_rows(MANAGER, "customer_client", [customer_client_row(CUSTOMER, name="Client")])

    response = client.get(f"/google-ads/managed-accounts/{MANAGER}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()[0]["login_customer_id"] == MANAGER


def test_sync_search_terms_end_to_end(client, auth_headers, oauth_connection, resolvable_accounts):
    resolvable_accounts.set_rows(CUSTOMER, "search_term_view", [search_term_row(term="a"), search_term_row(term="b")])

    response = client.post(
        f"/google-ads/customers/{CUSTOMER}/sync/search-terms",
        json={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["records_stored"] == 2
    assert body["customer_name"] == "Acme"

    jobs = client.get(f"/google-ads/customers/{CUSTOMER}/sync-jobs", headers=auth_headers).json()
    assert [job["status"] for job in jobs] == ["completed"]

    terms = client.get(f"/google-ads/customers/{CUSTOMER}/search-terms", headers=auth_headers).json()
    assert len(terms) == 2
    assert terms[0]["cost"] == 1.5


def test_failed_sync_is_reported_in_body(client, auth_headers, oauth_connection, resolvable_accounts):
    resolvable_accounts.set_rows(CUSTOMER, "search_term_view", RuntimeError("INTERNAL_ERROR"))

    response = client.post(
        f"/google-ads/customers/{CUSTOMER}/sync/search-terms",
        json={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["error"]


def test_invalid_dates_are_400_and_create_no_job(client, auth_headers, oauth_connection, test_db_session):
    response = client.post(
        f"/google-ads/customers/{CUSTOMER}/sync/search-terms",
        json={"start_date": "2024-02-01", "end_date": "2024-01-01"},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert "start_date" in response.json()["detail"]
    assert test_db_session.query(SyncJob).count() == 0


def test_unknown_customer_reads_are_404(client, auth_headers, oauth_connection):
    assert client.get(f"/google-ads/customers/{CUSTOMER}/sync-jobs", headers=auth_headers).status_code == 404
    assert client.get(f"/google-ads/customers/{CUSTOMER}/search-terms", headers=auth_headers).status_code == 404


def test_structure_sync(client, auth_headers, oauth_connection, resolvable_accounts):
    client.get("/google-ads/accounts", headers=auth_headers)
    resolvable_accounts.set_rows(CUSTOMER, "campaign", [campaign_row(111)])
    resolvable_accounts.set_rows(CUSTOMER, "ad_group", [ad_group_row(111, 221)])
    resolvable_accounts.set_rows(CUSTOMER, "ad_group_criterion", [keyword_row(111, 221, 331)])

    response = client.post(f"/google-ads/customers/{CUSTOMER}/sync/structure", json={}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "customer_id": CUSTOMER, "total_campaigns": 1, "total_ad_groups": 1, "total_keywords": 1,
    }


def test_structure_sync_for_unregistered_customer_is_404(client, auth_headers, oauth_connection):
    response = client.post(f"/google-ads/customers/{CUSTOMER}/sync/structure", headers=auth_headers)
    assert response.status_code == 404


def test_live_search_terms(client, auth_headers, oauth_connection, resolvable_accounts):
    resolvable_accounts.set_rows(CUSTOMER, "search_term_view", [search_term_row(cost_micros=2_340_000)])

    response = client.get(
        f"/google-ads/customers/{CUSTOMER}/live/search-terms",
        params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["records_fetched"] == 1
    assert body["search_terms"][0]["metrics"]["cost"] == 2.34


def test_live_campaigns_with_ad_groups(client, auth_headers, oauth_connection, resolvable_accounts):
    resolvable_accounts.set_rows(CUSTOMER, "campaign", [campaign_row(111, name="Brand")])
    resolvable_accounts.set_rows(CUSTOMER, "ad_group", [ad_group_row(111, 221)])

    response = client.get(
        f"/google-ads/customers/{CUSTOMER}/live/campaigns",
        params={"include_ad_groups": "true"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    campaign = response.json()[0]
    assert campaign["campaign_name"] == "Brand"
    assert campaign["budget_amount"] == 25.0
    assert campaign["currency_code"] == "EUR"
    assert campaign["ad_groups"][0]["target_cpa"] is None
    assert campaign["ad_groups"][0]["ad_group_id"] == "221"


def test_live_keywords_rejects_non_numeric_filter(client, auth_headers, oauth_connection, resolvable_accounts):
    response = client.get(
        f"/google-ads/customers/{CUSTOMER}/live/keywords",
        params={"ad_group_id": "1; DROP"},
        headers=auth_headers,
    )
    assert response.status_code == 400


def test_upstream_failure_maps_to_502(client, auth_headers, oauth_connection, resolvable_accounts):
    resolvable_accounts.set_rows(CUSTOMER, "ad_group", RuntimeError("INTERNAL_ERROR"))

    response = client.get(f"/google-ads/customers/{CUSTOMER}/live/ad-groups", headers=auth_headers)

    assert response.status_code == 502
    assert CUSTOMER in response.json()["detail"]
