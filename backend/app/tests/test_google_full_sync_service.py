"""Tests for account structure snapshots.

REFERENCES:
    app/services/google_full_sync_service.py
"""

import asyncio
from decimal import Decimal

import pytest

from app.exceptions import NotFoundError, UpstreamError
from app.models import AdGroup, Campaign, Keyword
from app.services.account_resolver import AccountInfo
from app.services.customer_registry import ensure_customer
from app.services.google_full_sync_service import sync_account_structure
from app.tests.fakes import NS, ad_group_row, campaign_row, keyword_row

CUSTOMER = "1234567890"
MANAGER = "1000000001"


@pytest.fixture
def known_customer(test_db_session, oauth_connection):
    return ensure_customer(
        test_db_session,
        oauth_connection.id,
        CUSTOMER,
        AccountInfo(
            customer_id=CUSTOMER,
            descriptive_name="Acme",
            currency_code="EUR",
            time_zone="Europe/Amsterdam",
            is_manager_account=False,
            login_customer_id=MANAGER,
            manager_customer_id=MANAGER,
        ),
    )


@pytest.fixture
def account_structure(fake_google_ads):
    fake_google_ads.set_rows(CUSTOMER, "campaign", [campaign_row(111, name="Brand"), campaign_row(112, name="Generic")])
    fake_google_ads.set_rows(CUSTOMER, "ad_group", [
        ad_group_row(111, 221), ad_group_row(111, 222), ad_group_row(112, 223),
    ])
    fake_google_ads.set_rows(CUSTOMER, "ad_group_criterion", [
        keyword_row(111, 221, 331), keyword_row(111, 221, 332), keyword_row(112, 223, 333),
    ])
    return fake_google_ads


def _run(db, ads_client, codec, user_id, **kwargs):
    return asyncio.run(sync_account_structure(db, ads_client, codec, user_id, CUSTOMER, **kwargs))


def test_structure_sync_counts_and_stores_hierarchy(
    test_db_session, ads_client, codec, user_id, known_customer, account_structure,
):
    totals = _run(test_db_session, ads_client, codec, user_id)

    assert (totals.total_campaigns, totals.total_ad_groups, totals.total_keywords) == (2, 3, 3)
    campaigns = {c.campaign_id: c for c in test_db_session.query(Campaign).all()}
    assert campaigns["111"].budget_amount == Decimal(25)
    assert campaigns["111"].metrics_start_date is None
    assert {ag.ad_group_id for ag in campaigns["111"].ad_groups} == {"221", "222"}

    keyword = test_db_session.query(Keyword).filter(Keyword.keyword_id == "333").one()
    assert keyword.ad_group.ad_group_id == "223"
    assert keyword.quality_score == 7

    # Structure queries go through the customer's manager
    assert {c["login_customer_id"] for c in account_structure.calls} == {MANAGER}


def test_structure_sync_is_idempotent(
    test_db_session, ads_client, codec, user_id, known_customer, account_structure,
):
    _run(test_db_session, ads_client, codec, user_id)
    account_structure.set_rows(CUSTOMER, "campaign", [campaign_row(111, name="Brand v2"), campaign_row(112)])
    _run(test_db_session, ads_client, codec, user_id)

    assert test_db_session.query(Campaign).count() == 2
    assert test_db_session.query(AdGroup).count() == 3
    assert test_db_session.query(Keyword).count() == 3
    renamed = test_db_session.query(Campaign).filter(Campaign.campaign_id == "111").one()
    assert renamed.campaign_name == "Brand v2"


def test_structure_sync_stores_metrics_for_window(
    test_db_session, ads_client, codec, user_id, known_customer, fake_google_ads,
):
    metrics = NS(impressions=1000, clicks=50, cost_micros=12_345_678, conversions=3.5, conversions_value=120.0,
                 ctr=0.05, average_cpc=246_913, average_cpm=12_345_678)
    fake_google_ads.set_rows(CUSTOMER, "campaign", [campaign_row(111, metrics=metrics)])

    _run(test_db_session, ads_client, codec, user_id, start_date="2024-01-01", end_date="2024-01-31")

    campaign = test_db_session.query(Campaign).one()
    assert campaign.impressions == 1000
    assert campaign.cost == Decimal("12.345678")
    assert str(campaign.metrics_start_date) == "2024-01-01"


def test_login_customer_override(test_db_session, ads_client, codec, user_id, known_customer, account_structure):
    _run(test_db_session, ads_client, codec, user_id, login_customer_id="555-555-5555")

    assert {c["login_customer_id"] for c in account_structure.calls} == {"5555555555"}


def test_unknown_customer_is_not_found(test_db_session, ads_client, codec, user_id, oauth_connection):
    with pytest.raises(NotFoundError):
        _run(test_db_session, ads_client, codec, user_id)


def test_failure_keeps_earlier_campaigns(
    test_db_session, ads_client, codec, user_id, known_customer, account_structure,
):
    # Keywords for the first campaign load; ad group 223 (campaign 112) fails
    account_structure.fail_queries_containing("ad_group.id = 223", RuntimeError("INTERNAL_ERROR"))

    with pytest.raises(UpstreamError):
        _run(test_db_session, ads_client, codec, user_id)

    test_db_session.rollback()
    assert [c.campaign_id for c in test_db_session.query(Campaign).all()] == ["111"]
    assert test_db_session.query(Keyword).count() == 2


def test_structure_sync_stores_currency_and_target_cpa(
    test_db_session, ads_client, codec, user_id, known_customer, fake_google_ads,
):
    fake_google_ads.set_rows(CUSTOMER, "campaign", [campaign_row(111, currency="USD")])
    fake_google_ads.set_rows(CUSTOMER, "ad_group", [
        ad_group_row(111, 221, target_cpa_micros=7_500_000), ad_group_row(111, 222),
    ])

    _run(test_db_session, ads_client, codec, user_id)

    assert test_db_session.query(Campaign).one().currency_code == "USD"
    ad_groups = {ag.ad_group_id: ag for ag in test_db_session.query(AdGroup).all()}
    assert ad_groups["221"].target_cpa == Decimal("7.5")
    # No tCPA target set on the ad group
    assert ad_groups["222"].target_cpa is None

    campaign_query = fake_google_ads.queries_for("campaign")[0]["query"]
    ad_group_query = fake_google_ads.queries_for("ad_group")[0]["query"]
    assert "customer.currency_code" in campaign_query
    assert "ad_group.target_cpa_micros" in ad_group_query
