"""Fake Google Ads SDK and row builders for tests.

WHAT: SimpleNamespace rows shaped like proto-plus SDK rows, and a client
      factory that serves them per (customer, GAQL resource)
REFERENCES:
    - app/services/google_ads_client.py (client_factory seam)
    - app/tests/conftest.py
"""

import re
import types

NS = types.SimpleNamespace


# ============================================================================
# Fake SDK rows
# ============================================================================

def customer_row(customer_id, name="Acme", manager=False, currency="EUR", tz="Europe/Amsterdam", status="ENABLED"):
    return NS(customer=NS(
        id=int(customer_id),
        descriptive_name=name,
        currency_code=currency,
        time_zone=tz,
        manager=manager,
        status=status,
    ))


def customer_client_row(customer_id, name="Client", manager=False, level=1, status="ENABLED"):
    return NS(customer_client=NS(
        id=int(customer_id),
        descriptive_name=name,
        currency_code="USD",
        time_zone="America/New_York",
        manager=manager,
        level=level,
        status=status,
        hidden=False,
    ))


def search_term_row(
    term="running shoes",
    campaign_id=111,
    ad_group_id=222,
    impressions=100,
    clicks=10,
    cost_micros=1_500_000,
    average_cpc=150_000,
):
    return NS(
        campaign=NS(id=campaign_id, name="Brand Search"),
        ad_group=NS(id=ad_group_id, name="Shoes"),
        search_term_view=NS(search_term=term, status="ADDED"),
        segments=NS(keyword=NS(info=NS(text="shoes", match_type="BROAD"))),
        metrics=NS(
            impressions=impressions,
            clicks=clicks,
            cost_micros=cost_micros,
            conversions=2.0,
            conversions_value=50.5,
            ctr=0.1,
            average_cpc=average_cpc,
        ),
    )


def campaign_row(campaign_id, name="Campaign", budget_micros=25_000_000, metrics=None, currency="EUR"):
    return NS(
        customer=NS(currency_code=currency),
        campaign=NS(
            id=campaign_id,
            name=name,
            status="ENABLED",
            advertising_channel_type="SEARCH",
            bidding_strategy_type="MAXIMIZE_CONVERSIONS",
            start_date="2024-01-01",
            end_date="2037-12-30",
        ),
        campaign_budget=NS(amount_micros=budget_micros),
        metrics=metrics,
    )


def ad_group_row(campaign_id, ad_group_id, name="Ad Group", cpc_bid_micros=1_200_000, target_cpa_micros=0):
    return NS(
        campaign=NS(id=campaign_id, name="Campaign"),
        ad_group=NS(
            id=ad_group_id,
            name=name,
            status="ENABLED",
            type_="SEARCH_STANDARD",
            cpc_bid_micros=cpc_bid_micros,
            target_cpa_micros=target_cpa_micros,
        ),
    )


def keyword_row(campaign_id, ad_group_id, criterion_id, text="shoes", quality_score=7):
    return NS(
        campaign=NS(id=campaign_id),
        ad_group=NS(id=ad_group_id),
        ad_group_criterion=NS(
            criterion_id=criterion_id,
            keyword=NS(text=text, match_type="PHRASE"),
            status="ENABLED",
            final_urls=["https://example.com/shoes"],
            cpc_bid_micros=900_000,
            quality_info=NS(quality_score=quality_score),
        ),
    )


# ============================================================================
# Fake Google Ads SDK
# ============================================================================

_RESOURCE_RE = re.compile(r"FROM (\w+)")
_FILTERS = {
    "campaign": re.compile(r"campaign\.id = (\d+)"),
    "ad_group": re.compile(r"ad_group\.id = (\d+)"),
}


class FakeGoogleAds:
    """Stands in for `GoogleAdsClient.load_from_dict`.

    Rows are registered per (customer id, GAQL resource). `campaign.id = N`
    and `ad_group.id = N` conditions are applied to the registered rows so
    per-campaign and per-ad-group queries get the right subset. A registered
    exception is raised instead of returning rows.
    """

    def __init__(self):
        self.accessible = []
        self.accessible_error = None
        self.responses = {}
        self.calls = []
        self.failures = []

    def set_rows(self, customer_id, resource, rows_or_error):
        self.responses[(str(customer_id), resource)] = rows_or_error

    def fail_queries_containing(self, text, error):
        """Raise `error` for any query whose GAQL contains `text`."""
        self.failures.append((text, error))

    def factory(self, refresh_token, login_customer_id=None):
        return _FakeSdkClient(self, refresh_token, login_customer_id)

    def queries_for(self, resource):
        return [call for call in self.calls if call["resource"] == resource]


class _FakeSdkClient:
    def __init__(self, fake, refresh_token, login_customer_id):
        self._fake = fake
        self.refresh_token = refresh_token
        self.login_customer_id = login_customer_id

    def get_service(self, name):
        if name == "CustomerService":
            return _FakeCustomerService(self._fake)
        return _FakeGoogleAdsService(self._fake, self)


class _FakeCustomerService:
    def __init__(self, fake):
        self._fake = fake

    def list_accessible_customers(self):
        if self._fake.accessible_error is not None:
            raise self._fake.accessible_error
        return NS(resource_names=[f"customers/{cid}" for cid in self._fake.accessible])


class _FakeGoogleAdsService:
    def __init__(self, fake, client):
        self._fake = fake
        self._client = client

    def search(self, customer_id, query):
        resource = _RESOURCE_RE.search(query).group(1)
        self._fake.calls.append({
            "customer_id": customer_id,
            "login_customer_id": self._client.login_customer_id,
            "refresh_token": self._client.refresh_token,
            "resource": resource,
            "query": query,
        })
        for text, error in self._fake.failures:
            if text in query:
                raise error
        registered = self._fake.responses.get((str(customer_id), resource), [])
        if isinstance(registered, BaseException):
            raise registered

        rows = list(registered)
        for attr, pattern in _FILTERS.items():
            match = pattern.search(query)
            if match:
                rows = [r for r in rows if str(getattr(getattr(r, attr, None), "id", "")) == match.group(1)]
        return iter(rows)


