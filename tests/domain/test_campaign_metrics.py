"""
Unit tests for campaign performance aggregation
"""
import pytest

from adpilot.domain.entities.campaign import AdMetrics, OrderTotals, TopCampaign
from adpilot.domain.services.campaign_metrics import (
    DEFAULT_CAMPAIGN_TYPE,
    DEFAULT_OBJECTIVE,
    aggregate_insights,
    apply_order_totals,
    budget_from_minor_units,
    build_campaign_details,
    build_campaign_insights,
    campaign_type_from_buying_type,
    compute_roas,
    group_orders_by_utm,
)


def _insight(entity_id, id_field="facebook_ad_set_id", **values):
    row = {
        id_field: entity_id,
        "impressions": values.get("impressions", 1000),
        "clicks": values.get("clicks", 50),
        "reach": values.get("reach", 800),
        "spend": values.get("spend", 100),
        "actions": [
            {"action_type": "purchase", "value": values.get("purchases", 4)},
            {"action_type": "add_to_cart", "value": "9"},
        ],
        "action_values": [{"action_type": "purchase", "value": values.get("revenue", 400)}],
    }
    return row


class TestRoas:

    def test_revenue_over_spend(self):
        assert compute_roas(300.0, 100.0) == 3.0

    def test_revenue_without_spend_is_undefined(self):
        assert compute_roas(50.0, 0.0) is None

    def test_nothing_at_all_is_zero(self):
        assert compute_roas(0.0, 0.0) == 0.0


class TestScalars:

    def test_budget_is_converted_from_cents(self):
        assert budget_from_minor_units("5000", None) == 50.0
        assert budget_from_minor_units(None, 120000) == 1200.0
        assert budget_from_minor_units(None, None) == 0.0

    @pytest.mark.parametrize("buying_type,expected", [
        (None, DEFAULT_CAMPAIGN_TYPE),
        ("AUCTION", DEFAULT_CAMPAIGN_TYPE),
        ("RESERVED", "RESERVED"),
    ])
    def test_campaign_type(self, buying_type, expected):
        assert campaign_type_from_buying_type(buying_type) == expected


class TestAggregateInsights:

    def test_sums_rows_for_entity_only(self):
        rows = [
            _insight("as-1"),
            _insight("as-1", spend=300, purchases=6, revenue=900),
            _insight("as-2", spend=9999),
        ]

        metrics = aggregate_insights(rows, "as-1", "facebook_ad_set_id")

        assert metrics.spend == 400
        assert metrics.impressions == 2000
        assert metrics.purchases == 10
        assert metrics.revenue == 1300
        assert metrics.add_to_carts == 18
        assert metrics.ctr == pytest.approx(5.0)
        assert metrics.cpc == pytest.approx(4.0)
        assert metrics.cpm == pytest.approx(200.0)
        assert metrics.roas == pytest.approx(3.25)
        assert metrics.cost_per_purchase == pytest.approx(40.0)

    def test_no_rows_gives_zeroed_metrics(self):
        metrics = aggregate_insights([], "as-1", "facebook_ad_set_id")

        assert metrics.spend == 0
        assert metrics.ctr == 0.0
        assert metrics.roas == 0.0

    def test_malformed_numbers_count_as_zero(self):
        row = {"facebook_ad_id": "ad-1", "spend": "n/a", "impressions": None, "actions": "broken"}

        metrics = aggregate_insights([row], "ad-1", "facebook_ad_id")

        assert metrics.spend == 0.0
        assert metrics.purchases == 0.0


class TestOrderAttribution:

    def test_group_orders_by_utm(self):
        orders = [
            {"utm_campaign": "c-1", "utm_content": "as-1", "utm_term": "ad-1", "total_price": "100.50"},
            {"utm_campaign": "c-1", "utm_content": "as-1", "utm_term": "ad-2", "total_price": 50},
            {"utm_campaign": "c-9", "utm_content": None, "utm_term": None, "total_price": 10},
        ]

        by_campaign, by_ad_set, by_ad = group_orders_by_utm(orders, "c-1")

        assert by_campaign["c-1"].orders == 2
        assert by_campaign["c-1"].revenue == pytest.approx(150.5)
        assert by_ad_set["as-1"].orders == 2
        assert set(by_ad) == {"ad-1", "ad-2"}

    def test_apply_order_totals_replaces_platform_conversions(self):
        metrics = AdMetrics(spend=100.0, purchases=4, revenue=400.0)

        apply_order_totals(metrics, OrderTotals(revenue=250.0, orders=5))

        assert metrics.purchases == 5
        assert metrics.revenue == 250.0
        assert metrics.roas == pytest.approx(2.5)
        assert metrics.average_order_value == pytest.approx(50.0)

    def test_apply_order_totals_without_totals_is_noop(self):
        metrics = AdMetrics(spend=100.0, purchases=4, revenue=400.0, roas=4.0)

        apply_order_totals(metrics, None)

        assert metrics.purchases == 4
        assert metrics.roas == 4.0


class TestBuildCampaignDetails:

    def _build(self, orders=None):
        campaign_row = {"daily_budget": "10000", "objective": None, "buying_type": "AUCTION"}
        ad_sets = [{"facebook_ad_set_id": "as-1", "name": "Broad", "status": "ACTIVE", "daily_budget": 2500}]
        ads = [
            {"facebook_ad_id": "ad-1", "facebook_ad_set_id": "as-1", "name": "Video", "status": "ACTIVE"},
            {"facebook_ad_id": "ad-9", "facebook_ad_set_id": "as-other", "name": "Other", "status": "ACTIVE"},
        ]
        ad_set_insights = [_insight("as-1")]
        ad_insights = [_insight("ad-1", id_field="facebook_ad_id", spend=60)]
        return build_campaign_details("c-1", campaign_row, ad_sets, ads, ad_set_insights, ad_insights, orders)

    def test_builds_nested_snapshot(self):
        details = self._build()

        assert details.budget == 100.0
        assert details.objective == DEFAULT_OBJECTIVE
        assert details.campaign_type == DEFAULT_CAMPAIGN_TYPE
        assert len(details.ad_sets) == 1
        ad_set = details.ad_sets[0]
        assert ad_set.daily_budget == 25.0
        assert [ad.id for ad in ad_set.ads] == ["ad-1"]
        assert ad_set.ads[0].metrics.spend == 60
        assert ad_set.ads[0].effective_status == "ACTIVE"

    def test_store_orders_override_platform_purchases(self):
        orders = [{"utm_campaign": "c-1", "utm_content": "as-1", "utm_term": "ad-1", "total_price": 80}]

        details = self._build(orders)

        ad_set = details.ad_sets[0]
        assert ad_set.metrics.purchases == 1
        assert ad_set.metrics.revenue == 80
        assert ad_set.ads[0].metrics.revenue == 80

    def test_missing_campaign_row_uses_defaults(self):
        details = build_campaign_details("c-1", None, [], [], [], [])

        assert details.budget == 0.0
        assert details.ad_sets == []

    def test_ad_set_to_dict_shape(self):
        data = self._build().ad_sets[0].to_dict()

        assert data["budget"] == {"daily": 25.0, "lifetime": 0.0}
        assert data["ads"][0]["metrics"]["spend"] == 60


class TestBuildCampaignInsights:

    def test_platform_numbers_when_no_store(self, sample_campaign):
        insights = build_campaign_insights(sample_campaign)

        assert insights.data_source == "meta"
        assert insights.uses_shopify_data is False
        assert insights.conversions == 21
        assert insights.cost_per_purchase == pytest.approx(700 / 21)
        assert "shopify_revenue" not in insights.to_dict()

    def test_store_totals_replace_conversions(self, sample_campaign):
        insights = build_campaign_insights(sample_campaign, OrderTotals(revenue=1400.0, orders=10))

        assert insights.data_source == "shopify"
        assert insights.revenue == 1400.0
        assert insights.roas == pytest.approx(2.0)
        assert insights.meta_revenue == 2100.0
        assert insights.shopify_conversions == 10

    def test_undefined_roas_is_kept_in_payload(self):
        campaign = TopCampaign(id="c-1", name="Zero", status="PAUSED", spend=0.0, revenue=10.0, roas=None, purchases=1)

        data = build_campaign_insights(campaign).to_dict()

        assert "roas" in data and data["roas"] is None
        assert data["actions"] == []
