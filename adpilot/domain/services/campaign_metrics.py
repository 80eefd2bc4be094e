"""Aggregation of campaign / ad set / ad performance for the context payload."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from adpilot.domain.entities.campaign import (
    AdMetrics,
    CampaignDetails,
    CampaignInsights,
    OrderTotals,
    TopCampaign,
    WebhookAd,
    WebhookAdSet,
)

DEFAULT_OBJECTIVE = "OUTCOME_SALES"
DEFAULT_CAMPAIGN_TYPE = "CBO"
DEFAULT_OPTIMIZATION_GOAL = "OFFSITE_CONVERSIONS"


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def compute_roas(revenue: float, spend: float) -> Optional[float]:
    """ROAS is undefined (None) when there is revenue but no spend."""
    if spend > 0:
        return revenue / spend
    return None if revenue > 0 else 0.0


def budget_from_minor_units(daily: Any, lifetime: Any) -> float:
    # Platform budgets are stored in cents
    return _num(daily or lifetime) / 100


def campaign_type_from_buying_type(buying_type: Optional[str]) -> str:
    if not buying_type or buying_type == "AUCTION":
        return DEFAULT_CAMPAIGN_TYPE
    return buying_type


def _action_value(entries: Optional[Iterable[Dict[str, Any]]], action_type: str) -> float:
    for entry in entries or []:
        if isinstance(entry, dict) and entry.get("action_type") == action_type:
            return _num(entry.get("value"))
    return 0.0


def derive_rates(metrics: AdMetrics) -> AdMetrics:
    metrics.ctr = (metrics.clicks / metrics.impressions) * 100 if metrics.impressions > 0 else 0.0
    metrics.cpc = metrics.spend / metrics.clicks if metrics.clicks > 0 else 0.0
    metrics.cpm = (metrics.spend / metrics.impressions) * 1000 if metrics.impressions > 0 else 0.0
    metrics.roas = compute_roas(metrics.revenue, metrics.spend)
    metrics.cost_per_purchase = metrics.spend / metrics.purchases if metrics.purchases > 0 else 0.0
    metrics.average_order_value = metrics.revenue / metrics.purchases if metrics.purchases > 0 else 0.0
    return metrics


def aggregate_insights(rows: Iterable[Dict[str, Any]], entity_id: str, id_field: str) -> AdMetrics:
    """Sum daily insight rows for one entity and derive the rate metrics."""
    metrics = AdMetrics()
    for row in rows:
        if row.get(id_field) != entity_id:
            continue
        metrics.impressions += _num(row.get("impressions"))
        metrics.clicks += _num(row.get("clicks"))
        metrics.reach += _num(row.get("reach"))
        metrics.spend += _num(row.get("spend"))
        actions = row.get("actions")
        action_values = row.get("action_values")
        metrics.purchases += _action_value(actions, "purchase")
        metrics.revenue += _action_value(action_values, "purchase")
        metrics.add_to_carts += _action_value(actions, "add_to_cart")
        metrics.checkouts += _action_value(actions, "initiate_checkout")
    return derive_rates(metrics)


def apply_order_totals(metrics: AdMetrics, totals: Optional[OrderTotals]) -> AdMetrics:
    """Replace platform-reported purchases/revenue with store-attributed orders."""
    if totals is None:
        return metrics
    metrics.purchases = totals.orders
    metrics.revenue = totals.revenue
    metrics.roas = compute_roas(metrics.revenue, metrics.spend)
    metrics.cost_per_purchase = metrics.spend / metrics.purchases if metrics.purchases > 0 else 0.0
    metrics.average_order_value = metrics.revenue / metrics.purchases if metrics.purchases > 0 else 0.0
    return metrics


def group_orders_by_utm(
    orders: Iterable[Dict[str, Any]], campaign_id: str
) -> Tuple[Dict[str, OrderTotals], Dict[str, OrderTotals], Dict[str, OrderTotals]]:
    """Group attributed orders by campaign / ad set (utm_content) / ad (utm_term)."""
    by_campaign: Dict[str, OrderTotals] = {}
    by_ad_set: Dict[str, OrderTotals] = {}
    by_ad: Dict[str, OrderTotals] = {}

    def _add(bucket: Dict[str, OrderTotals], key: str, price: float) -> None:
        totals = bucket.setdefault(key, OrderTotals())
        totals.revenue += price
        totals.orders += 1

    for order in orders:
        price = _num(order.get("total_price"))
        if order.get("utm_campaign") == campaign_id:
            _add(by_campaign, campaign_id, price)
        if order.get("utm_content"):
            _add(by_ad_set, order["utm_content"], price)
        if order.get("utm_term"):
            _add(by_ad, order["utm_term"], price)
    return by_campaign, by_ad_set, by_ad


def build_campaign_details(
    campaign_id: str,
    campaign_row: Optional[Dict[str, Any]],
    ad_set_rows: List[Dict[str, Any]],
    ad_rows: List[Dict[str, Any]],
    ad_set_insights: List[Dict[str, Any]],
    ad_insights: List[Dict[str, Any]],
    orders: Optional[List[Dict[str, Any]]] = None,
) -> CampaignDetails:
    campaign_row = campaign_row or {}
    by_ad_set: Dict[str, OrderTotals] = {}
    by_ad: Dict[str, OrderTotals] = {}
    if orders is not None:
        _, by_ad_set, by_ad = group_orders_by_utm(orders, campaign_id)

    ad_sets: List[WebhookAdSet] = []
    for ad_set in ad_set_rows:
        ad_set_id = ad_set.get("facebook_ad_set_id") or ad_set.get("id")
        metrics = aggregate_insights(ad_set_insights, ad_set_id, "facebook_ad_set_id")
        if orders is not None:
            apply_order_totals(metrics, by_ad_set.get(ad_set_id))

        ads: List[WebhookAd] = []
        for ad in ad_rows:
            if (ad.get("facebook_ad_set_id") or ad.get("ad_set_id")) != ad_set_id:
                continue
            ad_id = ad.get("facebook_ad_id") or ad.get("id")
            ad_metrics = aggregate_insights(ad_insights, ad_id, "facebook_ad_id")
            if orders is not None:
                apply_order_totals(ad_metrics, by_ad.get(ad_id))
            ads.append(
                WebhookAd(
                    id=ad_id,
                    name=ad.get("name") or ad.get("ad_name") or "Unknown Ad",
                    status=ad.get("status") or "UNKNOWN",
                    effective_status=ad.get("effective_status") or ad.get("status") or "UNKNOWN",
                    metrics=ad_metrics,
                )
            )

        ad_sets.append(
            WebhookAdSet(
                id=ad_set_id,
                name=ad_set.get("name") or ad_set.get("ad_set_name") or "Unknown Ad Set",
                status=ad_set.get("status") or "UNKNOWN",
                optimization_goal=ad_set.get("optimization_goal") or DEFAULT_OPTIMIZATION_GOAL,
                daily_budget=_num(ad_set.get("daily_budget")) / 100,
                lifetime_budget=_num(ad_set.get("lifetime_budget")) / 100,
                metrics=metrics,
                ads=ads,
            )
        )

    return CampaignDetails(
        budget=budget_from_minor_units(campaign_row.get("daily_budget"), campaign_row.get("lifetime_budget")),
        objective=campaign_row.get("objective") or DEFAULT_OBJECTIVE,
        campaign_type=campaign_type_from_buying_type(campaign_row.get("buying_type")),
        ad_sets=ad_sets,
    )


def build_campaign_insights(campaign: TopCampaign, store_totals: Optional[OrderTotals] = None) -> CampaignInsights:
    """Top-line insights for the mentioned campaign.

    With store attribution the order totals replace the platform conversions;
    the platform numbers are still reported under ``meta_*``.
    """
    if store_totals is not None:
        roas = compute_roas(store_totals.revenue, campaign.spend)
        return CampaignInsights(
            spend=campaign.spend,
            conversions=store_totals.orders,
            revenue=store_totals.revenue,
            roas=roas,
            purchases=store_totals.orders,
            cost_per_purchase=campaign.spend / store_totals.orders if store_totals.orders > 0 else 0.0,
            average_order_value=store_totals.revenue / store_totals.orders if store_totals.orders > 0 else 0.0,
            meta_conversions=campaign.purchases,
            meta_revenue=campaign.revenue,
            meta_roas=campaign.roas,
            shopify_conversions=store_totals.orders,
            shopify_revenue=store_totals.revenue,
            shopify_roas=roas,
            uses_shopify_data=True,
            data_source="shopify",
        )

    return CampaignInsights(
        spend=campaign.spend,
        conversions=campaign.purchases,
        revenue=campaign.revenue,
        roas=campaign.roas,
        purchases=campaign.purchases,
        cost_per_purchase=campaign.spend / campaign.purchases if campaign.purchases > 0 else 0.0,
        average_order_value=campaign.revenue / campaign.purchases if campaign.purchases > 0 else 0.0,
        meta_conversions=campaign.purchases,
        meta_revenue=campaign.revenue,
        meta_roas=campaign.roas,
        uses_shopify_data=False,
        data_source="meta",
    )
