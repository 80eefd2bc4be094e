from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class TopCampaign:
    """Campaign summary as shown to the user (the mention target)."""

    id: str
    name: str
    status: str
    spend: float = 0.0
    revenue: float = 0.0
    roas: Optional[float] = 0.0
    purchases: int = 0


@dataclass(frozen=True)
class TimeframeInfo:
    selected_range: str
    start_date: str
    end_date: str
    days_count: int

    @classmethod
    def trailing_days(cls, days: int, today: Optional[date] = None) -> "TimeframeInfo":
        end = today or date.today()
        start = end - timedelta(days=days)
        return cls(
            selected_range=f"last_{days}_days",
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            days_count=days,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AdMetrics:
    impressions: float = 0
    clicks: float = 0
    reach: float = 0
    spend: float = 0.0
    ctr: float = 0.0
    cpc: float = 0.0
    cpm: float = 0.0
    purchases: float = 0
    add_to_carts: float = 0
    checkouts: float = 0
    revenue: float = 0.0
    roas: Optional[float] = 0.0
    cost_per_purchase: float = 0.0
    average_order_value: float = 0.0


@dataclass
class WebhookAd:
    id: str
    name: str
    status: str
    effective_status: str
    metrics: AdMetrics = field(default_factory=AdMetrics)


@dataclass
class WebhookAdSet:
    id: str
    name: str
    status: str
    optimization_goal: str
    daily_budget: float = 0.0
    lifetime_budget: float = 0.0
    metrics: AdMetrics = field(default_factory=AdMetrics)
    ads: List[WebhookAd] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "optimization_goal": self.optimization_goal,
            "budget": {"daily": self.daily_budget, "lifetime": self.lifetime_budget},
            "metrics": asdict(self.metrics),
            "ads": [asdict(ad) for ad in self.ads],
        }


@dataclass
class CampaignDetails:
    """Deep snapshot of one campaign over a trailing window."""

    budget: float
    objective: str
    campaign_type: str
    ad_sets: List[WebhookAdSet] = field(default_factory=list)


@dataclass
class CampaignInsights:
    spend: float
    conversions: float
    revenue: float
    roas: Optional[float]
    purchases: float
    cost_per_purchase: float
    average_order_value: float
    meta_conversions: float
    meta_revenue: float
    meta_roas: Optional[float]
    uses_shopify_data: bool
    data_source: str  # "shopify" | "meta"
    impressions: float = 0
    clicks: float = 0
    ctr: float = 0.0
    cpc: float = 0.0
    cpm: float = 0.0
    shopify_conversions: Optional[float] = None
    shopify_revenue: Optional[float] = None
    shopify_roas: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["actions"] = []
        data["action_values"] = []
        return {k: v for k, v in data.items() if v is not None or k in ("roas", "meta_roas")}


@dataclass
class OrderTotals:
    revenue: float = 0.0
    orders: int = 0
