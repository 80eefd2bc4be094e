from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class CampaignRepository(ABC):
    """Read access to synced ad-platform data and attributed store orders.

    Date arguments are ISO ``YYYY-MM-DD`` strings; insight rows are filtered on
    ``date_start`` within ``[start_date, end_date]``.
    """

    @abstractmethod
    def get_campaign(self, campaign_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_ad_sets(self, campaign_id: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_ads(self, ad_set_ids: List[str]) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_ad_set_insights(self, ad_set_ids: List[str], start_date: str, end_date: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_ad_insights(self, ad_ids: List[str], start_date: str, end_date: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_attributed_orders(self, user_id: str, start_date: str) -> List[Dict[str, Any]]:
        """Store orders attributed to the assistant (``utm_source='bront'``)."""
        pass
