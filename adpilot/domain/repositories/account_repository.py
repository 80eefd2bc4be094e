from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class AccountRepository(ABC):
    """Per-user account data: plan tier, product profile, connected ad accounts."""

    @abstractmethod
    def get_subscription_tier(self, user_id: str) -> Optional[str]:
        """``subscribers.subscription_tier``; None when unknown."""
        pass

    @abstractmethod
    def get_product_info(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_selected_ad_accounts(self, user_id: str) -> List[Dict[str, Any]]:
        pass
