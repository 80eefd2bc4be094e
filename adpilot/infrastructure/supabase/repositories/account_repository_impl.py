from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from adpilot.domain.repositories.account_repository import AccountRepository
from adpilot.infrastructure.supabase.client import get_supabase

logger = logging.getLogger(__name__)


class AccountRepositoryImpl(AccountRepository):
    """Reads degrade to None / [] on failure; the send flow never sees an exception."""

    def get_subscription_tier(self, user_id: str) -> Optional[str]:
        try:
            sb = get_supabase()
            res = sb.table("subscribers").select("subscription_tier").eq("user_id", user_id).limit(1).execute()
        except Exception as e:
            logger.warning(f"プラン取得エラー: user_id={user_id}, error={e}")
            return None
        rows = res.data or []
        return rows[0].get("subscription_tier") if rows else None

    def get_product_info(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = sb.table("product_info").select("*").eq("user_id", user_id).limit(1).execute()
        except Exception as e:
            logger.warning(f"商品情報取得エラー: user_id={user_id}, error={e}")
            return None
        rows = res.data or []
        return rows[0] if rows else None

    def list_selected_ad_accounts(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = sb.table("selected_ad_accounts").select("*").eq("user_id", user_id).execute()
        except Exception as e:
            logger.warning(f"広告アカウント取得エラー: user_id={user_id}, error={e}")
            return []
        return res.data or []
