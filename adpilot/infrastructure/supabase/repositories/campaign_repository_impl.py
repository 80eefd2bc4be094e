"""
キャンペーンデータリポジトリ実装 (Supabase)

Meta 広告の同期テーブルと Shopify 注文を読み取る。
取得に失敗したテーブルは空として扱い、スナップショットは部分的に構築される。
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from adpilot.domain.repositories.campaign_repository import CampaignRepository
from adpilot.infrastructure.supabase.client import get_supabase

logger = logging.getLogger(__name__)

ATTRIBUTION_SOURCE = "bront"


class CampaignRepositoryImpl(CampaignRepository):

    def get_campaign(self, campaign_id: str) -> Optional[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = (
                sb.table("facebook_campaigns")
                .select("*")
                .eq("facebook_campaign_id", campaign_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"キャンペーン取得エラー: campaign_id={campaign_id}, error={e}")
            return None
        rows = res.data or []
        return rows[0] if rows else None

    def list_ad_sets(self, campaign_id: str) -> List[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = sb.table("facebook_ad_sets").select("*").eq("facebook_campaign_id", campaign_id).execute()
        except Exception as e:
            logger.warning(f"広告セット取得エラー: campaign_id={campaign_id}, error={e}")
            return []
        return res.data or []

    def list_ads(self, ad_set_ids: List[str]) -> List[Dict[str, Any]]:
        if not ad_set_ids:
            return []
        try:
            sb = get_supabase()
            res = sb.table("facebook_ads").select("*").in_("facebook_ad_set_id", ad_set_ids).execute()
        except Exception as e:
            logger.warning(f"広告取得エラー: ad_sets={len(ad_set_ids)}, error={e}")
            return []
        return res.data or []

    def _list_insights(self, table: str, id_field: str, ids: List[str], start_date: str, end_date: str) -> List[Dict[str, Any]]:
        if not ids:
            return []
        try:
            sb = get_supabase()
            res = (
                sb.table(table)
                .select("*")
                .in_(id_field, ids)
                .gte("date_start", start_date)
                .lte("date_start", end_date)
                .execute()
            )
        except Exception as e:
            logger.warning(f"インサイト取得エラー: table={table}, ids={len(ids)}, error={e}")
            return []
        return res.data or []

    def list_ad_set_insights(self, ad_set_ids: List[str], start_date: str, end_date: str) -> List[Dict[str, Any]]:
        return self._list_insights("facebook_ad_set_insights", "facebook_ad_set_id", ad_set_ids, start_date, end_date)

    def list_ad_insights(self, ad_ids: List[str], start_date: str, end_date: str) -> List[Dict[str, Any]]:
        return self._list_insights("facebook_ad_insights", "facebook_ad_id", ad_ids, start_date, end_date)

    def list_attributed_orders(self, user_id: str, start_date: str) -> List[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = (
                sb.table("shopify_orders")
                .select("total_price, utm_campaign, utm_content, utm_term")
                .eq("user_id", user_id)
                .eq("utm_source", ATTRIBUTION_SOURCE)
                .gte("created_at", f"{start_date}T00:00:00")
                .execute()
            )
        except Exception as e:
            logger.warning(f"Shopify注文取得エラー: user_id={user_id}, error={e}")
            return []
        return res.data or []
