"""
Webhook に送るコンテキストペイロードの組み立て

商品情報・直近の実施済み変更・会話履歴は並行取得する。キャンペーンの詳細
スナップショットは、今回のメッセージで明示的に言及された場合のみ含める
(「最後に話したキャンペーン」へのフォールバックは行わない)。
"""
from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from adpilot.domain.entities.campaign import CampaignDetails, OrderTotals, TimeframeInfo, TopCampaign
from adpilot.domain.entities.chat_message import generate_request_id, normalize_role
from adpilot.domain.repositories.account_repository import AccountRepository
from adpilot.domain.repositories.campaign_repository import CampaignRepository
from adpilot.domain.repositories.chat_message_repository import ChatMessageRepository
from adpilot.domain.repositories.conversation_memory_repository import ConversationMemoryRepository
from adpilot.domain.services.campaign_metrics import (
    build_campaign_details,
    build_campaign_insights,
    group_orders_by_utm,
)
from adpilot.infrastructure.cache.last_campaign_cache import LastCampaignCache, last_campaign_cache
from adpilot.infrastructure.config.settings import Settings, get_settings
from adpilot.infrastructure.supabase.repositories.account_repository_impl import AccountRepositoryImpl
from adpilot.infrastructure.supabase.repositories.campaign_repository_impl import CampaignRepositoryImpl
from adpilot.infrastructure.supabase.repositories.chat_message_repository_impl import ChatMessageRepositoryImpl
from adpilot.infrastructure.supabase.repositories.conversation_memory_repository_impl import (
    ConversationMemoryRepositoryImpl,
)

logger = logging.getLogger(__name__)

ACTION_ANALYZE_CAMPAIGN = "analyze_selected_campaign"
ACTION_GENERAL_QUERY = "general_query"
SHOPIFY_VIEW = "bront"
SHOPIFY_PLATFORM = "shopify"

# Background "remember campaign" writes; held so they are not garbage collected mid-flight
_background_tasks: Set[asyncio.Task] = set()


class AssembleChatContextUseCase:
    def __init__(
        self,
        account_repo: Optional[AccountRepository] = None,
        memory_repo: Optional[ConversationMemoryRepository] = None,
        chat_repo: Optional[ChatMessageRepository] = None,
        campaign_repo: Optional[CampaignRepository] = None,
        cache: Optional[LastCampaignCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.account_repo = account_repo or AccountRepositoryImpl()
        self.memory_repo = memory_repo or ConversationMemoryRepositoryImpl()
        self.chat_repo = chat_repo or ChatMessageRepositoryImpl()
        self.campaign_repo = campaign_repo or CampaignRepositoryImpl()
        self.cache = cache or last_campaign_cache
        self.settings = settings or get_settings()

    # ── Last mentioned campaign ──

    def remember_campaign(self, user_id: str, campaign_id: str) -> asyncio.Task:
        """Update the cache now and the durable record in the background."""
        self.cache.set(user_id, campaign_id)

        async def _persist() -> None:
            try:
                await asyncio.to_thread(self.memory_repo.record_mentioned_campaign, user_id, campaign_id)
            except Exception as e:
                logger.warning("Failed to record mentioned campaign: user_id=%s campaign_id=%s error=%s", user_id, campaign_id, e)

        task = asyncio.create_task(_persist())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task

    # ── Collaborator reads ──

    async def _latest_change(self, user_id: str) -> Tuple[Optional[Any], Optional[str]]:
        row = await asyncio.to_thread(self.memory_repo.get_latest, user_id)
        if not row:
            return None, None
        changes = row.get("implemented_changes")
        latest = changes[-1] if isinstance(changes, list) and changes else None
        return latest, row.get("summary")

    async def _history(self, user_id: str) -> List[Dict[str, Any]]:
        rows = await asyncio.to_thread(self.chat_repo.recent_history, user_id, self.settings.chat_history_window)
        return [
            {
                "role": normalize_role(row.get("role")),
                "content": row.get("content") or "",
                "created_at": row.get("created_at"),
                "implemented": bool(row.get("implemented")),
                "feedback": row.get("feedback"),
            }
            for row in reversed(rows)
        ]

    async def _campaign_snapshot(
        self, user_id: str, campaign_id: str, timeframe: TimeframeInfo, use_shopify: bool
    ) -> Tuple[CampaignDetails, Optional[OrderTotals]]:
        repo = self.campaign_repo
        campaign_row, ad_set_rows, orders = await asyncio.gather(
            asyncio.to_thread(repo.get_campaign, campaign_id),
            asyncio.to_thread(repo.list_ad_sets, campaign_id),
            asyncio.to_thread(repo.list_attributed_orders, user_id, timeframe.start_date)
            if use_shopify
            else asyncio.sleep(0, result=None),
        )
        ad_set_ids = [r.get("facebook_ad_set_id") or r.get("id") for r in ad_set_rows]
        ad_rows, ad_set_insights = await asyncio.gather(
            asyncio.to_thread(repo.list_ads, ad_set_ids),
            asyncio.to_thread(repo.list_ad_set_insights, ad_set_ids, timeframe.start_date, timeframe.end_date),
        )
        ad_ids = [r.get("facebook_ad_id") or r.get("id") for r in ad_rows]
        ad_insights = await asyncio.to_thread(repo.list_ad_insights, ad_ids, timeframe.start_date, timeframe.end_date)

        details = build_campaign_details(
            campaign_id,
            campaign_row,
            ad_set_rows,
            ad_rows,
            ad_set_insights,
            ad_insights,
            orders if use_shopify else None,
        )
        campaign_totals = None
        if use_shopify and orders:
            by_campaign, _, _ = group_orders_by_utm(orders, campaign_id)
            campaign_totals = by_campaign.get(campaign_id)
        logger.info(
            "Campaign snapshot: campaign_id=%s ad_sets=%d ads=%d shopify=%s",
            campaign_id,
            len(ad_set_rows),
            len(ad_rows),
            use_shopify,
        )
        return details, campaign_totals

    # ── Assembly ──

    async def execute(
        self,
        user_id: str,
        message: str,
        mentioned_campaign: Optional[TopCampaign] = None,
        performance_view: Optional[str] = None,
    ) -> Dict[str, Any]:
        if mentioned_campaign is not None:
            self.remember_campaign(user_id, mentioned_campaign.id)

        product_info, (latest_change, latest_summary), history, ad_accounts = await asyncio.gather(
            asyncio.to_thread(self.account_repo.get_product_info, user_id),
            self._latest_change(user_id),
            self._history(user_id),
            asyncio.to_thread(self.account_repo.list_selected_ad_accounts, user_id),
        )

        has_shopify = any((acc or {}).get("platform") == SHOPIFY_PLATFORM for acc in ad_accounts)
        use_shopify = performance_view == SHOPIFY_VIEW and has_shopify
        days = self.settings.chat_context_days
        timeframe = TimeframeInfo.trailing_days(days)
        sent_at = datetime.now(timezone.utc).isoformat()

        details: Optional[CampaignDetails] = None
        campaign_totals: Optional[OrderTotals] = None
        if mentioned_campaign is not None:
            details, campaign_totals = await self._campaign_snapshot(user_id, mentioned_campaign.id, timeframe, use_shopify)

        target = mentioned_campaign
        payload: Dict[str, Any] = {
            "action": ACTION_ANALYZE_CAMPAIGN if target else ACTION_GENERAL_QUERY,
            "input_message": message,
            "timestamp": sent_at,
            "webhookUrl": self.settings.chat_webhook_url,
            "executionMode": self.settings.chat_execution_mode,
            "user_id": user_id,
            "target_campaign_id": target.id if target else None,
            "latest_implemented_change": latest_change,
            "latest_implemented_change_summary": latest_summary,
            "conversation_memory_row_id": None,
            "product_info": product_info,
            "images": [],
            "current_campaign_id": target.id if target else None,
            "current_campaign_name": target.name if target else None,
            "last_mentioned_campaign_id": target.id if target else None,
            "campaign_name": target.name if target else None,
            "campaign_id": target.id if target else None,
            "campaign_type": details.campaign_type if details else None,
            "data_source": "shopify" if use_shopify else "meta",
            "shopify_attribution_active": use_shopify,
            "currency": self.settings.chat_currency,
            "timeframe": timeframe.to_dict(),
            "status": target.status if target else None,
            "objective": details.objective if details else None,
            "budget": details.budget if details else None,
            "ad_sets": [a.to_dict() for a in details.ad_sets] if details else None,
            "conversation_history": history,
            "request_id": generate_request_id(),
            "sent_at": sent_at,
        }
        if target is not None:
            payload["campaignInsights"] = build_campaign_insights(target, campaign_totals).to_dict()
            if target.spend > 0:
                payload["daily_spend"] = target.spend / days

        logger.info(
            "Context assembled: user_id=%s action=%s history=%d data_source=%s",
            user_id,
            payload["action"],
            len(history),
            payload["data_source"],
        )
        return {k: v for k, v in payload.items() if v is not None}
