from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from adpilot.domain.repositories.conversation_memory_repository import ConversationMemoryRepository
from adpilot.infrastructure.supabase.client import get_supabase

logger = logging.getLogger(__name__)


class ConversationMemoryRepositoryImpl(ConversationMemoryRepository):
    TABLE = "conversation_memory"

    def get_latest(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = (
                sb.table(self.TABLE)
                .select("id, implemented_changes, summary")
                .eq("user", user_id)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"会話メモリ取得エラー: user_id={user_id}, error={e}")
            return None
        rows = res.data or []
        return rows[0] if rows else None

    def get_last_mentioned_campaign_id(self, user_id: str) -> Optional[str]:
        try:
            sb = get_supabase()
            res = (
                sb.table(self.TABLE)
                .select("campaign_id")
                .eq("user", user_id)
                .not_.is_("campaign_id", "null")
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"最終言及キャンペーン取得エラー: user_id={user_id}, error={e}")
            return None
        rows = res.data or []
        return rows[0].get("campaign_id") if rows else None

    def record_mentioned_campaign(self, user_id: str, campaign_id: str) -> None:
        sb = get_supabase()
        sb.table(self.TABLE).insert({"user": user_id, "campaign_id": campaign_id}).execute()
        logger.debug(f"最終言及キャンペーンを記録: user_id={user_id}, campaign_id={campaign_id}")
