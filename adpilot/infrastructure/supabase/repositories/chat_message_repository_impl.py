"""
チャットメッセージリポジトリ実装 (Supabase)

``chat_messages`` テーブルへの読み書きを担う。書き込み失敗は
ChatPersistenceError として呼び出し元に伝播し、集計系の読み取りは
ログを残してデフォルト値に縮退する。
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from adpilot.domain.entities.chat_message import USER_ROLE
from adpilot.domain.repositories.chat_message_repository import (
    ChatMessageRepository,
    ChatPersistenceError,
)
from adpilot.infrastructure.supabase.client import get_supabase

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = "role, content, created_at, implemented, feedback"


class ChatMessageRepositoryImpl(ChatMessageRepository):
    TABLE = "chat_messages"

    def list_page(self, user_id: str, limit: int, before: Optional[datetime] = None) -> List[Dict[str, Any]]:
        try:
            sb = get_supabase()
            query = sb.table(self.TABLE).select("*").eq("user_id", user_id)
            if before is not None:
                query = query.lt("created_at", before.isoformat())
            res = query.order("created_at", desc=True).limit(limit).execute()
        except Exception as e:
            logger.error(f"メッセージ取得エラー: user_id={user_id}, before={before}, error={e}")
            raise ChatPersistenceError("Failed to load messages") from e
        return res.data or []

    def get_by_id(self, user_id: str, message_id: str) -> Optional[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = (
                sb.table(self.TABLE)
                .select("*")
                .eq("id", message_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"メッセージ取得エラー: user_id={user_id}, message_id={message_id}, error={e}")
            return None
        rows = res.data or []
        return rows[0] if rows else None

    def insert_message(self, user_id: str, role: str, content: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "user_id": user_id,
            "role": role,
            "content": content,
            "metadata": metadata,
        }
        try:
            sb = get_supabase()
            res = sb.table(self.TABLE).insert(payload).execute()
        except Exception as e:
            logger.error(f"メッセージ保存エラー: user_id={user_id}, role={role}, error={e}")
            raise ChatPersistenceError("Failed to save message") from e
        rows = res.data or []
        if not rows:
            logger.error(f"メッセージ保存結果が空: user_id={user_id}, role={role}")
            raise ChatPersistenceError("Failed to save message")
        logger.info(f"メッセージ保存完了: user_id={user_id}, role={role}, id={rows[0].get('id')}")
        return rows[0]

    def update_feedback(self, user_id: str, message_id: str, feedback: Optional[str]) -> None:
        try:
            sb = get_supabase()
            sb.table(self.TABLE).update({"feedback": feedback}).eq("id", message_id).eq("user_id", user_id).execute()
        except Exception as e:
            logger.error(f"フィードバック更新エラー: user_id={user_id}, message_id={message_id}, error={e}")
            raise ChatPersistenceError("Failed to update feedback") from e

    def mark_implemented(self, user_id: str, message_id: str) -> None:
        try:
            sb = get_supabase()
            sb.table(self.TABLE).update({"implemented": True}).eq("id", message_id).eq("user_id", user_id).execute()
        except Exception as e:
            logger.error(f"implemented 更新エラー: user_id={user_id}, message_id={message_id}, error={e}")
            raise ChatPersistenceError("Failed to mark message as implemented") from e

    def count_user_messages(self, user_id: str) -> int:
        try:
            sb = get_supabase()
            res = (
                sb.table(self.TABLE)
                .select("id", count="exact")
                .eq("user_id", user_id)
                .eq("role", USER_ROLE)
                .execute()
            )
        except Exception as e:
            logger.warning(f"メッセージ数取得エラー: user_id={user_id}, error={e}")
            return 0
        return res.count or 0

    def recent_history(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        try:
            sb = get_supabase()
            res = (
                sb.table(self.TABLE)
                .select(HISTORY_COLUMNS)
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.warning(f"会話履歴取得エラー: user_id={user_id}, error={e}")
            return []
        return res.data or []
