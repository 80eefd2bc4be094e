"""
チャットメッセージリポジトリのインターフェース

ドメイン層でインターフェースを定義し、インフラ層 (Supabase) で実装する。
行は ``chat_messages`` の生の dict として受け渡す。
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional


class ChatPersistenceError(RuntimeError):
    """メッセージの保存・更新に失敗した"""


class ChatMessageRepository(ABC):
    """チャットメッセージリポジトリのインターフェース"""

    @abstractmethod
    def list_page(self, user_id: str, limit: int, before: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """新しい順に1ページ分取得（before 指定時はそれより古い行のみ）"""
        pass

    @abstractmethod
    def get_by_id(self, user_id: str, message_id: str) -> Optional[Dict[str, Any]]:
        """IDによるメッセージ取得"""
        pass

    @abstractmethod
    def insert_message(self, user_id: str, role: str, content: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """メッセージを保存し、保存された行を返す（失敗時は ChatPersistenceError）"""
        pass

    @abstractmethod
    def update_feedback(self, user_id: str, message_id: str, feedback: Optional[str]) -> None:
        """フィードバックを更新（None でクリア）"""
        pass

    @abstractmethod
    def mark_implemented(self, user_id: str, message_id: str) -> None:
        """implemented フラグを立てる"""
        pass

    @abstractmethod
    def count_user_messages(self, user_id: str) -> int:
        """ユーザー発言数（role='user'）の正確な件数"""
        pass

    @abstractmethod
    def recent_history(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        """直近の会話履歴（新しい順）"""
        pass
