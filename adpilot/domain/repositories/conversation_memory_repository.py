"""
会話メモリ (conversation_memory) リポジトリのインターフェース

直近の実施済み変更と、最後に言及されたキャンペーンの永続化を扱う。
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class ConversationMemoryRepository(ABC):

    @abstractmethod
    def get_latest(self, user_id: str) -> Optional[Dict[str, Any]]:
        """最新行（implemented_changes, summary）を取得"""
        pass

    @abstractmethod
    def get_last_mentioned_campaign_id(self, user_id: str) -> Optional[str]:
        """campaign_id が NULL でない最新行の campaign_id"""
        pass

    @abstractmethod
    def record_mentioned_campaign(self, user_id: str, campaign_id: str) -> None:
        """言及されたキャンペーンを記録"""
        pass
