"""Process-local cache of the last campaign each user explicitly mentioned."""
from __future__ import annotations
import threading
from typing import Dict, Optional


class LastCampaignCache:
    def __init__(self):
        self._lock = threading.Lock()
        self._by_user: Dict[str, str] = {}

    def get(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._by_user.get(user_id)

    def set(self, user_id: str, campaign_id: str) -> None:
        with self._lock:
            self._by_user[user_id] = campaign_id

    def clear(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._by_user.clear()
            else:
                self._by_user.pop(user_id, None)


last_campaign_cache = LastCampaignCache()
