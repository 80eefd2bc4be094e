"""
ユーザー単位のチャットセッション管理

1ユーザーにつき1セッション (MessageSynchronizer + QuotaTracker + Realtime 購読)。
再オープン時は必ず既存の購読を先に破棄してから新しい購読を開く。
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from adpilot.application.services.message_synchronizer import MessageSynchronizer
from adpilot.application.services.quota_tracker import QuotaTracker
from adpilot.domain.repositories.account_repository import AccountRepository
from adpilot.domain.repositories.chat_message_repository import ChatMessageRepository
from adpilot.domain.repositories.conversation_memory_repository import ConversationMemoryRepository
from adpilot.infrastructure.cache.last_campaign_cache import LastCampaignCache, last_campaign_cache
from adpilot.infrastructure.config.settings import get_settings
from adpilot.infrastructure.supabase.realtime import MessageSubscription
from adpilot.infrastructure.supabase.repositories.account_repository_impl import AccountRepositoryImpl
from adpilot.infrastructure.supabase.repositories.chat_message_repository_impl import ChatMessageRepositoryImpl
from adpilot.infrastructure.supabase.repositories.conversation_memory_repository_impl import (
    ConversationMemoryRepositoryImpl,
)

logger = logging.getLogger(__name__)

SubscriptionFactory = Callable[[str, Callable[[Dict[str, Any]], None]], Any]


@dataclass
class ChatSession:
    user_id: str
    synchronizer: MessageSynchronizer
    quota: QuotaTracker
    subscription: Optional[Any] = None
    last_mentioned_campaign_id: Optional[str] = None
    # Sends are serialized per user
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionRegistry:
    def __init__(
        self,
        chat_repo: Optional[ChatMessageRepository] = None,
        account_repo: Optional[AccountRepository] = None,
        memory_repo: Optional[ConversationMemoryRepository] = None,
        subscription_factory: Optional[SubscriptionFactory] = None,
        cache: Optional[LastCampaignCache] = None,
    ):
        self.chat_repo = chat_repo or ChatMessageRepositoryImpl()
        self.account_repo = account_repo or AccountRepositoryImpl()
        self.memory_repo = memory_repo or ConversationMemoryRepositoryImpl()
        self.subscription_factory = subscription_factory or MessageSubscription
        self.cache = cache or last_campaign_cache
        self._sessions: Dict[str, ChatSession] = {}
        self._lock = asyncio.Lock()

    def get(self, user_id: str) -> Optional[ChatSession]:
        return self._sessions.get(user_id)

    async def get_or_open(self, user_id: str) -> ChatSession:
        session = self._sessions.get(user_id)
        if session is not None:
            return session
        return await self.open(user_id, force=False)

    async def open(self, user_id: str, force: bool = True) -> ChatSession:
        """(Re)open the session for *user_id*, tearing down any previous subscription first.

        With ``force=False`` a session opened by a concurrent caller is returned as is.
        """
        async with self._lock:
            if not force and user_id in self._sessions:
                return self._sessions[user_id]
            previous = self._sessions.pop(user_id, None)
            if previous is not None:
                await self._teardown(previous)

            settings = get_settings()
            synchronizer = MessageSynchronizer(user_id, self.chat_repo, page_size=settings.chat_page_size)
            quota = QuotaTracker(user_id, self.chat_repo, self.account_repo, settings.free_message_limit)
            session = ChatSession(user_id=user_id, synchronizer=synchronizer, quota=quota)

            await asyncio.gather(synchronizer.load_initial(), quota.sync())
            session.last_mentioned_campaign_id = await self._initial_last_mentioned(user_id)
            session.subscription = await self._subscribe(session)

            self._sessions[user_id] = session
            logger.info("Chat session opened: user_id=%s messages=%d", user_id, len(synchronizer.messages))
            return session

    async def _initial_last_mentioned(self, user_id: str) -> Optional[str]:
        cached = self.cache.get(user_id)
        if cached:
            return cached
        campaign_id = await asyncio.to_thread(self.memory_repo.get_last_mentioned_campaign_id, user_id)
        if campaign_id:
            self.cache.set(user_id, campaign_id)
        return campaign_id

    async def _subscribe(self, session: ChatSession) -> Optional[Any]:
        subscription = self.subscription_factory(session.user_id, session.synchronizer.on_realtime_row)
        try:
            await subscription.open()
        except Exception as e:
            # Pages and sends still work; pushes are picked up on the next load
            logger.warning("Realtime subscription unavailable: user_id=%s error=%s", session.user_id, e)
            await subscription.close()
            return None
        return subscription

    async def _teardown(self, session: ChatSession) -> None:
        if session.subscription is not None:
            await session.subscription.close()
            session.subscription = None
        logger.info("Chat session closed: user_id=%s", session.user_id)

    async def close(self, user_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(user_id, None)
            if session is not None:
                await self._teardown(session)

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await self._teardown(session)


_registry: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
