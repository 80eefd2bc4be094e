from __future__ import annotations
import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict

from adpilot.domain.repositories.account_repository import AccountRepository
from adpilot.domain.repositories.chat_message_repository import ChatMessageRepository
from adpilot.domain.services.quota_gate import QuotaDecision, QuotaState, check_can_send, is_free_tier

logger = logging.getLogger(__name__)


class QuotaTracker:
    """Per-session quota counters.

    Synced from the store when the session starts, then incremented locally
    after every persisted send rather than re-fetched.
    """

    def __init__(
        self,
        user_id: str,
        chat_repo: ChatMessageRepository,
        account_repo: AccountRepository,
        free_message_limit: int = 10,
    ):
        self.user_id = user_id
        self.chat_repo = chat_repo
        self.account_repo = account_repo
        self.free_message_limit = free_message_limit
        self.state = QuotaState()

    async def sync(self) -> QuotaState:
        tier, count = await asyncio.gather(
            asyncio.to_thread(self.account_repo.get_subscription_tier, self.user_id),
            asyncio.to_thread(self.chat_repo.count_user_messages, self.user_id),
        )
        self.state = QuotaState(is_free_plan=is_free_tier(tier), user_message_count=count)
        logger.info(
            "Quota synced: user_id=%s tier=%s free=%s count=%d",
            self.user_id,
            tier,
            self.state.is_free_plan,
            count,
        )
        return self.state

    def check(self) -> QuotaDecision:
        return check_can_send(self.state, self.free_message_limit)

    def record_sent(self) -> None:
        self.state = replace(self.state, user_message_count=self.state.user_message_count + 1)

    def to_dict(self) -> Dict[str, Any]:
        decision = self.check()
        return {
            "can_send": decision.can_send,
            "should_show_upgrade": decision.should_show_upgrade,
            "user_message_count": self.state.user_message_count,
            "free_message_limit": self.free_message_limit,
            "is_free_plan": self.state.is_free_plan,
        }
