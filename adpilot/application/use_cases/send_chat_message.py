"""
チャットメッセージ送信ユースケース

クォータ確認 → 楽観的追加 → ユーザーメッセージ保存 → コンテキスト組み立て →
Webhook 呼び出し → アシスタント応答の段階表示 → ローカル追加・保存。
各段階はイベント (name, data) として yield され、SSE とJSON応答の両方で使う。
"""
from __future__ import annotations
import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

from adpilot.application.services.session_registry import ChatSession
from adpilot.application.use_cases.assemble_chat_context import AssembleChatContextUseCase
from adpilot.domain.entities.campaign import TopCampaign
from adpilot.domain.repositories.chat_message_repository import ChatPersistenceError
from adpilot.domain.services.campaign_mention import resolve_mentions
from adpilot.infrastructure.config.settings import Settings, get_settings
from adpilot.infrastructure.webhook.conversation_gateway import ConversationGateway

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Failed to save message"
NO_RESPONSE_MESSAGE = "Failed to get AI response"
UNEXPECTED_MESSAGE = "Failed to send message"

ChatEvent = Tuple[str, Dict[str, Any]]

_background_tasks: Set[asyncio.Task] = set()


def reveal_chunks(text: str, steps: int) -> List[str]:
    """Growing prefixes of *text*, at most *steps* of them, ending with the full text."""
    if not text:
        return []
    chars_per_step = max(1, math.ceil(len(text) / max(1, steps)))
    return [text[: min(i + chars_per_step, len(text))] for i in range(0, len(text), chars_per_step)]


@dataclass
class SendOutcome:
    blocked: bool = False
    should_show_upgrade: bool = False
    user_message: Optional[Dict[str, Any]] = None
    assistant_message: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    events: List[str] = field(default_factory=list)


class SendChatMessageUseCase:
    def __init__(
        self,
        session: ChatSession,
        assembler: Optional[AssembleChatContextUseCase] = None,
        gateway: Optional[ConversationGateway] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.assembler = assembler or AssembleChatContextUseCase(settings=self.settings)
        self.gateway = gateway or ConversationGateway()

    def _resolve_campaign(
        self,
        content: str,
        mentioned_campaign: Optional[TopCampaign],
        known_campaigns: Iterable[TopCampaign],
    ) -> Tuple[str, Optional[TopCampaign]]:
        candidates = list(known_campaigns)
        if mentioned_campaign is not None:
            candidates.insert(0, mentioned_campaign)
        resolved, rewritten, _ = resolve_mentions(content, candidates)
        return rewritten, mentioned_campaign or resolved

    async def stream(
        self,
        content: str,
        mentioned_campaign: Optional[TopCampaign] = None,
        performance_view: Optional[str] = None,
        known_campaigns: Iterable[TopCampaign] = (),
    ) -> AsyncIterator[ChatEvent]:
        session = self.session
        sync = session.synchronizer
        text, campaign = self._resolve_campaign(content.strip(), mentioned_campaign, known_campaigns)
        if not text:
            yield "error", {"message": "Message is empty"}
            yield "done", {"success": False}
            return

        async with session.send_lock:
            decision = session.quota.check()
            if not decision.can_send:
                logger.info("Send blocked by quota: user_id=%s", session.user_id)
                yield "blocked", {"blocked": True, "should_show_upgrade": decision.should_show_upgrade}
                yield "done", {"success": False}
                return

            optimistic = sync.add_optimistic(text)
            yield "user_message", optimistic.to_dict()

            try:
                confirmed = await sync.persist_user_message(optimistic)
            except ChatPersistenceError:
                yield "error", {"message": SAVE_FAILED_MESSAGE}
                yield "done", {"success": False}
                return
            session.quota.record_sent()
            yield "user_message", confirmed.to_dict()

            if campaign is not None:
                session.last_mentioned_campaign_id = campaign.id

            try:
                payload = await self.assembler.execute(session.user_id, text, campaign, performance_view)
            except Exception:
                logger.exception("Context assembly failed: user_id=%s", session.user_id)
                yield "error", {"message": UNEXPECTED_MESSAGE}
                yield "done", {"success": False}
                return

            result = await self.gateway.send(payload)
            if not result.success:
                yield "error", {"message": result.error_message or NO_RESPONSE_MESSAGE}
                yield "done", {"success": False}
                return

            if not result.ai_response:
                logger.info("Webhook returned no assistant text: user_id=%s", session.user_id)
                yield "done", {"success": True}
                return

            assistant = sync.append_assistant(result.ai_response, result.message_type or "text", result.operations)
            # Runs as its own task; closing the stream mid-reveal does not cancel it
            persist_task = asyncio.create_task(sync.persist_assistant_message(assistant))
            _background_tasks.add(persist_task)
            persist_task.add_done_callback(_background_tasks.discard)

            steps = self.settings.chat_reveal_steps
            step_delay = self.settings.chat_reveal_duration_ms / 1000 / max(1, steps)
            for chunk in reveal_chunks(result.ai_response, steps):
                yield "reveal", {"text": chunk}
                await asyncio.sleep(step_delay)

            yield "assistant_message", assistant.to_dict()

            persisted = await asyncio.shield(persist_task)
            final = persisted or assistant
            yield "done", {"success": True, "assistant_message": final.to_dict()}

    async def execute(
        self,
        content: str,
        mentioned_campaign: Optional[TopCampaign] = None,
        performance_view: Optional[str] = None,
        known_campaigns: Iterable[TopCampaign] = (),
    ) -> SendOutcome:
        outcome = SendOutcome()
        async for name, data in self.stream(content, mentioned_campaign, performance_view, known_campaigns):
            outcome.events.append(name)
            if name == "blocked":
                outcome.blocked = True
                outcome.should_show_upgrade = data.get("should_show_upgrade", False)
            elif name == "user_message":
                outcome.user_message = data
            elif name == "assistant_message":
                outcome.assistant_message = data
            elif name == "error":
                outcome.error = data.get("message")
            elif name == "done" and data.get("assistant_message"):
                outcome.assistant_message = data["assistant_message"]
        return outcome
