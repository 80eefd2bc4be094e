"""
メッセージストア同期サービス

1ユーザー分の表示用メッセージリストを保持する。状態の更新はすべて
``adpilot.domain.services.message_list`` の純粋関数 (reducer) を通して行い、
ロックは持たない。初回ロード・追加ロード・Realtime プッシュ・楽観的送信の
どの順序で差分が届いても、重複なし・時系列順が保たれる。
"""
from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from adpilot.domain.entities.chat_message import (
    ASSISTANT_ROLE,
    DB_ASSISTANT_ROLE,
    FEEDBACK_VALUES,
    USER_ROLE,
    ChatMessage,
)
from adpilot.domain.repositories.chat_message_repository import ChatMessageRepository
from adpilot.domain.services import message_list
from adpilot.domain.services.message_list import MessageListState

logger = logging.getLogger(__name__)


class MessageNotFoundError(LookupError):
    pass


def _preview(text: str, limit: int = 40) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class MessageSynchronizer:
    def __init__(self, user_id: str, repo: ChatMessageRepository, page_size: int = 200):
        self.user_id = user_id
        self.repo = repo
        self.page_size = page_size
        self.state = MessageListState()

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self.state.messages)

    @property
    def has_more(self) -> bool:
        return self.state.has_more

    def find(self, identity: str) -> Optional[ChatMessage]:
        return self.state.find(identity)

    # ── Pull ──

    async def load_initial(self) -> List[ChatMessage]:
        rows = await asyncio.to_thread(self.repo.list_page, self.user_id, self.page_size)
        self.state = message_list.apply_initial_page(self.state, rows, self.page_size)
        logger.info("Loaded initial page: user_id=%s rows=%d has_more=%s", self.user_id, len(rows), self.state.has_more)
        return self.messages

    async def load_more(self) -> List[ChatMessage]:
        """Prepend the next older page; returns only the newly added messages."""
        if not self.state.has_more or self.state.oldest_cursor is None:
            return []
        before_ids = set(self.state.ids)
        rows = await asyncio.to_thread(
            self.repo.list_page, self.user_id, self.page_size, self.state.oldest_cursor
        )
        self.state = message_list.apply_older_page(self.state, rows, self.page_size)
        added = [m for m in self.state.messages if m.id not in before_ids]
        logger.info("Loaded older page: user_id=%s rows=%d added=%d has_more=%s", self.user_id, len(rows), len(added), self.state.has_more)
        return added

    async def refresh(self) -> List[ChatMessage]:
        self.state = MessageListState(messages=tuple(m for m in self.state.messages if m.is_optimistic))
        return await self.load_initial()

    def clear(self) -> None:
        """Drop local state only; the store is untouched."""
        self.state = MessageListState()

    # ── Push ──

    def on_realtime_row(self, row: Dict[str, Any]) -> None:
        self.state = message_list.apply_pushed_row(self.state, row, self.page_size)

    # ── Send ──

    def add_optimistic(self, content: str) -> ChatMessage:
        message = ChatMessage.optimistic(content, role=USER_ROLE, metadata={"type": "text"})
        self.state = message_list.append_local(self.state, message)
        return message

    async def persist_user_message(self, message: ChatMessage) -> ChatMessage:
        """Persist an optimistic user message and bind its durable id.

        On ChatPersistenceError the optimistic entry stays in the list.
        """
        row = await asyncio.to_thread(
            self.repo.insert_message,
            self.user_id,
            USER_ROLE,
            message.content,
            dict(message.metadata),
        )
        self.state = message_list.confirm_message(self.state, message.client_id, row)
        logger.info("User message persisted: user_id=%s id=%s preview=%r", self.user_id, row.get("id"), _preview(message.content))
        return self.find(str(row.get("id"))) or self.find(message.client_id) or message

    def append_assistant(self, content: str, message_type: str = "text", operations: Optional[List[Any]] = None) -> ChatMessage:
        operations = operations or []
        message = ChatMessage.optimistic(
            content,
            role=ASSISTANT_ROLE,
            metadata={
                "type": message_type,
                "operations": operations,
                "has_executable_operations": len(operations) > 0,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            prefix="ai",
        )
        self.state = message_list.append_local(self.state, message)
        return message

    async def persist_assistant_message(self, message: ChatMessage) -> Optional[ChatMessage]:
        """Failures are logged, not raised; the local copy remains visible."""
        try:
            row = await asyncio.to_thread(
                self.repo.insert_message,
                self.user_id,
                DB_ASSISTANT_ROLE,
                message.content,
                dict(message.metadata),
            )
        except Exception as e:
            logger.error("Assistant message persist failed: user_id=%s client_id=%s error=%s", self.user_id, message.client_id, e)
            return None
        self.state = message_list.confirm_message(self.state, message.client_id, row)
        return self.find(message.client_id)

    # ── Mutations (store first, then mirror) ──

    async def _current_feedback(self, message_id: str) -> Optional[str]:
        local = self.find(message_id)
        if local is not None:
            return local.feedback
        row = await asyncio.to_thread(self.repo.get_by_id, self.user_id, message_id)
        if row is None:
            raise MessageNotFoundError(message_id)
        return row.get("feedback")

    async def update_feedback(self, message_id: str, requested: Optional[str]) -> Optional[str]:
        if requested is not None and requested not in FEEDBACK_VALUES:
            raise ValueError(f"Unsupported feedback: {requested}")
        local = self.find(message_id)
        if local is not None and local.is_optimistic:
            raise MessageNotFoundError(message_id)
        durable_id = local.id if local is not None else message_id

        current = await self._current_feedback(durable_id)
        new_value = message_list.toggle_feedback(current, requested)
        await asyncio.to_thread(self.repo.update_feedback, self.user_id, durable_id, new_value)
        self.state = message_list.update_message(self.state, durable_id, feedback=new_value)
        logger.info("Feedback updated: user_id=%s id=%s feedback=%s", self.user_id, durable_id, new_value)
        return new_value

    def mirror_implemented(self, message_id: str) -> None:
        self.state = message_list.update_message(self.state, message_id, implemented=True)
