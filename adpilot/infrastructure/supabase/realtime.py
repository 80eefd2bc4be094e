"""
chat_messages の INSERT をユーザー単位で購読する Realtime チャネル

ライフサイクルは idle -> active -> closed の一方向。再購読する場合は
新しいインスタンスを作り、古いものを先に close する (SessionRegistry が保証)。
"""
from __future__ import annotations
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from adpilot.infrastructure.supabase.client import get_async_supabase

logger = logging.getLogger(__name__)

IDLE = "idle"
ACTIVE = "active"
CLOSED = "closed"

RowHandler = Callable[[Dict[str, Any]], None]


def extract_inserted_row(payload: Any) -> Optional[Dict[str, Any]]:
    """Pull the inserted row out of a postgres_changes payload.

    Depending on the realtime client version the row sits under
    ``data.record`` or ``new``.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("record"), dict):
        return data["record"]
    if isinstance(payload.get("new"), dict):
        return payload["new"]
    if isinstance(payload.get("record"), dict):
        return payload["record"]
    return None


class MessageSubscription:
    TABLE = "chat_messages"

    def __init__(
        self,
        user_id: str,
        on_row: RowHandler,
        client_factory: Callable[[], Awaitable[Any]] = get_async_supabase,
    ):
        self.user_id = user_id
        self._on_row = on_row
        self._client_factory = client_factory
        self._client: Any = None
        self._channel: Any = None
        self.state = IDLE

    @property
    def channel_name(self) -> str:
        return f"chat_messages:{self.user_id}"

    @property
    def is_active(self) -> bool:
        return self.state == ACTIVE

    def _handle(self, payload: Any) -> None:
        if self.state != ACTIVE:
            return
        row = self._extract(payload)
        if row is None:
            logger.debug("Ignoring realtime payload without a row: user_id=%s", self.user_id)
            return
        if row.get("user_id") not in (None, self.user_id):
            return
        try:
            self._on_row(row)
        except Exception:
            logger.exception("Realtime row handler failed: user_id=%s row_id=%s", self.user_id, row.get("id"))

    _extract = staticmethod(extract_inserted_row)

    async def open(self) -> None:
        if self.state != IDLE:
            raise RuntimeError(f"Subscription already {self.state}")
        self._client = await self._client_factory()
        channel = self._client.channel(self.channel_name)
        channel.on_postgres_changes(
            "INSERT",
            schema="public",
            table=self.TABLE,
            filter=f"user_id=eq.{self.user_id}",
            callback=self._handle,
        )
        self._channel = channel
        self.state = ACTIVE
        await channel.subscribe()
        logger.info("Realtime subscription opened: channel=%s", self.channel_name)

    async def close(self) -> None:
        if self.state == CLOSED:
            return
        previous = self.state
        self.state = CLOSED
        if previous != ACTIVE or self._channel is None:
            return
        try:
            await self._client.remove_channel(self._channel)
        except Exception as e:
            logger.warning("Realtime teardown failed: channel=%s error=%s", self.channel_name, e)
        finally:
            self._channel = None
        logger.info("Realtime subscription closed: channel=%s", self.channel_name)
