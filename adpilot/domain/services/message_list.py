"""Pure reducers over the visible message list.

Four independent flows write to the same list: initial load, load-more,
realtime push and optimistic send/confirm. None of them holds a lock, so each
one is expressed as ``new_state = reducer(old_state, delta)``. Every reducer is
idempotent for a delta it has already seen and keeps the list in ascending
``created_at`` order.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from adpilot.domain.entities.chat_message import CONFIRMED, ChatMessage


@dataclass(frozen=True)
class MessageListState:
    messages: Tuple[ChatMessage, ...] = ()
    # created_at of the oldest row loaded from the store (pagination cursor)
    oldest_cursor: Optional[datetime] = None
    has_more: bool = True

    def find(self, identity: Optional[str]) -> Optional[ChatMessage]:
        for message in self.messages:
            if message.answers_to(identity):
                return message
        return None

    @property
    def ids(self) -> List[str]:
        return [m.id for m in self.messages]


def _is_represented(messages: Iterable[ChatMessage], incoming: ChatMessage) -> bool:
    for existing in messages:
        if existing.answers_to(incoming.id):
            return True
        if incoming.client_id and existing.answers_to(incoming.client_id):
            return True
    return False


def _dedupe(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    out: List[ChatMessage] = []
    for message in messages:
        if not _is_represented(out, message):
            out.append(message)
    return out


def _insert_chronological(messages: Sequence[ChatMessage], incoming: ChatMessage) -> Tuple[ChatMessage, ...]:
    index = len(messages)
    while index > 0 and messages[index - 1].created_at > incoming.created_at:
        index -= 1
    return tuple(messages[:index]) + (incoming,) + tuple(messages[index:])


def _rows_to_chronological(rows: Sequence[Dict[str, Any]]) -> List[ChatMessage]:
    # Store pages arrive newest first
    return _dedupe(ChatMessage.from_row(row) for row in reversed(list(rows)))


def apply_initial_page(
    state: MessageListState, rows: Sequence[Dict[str, Any]], page_size: int
) -> MessageListState:
    page = _rows_to_chronological(rows)
    # Unconfirmed optimistic messages survive a reload unless the page already holds them
    pending = [m for m in state.messages if m.is_optimistic and not _is_represented(page, m)]
    messages: Tuple[ChatMessage, ...] = tuple(page)
    for message in pending:
        messages = _insert_chronological(messages, message)
    return MessageListState(
        messages=messages,
        oldest_cursor=page[0].created_at if page else None,
        has_more=len(rows) >= page_size,
    )


def apply_older_page(
    state: MessageListState, rows: Sequence[Dict[str, Any]], page_size: int
) -> MessageListState:
    page = _rows_to_chronological(rows)
    older = [m for m in page if not _is_represented(state.messages, m)]
    cursor = state.oldest_cursor
    if page and (cursor is None or page[0].created_at < cursor):
        cursor = page[0].created_at
    head = state.messages[0].created_at if state.messages else None
    prepend = [m for m in older if head is None or m.created_at <= head]
    messages = tuple(prepend) + state.messages
    for message in older[len(prepend):]:
        messages = _insert_chronological(messages, message)
    return MessageListState(
        messages=messages,
        oldest_cursor=cursor,
        has_more=state.has_more and len(rows) >= page_size,
    )


def append_local(state: MessageListState, message: ChatMessage) -> MessageListState:
    """Append a client-produced message at the end ("now")."""
    if _is_represented(state.messages, message):
        return state
    return replace(state, messages=state.messages + (message,))


def confirm_message(
    state: MessageListState, client_id: str, row: Dict[str, Any]
) -> MessageListState:
    """Bind the durable id of *row* onto the optimistic message *client_id*.

    Position and timestamp stay as they are; only the identity changes.
    """
    durable = ChatMessage.from_row(row)
    target = state.find(client_id)
    if target is None:
        return state
    if target.id == durable.id and not target.is_optimistic:
        return state
    if any(m is not target and m.answers_to(durable.id) for m in state.messages):
        return state
    confirmed = replace(
        target,
        id=durable.id,
        client_id=target.client_id or client_id,
        metadata={**target.metadata, **durable.metadata},
        sync_state=CONFIRMED,
    )
    return replace(
        state,
        messages=tuple(confirmed if m is target else m for m in state.messages),
    )


def apply_pushed_row(
    state: MessageListState, row: Dict[str, Any], page_size: int
) -> MessageListState:
    incoming = ChatMessage.from_row(row)
    if any(m.answers_to(incoming.id) for m in state.messages):
        return state
    if incoming.client_id and state.find(incoming.client_id) is not None:
        return confirm_message(state, incoming.client_id, row)

    messages = _insert_chronological(state.messages, incoming)
    if len(messages) <= page_size:
        return replace(state, messages=messages)

    # Keep the newest page_size entries; trimmed rows stay reachable via load-more
    messages = messages[len(messages) - page_size:]
    confirmed = [m for m in messages if not m.is_optimistic]
    return MessageListState(
        messages=messages,
        oldest_cursor=confirmed[0].created_at if confirmed else state.oldest_cursor,
        has_more=True,
    )


def update_message(state: MessageListState, identity: str, **changes: Any) -> MessageListState:
    target = state.find(identity)
    if target is None:
        return state
    updated = replace(target, **changes)
    return replace(
        state,
        messages=tuple(updated if m is target else m for m in state.messages),
    )


def toggle_feedback(current: Optional[str], requested: Optional[str]) -> Optional[str]:
    """Selecting the active feedback value again clears it."""
    if requested is not None and current == requested:
        return None
    return requested
