from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from adpilot.application.services.session_registry import ChatSession, SessionRegistry, get_session_registry
from adpilot.domain.repositories.chat_message_repository import ChatPersistenceError
from adpilot.infrastructure.supabase.client import get_supabase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatRequestContext:
    user_id: str
    email: Optional[str] = None


def _verify_token(token: str) -> ChatRequestContext:
    res = get_supabase().auth.get_user(token)
    user = getattr(res, "user", None)
    if user is None or not getattr(user, "id", None):
        raise ValueError("Invalid session")
    return ChatRequestContext(user_id=str(user.id), email=getattr(user, "email", None))


async def require_chat_context(
    authorization: Annotated[str | None, Header()] = None,
) -> ChatRequestContext:
    token: str | None = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return await asyncio.to_thread(_verify_token, token)
    except Exception as exc:
        logger.info("Token verification failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token") from exc


def get_registry() -> SessionRegistry:
    return get_session_registry()


async def get_chat_session(
    context: ChatRequestContext = Depends(require_chat_context),
    registry: SessionRegistry = Depends(get_registry),
) -> ChatSession:
    try:
        return await registry.get_or_open(context.user_id)
    except ChatPersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to load messages") from exc
