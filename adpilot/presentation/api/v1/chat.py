"""Chat router: message history, send (JSON / SSE), feedback, execution, quota."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, StreamingResponse

from adpilot.application.services.message_synchronizer import MessageNotFoundError
from adpilot.application.services.session_registry import ChatSession, SessionRegistry
from adpilot.application.use_cases.assemble_chat_context import AssembleChatContextUseCase
from adpilot.application.use_cases.execute_message_operations import (
    NO_OPERATIONS_ERROR,
    ExecuteMessageOperationsUseCase,
)
from adpilot.application.use_cases.send_chat_message import SendChatMessageUseCase
from adpilot.domain.repositories.chat_message_repository import ChatPersistenceError
from adpilot.domain.repositories.execution_log_repository import ExecutionLogRepository
from adpilot.domain.services.operation_extractor import extract_executable_operations
from adpilot.infrastructure.execution.execution_client import ExecutionClient
from adpilot.infrastructure.supabase.repositories.execution_log_repository_impl import ExecutionLogRepositoryImpl
from adpilot.infrastructure.webhook.conversation_gateway import ConversationGateway
from adpilot.presentation.api.v1.deps import (
    ChatRequestContext,
    get_chat_session,
    get_registry,
    require_chat_context,
)
from adpilot.presentation.schemas.chat import (
    ExecutionReportResponse,
    FeedbackRequest,
    FeedbackResponse,
    MessageListResponse,
    OperationsPreviewResponse,
    QuotaResponse,
    SendMessageRequest,
    SendMessageResponse,
)

router = APIRouter(prefix="/chat", tags=["chat"])
logger = logging.getLogger(__name__)


# ---------- Collaborators (overridable in tests) ----------

def get_assembler() -> AssembleChatContextUseCase:
    return AssembleChatContextUseCase()


def get_gateway() -> ConversationGateway:
    return ConversationGateway()


def get_execution_client() -> ExecutionClient:
    return ExecutionClient()


def get_execution_log_repo() -> ExecutionLogRepository:
    return ExecutionLogRepositoryImpl()


def _message_list(session: ChatSession) -> MessageListResponse:
    sync = session.synchronizer
    return MessageListResponse(
        messages=[m.to_dict() for m in sync.messages],
        has_more=sync.has_more,
        last_mentioned_campaign_id=session.last_mentioned_campaign_id,
    )


async def _message_content(session: ChatSession, registry: SessionRegistry, message_id: str) -> Dict[str, Any]:
    local = session.synchronizer.find(message_id)
    if local is not None and not local.is_optimistic:
        return {"id": local.id, "content": local.content}
    row = await asyncio.to_thread(registry.chat_repo.get_by_id, session.user_id, message_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return {"id": str(row.get("id")), "content": row.get("content") or ""}


# ---------- Messages ----------

@router.get("/messages", response_model=MessageListResponse)
async def list_messages(
    context: ChatRequestContext = Depends(require_chat_context),
    registry: SessionRegistry = Depends(get_registry),
):
    try:
        session = registry.get(context.user_id)
        if session is None:
            session = await registry.get_or_open(context.user_id)
        else:
            await session.synchronizer.refresh()
    except ChatPersistenceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return _message_list(session)


@router.get("/messages/older", response_model=MessageListResponse)
async def list_older_messages(session: ChatSession = Depends(get_chat_session)):
    try:
        added = await session.synchronizer.load_more()
    except ChatPersistenceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return MessageListResponse(
        messages=[m.to_dict() for m in added],
        has_more=session.synchronizer.has_more,
        last_mentioned_campaign_id=session.last_mentioned_campaign_id,
    )


@router.post("/messages", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    session: ChatSession = Depends(get_chat_session),
    assembler: AssembleChatContextUseCase = Depends(get_assembler),
    gateway: ConversationGateway = Depends(get_gateway),
):
    use_case = SendChatMessageUseCase(session, assembler=assembler, gateway=gateway)
    outcome = await use_case.execute(
        body.message,
        mentioned_campaign=body.mentioned_campaign.to_entity() if body.mentioned_campaign else None,
        performance_view=body.performance_view,
        known_campaigns=[c.to_entity() for c in body.campaigns],
    )
    response = SendMessageResponse(
        blocked=outcome.blocked,
        should_show_upgrade=outcome.should_show_upgrade,
        user_message=outcome.user_message,
        assistant_message=outcome.assistant_message,
        error=outcome.error,
    )
    if outcome.blocked:
        return JSONResponse(status_code=status.HTTP_402_PAYMENT_REQUIRED, content=response.model_dump())
    if outcome.error:
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=response.model_dump())
    return response


@router.post("/messages/stream")
async def stream_message(
    body: SendMessageRequest,
    session: ChatSession = Depends(get_chat_session),
    assembler: AssembleChatContextUseCase = Depends(get_assembler),
    gateway: ConversationGateway = Depends(get_gateway),
):
    use_case = SendChatMessageUseCase(session, assembler=assembler, gateway=gateway)

    async def event_generator():
        try:
            async for name, data in use_case.stream(
                body.message,
                mentioned_campaign=body.mentioned_campaign.to_entity() if body.mentioned_campaign else None,
                performance_view=body.performance_view,
                known_campaigns=[c.to_entity() for c in body.campaigns],
            ):
                yield f"data: {json.dumps({**data, 'type': name}, ensure_ascii=False)}\n\n"
        except Exception:
            logger.exception("SSE event generator error: user_id=%s", session.user_id)
            yield f"data: {json.dumps({'type': 'error', 'message': 'Failed to send message'})}\n\n"
            yield f"data: {json.dumps({'type': 'done', 'success': False})}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.patch("/messages/{message_id}/feedback", response_model=FeedbackResponse)
async def update_feedback(
    message_id: str,
    body: FeedbackRequest,
    session: ChatSession = Depends(get_chat_session),
):
    try:
        value = await session.synchronizer.update_feedback(message_id, body.feedback)
    except MessageNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    except ChatPersistenceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return FeedbackResponse(id=message_id, feedback=value)


@router.get("/messages/{message_id}/operations", response_model=OperationsPreviewResponse)
async def preview_operations(
    message_id: str,
    session: ChatSession = Depends(get_chat_session),
    registry: SessionRegistry = Depends(get_registry),
):
    message = await _message_content(session, registry, message_id)
    operations = extract_executable_operations(message["content"])
    return OperationsPreviewResponse(
        hasExecutableOperations=bool(operations),
        operations=[op.to_dict() for op in operations],
    )


@router.post("/messages/{message_id}/implement", response_model=ExecutionReportResponse)
async def implement_message(
    message_id: str,
    session: ChatSession = Depends(get_chat_session),
    registry: SessionRegistry = Depends(get_registry),
    client: ExecutionClient = Depends(get_execution_client),
    log_repo: ExecutionLogRepository = Depends(get_execution_log_repo),
):
    message = await _message_content(session, registry, message_id)
    use_case = ExecuteMessageOperationsUseCase(
        chat_repo=registry.chat_repo,
        log_repo=log_repo,
        client=client,
        on_implemented=session.synchronizer.mirror_implemented,
    )
    report = await use_case.execute(session.user_id, message["id"], message["content"])
    if report.error == NO_OPERATIONS_ERROR:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=report.to_dict())
    return report.to_dict()


# ---------- Session ----------

@router.get("/quota", response_model=QuotaResponse)
async def get_quota(session: ChatSession = Depends(get_chat_session)):
    return session.quota.to_dict()


@router.post("/session/refresh", response_model=MessageListResponse)
async def refresh_session(session: ChatSession = Depends(get_chat_session)):
    try:
        await asyncio.gather(session.synchronizer.refresh(), session.quota.sync())
    except ChatPersistenceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return _message_list(session)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    context: ChatRequestContext = Depends(require_chat_context),
    registry: SessionRegistry = Depends(get_registry),
):
    session: Optional[ChatSession] = registry.get(context.user_id)
    if session is not None:
        session.synchronizer.clear()
    await registry.close(context.user_id)


@router.get("/health")
def chat_health():
    return {"status": "ok"}
