"""
メッセージに含まれる広告操作の実行 (Execution Coordinator)

1. メッセージ本文から操作を再抽出（0件なら即エラー）
2. 実行サービスへバッチ送信
3. 1件でも成功すれば implemented を立て、成功した操作ごとに監査ログを書く
4. 全件成功の場合のみ success=True を返す（結果一覧は常に全件返す）
"""
from __future__ import annotations
import asyncio
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from adpilot.domain.entities.operation import (
    ENTITY_AD,
    ENTITY_AD_SET,
    ENTITY_CAMPAIGN,
    ExecutableOperation,
    ExecutionLogEntry,
    ExecutionReport,
    OperationResult,
)
from adpilot.domain.repositories.chat_message_repository import ChatMessageRepository
from adpilot.domain.repositories.execution_log_repository import ExecutionLogRepository
from adpilot.domain.services.operation_extractor import extract_executable_operations
from adpilot.infrastructure.execution.execution_client import ExecutionClient, ExecutionDispatchError
from adpilot.infrastructure.supabase.repositories.chat_message_repository_impl import ChatMessageRepositoryImpl
from adpilot.infrastructure.supabase.repositories.execution_log_repository_impl import ExecutionLogRepositoryImpl

logger = logging.getLogger(__name__)

NO_OPERATIONS_ERROR = "No executable operations found"
PARTIAL_FAILURE_ERROR = "Some operations failed"
DEFAULT_ENTITY_NAME = "Campaign"

_ENTITY_ID = re.compile(r"/(\d+)")


def extract_entity_id(endpoint: str) -> Optional[str]:
    match = _ENTITY_ID.search(endpoint or "")
    return match.group(1) if match else None


def infer_entity_type(operation: ExecutableOperation) -> str:
    params = operation.params or {}
    if "adsets" in operation.endpoint or params.get("adset_id"):
        return ENTITY_AD_SET
    if "ads" in operation.endpoint or params.get("ad_id"):
        return ENTITY_AD
    return ENTITY_CAMPAIGN


def _uniform_failure(operations: List[ExecutableOperation], error: str) -> List[OperationResult]:
    return [OperationResult(operation=op, success=False, error=error) for op in operations]


def _parse_results(data: Dict[str, Any], operations: List[ExecutableOperation]) -> List[OperationResult]:
    raw_results = data.get("results")
    if not isinstance(raw_results, list):
        # Overall verdict only
        service_error = data.get("error")
        return [
            OperationResult(
                operation=op,
                success=not service_error,
                error=service_error,
                entity_name=f"Operation {index + 1}",
            )
            for index, op in enumerate(operations)
        ]

    results: List[OperationResult] = []
    for index, item in enumerate(raw_results):
        item = item if isinstance(item, dict) else {}
        raw_op = item.get("operation")
        if isinstance(raw_op, dict):
            operation = ExecutableOperation.from_dict(raw_op)
        elif index < len(operations):
            operation = operations[index]
        else:
            continue
        results.append(
            OperationResult(
                operation=operation,
                success=bool(item.get("success")),
                error=item.get("error"),
                entity_name=item.get("entityName") or item.get("entity_name"),
            )
        )
    return results


class ExecuteMessageOperationsUseCase:
    def __init__(
        self,
        chat_repo: Optional[ChatMessageRepository] = None,
        log_repo: Optional[ExecutionLogRepository] = None,
        client: Optional[ExecutionClient] = None,
        on_implemented: Optional[Callable[[str], None]] = None,
    ):
        self.chat_repo = chat_repo or ChatMessageRepositoryImpl()
        self.log_repo = log_repo or ExecutionLogRepositoryImpl()
        self.client = client or ExecutionClient()
        self.on_implemented = on_implemented

    async def execute(self, user_id: str, message_id: str, content: str) -> ExecutionReport:
        operations = extract_executable_operations(content)
        if not operations:
            logger.info("No executable operations: user_id=%s message_id=%s", user_id, message_id)
            return ExecutionReport(success=False, results=[], error=NO_OPERATIONS_ERROR)

        try:
            data = await self.client.dispatch(operations)
        except ExecutionDispatchError as e:
            return ExecutionReport(success=False, results=_uniform_failure(operations, str(e)), error=str(e))

        if data.get("error") and not data.get("results"):
            error = str(data["error"])
            logger.warning("Execution service reported failure: user_id=%s error=%s", user_id, error)
            return ExecutionReport(success=False, results=_uniform_failure(operations, error), error=error)

        results = _parse_results(data, operations)
        all_success = bool(results) and all(r.success for r in results)
        any_success = any(r.success for r in results)

        if any_success:
            await self._record_success(user_id, message_id, results)

        logger.info(
            "Execution finished: user_id=%s message_id=%s succeeded=%d failed=%d",
            user_id,
            message_id,
            sum(1 for r in results if r.success),
            sum(1 for r in results if not r.success),
        )
        return ExecutionReport(
            success=all_success,
            results=results,
            error=None if all_success else PARTIAL_FAILURE_ERROR,
        )

    async def _record_success(self, user_id: str, message_id: str, results: List[OperationResult]) -> None:
        try:
            await asyncio.to_thread(self.chat_repo.mark_implemented, user_id, message_id)
        except Exception as e:
            logger.error("Failed to flag message implemented: user_id=%s message_id=%s error=%s", user_id, message_id, e)
        else:
            if self.on_implemented is not None:
                self.on_implemented(message_id)

        for result in results:
            if not result.success:
                continue
            op = result.operation
            entry = ExecutionLogEntry(
                user_id=user_id,
                entity_id=extract_entity_id(op.endpoint),
                entity_type=infer_entity_type(op),
                entity_name=result.entity_name or DEFAULT_ENTITY_NAME,
                operation_method=op.method,
                operation_endpoint=op.endpoint,
                operation_params=op.params or {},
            )
            try:
                await asyncio.to_thread(self.log_repo.insert, entry)
            except Exception as e:
                logger.error(
                    "Execution log write failed: user_id=%s endpoint=%s error=%s",
                    user_id,
                    op.endpoint,
                    e,
                )
