"""
広告操作を実行する Supabase Edge Function のクライアント

操作バッチを 1 リクエストで送信する。トランスポート/サービスレベルの失敗は
ExecutionDispatchError に変換し、バッチ全体の失敗として扱うのは呼び出し側。
"""
from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from adpilot.domain.entities.operation import ExecutableOperation
from adpilot.infrastructure.config.settings import get_settings
from adpilot.infrastructure.supabase.client import get_supabase

logger = logging.getLogger(__name__)


class ExecutionDispatchError(RuntimeError):
    pass


class ExecutionClient:
    def __init__(self, function_name: Optional[str] = None):
        self.function_name = function_name or get_settings().execution_function_name

    def _invoke(self, operations: List[ExecutableOperation]) -> Any:
        sb = get_supabase()
        return sb.functions.invoke(
            self.function_name,
            invoke_options={
                "body": {"operations": [op.to_dict() for op in operations]},
                "responseType": "json",
            },
        )

    async def dispatch(self, operations: List[ExecutableOperation]) -> Dict[str, Any]:
        """Send the batch and return the service's JSON body (``results`` and/or ``error``)."""
        logger.info("Dispatching %d operation(s) to %s", len(operations), self.function_name)
        try:
            data = await asyncio.to_thread(self._invoke, operations)
        except Exception as e:
            logger.error("Execution dispatch failed: function=%s error=%s", self.function_name, e)
            message = getattr(e, "message", None) or str(e) or "Execution failed"
            raise ExecutionDispatchError(message) from e

        if isinstance(data, (bytes, bytearray)):
            data = data.decode("utf-8", errors="replace")
        if isinstance(data, str):
            try:
                data = json.loads(data) if data.strip() else {}
            except ValueError as e:
                raise ExecutionDispatchError("Invalid response from execution service") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ExecutionDispatchError("Invalid response from execution service")
        return data
