"""
会話バックエンド (Webhook) へのゲートウェイ

組み立てたコンテキストを POST し、応答を NormalizedResponse に正規化する。
タイムアウト・接続失敗・その他の例外はそれぞれ異なるユーザー向けメッセージに
変換し、呼び出し元へ例外は送出しない。自動リトライは行わない。
"""
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from adpilot.infrastructure.config.settings import get_settings
from adpilot.infrastructure.webhook.response_normalizer import normalize_remote_response

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Request timed out. Please try again."
CONNECTION_MESSAGE = "Unable to connect to AI service. Please check your connection and try again."
GENERIC_MESSAGE = "An unexpected error occurred. Please try again."


@dataclass
class GatewayResult:
    success: bool
    ai_response: Optional[str] = None
    message_type: Optional[str] = None
    operations: List[Any] = field(default_factory=list)
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.ai_response is not None:
            data["aiResponse"] = self.ai_response
            data["messageType"] = self.message_type or "text"
            data["operations"] = self.operations
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data


class ConversationGateway:
    def __init__(
        self,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.url = url or settings.chat_webhook_url
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.chat_webhook_timeout_seconds
        self._transport = transport

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            return await client.post(
                self.url,
                json=payload,
                headers={"Accept": "application/json"},
            )

    async def send(self, payload: Dict[str, Any]) -> GatewayResult:
        started = time.monotonic()
        request_id = payload.get("request_id")
        try:
            # Hard ceiling over connect + read + body; the in-flight request is cancelled on expiry
            response = await asyncio.wait_for(self._post(payload), timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Webhook timed out: request_id=%s after=%.1fs", request_id, time.monotonic() - started)
            return GatewayResult(success=False, error_message=TIMEOUT_MESSAGE)
        except httpx.RequestError as e:
            logger.warning("Webhook connection failed: request_id=%s error=%s", request_id, e)
            return GatewayResult(success=False, error_message=CONNECTION_MESSAGE)
        except Exception:
            logger.exception("Webhook call failed: request_id=%s", request_id)
            return GatewayResult(success=False, error_message=GENERIC_MESSAGE)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("Webhook responded: request_id=%s status=%s elapsed_ms=%s", request_id, response.status_code, elapsed_ms)

        if not response.is_success:
            logger.warning("Webhook error body: %s", response.text[:300])
            return GatewayResult(success=False, error_message=f"Server error: {response.status_code}")

        normalized = normalize_remote_response(response.text)
        if normalized.ai_response is None:
            return GatewayResult(success=True)
        return GatewayResult(
            success=True,
            ai_response=normalized.ai_response,
            message_type=normalized.message_type,
            operations=normalized.operations,
        )
