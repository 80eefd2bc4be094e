"""
API tests for the chat router (FastAPI TestClient with dependency overrides)
"""
import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from adpilot.application.services.session_registry import SessionRegistry
from adpilot.domain.repositories.execution_log_repository import ExecutionLogRepository
from adpilot.infrastructure.cache.last_campaign_cache import LastCampaignCache
from adpilot.infrastructure.config.settings import get_settings
from adpilot.infrastructure.webhook.conversation_gateway import GatewayResult
from adpilot.main import app
from adpilot.presentation.api.v1.chat import (
    get_assembler,
    get_execution_client,
    get_execution_log_repo,
    get_gateway,
)
from adpilot.presentation.api.v1.deps import ChatRequestContext, get_registry, require_chat_context
from tests.conftest import InMemoryChatMessageRepository, make_row

BASE = "/api/v1/chat"
OPS_CONTENT = 'Pause the ad set:\n[{"method": "POST", "endpoint": "/111", "params": {"status": "PAUSED"}}]'


class NullSubscription:
    def __init__(self, user_id, on_row):
        self.on_row = on_row

    async def open(self):
        pass

    async def close(self):
        pass


@pytest.fixture
def store():
    return InMemoryChatMessageRepository([
        make_row(0, content="How is my campaign?"),
        make_row(1, role="ai", content=OPS_CONTENT),
        make_row(2, content="Thanks"),
    ])


@pytest.fixture
def collaborators():
    assembler = Mock()
    assembler.execute = AsyncMock(return_value={"request_id": "r-1"})
    gateway = Mock()
    gateway.send = AsyncMock(return_value=GatewayResult(success=True, ai_response="All good.", message_type="text"))
    execution_client = Mock()
    execution_client.dispatch = AsyncMock(return_value={"results": [{"success": True, "entityName": "Broad"}]})
    log_repo = Mock(spec=ExecutionLogRepository)
    return {"assembler": assembler, "gateway": gateway, "client": execution_client, "log_repo": log_repo}


@pytest.fixture
def registry(store, mock_account_repo, mock_memory_repo):
    return SessionRegistry(
        chat_repo=store,
        account_repo=mock_account_repo,
        memory_repo=mock_memory_repo,
        subscription_factory=NullSubscription,
        cache=LastCampaignCache(),
    )


@pytest.fixture
def client(registry, collaborators, monkeypatch):
    monkeypatch.setattr(get_settings(), "chat_reveal_duration_ms", 0)
    app.dependency_overrides[require_chat_context] = lambda: ChatRequestContext(user_id="user-1")
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_assembler] = lambda: collaborators["assembler"]
    app.dependency_overrides[get_gateway] = lambda: collaborators["gateway"]
    app.dependency_overrides[get_execution_client] = lambda: collaborators["client"]
    app.dependency_overrides[get_execution_log_repo] = lambda: collaborators["log_repo"]
    yield TestClient(app)
    app.dependency_overrides.clear()


def _sse_events(text):
    return [json.loads(line[len("data: "):]) for line in text.splitlines() if line.startswith("data: ")]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get(f"{BASE}/health").json() == {"status": "ok"}


def test_missing_token_is_unauthorized(client):
    app.dependency_overrides.pop(require_chat_context)

    response = client.get(f"{BASE}/messages")

    assert response.status_code == 401


def test_list_messages(client):
    response = client.get(f"{BASE}/messages")

    assert response.status_code == 200
    data = response.json()
    assert [m["id"] for m in data["messages"]] == ["row-0", "row-1", "row-2"]
    assert data["messages"][1]["role"] == "assistant"
    assert data["has_more"] is False


def test_older_messages_when_everything_is_loaded(client):
    response = client.get(f"{BASE}/messages/older")

    assert response.status_code == 200
    assert response.json()["messages"] == []


def test_send_message(client, store):
    response = client.post(f"{BASE}/messages", json={"message": "How are sales?"})

    assert response.status_code == 200
    data = response.json()
    assert data["user_message"]["content"] == "How are sales?"
    assert data["assistant_message"]["content"] == "All good."
    assert [r["role"] for r in store.rows[-2:]] == ["user", "ai"]


def test_send_message_blocked_by_quota(client, store):
    store.rows.extend(make_row(10 + i) for i in range(10))

    response = client.post(f"{BASE}/messages", json={"message": "one more"})

    assert response.status_code == 402
    assert response.json()["should_show_upgrade"] is True


def test_send_message_gateway_failure(client, collaborators):
    collaborators["gateway"].send.return_value = GatewayResult(success=False, error_message="Server error: 500")

    response = client.post(f"{BASE}/messages", json={"message": "hi"})

    assert response.status_code == 502
    assert response.json()["error"] == "Server error: 500"


def test_send_message_validation(client):
    assert client.post(f"{BASE}/messages", json={"message": ""}).status_code == 422


def test_stream_message(client):
    response = client.post(f"{BASE}/messages/stream", json={"message": "hi"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _sse_events(response.text)
    types = [e["type"] for e in events]
    assert types[:2] == ["user_message", "user_message"]
    assert events[0]["content"] == "hi"
    assert "assistant_message" in types
    assert "reveal" in types
    assert events[-1]["type"] == "done"
    assert events[-1]["success"] is True
    assert events[-1]["assistant_message"]["content"] == "All good."


def test_feedback_toggle(client, store):
    first = client.patch(f"{BASE}/messages/row-1/feedback", json={"feedback": "positive"})
    second = client.patch(f"{BASE}/messages/row-1/feedback", json={"feedback": "positive"})

    assert first.json() == {"id": "row-1", "feedback": "positive"}
    assert second.json() == {"id": "row-1", "feedback": None}
    assert store.get_by_id("user-1", "row-1")["feedback"] is None


def test_feedback_unknown_message(client):
    response = client.patch(f"{BASE}/messages/missing/feedback", json={"feedback": "negative"})

    assert response.status_code == 404


def test_feedback_rejects_other_values(client):
    response = client.patch(f"{BASE}/messages/row-1/feedback", json={"feedback": "meh"})

    assert response.status_code == 422


def test_preview_operations(client):
    response = client.get(f"{BASE}/messages/row-1/operations")

    assert response.json() == {
        "hasExecutableOperations": True,
        "operations": [{"method": "POST", "endpoint": "/111", "params": {"status": "PAUSED"}}],
    }


def test_implement_message(client, store, collaborators):
    response = client.post(f"{BASE}/messages/row-1/implement")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["summary"] == {"succeeded": 1, "failed": 0}
    assert data["results"][0]["entityName"] == "Broad"
    assert store.get_by_id("user-1", "row-1")["implemented"] is True
    collaborators["log_repo"].insert.assert_called_once()

    messages = client.get(f"{BASE}/messages").json()["messages"]
    assert messages[1]["implemented"] is True


def test_implement_without_operations(client, collaborators):
    response = client.post(f"{BASE}/messages/row-0/implement")

    assert response.status_code == 422
    assert response.json()["error"] == "No executable operations found"
    collaborators["client"].dispatch.assert_not_awaited()


def test_quota(client):
    data = client.get(f"{BASE}/quota").json()

    assert data["user_message_count"] == 2
    assert data["is_free_plan"] is True
    assert data["can_send"] is True


def test_refresh_and_close_session(client, registry):
    assert client.post(f"{BASE}/session/refresh").status_code == 200
    assert registry.get("user-1") is not None

    response = client.delete(f"{BASE}/session")

    assert response.status_code == 204
    assert registry.get("user-1") is None


def test_whitespace_only_message_is_rejected(client, collaborators):
    response = client.post(f"{BASE}/messages", json={"message": "   "})

    assert response.status_code == 422
    collaborators["gateway"].send.assert_not_awaited()
