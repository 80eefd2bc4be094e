"""
Pytest configuration and shared fixtures for the chat backend tests
"""
import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from adpilot.domain.entities.campaign import TopCampaign
from adpilot.domain.repositories.account_repository import AccountRepository
from adpilot.domain.repositories.chat_message_repository import ChatMessageRepository, ChatPersistenceError
from adpilot.domain.repositories.conversation_memory_repository import ConversationMemoryRepository

BASE_TIME = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


def make_row(index: int, role: str = "user", user_id: str = "user-1", **extra) -> Dict[str, Any]:
    """chat_messages row whose created_at is BASE_TIME + index minutes."""
    row = {
        "id": f"row-{index}",
        "user_id": user_id,
        "role": role,
        "content": f"message {index}",
        "metadata": {"type": "text"},
        "implemented": False,
        "feedback": None,
        "created_at": (BASE_TIME + timedelta(minutes=index)).isoformat(),
    }
    row.update(extra)
    return row


# ---------- Fake Supabase query builder ----------

class FakeQuery:
    """Chainable stand-in for the postgrest query builder; records every call."""

    def __init__(self, table: str, result: Any):
        self.table_name = table
        self.calls: List[tuple] = []
        self._result = result

    def __getattr__(self, name):
        def _call(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return _call

    @property
    def not_(self):
        self.calls.append(("not_", (), {}))
        return self

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def execute(self):
        if isinstance(self._result, Exception):
            raise self._result
        data, count = self._result
        return SimpleNamespace(data=data, count=count)


class FakeSupabase:
    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.queries: List[FakeQuery] = []

    def respond(self, table: str, data: Any = None, count: Optional[int] = None) -> None:
        self.responses[table] = (data, count)

    def fail(self, table: str, error: Exception) -> None:
        self.responses[table] = error

    def table(self, name: str) -> FakeQuery:
        query = FakeQuery(name, self.responses.get(name, ([], None)))
        self.queries.append(query)
        return query


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


# ---------- In-memory repositories ----------

class InMemoryChatMessageRepository(ChatMessageRepository):
    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows: List[Dict[str, Any]] = list(rows or [])
        self._ids = itertools.count(1000)
        self.fail_inserts = False
        self.fail_updates = False

    def _sorted_desc(self, user_id: str) -> List[Dict[str, Any]]:
        rows = [r for r in self.rows if r["user_id"] == user_id]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    def list_page(self, user_id, limit, before=None):
        rows = self._sorted_desc(user_id)
        if before is not None:
            rows = [r for r in rows if datetime.fromisoformat(r["created_at"]) < before]
        return [dict(r) for r in rows[:limit]]

    def get_by_id(self, user_id, message_id):
        for row in self.rows:
            if row["id"] == message_id and row["user_id"] == user_id:
                return dict(row)
        return None

    def insert_message(self, user_id, role, content, metadata):
        if self.fail_inserts:
            raise ChatPersistenceError("Failed to save message")
        row = {
            "id": f"row-{next(self._ids)}",
            "user_id": user_id,
            "role": role,
            "content": content,
            "metadata": dict(metadata),
            "implemented": False,
            "feedback": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.rows.append(row)
        return dict(row)

    def update_feedback(self, user_id, message_id, feedback):
        if self.fail_updates:
            raise ChatPersistenceError("Failed to update feedback")
        for row in self.rows:
            if row["id"] == message_id and row["user_id"] == user_id:
                row["feedback"] = feedback

    def mark_implemented(self, user_id, message_id):
        if self.fail_updates:
            raise ChatPersistenceError("Failed to mark message as implemented")
        for row in self.rows:
            if row["id"] == message_id and row["user_id"] == user_id:
                row["implemented"] = True

    def count_user_messages(self, user_id):
        return sum(1 for r in self.rows if r["user_id"] == user_id and r["role"] == "user")

    def recent_history(self, user_id, limit):
        return [
            {k: r[k] for k in ("role", "content", "created_at", "implemented", "feedback")}
            for r in self._sorted_desc(user_id)[:limit]
        ]


@pytest.fixture
def chat_repo():
    return InMemoryChatMessageRepository()


@pytest.fixture
def mock_account_repo():
    repo = Mock(spec=AccountRepository)
    repo.get_subscription_tier.return_value = "free"
    repo.get_product_info.return_value = {"user_id": "user-1", "breakeven_roas": 2.0}
    repo.list_selected_ad_accounts.return_value = [{"platform": "meta"}]
    return repo


@pytest.fixture
def mock_memory_repo():
    repo = Mock(spec=ConversationMemoryRepository)
    repo.get_latest.return_value = {
        "id": "mem-1",
        "implemented_changes": [{"endpoint": "/111"}, {"endpoint": "/222", "params": {"status": "PAUSED"}}],
        "summary": "Paused the weakest ad set",
    }
    repo.get_last_mentioned_campaign_id.return_value = None
    return repo


@pytest.fixture
def mock_settings():
    """Mock settings for testing"""
    settings = Mock()
    settings.chat_webhook_url = "https://hooks.example.test/chat"
    settings.chat_webhook_timeout_seconds = 120
    settings.chat_execution_mode = "production"
    settings.chat_currency = "USD"
    settings.chat_page_size = 200
    settings.chat_history_window = 6
    settings.chat_context_days = 7
    settings.chat_reveal_duration_ms = 0
    settings.chat_reveal_steps = 20
    settings.free_message_limit = 10
    settings.execution_function_name = "bront-execution"
    return settings


@pytest.fixture
def sample_campaign():
    return TopCampaign(
        id="120200000000001",
        name="Summer Sale",
        status="ACTIVE",
        spend=700.0,
        revenue=2100.0,
        roas=3.0,
        purchases=21,
    )
