from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
# chat_messages.role stores assistant rows as "ai"
DB_ASSISTANT_ROLE = "ai"

FEEDBACK_VALUES = ("positive", "negative")

OPTIMISTIC = "optimistic"
CONFIRMED = "confirmed"


def _random_suffix(length: int = 9) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))


def generate_client_id(prefix: str = "msg") -> str:
    """Correlation id for a message that has not been persisted yet."""
    return f"{prefix}_{int(time.time() * 1000)}_{_random_suffix()}"


def generate_request_id() -> str:
    return f"{int(time.time() * 1000)}_{_random_suffix()}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_dt(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported datetime value: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_role(value: Optional[str]) -> str:
    return USER_ROLE if value == USER_ROLE else ASSISTANT_ROLE


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: str  # "user" | "assistant"
    content: str
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    implemented: bool = False
    feedback: Optional[str] = None  # "positive" | "negative" | None
    # Correlation id generated on the client before persistence
    client_id: Optional[str] = None
    sync_state: str = CONFIRMED

    @property
    def is_user(self) -> bool:
        return self.role == USER_ROLE

    @property
    def is_optimistic(self) -> bool:
        return self.sync_state == OPTIMISTIC

    @property
    def message_type(self) -> str:
        return self.metadata.get("type") or "text"

    def answers_to(self, identity: Optional[str]) -> bool:
        """True when *identity* is either the durable id or the correlation id."""
        if not identity:
            return False
        return identity == self.id or identity == self.client_id

    @classmethod
    def optimistic(
        cls,
        content: str,
        role: str = USER_ROLE,
        metadata: Optional[Dict[str, Any]] = None,
        prefix: str = "msg",
    ) -> "ChatMessage":
        client_id = generate_client_id(prefix)
        return cls(
            id=client_id,
            role=role,
            content=content,
            created_at=utcnow(),
            metadata={**(metadata or {}), "original_client_id": client_id},
            client_id=client_id,
            sync_state=OPTIMISTIC,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatMessage":
        metadata = row.get("metadata") or {}
        created_at = parse_dt(row.get("created_at") or utcnow())
        row_id = row.get("id") or f"fallback-{created_at.isoformat()}"
        return cls(
            id=str(row_id),
            role=normalize_role(row.get("role")),
            content=row.get("content") or "",
            created_at=created_at,
            metadata=metadata,
            implemented=bool(row.get("implemented")),
            feedback=row.get("feedback"),
            client_id=metadata.get("original_client_id"),
            sync_state=CONFIRMED,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "type": self.message_type,
            "metadata": self.metadata,
            "implemented": self.implemented,
            "feedback": self.feedback,
            "client_id": self.client_id,
            "sync_state": self.sync_state,
        }
