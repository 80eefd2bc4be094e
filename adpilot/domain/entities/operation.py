from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ENTITY_CAMPAIGN = "campaign"
ENTITY_AD_SET = "ad_set"
ENTITY_AD = "ad"


@dataclass(frozen=True)
class ExecutableOperation:
    method: str  # GET | POST | PUT | PATCH | DELETE
    endpoint: str  # "/<numeric entity id>[/...]"
    params: Optional[Dict[str, Any]] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.method, self.endpoint)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"method": self.method, "endpoint": self.endpoint}
        if self.params is not None:
            data["params"] = self.params
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutableOperation":
        return cls(
            method=str(data.get("method", "")).upper(),
            endpoint=str(data.get("endpoint", "")),
            params=data.get("params"),
        )


@dataclass
class OperationResult:
    operation: ExecutableOperation
    success: bool
    error: Optional[str] = None
    entity_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.to_dict(),
            "success": self.success,
            "error": self.error,
            "entityName": self.entity_name,
        }


@dataclass
class ExecutionReport:
    success: bool
    results: List[OperationResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
            "summary": {"succeeded": self.succeeded_count, "failed": self.failed_count},
        }


@dataclass
class ExecutionLogEntry:
    """Audit record for one successfully applied operation."""

    user_id: str
    entity_id: Optional[str]
    entity_type: str
    entity_name: str
    operation_method: str
    operation_endpoint: str
    operation_params: Dict[str, Any] = field(default_factory=dict)
    status: str = "success"
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "entity_name": self.entity_name,
            "operation_method": self.operation_method,
            "operation_endpoint": self.operation_endpoint,
            "operation_params": self.operation_params,
            "status": self.status,
            "executed_at": self.executed_at.isoformat(),
        }
