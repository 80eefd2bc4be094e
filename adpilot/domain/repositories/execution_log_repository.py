from __future__ import annotations
from abc import ABC, abstractmethod

from adpilot.domain.entities.operation import ExecutionLogEntry


class ExecutionLogRepository(ABC):
    """Audit log of successfully applied operations."""

    @abstractmethod
    def insert(self, entry: ExecutionLogEntry) -> None:
        pass
