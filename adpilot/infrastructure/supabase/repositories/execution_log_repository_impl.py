from __future__ import annotations
import logging

from adpilot.domain.entities.operation import ExecutionLogEntry
from adpilot.domain.repositories.execution_log_repository import ExecutionLogRepository
from adpilot.infrastructure.supabase.client import get_supabase

logger = logging.getLogger(__name__)


class ExecutionLogRepositoryImpl(ExecutionLogRepository):
    TABLE = "execution_logs"

    def insert(self, entry: ExecutionLogEntry) -> None:
        sb = get_supabase()
        sb.table(self.TABLE).insert(entry.to_row()).execute()
        logger.info(
            "Execution log written: user_id=%s entity=%s:%s %s %s",
            entry.user_id,
            entry.entity_type,
            entry.entity_id,
            entry.operation_method,
            entry.operation_endpoint,
        )
