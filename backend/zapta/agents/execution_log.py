"""
Audit trail of agent executions.

Writing the audit row must never change the outcome of an execution, so
every write here logs and discards its own database failure.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from zapta.persistence.models import AgentExecution, ExecutionStatus
from zapta.providers.base import ToolCallRecord

logger = logging.getLogger(__name__)


def _as_uuid(value: Any) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class ExecutionLog:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _write(self, rows: list[AgentExecution]) -> bool:
        try:
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError:
            logger.error("Failed to log execution", exc_info=True)
            self.db.rollback()
            return False
        return True

    def log_execution(
        self,
        agent_id: Any,
        tenant_id: Any,
        input: dict[str, Any],
        output: dict[str, Any],
        error: str | None = None,
        duration_ms: int | None = None,
    ) -> bool:
        return self._write(
            [
                AgentExecution(
                    agent_id=_as_uuid(agent_id),
                    tenant_id=_as_uuid(tenant_id),
                    status=ExecutionStatus.error if error else ExecutionStatus.success,
                    input=input,
                    output=output,
                    error=error,
                    duration_ms=duration_ms,
                )
            ]
        )

    def log_tool_calls(
        self, agent_id: Any, tenant_id: Any, tool_calls: list[ToolCallRecord]
    ) -> bool:
        if not tool_calls:
            return True
        rows = []
        for call in tool_calls:
            error = call.result.get("error") if call.failed else None
            rows.append(
                AgentExecution(
                    agent_id=_as_uuid(agent_id),
                    tenant_id=_as_uuid(tenant_id),
                    status=ExecutionStatus.error if call.failed else ExecutionStatus.success,
                    input={"tool": call.tool_name, "args": call.args},
                    output={"result": call.result},
                    error=str(error) if error is not None else None,
                )
            )
        logged = self._write(rows)
        if logged:
            logger.info("Logged %d tool calls for agent %s", len(rows), agent_id)
        return logged
