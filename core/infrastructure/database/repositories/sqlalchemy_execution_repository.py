"""
SQLAlchemy Workflow Execution Repository.

Audit trail of workflow runs written by the engine.
"""
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.domain.enums import ExecutionStatus
from core.infrastructure.database.models import WorkflowExecutionModel
from orchestration.executions import ExecutionRecord
from shopflow_sdk.utils.datetime import ensure_utc


logger = logging.getLogger(__name__)


class SQLAlchemyExecutionRepository:
    """Stores ExecutionRecord rows in ``workflow_executions``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, record: ExecutionRecord) -> None:
        model = await self.session.get(WorkflowExecutionModel, record.execution_id)
        if model is None:
            model = WorkflowExecutionModel(id=record.execution_id)
            self.session.add(model)

        model.workflow_name = record.workflow_name
        model.correlation_id = record.correlation_id
        model.parent_execution_id = record.parent_execution_id
        model.idempotency_key = record.idempotency_key
        model.status = record.status.value
        model.timeout_seconds = record.timeout_seconds
        model.error_kind = record.error_kind
        model.error_message = record.error_message
        model.failed_compensations = record.failed_compensations
        model.started_at = record.started_at
        model.finished_at = record.finished_at
        await self.session.flush()

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        model = await self.session.get(WorkflowExecutionModel, execution_id)
        return self._to_record(model) if model is not None else None

    async def find_by_workflow(self, workflow_name: str, limit: int = 50) -> List[ExecutionRecord]:
        result = await self.session.execute(
            select(WorkflowExecutionModel)
            .where(WorkflowExecutionModel.workflow_name == workflow_name)
            .order_by(WorkflowExecutionModel.started_at.desc())
            .limit(limit)
        )
        return [self._to_record(model) for model in result.scalars().all()]

    def _to_record(self, model: WorkflowExecutionModel) -> ExecutionRecord:
        return ExecutionRecord(
            execution_id=model.id,
            workflow_name=model.workflow_name,
            correlation_id=model.correlation_id,
            status=ExecutionStatus(model.status),
            started_at=ensure_utc(model.started_at),
            timeout_seconds=model.timeout_seconds,
            parent_execution_id=model.parent_execution_id,
            idempotency_key=model.idempotency_key,
            finished_at=ensure_utc(model.finished_at),
            error_kind=model.error_kind,
            error_message=model.error_message,
            failed_compensations=model.failed_compensations,
        )
