"""
SQL Execution Recorder.

Writes engine run records to ``workflow_executions`` in their own short
transactions, independent of the workflow's business transactions.
"""
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.infrastructure.database.unit_of_work import UnitOfWork
from orchestration.executions import ExecutionRecord, ExecutionRecorder


logger = logging.getLogger(__name__)


class SqlAlchemyExecutionRecorder(ExecutionRecorder):
    """ExecutionRecorder backed by the workflow_executions table."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def record_started(self, record: ExecutionRecord) -> None:
        await self._write(record)

    async def record_finished(self, record: ExecutionRecord) -> None:
        await self._write(record)
        logger.info(
            f"Recorded {record.workflow_name} execution {record.execution_id}: {record.status.value}"
        )

    async def _write(self, record: ExecutionRecord) -> None:
        async with UnitOfWork(self._session_factory) as uow:
            await uow.executions.upsert(record)
            await uow.commit()
