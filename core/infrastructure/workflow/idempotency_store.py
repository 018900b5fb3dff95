"""
SQL Idempotency Store.

``claim`` relies on the (workflow_name, key) unique constraint: of two
concurrent inserts exactly one commits.
"""
from datetime import datetime
from typing import Any, Optional
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.domain.enums import ExecutionStatus
from core.infrastructure.database.models import IdempotencyKeyModel
from orchestration.idempotency import IdempotencyRecord, IdempotencyStore
from shopflow_sdk.utils.datetime import ensure_utc, utc_now


logger = logging.getLogger(__name__)


class SqlAlchemyIdempotencyStore(IdempotencyStore):
    """IdempotencyStore backed by the idempotency_keys table."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, workflow_name: str, key: str) -> Optional[IdempotencyRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(IdempotencyKeyModel).where(
                    IdempotencyKeyModel.workflow_name == workflow_name,
                    IdempotencyKeyModel.key == key,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            record = IdempotencyRecord(
                workflow_name=model.workflow_name,
                key=model.key,
                status=ExecutionStatus(model.status),
                expires_at=ensure_utc(model.expires_at),
                output=model.output,
                error_kind=model.error_kind,
                error_message=model.error_message,
            )
            return None if record.is_expired() else record

    async def claim(self, workflow_name: str, key: str, expires_at: datetime) -> bool:
        async with self._session_factory() as session:
            try:
                await session.execute(
                    delete(IdempotencyKeyModel).where(
                        IdempotencyKeyModel.workflow_name == workflow_name,
                        IdempotencyKeyModel.key == key,
                        IdempotencyKeyModel.expires_at <= utc_now(),
                    )
                )
                session.add(
                    IdempotencyKeyModel(
                        workflow_name=workflow_name,
                        key=key,
                        status=ExecutionStatus.RUNNING.value,
                        expires_at=expires_at,
                    )
                )
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
                logger.info(f"Idempotency key already claimed: {workflow_name}/{key}")
                return False

    async def complete(self, workflow_name: str, key: str, output: Any) -> None:
        await self._update(workflow_name, key, status=ExecutionStatus.COMPLETED.value, output=output)

    async def fail(self, workflow_name: str, key: str, error_kind: str, error_message: str) -> None:
        await self._update(
            workflow_name,
            key,
            status=ExecutionStatus.FAILED.value,
            error_kind=error_kind,
            error_message=error_message,
        )

    async def release(self, workflow_name: str, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(IdempotencyKeyModel).where(
                    IdempotencyKeyModel.workflow_name == workflow_name,
                    IdempotencyKeyModel.key == key,
                )
            )
            await session.commit()

    async def _update(self, workflow_name: str, key: str, **values: Any) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(IdempotencyKeyModel)
                .where(
                    IdempotencyKeyModel.workflow_name == workflow_name,
                    IdempotencyKeyModel.key == key,
                )
                .values(**values)
            )
            await session.commit()
