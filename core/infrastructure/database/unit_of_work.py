"""
Unit of Work Pattern Implementation.

One UnitOfWork = one session = one transaction.
"""
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.infrastructure.database.repositories import (
    SQLAlchemyExecutionRepository,
    SQLAlchemyFulfillmentRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyOutboxRepository,
)


logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Unit of Work pattern for atomic transactions.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            order = await uow.orders.get(order_id)
            order.cancel()
            await uow.orders.save(order)
            await uow.outbox.enqueue_all(order.pull_domain_events())
            await uow.commit()

    Nothing is committed unless ``commit()`` is called. A ``read_only``
    unit of work refuses to commit and is always rolled back on exit.
    """

    def __init__(self, session_factory: async_sessionmaker, read_only: bool = False) -> None:
        """Initialize Unit of Work.

        Args:
            session_factory: SQLAlchemy async session factory
            read_only: Forbid commit and outbox writes
        """
        self._session_factory = session_factory
        self.read_only = read_only
        self._session: Optional[AsyncSession] = None
        self._committed = False

        # Lazy-loaded repositories
        self._orders: Optional[SQLAlchemyOrderRepository] = None
        self._fulfillments: Optional[SQLAlchemyFulfillmentRepository] = None
        self._outbox_events: Optional[SQLAlchemyOutboxRepository] = None
        self._executions: Optional[SQLAlchemyExecutionRepository] = None
        self._outbox = None

    async def __aenter__(self) -> "UnitOfWork":
        """Start transaction scope."""
        self._session = self._session_factory()
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Rollback whatever was not committed and close the session."""
        try:
            if exc_type is not None:
                logger.warning(f"Transaction rolled back: {exc_type.__name__}: {exc_val}")
            if not self._committed:
                await self._session.rollback()
        finally:
            await self._session.close()
            self._session = None

    @property
    def is_active(self) -> bool:
        return self._session is not None and not self._committed

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork not initialized. Use async context manager.")
        return self._session

    @property
    def orders(self) -> SQLAlchemyOrderRepository:
        if self._orders is None:
            self._orders = SQLAlchemyOrderRepository(self.session)
        return self._orders

    @property
    def fulfillments(self) -> SQLAlchemyFulfillmentRepository:
        if self._fulfillments is None:
            self._fulfillments = SQLAlchemyFulfillmentRepository(self.session)
        return self._fulfillments

    @property
    def outbox_events(self) -> SQLAlchemyOutboxRepository:
        if self._outbox_events is None:
            self._outbox_events = SQLAlchemyOutboxRepository(self.session)
        return self._outbox_events

    @property
    def executions(self) -> SQLAlchemyExecutionRepository:
        if self._executions is None:
            self._executions = SQLAlchemyExecutionRepository(self.session)
        return self._executions

    @property
    def outbox(self):
        """OutboxService bound to this transaction."""
        if self._outbox is None:
            from core.infrastructure.outbox.service import OutboxService

            self._outbox = OutboxService(self)
        return self._outbox

    async def commit(self) -> None:
        """Commit all pending changes."""
        if self.read_only:
            raise RuntimeError("Cannot commit a read-only UnitOfWork")
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Rollback all pending changes."""
        await self.session.rollback()


def create_uow(session_factory: async_sessionmaker, read_only: bool = False) -> UnitOfWork:
    """Create a new Unit of Work instance."""
    return UnitOfWork(session_factory, read_only=read_only)
