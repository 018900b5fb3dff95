"""
FastAPI Dependencies.

Builds the workflow engine and its collaborators once per process and
hands them to the routes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables ONCE before any settings objects are created
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from core.application.shipping import ShippingTxService
from core.application.workflows import register_default_workflows
from core.infrastructure.database import UnitOfWork, create_engine, create_session_factory
from core.infrastructure.outbox import OutboxPublisher
from core.infrastructure.shipping import (
    ManualShippingProvider,
    ShipEngineProvider,
    ShippingProviderRegistry,
)
from core.infrastructure.workflow import SqlAlchemyExecutionRecorder, SqlAlchemyIdempotencyStore
from core.settings import AppSettings, get_app_settings
from orchestration import InMemoryEventBus, WorkflowEngine

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Process-wide collaborators shared by all requests."""

    settings: AppSettings
    db_engine: AsyncEngine
    session_factory: async_sessionmaker
    event_bus: InMemoryEventBus
    domain_event_bus: InMemoryEventBus
    engine: WorkflowEngine
    outbox_publisher: OutboxPublisher


def build_container(
    settings: Optional[AppSettings] = None,
    providers: Optional[ShippingProviderRegistry] = None,
) -> Container:
    """Wire database, providers and workflows from settings."""
    settings = settings or get_app_settings()
    db_engine = create_engine(settings.database)
    session_factory = create_session_factory(db_engine)
    uow_factory = partial(UnitOfWork, session_factory)

    providers = providers or ShippingProviderRegistry(
        [ShipEngineProvider(settings.shipengine), ManualShippingProvider()]
    )
    event_bus = InMemoryEventBus()
    engine = WorkflowEngine(
        settings=settings.workflow,
        event_bus=event_bus,
        execution_recorder=SqlAlchemyExecutionRecorder(session_factory),
        idempotency_store=SqlAlchemyIdempotencyStore(session_factory),
    )
    tx_service = ShippingTxService(
        uow_factory, timedelta(seconds=settings.workflow.label_purchase_lease_seconds)
    )
    register_default_workflows(engine, tx_service, providers, uow_factory)

    # Subscriber errors must surface so failed rows are retried
    domain_event_bus = InMemoryEventBus(raise_errors=True)
    outbox_publisher = OutboxPublisher(session_factory, domain_event_bus, settings.outbox)
    logger.info(f"Container built with workflows: {[w.name for w in engine.list_workflows()]}")
    return Container(
        settings=settings,
        db_engine=db_engine,
        session_factory=session_factory,
        event_bus=event_bus,
        domain_event_bus=domain_event_bus,
        engine=engine,
        outbox_publisher=outbox_publisher,
    )


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

_container: Optional[Container] = None


def get_container() -> Container:
    global _container
    if _container is None:
        _container = build_container()
    return _container


def set_container(container: Optional[Container]) -> None:
    global _container
    _container = container


def get_workflow_engine() -> WorkflowEngine:
    return get_container().engine


# =============================================================================
# RESET (for testing)
# =============================================================================

def reset_dependencies() -> None:
    set_container(None)
    logger.info("Dependencies reset")
