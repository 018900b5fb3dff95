"""Business workflows and their registration."""

from core.application.dtos import (
    ApplyShipmentResult,
    CancelOrderInput,
    CancelOrderResult,
    CreateShipmentInput,
    VoidLabelInput,
    VoidLabelResult,
)
from core.application.shipping import ShippingTxService
from core.application.shipping.service import UnitOfWorkFactory
from core.infrastructure.shipping import ShippingProviderRegistry
from orchestration import WorkflowEngine

from .cancel_order import CancelOrderWorkflow
from .create_shipment import CreateShipmentWorkflow
from .void_label import VoidShipmentLabelWorkflow


def register_default_workflows(
    engine: WorkflowEngine,
    tx_service: ShippingTxService,
    providers: ShippingProviderRegistry,
    uow_factory: UnitOfWorkFactory,
) -> WorkflowEngine:
    """Register the shipping and order workflows on ``engine``."""
    engine.register(
        CreateShipmentWorkflow(tx_service, providers), CreateShipmentInput, ApplyShipmentResult
    )
    engine.register(
        VoidShipmentLabelWorkflow(tx_service, providers), VoidLabelInput, VoidLabelResult
    )
    engine.register(CancelOrderWorkflow(uow_factory), CancelOrderInput, CancelOrderResult)
    return engine


__all__ = [
    "CancelOrderWorkflow",
    "CreateShipmentWorkflow",
    "VoidShipmentLabelWorkflow",
    "register_default_workflows",
]
