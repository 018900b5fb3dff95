"""
SQLAlchemy Order Repository Implementation.

Implements OrderRepository with version-guarded updates.
"""
from typing import Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.domain.entities import Order, OrderLineItem
from core.domain.enums import FulfillmentStatus, OrderLineItemStatus, OrderStatus
from core.domain.repositories import OrderRepository
from core.infrastructure.database.models import OrderLineItemModel, OrderModel
from orchestration.errors import ConcurrencyConflictError
from shopflow_sdk.utils.datetime import ensure_utc, utc_now


logger = logging.getLogger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """
    SQLAlchemy implementation of OrderRepository.

    ``save`` never overwrites: it updates only when the stored version
    equals the version the aggregate was loaded with.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        order_model = result.scalar_one_or_none()
        if order_model is None:
            logger.info(f"Order not found: {order_id}")
            return None
        return self._to_domain_entity(order_model)

    async def add(self, order: Order) -> None:
        logger.info(f"Creating order: {order.id}")
        self.session.add(self._to_model(order))
        await self.session.flush()

    async def save(self, order: Order) -> None:
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.version == order.version)
            .values(
                status=order.status.value,
                fulfillment_status=order.fulfillment_status.value,
                canceled_at=order.canceled_at,
                version=OrderModel.version + 1,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Version conflict saving order {order.id} (version {order.version})")
            raise ConcurrencyConflictError(
                f"Order {order.id} was modified concurrently (expected version {order.version})"
            )

        for item in order.items:
            await self.session.execute(
                update(OrderLineItemModel)
                .where(OrderLineItemModel.id == item.id)
                .values(shipped_quantity=item.shipped_quantity, status=item.status.value)
                .execution_options(synchronize_session=False)
            )
        order.version += 1
        logger.info(f"Saved order {order.id} (version {order.version})")

    # =========================================================================
    # MAPPING
    # =========================================================================

    def _to_domain_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            status=OrderStatus(model.status),
            fulfillment_status=FulfillmentStatus(model.fulfillment_status),
            items=[
                OrderLineItem(
                    id=item.id,
                    title=item.title,
                    quantity=item.quantity,
                    shipped_quantity=item.shipped_quantity,
                    variant_id=item.variant_id,
                    sku=item.sku,
                    status=OrderLineItemStatus(item.status),
                )
                for item in model.items
            ],
            email=model.email,
            currency_code=model.currency_code,
            canceled_at=ensure_utc(model.canceled_at),
            version=model.version,
        )

    def _to_model(self, order: Order) -> OrderModel:
        return OrderModel(
            id=order.id,
            status=order.status.value,
            fulfillment_status=order.fulfillment_status.value,
            email=order.email,
            currency_code=order.currency_code,
            canceled_at=order.canceled_at,
            version=order.version,
            items=[
                OrderLineItemModel(
                    id=item.id,
                    position=position,
                    title=item.title,
                    variant_id=item.variant_id,
                    sku=item.sku,
                    quantity=item.quantity,
                    shipped_quantity=item.shipped_quantity,
                    status=item.status.value,
                )
                for position, item in enumerate(order.items)
            ],
        )
