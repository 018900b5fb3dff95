"""
SQLAlchemy Fulfillment Repository Implementation.
"""
from typing import List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.domain.entities import Fulfillment, FulfillmentItem
from core.domain.enums import LabelStatus
from core.domain.repositories import FulfillmentRepository
from core.infrastructure.database.models import FulfillmentItemModel, FulfillmentModel
from orchestration.errors import ConcurrencyConflictError
from shopflow_sdk.utils.datetime import ensure_utc, utc_now


logger = logging.getLogger(__name__)


class SQLAlchemyFulfillmentRepository(FulfillmentRepository):
    """SQLAlchemy implementation of FulfillmentRepository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, fulfillment_id: str) -> Optional[Fulfillment]:
        result = await self.session.execute(
            select(FulfillmentModel)
            .options(selectinload(FulfillmentModel.items))
            .where(FulfillmentModel.id == fulfillment_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        if model is None:
            logger.info(f"Fulfillment not found: {fulfillment_id}")
            return None
        return self._to_domain_entity(model)

    async def find_by_order_id(self, order_id: str) -> List[Fulfillment]:
        result = await self.session.execute(
            select(FulfillmentModel)
            .options(selectinload(FulfillmentModel.items))
            .where(FulfillmentModel.order_id == order_id)
            .order_by(FulfillmentModel.created_at)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain_entity(model) for model in result.scalars().all()]

    async def add(self, fulfillment: Fulfillment) -> None:
        logger.info(f"Creating fulfillment: {fulfillment.id} (order {fulfillment.order_id})")
        self.session.add(self._to_model(fulfillment))
        await self.session.flush()

    async def save(self, fulfillment: Fulfillment) -> None:
        result = await self.session.execute(
            update(FulfillmentModel)
            .where(
                FulfillmentModel.id == fulfillment.id,
                FulfillmentModel.version == fulfillment.version,
            )
            .values(
                provider_id=fulfillment.provider_id,
                label_status=fulfillment.label_status.value,
                label_idempotency_key=fulfillment.label_idempotency_key,
                label_attempt=fulfillment.label_attempt,
                label_id=fulfillment.label_id,
                label_url=fulfillment.label_url,
                label_cost=fulfillment.label_cost,
                label_currency=fulfillment.label_currency,
                carrier_code=fulfillment.carrier_code,
                service_code=fulfillment.service_code,
                label_void_error=fulfillment.label_void_error,
                label_purchased_at=fulfillment.label_purchased_at,
                label_pending_since=fulfillment.label_pending_since,
                tracking_numbers=list(fulfillment.tracking_numbers),
                tracking_urls=list(fulfillment.tracking_urls),
                shipped_at=fulfillment.shipped_at,
                canceled_at=fulfillment.canceled_at,
                version=FulfillmentModel.version + 1,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                f"Version conflict saving fulfillment {fulfillment.id} (version {fulfillment.version})"
            )
            raise ConcurrencyConflictError(
                f"Fulfillment {fulfillment.id} was modified concurrently "
                f"(expected version {fulfillment.version})"
            )
        fulfillment.version += 1
        logger.info(
            f"Saved fulfillment {fulfillment.id} "
            f"(label_status={fulfillment.label_status.value}, version {fulfillment.version})"
        )

    # =========================================================================
    # MAPPING
    # =========================================================================

    def _to_domain_entity(self, model: FulfillmentModel) -> Fulfillment:
        return Fulfillment(
            id=model.id,
            order_id=model.order_id,
            provider_id=model.provider_id,
            items=[
                FulfillmentItem(
                    id=item.id,
                    line_item_id=item.line_item_id,
                    quantity=item.quantity,
                    title=item.title,
                    sku=item.sku,
                )
                for item in model.items
            ],
            delivery_address=dict(model.delivery_address or {}),
            label_status=LabelStatus(model.label_status),
            label_idempotency_key=model.label_idempotency_key,
            label_attempt=model.label_attempt,
            label_id=model.label_id,
            label_url=model.label_url,
            label_cost=model.label_cost,
            label_currency=model.label_currency,
            carrier_code=model.carrier_code,
            service_code=model.service_code,
            label_void_error=model.label_void_error,
            label_purchased_at=ensure_utc(model.label_purchased_at),
            label_pending_since=ensure_utc(model.label_pending_since),
            tracking_numbers=list(model.tracking_numbers or []),
            tracking_urls=list(model.tracking_urls or []),
            shipped_at=ensure_utc(model.shipped_at),
            canceled_at=ensure_utc(model.canceled_at),
            version=model.version,
        )

    def _to_model(self, fulfillment: Fulfillment) -> FulfillmentModel:
        return FulfillmentModel(
            id=fulfillment.id,
            order_id=fulfillment.order_id,
            provider_id=fulfillment.provider_id,
            delivery_address=dict(fulfillment.delivery_address),
            label_status=fulfillment.label_status.value,
            label_idempotency_key=fulfillment.label_idempotency_key,
            label_attempt=fulfillment.label_attempt,
            label_id=fulfillment.label_id,
            label_pending_since=fulfillment.label_pending_since,
            tracking_numbers=list(fulfillment.tracking_numbers),
            tracking_urls=list(fulfillment.tracking_urls),
            shipped_at=fulfillment.shipped_at,
            canceled_at=fulfillment.canceled_at,
            version=fulfillment.version,
            items=[
                FulfillmentItemModel(
                    id=item.id,
                    line_item_id=item.line_item_id,
                    position=position,
                    quantity=item.quantity,
                    title=item.title,
                    sku=item.sku,
                )
                for position, item in enumerate(fulfillment.items)
            ],
        )
