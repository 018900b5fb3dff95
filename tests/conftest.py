"""Shared fixtures: SQLite database, unit of work factory, seed helpers."""

from functools import partial
from typing import Awaitable, Callable, Optional
import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from core.application.shipping import ShippingTxService
from core.domain.entities import Fulfillment, FulfillmentItem, Order, OrderLineItem
from core.domain.enums import OrderStatus
from core.infrastructure.database import Base, UnitOfWork, create_session_factory
from core.infrastructure.shipping import ManualShippingProvider, ShippingProviderRegistry
from mocks.fake_shipping_provider import FakeShippingProvider

DELIVERY_ADDRESS = {
    "name": "Ada Lovelace",
    "street1": "12 Analytical Way",
    "city": "Austin",
    "state": "TX",
    "postal_code": "78701",
    "country": "US",
}


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so separate units of work use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shopflow.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def uow_factory(session_factory):
    return partial(UnitOfWork, session_factory)


@pytest.fixture
def tx_service(uow_factory):
    return ShippingTxService(uow_factory)


@pytest.fixture
def fake_provider():
    return FakeShippingProvider()


@pytest.fixture
def providers(fake_provider):
    return ShippingProviderRegistry([fake_provider, ManualShippingProvider()])


class Seeded:
    """Ids of a seeded order with one line item and one fulfillment."""

    def __init__(self, order_id: str, line_item_id: str, fulfillment_id: str) -> None:
        self.order_id = order_id
        self.line_item_id = line_item_id
        self.fulfillment_id = fulfillment_id


SeedOrder = Callable[..., Awaitable[Seeded]]


@pytest.fixture
def seed_order(uow_factory) -> SeedOrder:
    """Insert an order (one line) plus a fulfillment covering it."""

    async def _seed(
        quantity: int = 2,
        shipped_quantity: int = 0,
        fulfillment_quantity: Optional[int] = None,
        provider_id: Optional[str] = "shipengine",
        status: OrderStatus = OrderStatus.COMPLETED,
    ) -> Seeded:
        order_id = str(uuid.uuid4())
        line_item_id = str(uuid.uuid4())
        fulfillment_id = str(uuid.uuid4())

        order = Order(
            id=order_id,
            status=status,
            items=[
                OrderLineItem(
                    id=line_item_id,
                    title="Blue Mug",
                    quantity=quantity,
                    shipped_quantity=shipped_quantity,
                    sku="MUG-BLUE",
                )
            ],
            email="ada@example.com",
        )
        fulfillment = Fulfillment(
            id=fulfillment_id,
            order_id=order_id,
            provider_id=provider_id,
            items=[
                FulfillmentItem(
                    id=str(uuid.uuid4()),
                    line_item_id=line_item_id,
                    quantity=quantity if fulfillment_quantity is None else fulfillment_quantity,
                    title="Blue Mug",
                    sku="MUG-BLUE",
                )
            ],
            delivery_address=dict(DELIVERY_ADDRESS),
        )
        async with uow_factory() as uow:
            await uow.orders.add(order)
            await uow.fulfillments.add(fulfillment)
            await uow.commit()
        return Seeded(order_id, line_item_id, fulfillment_id)

    return _seed
