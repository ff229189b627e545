"""Shared test fixtures"""
import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from services.shared import events
from services.shared.broker import InMemoryBrokerClient

ORDER_ID = "3f1c2d4e-5b6a-4c7d-8e9f-0a1b2c3d4e5f"


@pytest_asyncio.fixture
async def broker():
    """Connected in-memory broker, drained on teardown"""
    client = InMemoryBrokerClient()
    await client.connect()
    yield client
    await client.disconnect()


@pytest.fixture
def sample_items():
    return [events.OrderItem(product_id="p1", quantity=2, price=Decimal("10.00"))]


@pytest.fixture
def order_created(sample_items):
    """OrderCreated fact matching the cust-1 / p1 x 2 @ 10.00 scenario"""
    return events.OrderCreated(
        order_id=ORDER_ID,
        customer_id="cust-1",
        items=tuple(sample_items),
        total_amount=Decimal("20.00"),
        created_at=datetime(2026, 10, 19, 12, 30, 15, 123456, tzinfo=timezone.utc),
    )


async def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll until predicate() is truthy or fail after timeout seconds"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within %.1fs" % timeout)
        await asyncio.sleep(interval)
