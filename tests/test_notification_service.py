"""Tests for the notification consumer"""
import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from services.notification.app.main import create_app
from services.notification.app.notifier import Notifier
from services.shared import events
from services.shared.broker import InMemoryBrokerClient


@pytest.fixture
def payment(order_created):
    return events.PaymentProcessed(
        order_id=order_created.order_id,
        payment_id="pay-1",
        amount=Decimal("20.00"),
        success=True,
        processed_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def reservation(order_created):
    return events.InventoryReserved(
        order_id=order_created.order_id,
        reservation_id="res-1",
        success=True,
        reserved_at=datetime.now(timezone.utc),
    )


class TestNotifier:

    def setup_method(self):
        self.notifier = Notifier()

    @pytest.mark.asyncio
    async def test_order_confirmation_goes_to_customer(self, order_created, caplog):
        with caplog.at_level(logging.INFO, logger="services.notification.app.notifier"):
            notification = await self.notifier.handle_order_created(
                events.encode(order_created)
            )

        assert notification.kind == "order_confirmation"
        assert notification.order_id == order_created.order_id
        assert notification.recipient == "cust-1"
        assert "[Notification] Sending order confirmation email" in caplog.text

    @pytest.mark.asyncio
    async def test_payment_confirmation(self, payment):
        notification = await self.notifier.handle_payment_processed(events.encode(payment))

        assert notification.kind == "payment_confirmation"
        assert notification.order_id == payment.order_id

    @pytest.mark.asyncio
    async def test_inventory_confirmation(self, reservation):
        notification = await self.notifier.handle_inventory_reserved(
            events.encode(reservation)
        )

        assert notification.kind == "inventory_confirmation"
        assert notification.order_id == reservation.order_id

    def test_subscribes_to_all_three_topics(self):
        assert set(self.notifier.subscriptions()) == {
            events.ORDERS_CREATED,
            events.PAYMENTS_PROCESSED,
            events.INVENTORY_RESERVED,
        }

    @pytest.mark.asyncio
    async def test_publishes_nothing(self, broker, order_created, payment, reservation):
        for topic, handler in self.notifier.subscriptions().items():
            await broker.subscribe(topic, handler)

        await broker.publish(events.ORDERS_CREATED, order_created)
        await broker.publish(events.PAYMENTS_PROCESSED, payment)
        await broker.publish(events.INVENTORY_RESERVED, reservation)
        await broker.disconnect(grace_period=1.0)

        assert [topic for topic, _ in broker.published] == [
            events.ORDERS_CREATED,
            events.PAYMENTS_PROCESSED,
            events.INVENTORY_RESERVED,
        ]


class TestNotificationApp:

    def test_health_lists_subscribed_topics(self):
        broker = InMemoryBrokerClient()
        with TestClient(create_app(broker)) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert set(response.json()["topics"]) == {
            "orders/created",
            "payments/processed",
            "inventory/reserved",
        }
