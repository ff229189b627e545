"""Tests for the inventory reserver"""
import uuid

import pytest
from fastapi.testclient import TestClient

from services.inventory.app.main import create_app
from services.inventory.app.reservations import InventoryReserver
from services.shared import events
from services.shared.broker import InMemoryBrokerClient
from services.shared.errors import DecodeError


class TestInventoryReserver:

    def test_delay_must_be_positive(self):
        with pytest.raises(ValueError):
            InventoryReserver(InMemoryBrokerClient(), 0)

    def test_default_delay_is_shorter_than_payment(self):
        from services.payment.app.processor import PaymentProcessor

        broker = InMemoryBrokerClient()
        assert InventoryReserver(broker).delay < PaymentProcessor(broker).delay

    @pytest.mark.asyncio
    async def test_publishes_reservation_for_order(self, broker, order_created):
        reserver = InventoryReserver(broker, delay=0.01)

        reservation = await reserver.handle_order_created(events.encode(order_created))

        assert reservation.order_id == order_created.order_id
        assert reservation.success is True
        uuid.UUID(reservation.reservation_id)
        [payload] = broker.published_on(events.INVENTORY_RESERVED)
        assert events.decode(events.INVENTORY_RESERVED, payload) == reservation
        assert broker.published_on(events.PAYMENTS_PROCESSED) == []

    @pytest.mark.asyncio
    async def test_reservation_ids_are_not_reused(self, broker, order_created):
        reserver = InventoryReserver(broker, delay=0.01)
        payload = events.encode(order_created)

        first = await reserver.handle_order_created(payload)
        second = await reserver.handle_order_created(payload)

        # no dedup on orderId: a redelivered order is reserved twice
        assert first.order_id == second.order_id
        assert first.reservation_id != second.reservation_id

    @pytest.mark.asyncio
    async def test_malformed_order_publishes_nothing(self, broker):
        reserver = InventoryReserver(broker, delay=0.01)

        with pytest.raises(DecodeError):
            await reserver.handle_order_created("[]")
        assert broker.published == []


class TestInventoryApp:

    def test_subscribes_on_startup(self):
        broker = InMemoryBrokerClient()
        with TestClient(create_app(broker, delay=0.01)) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["service"] == "inventory-service"
        assert len(broker.handlers_for(events.ORDERS_CREATED)) == 1
