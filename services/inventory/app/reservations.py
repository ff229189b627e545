"""
Inventory Service: 在庫引き当て

orders/created に反応し、引き当て処理の遅延を模した待機のあと
InventoryReserved を inventory/reserved に発行する。

Payment Service とは調整なしで競争する（ロックも共有状態も無い）。
どちらが先に終わるかは決まっておらず、片方が動かなくても何も通知されない。
"""

import asyncio
import logging
from datetime import datetime, timezone
from uuid import uuid4

from services.shared import events
from services.shared.broker import BrokerClient

logger = logging.getLogger(__name__)


class InventoryReserver:
    def __init__(self, broker: BrokerClient, delay: float = 0.8) -> None:
        if delay <= 0:
            raise ValueError("Reservation delay must be a positive number of seconds")
        self.broker = broker
        self.delay = delay

    async def handle_order_created(self, payload: str) -> events.InventoryReserved:
        """在庫引き当て（常に成功）"""
        order = events.decode(events.ORDERS_CREATED, payload)
        logger.info("[Inventory] Reserving inventory for Order %s", order.order_id)

        await asyncio.sleep(self.delay)

        reservation = events.InventoryReserved(
            order_id=order.order_id,
            reservation_id=str(uuid4()),
            success=True,
            reserved_at=datetime.now(timezone.utc),
        )
        await self.broker.publish(events.INVENTORY_RESERVED, reservation)
        logger.info("[Inventory] Reservation successful for Order %s", order.order_id)
        return reservation
