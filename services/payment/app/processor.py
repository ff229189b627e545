"""
Payment Service: 決済処理

orders/created に反応し、決済ゲートウェイの遅延を模した待機のあと
PaymentProcessed を payments/processed に発行する。

状態遷移（OrderCreated 1件ごと、並行して何件でも走る）:
    Idle → Processing → Published

- 決済拒否のパスは無い（success は常に True）
- 発行に失敗しても再試行しない。補償トランザクションも無い
"""

import asyncio
import logging
from datetime import datetime, timezone
from uuid import uuid4

from services.shared import events
from services.shared.broker import BrokerClient

logger = logging.getLogger(__name__)


class PaymentProcessor:
    """OrderCreated 1件ごとに決済イベントを1件発行する。"""

    def __init__(self, broker: BrokerClient, delay: float = 1.0) -> None:
        if delay <= 0:
            raise ValueError("Payment delay must be a positive number of seconds")
        self.broker = broker
        self.delay = delay

    async def handle_order_created(self, payload: str) -> events.PaymentProcessed:
        order = events.decode(events.ORDERS_CREATED, payload)
        logger.info("[Payment] Processing payment for Order %s", order.order_id)

        await asyncio.sleep(self.delay)

        payment = events.PaymentProcessed(
            order_id=order.order_id,
            payment_id=str(uuid4()),
            amount=order.total_amount,
            success=True,
            processed_at=datetime.now(timezone.utc),
        )
        await self.broker.publish(events.PAYMENTS_PROCESSED, payment)
        logger.info("[Payment] Payment successful for Order %s", order.order_id)
        return payment
