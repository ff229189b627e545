"""
Order Service: コマンドハンドラ

注文作成コマンドは OrderCreated イベントを1件だけ発行して、すぐに注文 ID を返す。
決済・在庫の処理完了は待たない（コレオグラフィ: 後続は各サービスが勝手に反応する）。

┌──────────┐  POST /api/orders  ┌───────────────┐  orders/created  ┌───────────┐
│  Client  │ ─────────────────▶ │ Order Service │ ───────────────▶ │  Payment  │
└──────────┘  ◀── orderId ───── └───────────────┘        │         │ Inventory │
                                                         └───────▶ │ Notifier  │
                                                                   └───────────┘
"""

import logging
from datetime import datetime, timezone
from typing import Iterable
from uuid import uuid4

from services.shared import events
from services.shared.broker import BrokerClient
from services.shared.errors import InvalidOrderError

logger = logging.getLogger(__name__)


def _validate_items(items: list[events.OrderItem]) -> None:
    if not items:
        raise InvalidOrderError("Order must contain at least one item")
    for item in items:
        if item.quantity <= 0:
            raise InvalidOrderError(f"Quantity for {item.product_id} must be positive")
        if item.price < 0:
            raise InvalidOrderError(f"Price for {item.product_id} must not be negative")


async def create_order(
    broker: BrokerClient,
    customer_id: str,
    items: Iterable[events.OrderItem],
) -> str:
    """
    注文作成コマンド

    1. 入力を検証（違反なら何も発行せず InvalidOrderError）
    2. orderId を生成（相関キー: 以降は再生成しない）
    3. 合計金額を Decimal で計算
    4. orders/created に OrderCreated を発行
    """
    items = list(items)
    _validate_items(items)

    order_id = str(uuid4())
    order_event = events.OrderCreated(
        order_id=order_id,
        customer_id=customer_id,
        items=tuple(items),
        total_amount=events.order_total(items),
        created_at=datetime.now(timezone.utc),
    )

    await broker.publish(events.ORDERS_CREATED, order_event)
    logger.info(
        "[Order] Created order %s for customer %s (total %s)",
        order_id,
        customer_id,
        order_event.total_amount,
    )
    return order_id
