"""
Notification Service: 顧客への通知

3つのトピックをそれぞれ独立に購読する終端コンシューマ。
何も発行せず、3つのイベントを「注文完了」としてまとめることもしない。

    orders/created      → 注文確認メール
    payments/processed  → 決済完了のお知らせ
    inventory/reserved  → 在庫確保のお知らせ
"""

import logging
from dataclasses import dataclass

from services.shared import events

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    order_id: str
    kind: str
    message: str
    recipient: str | None = None


class Notifier:

    def subscriptions(self) -> dict:
        """トピック → ハンドラ"""
        return {
            events.ORDERS_CREATED: self.handle_order_created,
            events.PAYMENTS_PROCESSED: self.handle_payment_processed,
            events.INVENTORY_RESERVED: self.handle_inventory_reserved,
        }

    async def handle_order_created(self, payload: str) -> Notification:
        order = events.decode(events.ORDERS_CREATED, payload)
        return self.send(
            Notification(
                order_id=order.order_id,
                kind="order_confirmation",
                recipient=order.customer_id,
                message=f"Sending order confirmation email for Order {order.order_id} "
                f"to customer {order.customer_id}",
            )
        )

    async def handle_payment_processed(self, payload: str) -> Notification:
        payment = events.decode(events.PAYMENTS_PROCESSED, payload)
        return self.send(
            Notification(
                order_id=payment.order_id,
                kind="payment_confirmation",
                message=f"Sending payment confirmation for Order {payment.order_id}",
            )
        )

    async def handle_inventory_reserved(self, payload: str) -> Notification:
        reservation = events.decode(events.INVENTORY_RESERVED, payload)
        return self.send(
            Notification(
                order_id=reservation.order_id,
                kind="inventory_confirmation",
                message=f"Sending inventory confirmation for Order {reservation.order_id}",
            )
        )

    def send(self, notification: Notification) -> Notification:
        # 実際の送信先（メール等）は持たない。ログ出力が通知の代わり
        logger.info("[Notification] %s", notification.message)
        return notification
