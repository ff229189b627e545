"""
Shared: イベント定義 (Event Schemas)

サービス間でやり取りする事実(イベント)を定義する。
イベントは過去形で命名し、不変(immutable)として扱う。
受信したイベントを書き換えることはなく、常に新しいイベントを作る。

トピックとスキーマは命名規約で結び付いている:

    orders/created      ⇄ OrderCreated
    payments/processed  ⇄ PaymentProcessed
    inventory/reserved  ⇄ InventoryReserved

ワイヤ上のペイロードには型タグが無い。購読側はトピック名を信頼して
デコードに使うスキーマを選ぶ。
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import DecodeError

ORDERS_CREATED = "orders/created"
PAYMENTS_PROCESSED = "payments/processed"
INVENTORY_RESERVED = "inventory/reserved"


class Fact(BaseModel):
    """全イベント共通の設定: 凍結 + camelCase のフィールド名"""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class OrderItem(Fact):
    """注文明細（独自の ID は持たない）"""
    product_id: str
    quantity: int = Field(gt=0, strict=True)
    price: Decimal = Field(ge=0)


class OrderCreated(Fact):
    """注文が作成された"""
    order_id: str
    customer_id: str
    items: tuple[OrderItem, ...]
    total_amount: Decimal
    created_at: datetime

    @model_validator(mode="after")
    def _total_matches_items(self) -> "OrderCreated":
        expected = order_total(self.items)
        if self.total_amount != expected:
            raise ValueError(
                f"totalAmount {self.total_amount} does not match items total {expected}"
            )
        return self


class PaymentProcessed(Fact):
    """決済が処理された"""
    order_id: str
    payment_id: str
    amount: Decimal
    success: bool
    processed_at: datetime


class InventoryReserved(Fact):
    """在庫が引き当てられた"""
    order_id: str
    reservation_id: str
    success: bool
    reserved_at: datetime


TOPIC_SCHEMAS: dict[str, type[Fact]] = {
    ORDERS_CREATED: OrderCreated,
    PAYMENTS_PROCESSED: PaymentProcessed,
    INVENTORY_RESERVED: InventoryReserved,
}


def order_total(items: Iterable[OrderItem]) -> Decimal:
    """Σ(quantity × price) を Decimal で正確に計算する。"""
    return sum((item.price * item.quantity for item in items), Decimal("0"))


def encode(fact: Fact) -> str:
    """イベントを JSON テキストに変換する（Decimal は文字列で精度を保つ）。"""
    return fact.model_dump_json(by_alias=True)


def decode(topic: str, payload: str | bytes) -> Fact:
    """
    トピックに対応するスキーマでペイロードをデコードする。

    未知のトピック、またはスキーマに合わないペイロードは DecodeError。
    """
    schema = TOPIC_SCHEMAS.get(topic)
    if schema is None:
        raise DecodeError(f"No schema registered for topic {topic!r}")
    try:
        return schema.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError(f"Invalid payload on {topic!r}: {e}") from e
