"""
Order Service: FastAPI エントリーポイント

注文受付の同期 API を提供する。
POST /api/orders は OrderCreated を発行した時点で応答し、
下流（決済・在庫・通知）の処理結果はこの API には返ってこない。
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.shared import events
from services.shared.broker import BrokerClient, RedisBrokerClient
from services.shared.errors import InvalidOrderError, PublishError
from services.shared.logging_config import configure_logging

from . import commands

BROKER_HOST = os.environ.get("BROKER_HOST", "localhost")
BROKER_PORT = int(os.environ.get("BROKER_PORT", "6379"))
SHUTDOWN_GRACE_SECONDS = float(os.environ.get("SHUTDOWN_GRACE_SECONDS", "5.0"))
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))

configure_logging("order-service")


# ── Request Models ───────────────────────────────

class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    customer_id: str
    items: list[events.OrderItem] = Field(min_length=1)


# ── Endpoints ────────────────────────────────────

router = APIRouter()


def get_broker(request: Request) -> BrokerClient:
    return request.app.state.broker


@router.post("/api/orders")
async def api_create_order(
    req: CreateOrderRequest,
    broker: BrokerClient = Depends(get_broker),
):
    """注文作成（発行したら即座に応答する）"""
    try:
        order_id = await commands.create_order(broker, req.customer_id, req.items)
    except InvalidOrderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PublishError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"orderId": order_id, "message": "Order created successfully"}


@router.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}


def create_app(broker: BrokerClient | None = None) -> FastAPI:
    """
    アプリを生成する。broker を渡さなければ Redis に接続する。
    接続できなければ lifespan が例外を送出し、起動は中止される。
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = broker or RedisBrokerClient(BROKER_HOST, BROKER_PORT)
        await client.connect()
        app.state.broker = client
        yield
        await client.disconnect(grace_period=SHUTDOWN_GRACE_SECONDS)

    app = FastAPI(title="Order Service", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)
