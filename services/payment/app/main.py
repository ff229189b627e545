"""
Payment Service: FastAPI エントリーポイント

起動時に orders/created を購読し、バックグラウンドで決済を処理する。
HTTP はヘルスチェックのみ。Command エンドポイントは持たない。
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from services.shared import events
from services.shared.broker import BrokerClient, RedisBrokerClient
from services.shared.logging_config import configure_logging

from .processor import PaymentProcessor

BROKER_HOST = os.environ.get("BROKER_HOST", "localhost")
BROKER_PORT = int(os.environ.get("BROKER_PORT", "6379"))
PAYMENT_DELAY_SECONDS = float(os.environ.get("PAYMENT_DELAY_SECONDS", "1.0"))
SHUTDOWN_GRACE_SECONDS = float(os.environ.get("SHUTDOWN_GRACE_SECONDS", "5.0"))
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8001"))

configure_logging("payment-service")


def create_app(
    broker: BrokerClient | None = None,
    delay: float = PAYMENT_DELAY_SECONDS,
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = broker or RedisBrokerClient(BROKER_HOST, BROKER_PORT)
        await client.connect()
        processor = PaymentProcessor(client, delay)
        await client.subscribe(events.ORDERS_CREATED, processor.handle_order_created)
        app.state.broker = client
        yield
        await client.disconnect(grace_period=SHUTDOWN_GRACE_SECONDS)

    app = FastAPI(title="Payment Service", lifespan=lifespan)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": "payment-service",
            "in_flight": app.state.broker.in_flight,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)
