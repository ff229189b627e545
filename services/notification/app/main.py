"""
Notification Service: FastAPI エントリーポイント

orders/created, payments/processed, inventory/reserved を購読し、
バックグラウンドで顧客に通知する。

┌───────────────┐  orders/created      ┌──────────────────────┐
│ Order Service │ ───────────────────▶ │                      │
├───────────────┤  payments/processed  │                      │
│ Payment Svc   │ ───── Redis ───────▶ │ Notification Service │
├───────────────┤  inventory/reserved  │ (終端: 何も発行しない) │
│ Inventory Svc │ ───────────────────▶ │                      │
└───────────────┘                      └──────────────────────┘
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from services.shared.broker import BrokerClient, RedisBrokerClient
from services.shared.logging_config import configure_logging

from .notifier import Notifier

BROKER_HOST = os.environ.get("BROKER_HOST", "localhost")
BROKER_PORT = int(os.environ.get("BROKER_PORT", "6379"))
SHUTDOWN_GRACE_SECONDS = float(os.environ.get("SHUTDOWN_GRACE_SECONDS", "5.0"))
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8003"))

configure_logging("notification-service")


def create_app(broker: BrokerClient | None = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """起動時に3トピックを購読する。"""
        client = broker or RedisBrokerClient(BROKER_HOST, BROKER_PORT)
        await client.connect()
        notifier = Notifier()
        for topic, handler in notifier.subscriptions().items():
            await client.subscribe(topic, handler)
        app.state.broker = client
        yield
        await client.disconnect(grace_period=SHUTDOWN_GRACE_SECONDS)

    app = FastAPI(title="Notification Service", lifespan=lifespan)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": "notification-service",
            "topics": app.state.broker.topics,
            "in_flight": app.state.broker.in_flight,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)
