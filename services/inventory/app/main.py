"""
Inventory Service: FastAPI エントリーポイント

起動時に orders/created を購読し、バックグラウンドで在庫を引き当てる。
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from services.shared import events
from services.shared.broker import BrokerClient, RedisBrokerClient
from services.shared.logging_config import configure_logging

from .reservations import InventoryReserver

BROKER_HOST = os.environ.get("BROKER_HOST", "localhost")
BROKER_PORT = int(os.environ.get("BROKER_PORT", "6379"))
INVENTORY_DELAY_SECONDS = float(os.environ.get("INVENTORY_DELAY_SECONDS", "0.8"))
SHUTDOWN_GRACE_SECONDS = float(os.environ.get("SHUTDOWN_GRACE_SECONDS", "5.0"))
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8002"))

configure_logging("inventory-service")


def create_app(
    broker: BrokerClient | None = None,
    delay: float = INVENTORY_DELAY_SECONDS,
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = broker or RedisBrokerClient(BROKER_HOST, BROKER_PORT)
        await client.connect()
        reserver = InventoryReserver(client, delay)
        await client.subscribe(events.ORDERS_CREATED, reserver.handle_order_created)
        app.state.broker = client
        yield
        await client.disconnect(grace_period=SHUTDOWN_GRACE_SECONDS)

    app = FastAPI(title="Inventory Service", lifespan=lifespan)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": "inventory-service",
            "in_flight": app.state.broker.in_flight,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)
