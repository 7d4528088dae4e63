"""Storefront orders API service entrypoint."""

from fastapi import FastAPI

from services.storefront.app.config import configure_logging
from services.storefront.app.db.init_db import init_db
from services.storefront.app.routers.order import router as order_router

app = FastAPI(title="Storefront Orders API")

app.include_router(order_router)


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
