from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from puremeds.api.routes import admin, audit, auth, complaints, orders, products, supply_chain, verification
from puremeds.core.config import settings
from puremeds.core.errors import LedgerConfigurationError, register_exception_handlers
from puremeds.core.security import AuthRequiredMiddleware, InMemoryRateLimiterMiddleware, RequestContextMiddleware
from puremeds.db.session import init_db
from puremeds.services.ledger import build_ledger_client

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    ledger_client = build_ledger_client(settings)
    try:
        ledger_client.connect()
    except LedgerConfigurationError as exc:
        logger.warning("Ledger %s not connected at startup: %s", ledger_client.name, exc.message)
    app.state.ledger_client = ledger_client
    yield


app = FastAPI(
    title="PureMeds API",
    version="0.1.0",
    description=(
        "Medicine catalog, batch registration, and QR/ledger-backed authenticity "
        "verification."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-API-Key", "X-Request-ID"],
)
app.add_middleware(InMemoryRateLimiterMiddleware)
app.add_middleware(AuthRequiredMiddleware)
app.add_middleware(RequestContextMiddleware)
register_exception_handlers(app)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


app.include_router(verification.router, prefix="/api/v1/verify", tags=["verification"])
app.include_router(products.router, prefix="/api/v1/products", tags=["products"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(supply_chain.router, prefix="/api/v1/supply-chain", tags=["supply-chain"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(complaints.router, prefix="/api/v1/complaints", tags=["complaints"])
app.include_router(audit.router, prefix="/api/v1/audit", tags=["audit"])
app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
