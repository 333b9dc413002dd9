"""Cold-chain fulfillment FastAPI application.

Web server that runs fulfillment commands synchronously per HTTP request.
Each request is wrapped in the fulfillment domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (projectors fire in UoW)
#   - "production" → event_processing = "async" (projectors fire via Engine)
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from fulfillment.domain import fulfillment  # noqa: E402
from fulfillment.utils.logging import configure_logging

configure_logging()
fulfillment.init()

_DOMAIN_PREFIXES = ("/orders", "/shipments")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Cold-Chain Fulfillment API",
    description="Order fulfillment, shipments and cold-chain monitoring",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the fulfillment domain context for API requests."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with fulfillment.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers and error mapping
# ---------------------------------------------------------------------------
from fulfillment.api.errors import register_fulfillment_exception_handlers  # noqa: E402
from fulfillment.api.routes import order_router, shipment_router  # noqa: E402

app.include_router(order_router)
app.include_router(shipment_router)
register_exception_handlers(app)
register_fulfillment_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"fulfillment": {"name": fulfillment.name}},
        }
    )
