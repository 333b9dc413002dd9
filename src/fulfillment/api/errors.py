"""HTTP mapping for the fulfillment error types.

Registered on top of Protean's own handlers; Starlette resolves handlers by
the exception's MRO, so these win over the generic ``ValidationError`` and
``ObjectNotFoundError`` mappings.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fulfillment.order.exceptions import (
    ConcurrentModification,
    FulfillmentThresholdNotMet,
    InvalidTransition,
    NotFound,
    OverAllocation,
)

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    NotFound: 404,
    InvalidTransition: 409,
    OverAllocation: 409,
    FulfillmentThresholdNotMet: 422,
    ConcurrentModification: 412,
}


async def fulfillment_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = STATUS_CODES[type(exc)]
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": getattr(exc, "messages", {"error": [str(exc)]}), "code": type(exc).__name__},
    )


def register_fulfillment_exception_handlers(app: FastAPI) -> None:
    for exc_class in STATUS_CODES:
        app.add_exception_handler(exc_class, fulfillment_error_handler)
