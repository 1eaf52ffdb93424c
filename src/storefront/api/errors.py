"""HTTP mapping for storefront errors.

Protean's handlers cover ``ValidationError`` (400) and ``ObjectNotFoundError``
(404). The storefront adds stock conflicts, payment-status writes, gateway
outages and bad webhook signatures on top.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from storefront.domain import logger
from storefront.exceptions import GatewayUnavailable, InsufficientStock, InvalidSignature, PaymentStatusConflict


async def _insufficient_stock(request: Request, exc: InsufficientStock) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": exc.messages, "deficit": exc.to_dict()})


async def _payment_status_conflict(request: Request, exc: PaymentStatusConflict) -> JSONResponse:
    logger.warning("Rejected payment status write", path=request.url.path)
    return JSONResponse(status_code=409, content={"error": str(exc)})


async def _gateway_unavailable(request: Request, exc: GatewayUnavailable) -> JSONResponse:
    logger.error("External service unavailable", service=exc.service, reason=exc.reason, path=request.url.path)
    return JSONResponse(status_code=503, content={"error": str(exc), "retryable": True})


async def _invalid_signature(request: Request, exc: InvalidSignature) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


def register_storefront_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(InsufficientStock, _insufficient_stock)
    app.add_exception_handler(PaymentStatusConflict, _payment_status_conflict)
    app.add_exception_handler(GatewayUnavailable, _gateway_unavailable)
    app.add_exception_handler(InvalidSignature, _invalid_signature)
