"""Checkout API package."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from checkout.api.routes import admin_router, cart_router, order_router, payment_router
from checkout.exceptions import InvalidSignature, UpstreamUnavailable

__all__ = ["admin_router", "cart_router", "order_router", "payment_router", "register_error_handlers"]


def register_error_handlers(app: FastAPI) -> None:
    """Protean's standard handlers plus the checkout errors that are not validation problems."""
    register_exception_handlers(app)

    @app.exception_handler(InvalidSignature)
    async def invalid_signature_handler(request: Request, exc: InvalidSignature) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": exc.reason})

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
        return JSONResponse(status_code=503, content={"error": str(exc)})
