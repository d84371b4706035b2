"""Marketplace checkout FastAPI application.

Serves carts, favorites and checkout sessions over HTTP against the
in-memory adapters. Every request runs inside the checkout domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from checkout.api import cart_router, checkout_router, favorites_router, gateway_router
from checkout.domain import checkout
from checkout.services import CheckoutServices, build_services
from checkout.utils.logging import add_context, clear_context

# PROTEAN_ENV selects the config overlay; the domain is initialised once per process.
checkout.init()


def create_app(services: CheckoutServices | None = None) -> FastAPI:
    app = FastAPI(
        title="Marketplace Checkout API",
        description="Cart, pricing, ledger transactions and payments for the marketplace storefront",
    )
    app.state.services = services or build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the checkout domain context for each request."""
        clear_context()
        add_context(method=request.method, path=request.url.path)
        with checkout.domain_context():
            return await call_next(request)

    app.include_router(cart_router)
    app.include_router(favorites_router)
    app.include_router(checkout_router)
    app.include_router(gateway_router)

    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "domain": checkout.name,
                "environment": app.state.services.settings.environment,
            }
        )

    return app


app = create_app()
