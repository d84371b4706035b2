"""Checkout API package."""

from checkout.api.routes import cart_router, checkout_router, favorites_router, gateway_router

__all__ = ["cart_router", "favorites_router", "checkout_router", "gateway_router"]
