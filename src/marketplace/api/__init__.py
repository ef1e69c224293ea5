"""Marketplace API package."""

from marketplace.api.errors import register_error_handlers
from marketplace.api.routes import commission_router, order_router

__all__ = ["commission_router", "order_router", "register_error_handlers"]
