from storefront.api.errors import register_storefront_exception_handlers
from storefront.api.routes import (
    admin_router,
    cart_router,
    catalogue_router,
    checkout_router,
    order_router,
    stock_router,
)

__all__ = [
    "admin_router",
    "cart_router",
    "catalogue_router",
    "checkout_router",
    "order_router",
    "stock_router",
    "register_storefront_exception_handlers",
]
