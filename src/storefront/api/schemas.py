"""Pydantic request/response schemas for the storefront API.

These are external contracts, kept apart from the Protean commands they
are translated into.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str | None = None
    street: str
    street2: str | None = None
    city: str
    state: str | None = None
    postal_code: str
    country: str
    phone: str | None = None


class ShippingRateSchema(BaseModel):
    rate_id: str
    carrier: str | None = None
    service_name: str | None = None
    amount: float = Field(ge=0)
    eta_days: int | None = None


class CheckoutItemSchema(BaseModel):
    """A pack (``recipe_id`` or ``flavor_ids``) or a regular product (``product_id``)."""

    product_type: str | None = None
    recipe_id: str | None = None
    flavor_ids: list[str] | None = None
    product_id: str | None = None
    name: str | None = None
    price: float | None = Field(default=None, ge=0)
    quantity: int = Field(ge=1)


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
class CreateFlavorRequest(BaseModel):
    name: str
    kind: str | None = None
    description: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Blue Raspberry",
                    "kind": "Traditional",
                    "description": "Tart and bright",
                }
            ]
        }
    }


class FlavorIdResponse(BaseModel):
    flavor_id: str


class RecipeItemSchema(BaseModel):
    flavor_id: str
    quantity: int = Field(ge=1)


class CreateRecipeRequest(BaseModel):
    name: str
    kind: str
    product_type: str = "3-pack"
    items: list[RecipeItemSchema] = Field(min_length=1)


class RecipeIdResponse(BaseModel):
    recipe_id: str


class FlavorResponse(BaseModel):
    flavor_id: str
    name: str
    kind: str | None = None
    description: str | None = None
    is_active: bool
    available: int | None = None


class RecipeResponse(BaseModel):
    recipe_id: str
    name: str
    kind: str
    product_type: str
    is_active: bool
    items: list[RecipeItemSchema]


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------
class OpenProductStockRequest(BaseModel):
    product_id: str
    on_hand: int = Field(default=0, ge=0)
    safety_stock: int = Field(default=0, ge=0)


class ReceiveStockRequest(BaseModel):
    quantity: int = Field(ge=1)


class SafetyStockRequest(BaseModel):
    safety_stock: int = Field(ge=0)


class StockCounterResponse(BaseModel):
    stock_id: str
    kind: str
    on_hand: int
    reserved: int
    safety_stock: int
    available: int


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_type: str = "3-pack"
    recipe_id: str | None = None
    flavor_ids: list[str] | None = None
    quantity: int = Field(default=1, ge=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_type": "3-pack",
                    "flavor_ids": ["flv-cherry", "flv-lime", "flv-grape"],
                    "quantity": 1,
                }
            ]
        }
    }


class UpdateCartLineRequest(BaseModel):
    # Zero and negative quantities are rejected by the cart itself
    quantity: int


class CartLineIdResponse(BaseModel):
    line_id: str


class CartLineResponse(BaseModel):
    line_id: str
    name: str | None = None
    sku: str | None = None
    product_type: str
    recipe_id: str | None = None
    flavor_ids: list[str]
    quantity: int
    unit_price: float
    line_total: float


class CartResponse(BaseModel):
    lines: list[CartLineResponse] = []
    subtotal: float = 0.0


class ClearCartResponse(BaseModel):
    status: str = "ok"
    warnings: list[str] = []


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    guest_email: str | None = None
    items: list[CheckoutItemSchema] | None = None
    shipping_address: AddressSchema | None = None
    shipping_rate: ShippingRateSchema | None = None
    notes: str | None = None


class OrderIdResponse(BaseModel):
    order_id: str


class OrderItemResponse(BaseModel):
    product_id: str | None = None
    recipe_id: str | None = None
    sku: str | None = None
    name: str | None = None
    flavor_ids: list[str]
    quantity: int
    price: float
    line_total: float


class OrderResponse(BaseModel):
    order_id: str
    status: str
    payment_status: str
    total: float
    items: list[OrderItemResponse]
    shipping_address: AddressSchema | None = None
    shipping_carrier: str | None = None
    shipping_service: str | None = None
    shipping_cost: float | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    notes: str | None = None


class OrderPageResponse(BaseModel):
    orders: list[OrderResponse]
    page: int
    limit: int
    total: int


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
class UpdateStatusRequest(BaseModel):
    status: str
    # Accepted only so it can be refused explicitly
    payment_status: str | None = None


class BulkUpdateStatusRequest(BaseModel):
    order_ids: list[str] = Field(min_length=1)
    status: str
    payment_status: str | None = None


class BulkUpdateStatusResponse(BaseModel):
    updated: list[str]
    skipped: list[dict]


class RecordShipmentRequest(BaseModel):
    tracking_number: str
    tracking_url: str | None = None
    label_cost: float | None = None
    carrier: str | None = None


class PurgeResponse(BaseModel):
    deleted: int


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class StartCheckoutRequest(BaseModel):
    order_id: str | None = None
    guest_email: str | None = None
    items: list[CheckoutItemSchema] | None = None
    shipping_address: AddressSchema | None = None
    shipping_rate: ShippingRateSchema | None = None
    notes: str | None = None
    success_url: str
    cancel_url: str


class RetryPaymentRequest(BaseModel):
    success_url: str
    cancel_url: str


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: str
    total: float


class ShippingRatesRequest(BaseModel):
    address: AddressSchema
    packs: int = Field(default=1, ge=1)


class ShippingRatesResponse(BaseModel):
    rates: list[ShippingRateSchema]


class WebhookResponse(BaseModel):
    received: bool = True
    handled: bool = False
    order_id: str | None = None
    created: bool = False
    committed: bool = False
