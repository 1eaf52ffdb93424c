"""FastAPI routes for the storefront: catalogue, stock, cart, orders, checkout."""

import json

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    AddToCartRequest,
    BulkUpdateStatusRequest,
    BulkUpdateStatusResponse,
    CartLineIdResponse,
    CartLineResponse,
    CartResponse,
    CheckoutSessionResponse,
    ClearCartResponse,
    CreateFlavorRequest,
    CreateRecipeRequest,
    FlavorIdResponse,
    FlavorResponse,
    OpenProductStockRequest,
    OrderIdResponse,
    OrderItemResponse,
    OrderPageResponse,
    OrderResponse,
    PlaceOrderRequest,
    PurgeResponse,
    ReceiveStockRequest,
    RecipeIdResponse,
    RecipeItemSchema,
    RecipeResponse,
    RecordShipmentRequest,
    RetryPaymentRequest,
    SafetyStockRequest,
    ShippingRateSchema,
    ShippingRatesRequest,
    ShippingRatesResponse,
    StartCheckoutRequest,
    StatusResponse,
    StockCounterResponse,
    UpdateCartLineRequest,
    UpdateStatusRequest,
    WebhookResponse,
)
from storefront.carrier import get_carrier
from storefront.carrier.port import DEFAULT_PARCEL
from storefront.cart.cart import Cart
from storefront.cart.items import AddToCart, ClearCart, RemoveCartLine, UpdateCartLine
from storefront.catalogue.flavor import Flavor
from storefront.catalogue.management import (
    ActivateFlavor,
    CreateFlavor,
    CreatePackRecipe,
    DeactivateFlavor,
    DeactivatePackRecipe,
)
from storefront.catalogue.recipe import PackRecipe
from storefront.checkout.session import RetryPayment, StartCheckout
from storefront.checkout.webhook import handle_payment_webhook
from storefront.exceptions import PaymentStatusConflict
from storefront.identity import Owner
from storefront.order.administration import BulkUpdateOrderStatus, PurgeOrders, RecordShipment, UpdateOrderStatus
from storefront.order.order import ADMIN_PAGE_LIMIT, ADMIN_PAGE_SIZE, Order
from storefront.order.placement import PlaceOrder
from storefront.stock.counter import StockCounter
from storefront.stock.ledger import process_stock_command
from storefront.stock.management import OpenProductStock, ReceiveStock, SetSafetyStock


def owner_headers(
    x_user_id: str | None = Header(default=None),
    x_guest_id: str | None = Header(default=None),
) -> dict:
    """Identity as set by the auth middleware in front of the API."""
    return {"user_id": x_user_id, "guest_id": x_guest_id}


def _dump(model) -> str | None:
    return json.dumps(model.model_dump()) if model is not None else None


def _dump_items(items) -> str | None:
    return json.dumps([item.model_dump(exclude_none=True) for item in items]) if items else None


def _reject_payment_status(payment_status: str | None) -> None:
    if payment_status is not None:
        raise PaymentStatusConflict("Payment status is set by the payment gateway only")


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        status=order.status,
        payment_status=order.payment_status,
        total=order.total,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id) if item.product_id else None,
                recipe_id=str(item.recipe_id) if item.recipe_id else None,
                sku=item.sku,
                name=item.custom_name,
                flavor_ids=item.units,
                quantity=item.quantity,
                price=item.price,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        shipping_address=order.shipping_address.to_dict() if order.shipping_address else None,
        shipping_carrier=order.shipping_carrier,
        shipping_service=order.shipping_service,
        shipping_cost=order.shipping_cost,
        tracking_number=order.tracking_number,
        tracking_url=order.tracking_url,
        notes=order.notes,
    )


def _counter_response(counter: StockCounter) -> StockCounterResponse:
    return StockCounterResponse(
        stock_id=str(counter.stock_id),
        kind=counter.kind,
        on_hand=counter.on_hand,
        reserved=counter.reserved,
        safety_stock=counter.safety_stock,
        available=counter.available,
    )


# ---------------------------------------------------------------------------
# Catalogue Router
# ---------------------------------------------------------------------------
catalogue_router = APIRouter(prefix="/catalogue", tags=["catalogue"])


@catalogue_router.post("/flavors", status_code=201, response_model=FlavorIdResponse)
async def create_flavor(body: CreateFlavorRequest) -> FlavorIdResponse:
    command = CreateFlavor(name=body.name, kind=body.kind, description=body.description)
    result = current_domain.process(command, asynchronous=False)
    return FlavorIdResponse(flavor_id=result)


@catalogue_router.get("/flavors", response_model=list[FlavorResponse])
async def list_flavors() -> list[FlavorResponse]:
    flavors = current_domain.repository_for(Flavor)._dao.query.order_by("name").limit(None).all().items
    counters = current_domain.repository_for(StockCounter)
    response = []
    for flavor in flavors:
        try:
            available = counters.get(str(flavor.id)).available
        except ObjectNotFoundError:
            available = None
        response.append(
            FlavorResponse(
                flavor_id=str(flavor.id),
                name=flavor.name,
                kind=flavor.kind,
                description=flavor.description,
                is_active=flavor.is_active,
                available=available,
            )
        )
    return response


@catalogue_router.put("/flavors/{flavor_id}/deactivate", response_model=StatusResponse)
async def deactivate_flavor(flavor_id: str) -> StatusResponse:
    current_domain.process(DeactivateFlavor(flavor_id=flavor_id), asynchronous=False)
    return StatusResponse()


@catalogue_router.put("/flavors/{flavor_id}/activate", response_model=StatusResponse)
async def activate_flavor(flavor_id: str) -> StatusResponse:
    current_domain.process(ActivateFlavor(flavor_id=flavor_id), asynchronous=False)
    return StatusResponse()


@catalogue_router.post("/recipes", status_code=201, response_model=RecipeIdResponse)
async def create_recipe(body: CreateRecipeRequest) -> RecipeIdResponse:
    command = CreatePackRecipe(
        name=body.name,
        kind=body.kind,
        product_type=body.product_type,
        items=json.dumps([item.model_dump() for item in body.items]),
    )
    result = current_domain.process(command, asynchronous=False)
    return RecipeIdResponse(recipe_id=result)


@catalogue_router.get("/recipes", response_model=list[RecipeResponse])
async def list_recipes() -> list[RecipeResponse]:
    recipes = current_domain.repository_for(PackRecipe)._dao.query.order_by("name").limit(None).all().items
    return [
        RecipeResponse(
            recipe_id=str(recipe.id),
            name=recipe.name,
            kind=recipe.kind,
            product_type=recipe.product_type,
            is_active=recipe.is_active,
            items=[RecipeItemSchema(flavor_id=str(item.flavor_id), quantity=item.quantity) for item in recipe.items],
        )
        for recipe in recipes
    ]


@catalogue_router.put("/recipes/{recipe_id}/deactivate", response_model=StatusResponse)
async def deactivate_recipe(recipe_id: str) -> StatusResponse:
    current_domain.process(DeactivatePackRecipe(recipe_id=recipe_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Stock Router
# ---------------------------------------------------------------------------
stock_router = APIRouter(prefix="/stock", tags=["stock"])


@stock_router.post("/products", status_code=201, response_model=StockCounterResponse)
async def open_product_stock(body: OpenProductStockRequest) -> StockCounterResponse:
    command = OpenProductStock(product_id=body.product_id, on_hand=body.on_hand, safety_stock=body.safety_stock)
    stock_id = process_stock_command(command)
    return _counter_response(current_domain.repository_for(StockCounter).get(stock_id))


@stock_router.get("/low", response_model=list[StockCounterResponse])
async def low_stock() -> list[StockCounterResponse]:
    """Counters with nothing left to sell."""
    return [_counter_response(counter) for counter in current_domain.repository_for(StockCounter).running_low()]


@stock_router.get("/{stock_id}", response_model=StockCounterResponse)
async def get_stock(stock_id: str) -> StockCounterResponse:
    return _counter_response(current_domain.repository_for(StockCounter).get(stock_id))


@stock_router.put("/{stock_id}/receive", response_model=StockCounterResponse)
async def receive_stock(stock_id: str, body: ReceiveStockRequest) -> StockCounterResponse:
    process_stock_command(ReceiveStock(stock_id=stock_id, quantity=body.quantity))
    return _counter_response(current_domain.repository_for(StockCounter).get(stock_id))


@stock_router.put("/{stock_id}/safety-stock", response_model=StockCounterResponse)
async def set_safety_stock(stock_id: str, body: SafetyStockRequest) -> StockCounterResponse:
    process_stock_command(SetSafetyStock(stock_id=stock_id, safety_stock=body.safety_stock))
    return _counter_response(current_domain.repository_for(StockCounter).get(stock_id))


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(owner: dict = Depends(owner_headers)) -> CartResponse:
    cart = current_domain.repository_for(Cart).for_owner(Owner.resolve(**owner))
    if cart is None:
        return CartResponse()
    return CartResponse(
        lines=[
            CartLineResponse(
                line_id=str(line.id),
                name=line.name,
                sku=line.sku,
                product_type=line.product_type,
                recipe_id=str(line.recipe_id) if line.recipe_id else None,
                flavor_ids=line.units,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
            )
            for line in cart.lines
        ],
        subtotal=cart.subtotal,
    )


@cart_router.post("/items", status_code=201, response_model=CartLineIdResponse)
async def add_to_cart(body: AddToCartRequest, owner: dict = Depends(owner_headers)) -> CartLineIdResponse:
    command = AddToCart(
        **owner,
        product_type=body.product_type,
        recipe_id=body.recipe_id,
        flavor_ids=json.dumps(body.flavor_ids) if body.flavor_ids else None,
        quantity=body.quantity,
    )
    result = process_stock_command(command)
    return CartLineIdResponse(line_id=result)


@cart_router.put("/items/{line_id}", response_model=CartLineIdResponse)
async def update_cart_line(
    line_id: str, body: UpdateCartLineRequest, owner: dict = Depends(owner_headers)
) -> CartLineIdResponse:
    result = process_stock_command(UpdateCartLine(**owner, line_id=line_id, quantity=body.quantity))
    return CartLineIdResponse(line_id=result)


@cart_router.delete("/items/{line_id}", response_model=StatusResponse)
async def remove_cart_line(line_id: str, owner: dict = Depends(owner_headers)) -> StatusResponse:
    process_stock_command(RemoveCartLine(**owner, line_id=line_id))
    return StatusResponse()


@cart_router.delete("", response_model=ClearCartResponse)
async def clear_cart(owner: dict = Depends(owner_headers)) -> ClearCartResponse:
    warnings = process_stock_command(ClearCart(**owner))
    return ClearCartResponse(status="partial" if warnings else "ok", warnings=warnings)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest, owner: dict = Depends(owner_headers)) -> OrderIdResponse:
    command = PlaceOrder(
        **owner,
        guest_email=body.guest_email,
        items=_dump_items(body.items),
        shipping_address=_dump(body.shipping_address),
        shipping_rate=_dump(body.shipping_rate),
        notes=body.notes,
    )
    result = process_stock_command(command)
    return OrderIdResponse(order_id=result)


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(owner: dict = Depends(owner_headers)) -> list[OrderResponse]:
    orders = current_domain.repository_for(Order).for_owner(Owner.resolve(**owner))
    return [_order_response(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, owner: dict = Depends(owner_headers)) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    if order.owner != Owner.resolve(**owner):
        raise ObjectNotFoundError({"order_id": [f"Order {order_id} not found"]})
    return _order_response(order)


@order_router.post("/{order_id}/retry-payment", response_model=CheckoutSessionResponse)
async def retry_payment(
    order_id: str, body: RetryPaymentRequest, owner: dict = Depends(owner_headers)
) -> CheckoutSessionResponse:
    command = RetryPayment(**owner, order_id=order_id, success_url=body.success_url, cancel_url=body.cancel_url)
    result = await run_in_threadpool(current_domain.process, command, asynchronous=False)
    return CheckoutSessionResponse(**result)


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin/orders", tags=["admin"])


@admin_router.get("", response_model=OrderPageResponse)
async def list_all_orders(
    status: str | None = None,
    payment_status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=ADMIN_PAGE_SIZE, ge=1),
    sort_by: str = Query(default="created_at", pattern="^(created_at|total)$"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
) -> OrderPageResponse:
    """Every order, filtered by either status and paged. Pages hold at most 200 orders."""
    result = current_domain.repository_for(Order).listing(
        status=status,
        payment_status=payment_status,
        page=page,
        per_page=limit,
        sort_by=sort_by,
        descending=sort_order == "desc",
    )
    return OrderPageResponse(
        orders=[_order_response(order) for order in result.items],
        page=page,
        limit=min(limit, ADMIN_PAGE_LIMIT),
        total=result.total,
    )


@admin_router.put("/status", response_model=BulkUpdateStatusResponse)
async def bulk_update_status(body: BulkUpdateStatusRequest) -> BulkUpdateStatusResponse:
    _reject_payment_status(body.payment_status)
    command = BulkUpdateOrderStatus(order_ids=json.dumps(body.order_ids), status=body.status)
    result = process_stock_command(command)
    return BulkUpdateStatusResponse(**result)


@admin_router.put("/{order_id}/status", response_model=StatusResponse)
async def update_order_status(order_id: str, body: UpdateStatusRequest) -> StatusResponse:
    _reject_payment_status(body.payment_status)
    result = process_stock_command(UpdateOrderStatus(order_id=order_id, status=body.status))
    return StatusResponse(status=result)


@admin_router.post("/{order_id}/shipment", response_model=StatusResponse)
async def record_shipment(order_id: str, body: RecordShipmentRequest) -> StatusResponse:
    command = RecordShipment(
        order_id=order_id,
        tracking_number=body.tracking_number,
        tracking_url=body.tracking_url,
        label_cost=body.label_cost,
        carrier=body.carrier,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@admin_router.delete("", response_model=PurgeResponse)
async def purge_orders(status: str) -> PurgeResponse:
    deleted = process_stock_command(PurgeOrders(status=status))
    return PurgeResponse(deleted=deleted)


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/session", status_code=201, response_model=CheckoutSessionResponse)
async def start_checkout(body: StartCheckoutRequest, owner: dict = Depends(owner_headers)) -> CheckoutSessionResponse:
    command = StartCheckout(
        **owner,
        order_id=body.order_id,
        guest_email=body.guest_email,
        items=_dump_items(body.items),
        shipping_address=_dump(body.shipping_address),
        shipping_rate=_dump(body.shipping_rate),
        notes=body.notes,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )
    result = await run_in_threadpool(current_domain.process, command, asynchronous=False)
    return CheckoutSessionResponse(**result)


@checkout_router.post("/rates", response_model=ShippingRatesResponse)
async def shipping_rates(body: ShippingRatesRequest) -> ShippingRatesResponse:
    rates = await run_in_threadpool(
        get_carrier().get_rates, body.address.model_dump(exclude_none=True), [DEFAULT_PARCEL] * body.packs
    )
    return ShippingRatesResponse(
        rates=[
            ShippingRateSchema(
                rate_id=rate.rate_id,
                carrier=rate.carrier,
                service_name=rate.service_name,
                amount=rate.amount,
                eta_days=rate.eta_days,
            )
            for rate in sorted(rates, key=lambda rate: rate.amount)
        ]
    )


@checkout_router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    x_gateway_signature: str | None = Header(default=None),
) -> WebhookResponse:
    """Gateway callback. The raw body is needed for signature verification."""
    payload = await request.body()
    result = await run_in_threadpool(handle_payment_webhook, payload, stripe_signature or x_gateway_signature)
    return WebhookResponse(
        received=result["received"],
        handled=result["handled"],
        order_id=result.get("order_id"),
        created=result.get("created", False),
        committed=result.get("committed", False),
    )
