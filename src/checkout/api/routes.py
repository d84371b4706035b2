"""FastAPI endpoints for carts, favorites and checkout sessions."""

from contextlib import contextmanager

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from protean.exceptions import ValidationError

from checkout.api.schemas import (
    AddCartItemRequest,
    BeginCheckoutRequest,
    CartBreakdownResponse,
    CartEntrySchema,
    CartResponse,
    CheckoutSessionResponse,
    ConfigureGatewayRequest,
    FavoritesResponse,
    GatewayConfigResponse,
    MoneySchema,
    PreviewRequest,
    SellerBreakdownSchema,
    StatusResponse,
    SubmitPaymentRequest,
    UpdateCartItemRequest,
)
from checkout.errors import (
    CheckoutError,
    ListingUnavailable,
    NetworkOrServerError,
    PaymentAuthorizationFailed,
    PaymentWindowExpired,
    RedirectReturnMismatch,
    ValidationRejected,
)
from checkout.flow.page import CheckoutPage
from checkout.payment.attempt import PaymentMethodKind
from checkout.payment.gateway.fake_adapter import FakeGateway
from checkout.payment.gateway.port import WalletPaymentMethod
from checkout.payment.orchestrator import CardInput, PaymentSelection
from checkout.payment.redirect import parse_redirect_return
from checkout.pricing.breakdown import CartLine, group_by_seller, is_free_shipping, seller_totals, select_delivery_method
from checkout.services import CheckoutServices

_STATUS_CODES = {
    ListingUnavailable: 410,
    ValidationRejected: 422,
    PaymentAuthorizationFailed: 402,
    PaymentWindowExpired: 409,
    NetworkOrServerError: 502,
    RedirectReturnMismatch: 404,
}


def get_services(request: Request) -> CheckoutServices:
    return request.app.state.services


@contextmanager
def translated_errors():
    """Turn checkout and domain errors into HTTP responses."""
    try:
        yield
    except CheckoutError as exc:
        raise HTTPException(status_code=_STATUS_CODES.get(type(exc), 400), detail=exc.to_dict()) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.messages) from exc


def _money(value) -> MoneySchema | None:
    return MoneySchema(**value.to_wire()) if value is not None else None


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


def _cart_response(cart) -> CartResponse:
    return CartResponse(
        buyer_id=str(cart.buyer_id),
        items=[
            CartEntrySchema(
                listing_id=str(item.listing_id),
                quantity=item.quantity,
                option_id=item.option_id,
                option_label=item.option_label,
                option_price_increment=item.option_price_increment or 0,
            )
            for item in cart.items
        ],
        item_count=cart.item_count,
    )


async def _listing_or_404(services: CheckoutServices, listing_id: str):
    listing = await services.catalog.fetch(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found")
    return listing


async def _persisted(mutation) -> None:
    if not await mutation.confirmed():
        error = NetworkOrServerError("Your cart could not be saved. Please try again.")
        raise HTTPException(status_code=502, detail=error.to_dict())


@cart_router.get("/{buyer_id}", response_model=CartResponse)
async def get_cart(buyer_id: str, services: CheckoutServices = Depends(get_services)) -> CartResponse:
    cart = await services.carts.load(buyer_id)
    return _cart_response(cart)


@cart_router.post("/{buyer_id}/items", status_code=201, response_model=CartResponse)
async def add_cart_item(
    buyer_id: str, body: AddCartItemRequest, services: CheckoutServices = Depends(get_services)
) -> CartResponse:
    listing = await _listing_or_404(services, body.listing_id)
    await services.carts.load(buyer_id)
    with translated_errors():
        mutation = services.carts.add(buyer_id, listing, body.quantity, body.option_id)
    await _persisted(mutation)
    return _cart_response(mutation.cart)


@cart_router.put("/{buyer_id}/items/{listing_id}", response_model=CartResponse)
async def update_cart_item(
    buyer_id: str, listing_id: str, body: UpdateCartItemRequest, services: CheckoutServices = Depends(get_services)
) -> CartResponse:
    listing = await _listing_or_404(services, listing_id)
    await services.carts.load(buyer_id)
    with translated_errors():
        mutation = services.carts.set_quantity(buyer_id, listing, body.quantity, body.option_id)
    await _persisted(mutation)
    return _cart_response(mutation.cart)


@cart_router.delete("/{buyer_id}/items/{listing_id}", response_model=CartResponse)
async def remove_cart_item(
    buyer_id: str, listing_id: str, services: CheckoutServices = Depends(get_services)
) -> CartResponse:
    await services.carts.load(buyer_id)
    with translated_errors():
        mutation = services.carts.remove(buyer_id, listing_id)
    await _persisted(mutation)
    return _cart_response(mutation.cart)


@cart_router.get("/{buyer_id}/breakdown", response_model=CartBreakdownResponse)
async def cart_breakdown(buyer_id: str, services: CheckoutServices = Depends(get_services)) -> CartBreakdownResponse:
    """One breakdown per seller; each seller group checks out separately."""
    cart = await services.carts.load(buyer_id)
    ids = list(dict.fromkeys(str(item.listing_id) for item in cart.items))
    listings = {listing.id: listing for listing in await services.catalog.fetch_many(ids)}

    lines = []
    for item in cart.items:
        listing = listings.get(str(item.listing_id))
        if listing is not None:
            lines.append(CartLine(listing=listing, quantity=item.quantity, option=listing.option(item.option_id)))

    sellers = []
    for group in group_by_seller(lines):
        compatibility = group.compatibility
        try:
            delivery_method = select_delivery_method(compatibility)
        except ValidationError:
            delivery_method = None
        totals = seller_totals(group, delivery_method)
        sellers.append(
            SellerBreakdownSchema(
                author_id=group.author_id,
                listing_ids=[listing.id for listing in group.listings],
                delivery_method=delivery_method,
                shipping_available=compatibility.shipping_available,
                pickup_available=compatibility.pickup_available,
                requires_negotiation=compatibility.requires_negotiation,
                is_free_shipping=is_free_shipping(delivery_method, compatibility.shipping_available, totals.shipping),
                subtotal=_money(totals.subtotal),
                shipping=_money(totals.shipping),
                total=_money(totals.total),
            )
        )
    return CartBreakdownResponse(
        buyer_id=buyer_id,
        sellers=sellers,
        missing_listing_ids=[listing_id for listing_id in ids if listing_id not in listings],
    )


# ---------------------------------------------------------------------------
# Favorites Router
# ---------------------------------------------------------------------------
favorites_router = APIRouter(prefix="/favorites", tags=["favorites"])


async def _favorites_response(services: CheckoutServices, buyer_id: str) -> FavoritesResponse:
    favorites = await services.favorites.load(buyer_id)
    return FavoritesResponse(buyer_id=buyer_id, listing_ids=favorites.ids)


@favorites_router.get("/{buyer_id}", response_model=FavoritesResponse)
async def get_favorites(buyer_id: str, services: CheckoutServices = Depends(get_services)) -> FavoritesResponse:
    return await _favorites_response(services, buyer_id)


@favorites_router.post("/{buyer_id}/{listing_id}", status_code=201, response_model=FavoritesResponse)
async def add_favorite(
    buyer_id: str, listing_id: str, services: CheckoutServices = Depends(get_services)
) -> FavoritesResponse:
    with translated_errors():
        persisted = await services.favorites.add(buyer_id, listing_id)
    await _persisted_task(persisted)
    return await _favorites_response(services, buyer_id)


@favorites_router.delete("/{buyer_id}/{listing_id}", response_model=FavoritesResponse)
async def remove_favorite(
    buyer_id: str, listing_id: str, services: CheckoutServices = Depends(get_services)
) -> FavoritesResponse:
    with translated_errors():
        persisted = await services.favorites.remove(buyer_id, listing_id)
    await _persisted_task(persisted)
    return await _favorites_response(services, buyer_id)


async def _persisted_task(task) -> None:
    if not await task:
        error = NetworkOrServerError("Your favorites could not be saved. Please try again.")
        raise HTTPException(status_code=502, detail=error.to_dict())


# ---------------------------------------------------------------------------
# Checkout Session Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout/sessions", tags=["checkout"])


def _mount(services: CheckoutServices, session_id: str) -> CheckoutPage:
    page = CheckoutPage.mount(services, session_id)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Checkout session {session_id} not found")
    return page


def _session_response(page: CheckoutPage) -> CheckoutSessionResponse:
    return CheckoutSessionResponse(**page.view())


def _selection(body: SubmitPaymentRequest) -> PaymentSelection:
    wallet = None
    if body.wallet_payment_method_id:
        wallet = WalletPaymentMethod(id=body.wallet_payment_method_id, wallet=body.wallet or "wallet")
    return PaymentSelection(
        method=PaymentMethodKind(body.method),
        payment_method_id=body.payment_method_id,
        card=CardInput(complete=body.card_complete, token=body.card_token, error=body.card_error),
        wallet=wallet,
        has_saved_default=body.has_saved_default,
        save_payment_method=body.save_payment_method,
        redirect_method_type=body.redirect_method_type,
    )


def _schedule_cleanup(page: CheckoutPage, services: CheckoutServices, background_tasks: BackgroundTasks) -> None:
    tx = page.transactions.transaction
    if page.navigation and tx is not None:
        background_tasks.add_task(services.cleanup.handle, tx)


@checkout_router.post("", status_code=201, response_model=CheckoutSessionResponse)
async def begin_checkout(
    body: BeginCheckoutRequest, services: CheckoutServices = Depends(get_services)
) -> CheckoutSessionResponse:
    with translated_errors():
        if body.author_id:
            page = await CheckoutPage.begin_from_cart(
                services, body.buyer_id, body.author_id, delivery_method=body.delivery_method
            )
        else:
            page = await CheckoutPage.begin_from_listing(
                services,
                body.buyer_id,
                body.listing_id,
                quantity=body.quantity,
                option_id=body.option_id,
                delivery_method=body.delivery_method,
            )
        await page.load()
    return _session_response(page)


@checkout_router.get("/{session_id}", response_model=CheckoutSessionResponse)
async def mount_checkout(session_id: str, services: CheckoutServices = Depends(get_services)):
    """Page mount: resumes a stored transaction or prices the order again."""
    page = _mount(services, session_id)
    with translated_errors():
        await page.load()
    return _session_response(page)


@checkout_router.post("/{session_id}/preview", response_model=CheckoutSessionResponse)
async def preview_checkout(
    session_id: str, body: PreviewRequest, services: CheckoutServices = Depends(get_services)
) -> CheckoutSessionResponse:
    page = _mount(services, session_id)
    with translated_errors():
        await page.preview(delivery_method=body.delivery_method, quantity=body.quantity, option_id=body.option_id)
    return _session_response(page)


@checkout_router.post("/{session_id}/submit", response_model=CheckoutSessionResponse)
async def submit_payment(
    session_id: str,
    body: SubmitPaymentRequest,
    background_tasks: BackgroundTasks,
    services: CheckoutServices = Depends(get_services),
) -> CheckoutSessionResponse:
    page = _mount(services, session_id)
    with translated_errors():
        await page.submit(_selection(body))
    _schedule_cleanup(page, services, background_tasks)
    return _session_response(page)


@checkout_router.get("/{session_id}/return", response_model=CheckoutSessionResponse)
async def redirect_return(
    session_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    services: CheckoutServices = Depends(get_services),
) -> CheckoutSessionResponse:
    """Where the external payment page sends the buyer back to."""
    query = dict(request.query_params)
    with translated_errors():
        page = CheckoutPage.mount(services, session_id)
        if page is None:
            marker = parse_redirect_return(query)
            if marker is None:
                raise HTTPException(status_code=404, detail=f"Checkout session {session_id} not found")
            raise RedirectReturnMismatch(
                detail=f"No checkout session {session_id} for transaction {marker.transaction_id}"
            )
        await page.load(query)
    _schedule_cleanup(page, services, background_tasks)
    return _session_response(page)


@checkout_router.post("/{session_id}/cancel-retry", response_model=CheckoutSessionResponse)
async def cancel_and_retry(session_id: str, services: CheckoutServices = Depends(get_services)):
    page = _mount(services, session_id)
    with translated_errors():
        await page.cancel_and_retry()
    return _session_response(page)


@checkout_router.post("/{session_id}/retry", response_model=CheckoutSessionResponse)
async def retry_payment(session_id: str, services: CheckoutServices = Depends(get_services)):
    page = _mount(services, session_id)
    with translated_errors():
        page.retry_payment()
    return _session_response(page)


# ---------------------------------------------------------------------------
# Gateway Router
# ---------------------------------------------------------------------------
gateway_router = APIRouter(prefix="/gateway", tags=["gateway"])


@gateway_router.post("/configure", response_model=GatewayConfigResponse)
async def configure_gateway(
    body: ConfigureGatewayRequest, services: CheckoutServices = Depends(get_services)
) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if services.settings.is_production:
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = services.gateway
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        challenge=body.challenge,
        wallets=body.wallets,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        challenge=gateway.challenge,
    )


@gateway_router.post("/ready", response_model=StatusResponse)
async def mark_gateway_ready(services: CheckoutServices = Depends(get_services)) -> StatusResponse:
    gateway = services.gateway
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Only available for FakeGateway")
    gateway.mark_ready()
    return StatusResponse()
