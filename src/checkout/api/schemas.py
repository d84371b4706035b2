"""Pydantic request/response schemas for the checkout API.

These are external contracts, kept apart from the domain objects and the
ledger wire format.
"""

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class MoneySchema(BaseModel):
    amount: int
    currency: str = Field(..., min_length=3, max_length=3)


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddCartItemRequest(BaseModel):
    listing_id: str
    quantity: int = Field(1, ge=1)
    option_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [{"listing_id": "lst-print-001", "quantity": 2, "option_id": "frame-oak"}]
        }
    }


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., ge=1)
    option_id: str | None = None


class CartEntrySchema(BaseModel):
    listing_id: str
    quantity: int
    option_id: str | None = None
    option_label: str | None = None
    option_price_increment: int = 0


class CartResponse(BaseModel):
    buyer_id: str
    items: list[CartEntrySchema]
    item_count: int


class SellerBreakdownSchema(BaseModel):
    author_id: str
    listing_ids: list[str]
    delivery_method: str | None = None
    shipping_available: bool
    pickup_available: bool
    requires_negotiation: bool
    is_free_shipping: bool
    subtotal: MoneySchema
    shipping: MoneySchema | None = None
    total: MoneySchema


class CartBreakdownResponse(BaseModel):
    buyer_id: str
    sellers: list[SellerBreakdownSchema]
    missing_listing_ids: list[str] = []


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------
class FavoritesResponse(BaseModel):
    buyer_id: str
    listing_ids: list[str]


# ---------------------------------------------------------------------------
# Checkout sessions
# ---------------------------------------------------------------------------
class BeginCheckoutRequest(BaseModel):
    """Either a seller group from the buyer's cart or a single listing."""

    buyer_id: str
    author_id: str | None = None
    listing_id: str | None = None
    quantity: int = Field(1, ge=1)
    option_id: str | None = None
    delivery_method: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"buyer_id": "buyer-001", "author_id": "seller-042", "delivery_method": "shipping"},
                {"buyer_id": "buyer-001", "listing_id": "lst-print-001", "quantity": 1},
            ]
        }
    }

    @model_validator(mode="after")
    def one_source(self):
        if bool(self.author_id) == bool(self.listing_id):
            raise ValueError("Give exactly one of author_id or listing_id")
        return self


class PreviewRequest(BaseModel):
    delivery_method: str | None = None
    quantity: int | None = Field(None, ge=1)
    option_id: str | None = None


class SubmitPaymentRequest(BaseModel):
    method: str = Field(..., pattern="^(storedCard|oneTimeCard|walletCard|redirectMethod)$")
    payment_method_id: str | None = None
    card_token: str | None = None
    card_complete: bool = False
    card_error: str | None = None
    wallet_payment_method_id: str | None = None
    wallet: str | None = None
    has_saved_default: bool = False
    save_payment_method: bool = False
    redirect_method_type: str = "klarna"

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"method": "oneTimeCard", "card_token": "tok_visa", "card_complete": True},
                {"method": "storedCard", "payment_method_id": "pm_saved_001"},
                {"method": "redirectMethod", "redirect_method_type": "klarna"},
            ]
        }
    }


class CheckoutErrorSchema(BaseModel):
    code: str
    message: str
    retryable: bool


class CheckoutSessionResponse(BaseModel):
    session_id: str
    flow_state: str
    order_data: dict
    transaction: dict | None = None
    line_items: list[dict] = []
    payin_total: MoneySchema | None = None
    payment_expired: bool = False
    clock_in_sync: bool = False
    payment_attempt: dict | None = None
    redirect_url: str | None = None
    navigation: str | None = None
    error: CheckoutErrorSchema | None = None


# ---------------------------------------------------------------------------
# Fake gateway configuration
# ---------------------------------------------------------------------------
class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Your card was declined."
    challenge: str | None = Field(None, pattern="^(pass|fail)$")
    wallets: dict[str, bool] | None = None


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    challenge: str | None = None
