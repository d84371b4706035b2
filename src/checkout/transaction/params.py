"""Order parameters: one variant per payment method and process kind.

Every variant carries the ``OrderDraft`` plus only the fields that its
payment method needs. ``ledger_params`` turns a variant into the wire
params for the ledger and rejects anything it does not recognise.
"""

from dataclasses import dataclass, field

from checkout.pricing.shipping import DeliveryMethod

SPECULATIVE_CARD_TOKEN = "CheckoutPage_speculative_card_token"


@dataclass(frozen=True)
class OrderDraft:
    """What the buyer is about to order. Lives only in the checkout session."""

    primary_listing_id: str
    quantity: int = 1
    delivery_method: str = DeliveryMethod.SHIPPING
    option_id: str | None = None
    line_item_overrides: dict = field(default_factory=dict)
    auxiliary_items: tuple["OrderDraft", ...] = ()

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError("quantity must be at least 1")
        if self.delivery_method not in DeliveryMethod.ALL:
            raise ValueError(f"Unknown delivery method: {self.delivery_method}")

    @property
    def listing_ids(self) -> list[str]:
        return [self.primary_listing_id] + [item.primary_listing_id for item in self.auxiliary_items]

    def with_changes(self, **changes) -> "OrderDraft":
        values = {
            "primary_listing_id": self.primary_listing_id,
            "quantity": self.quantity,
            "delivery_method": self.delivery_method,
            "option_id": self.option_id,
            "line_item_overrides": dict(self.line_item_overrides),
            "auxiliary_items": self.auxiliary_items,
        }
        values.update(changes)
        return OrderDraft(**values)

    def to_dict(self) -> dict:
        return {
            "primaryListingId": self.primary_listing_id,
            "quantity": self.quantity,
            "deliveryMethod": self.delivery_method,
            "optionId": self.option_id,
            "lineItemOverrides": dict(self.line_item_overrides),
            "auxiliaryItems": [item.to_dict() for item in self.auxiliary_items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderDraft":
        return cls(
            primary_listing_id=data["primaryListingId"],
            quantity=int(data.get("quantity", 1)),
            delivery_method=data.get("deliveryMethod", DeliveryMethod.SHIPPING),
            option_id=data.get("optionId"),
            line_item_overrides=dict(data.get("lineItemOverrides") or {}),
            auxiliary_items=tuple(cls.from_dict(item) for item in data.get("auxiliaryItems", [])),
        )


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PricePreview:
    """Speculative pricing before a payment method is known."""

    draft: OrderDraft


@dataclass(frozen=True)
class Inquiry:
    """Ask the seller a question before paying; no payment fields."""

    draft: OrderDraft
    message: str = ""


@dataclass(frozen=True)
class StoredCardPayment:
    draft: OrderDraft
    payment_method_id: str
    payment_intent_id: str | None = None


@dataclass(frozen=True)
class OneTimeCardPayment:
    draft: OrderDraft
    payment_intent_id: str | None = None
    save_payment_method: bool = False


@dataclass(frozen=True)
class WalletCardPayment:
    draft: OrderDraft
    payment_method_id: str
    wallet: str
    payment_intent_id: str | None = None


@dataclass(frozen=True)
class RedirectPayment:
    draft: OrderDraft
    payment_method_type: str = "klarna"
    payment_intent_id: str | None = None


ORDER_PARAM_TYPES = (
    PricePreview,
    Inquiry,
    StoredCardPayment,
    OneTimeCardPayment,
    WalletCardPayment,
    RedirectPayment,
)


def _method_params(order_params) -> dict:
    if isinstance(order_params, PricePreview):
        return {"cardToken": SPECULATIVE_CARD_TOKEN}
    if isinstance(order_params, Inquiry):
        return {"message": order_params.message} if order_params.message else {}
    if isinstance(order_params, StoredCardPayment):
        return {
            "paymentMethod": {"type": "storedCard", "id": order_params.payment_method_id},
            "paymentIntentId": order_params.payment_intent_id,
        }
    if isinstance(order_params, OneTimeCardPayment):
        return {
            "paymentMethod": {"type": "oneTimeCard", "save": order_params.save_payment_method},
            "paymentIntentId": order_params.payment_intent_id,
        }
    if isinstance(order_params, WalletCardPayment):
        return {
            "paymentMethod": {
                "type": "walletCard",
                "id": order_params.payment_method_id,
                "wallet": order_params.wallet,
            },
            "paymentIntentId": order_params.payment_intent_id,
        }
    if isinstance(order_params, RedirectPayment):
        return {
            "paymentMethod": {"type": "redirectMethod"},
            "paymentMethodTypes": [order_params.payment_method_type],
            "paymentIntentId": order_params.payment_intent_id,
        }
    raise TypeError(f"Unsupported order params: {type(order_params).__name__}")


def ledger_params(order_params, folded_items: list[dict]) -> dict:
    """Wire params for the ledger: listing, quantities, cart bag and method fields."""
    draft = order_params.draft
    params = {
        "listingId": draft.primary_listing_id,
        "stockReservationQuantity": draft.quantity,
        "deliveryMethod": draft.delivery_method,
        "protectedData": {"deliveryMethod": draft.delivery_method},
    }
    if draft.option_id:
        params["protectedData"]["mainListingOption"] = {
            "id": draft.option_id,
            "priceIncrement": draft.line_item_overrides.get(draft.primary_listing_id, 0),
        }
    if folded_items:
        params["protectedData"]["cartItems"] = folded_items
    params.update({k: v for k, v in _method_params(order_params).items() if v is not None})
    return params
