"""Listing snapshot as the checkout core sees it.

Listings are owned by the external catalog; these frozen records carry only
the fields that pricing, delivery and stock rules need.
"""

from dataclasses import dataclass, field
from enum import Enum

from checkout.shared.money import Money


class ListingState(Enum):
    PUBLISHED = "published"
    CLOSED = "closed"
    DELETED = "deleted"


@dataclass(frozen=True)
class ListingOption:
    """A purchasable variant of a listing (frame, size) with a price delta."""

    id: str
    label: str
    price_increment: int = 0


@dataclass(frozen=True)
class ShippingProfile:
    enabled: bool = False
    first_item_price: int | None = None
    additional_item_price: int | None = None


@dataclass(frozen=True)
class Listing:
    id: str
    title: str
    author_id: str
    price: Money
    stock: int = 1
    state: str = ListingState.PUBLISHED.value
    shipping: ShippingProfile = field(default_factory=ShippingProfile)
    pickup_enabled: bool = False
    options: tuple[ListingOption, ...] = ()
    image_url: str | None = None

    @property
    def currency(self) -> str:
        return self.price.currency

    @property
    def is_purchasable(self) -> bool:
        return self.state == ListingState.PUBLISHED.value and self.stock > 0

    def option(self, option_id: str | None) -> ListingOption | None:
        if option_id is None:
            return None
        return next((o for o in self.options if o.id == option_id), None)

    def unit_price(self, option: ListingOption | None = None) -> Money:
        """Listing price with the option's increment folded in."""
        if option is None or not option.price_increment:
            return self.price
        return Money(amount=self.price.amount + option.price_increment, currency=self.currency)


def listing_to_dict(listing: Listing) -> dict:
    return {
        "id": listing.id,
        "title": listing.title,
        "authorId": listing.author_id,
        "price": listing.price.to_wire(),
        "stock": listing.stock,
        "state": listing.state,
        "shipping": {
            "enabled": listing.shipping.enabled,
            "firstItemPrice": listing.shipping.first_item_price,
            "additionalItemPrice": listing.shipping.additional_item_price,
        },
        "pickupEnabled": listing.pickup_enabled,
        "options": [{"id": o.id, "label": o.label, "priceIncrement": o.price_increment} for o in listing.options],
        "imageUrl": listing.image_url,
    }


def listing_from_dict(data: dict) -> Listing:
    shipping = data.get("shipping") or {}
    return Listing(
        id=data["id"],
        title=data["title"],
        author_id=data["authorId"],
        price=Money.from_wire(data["price"]),
        stock=data.get("stock", 1),
        state=data.get("state", ListingState.PUBLISHED.value),
        shipping=ShippingProfile(
            enabled=shipping.get("enabled", False),
            first_item_price=shipping.get("firstItemPrice"),
            additional_item_price=shipping.get("additionalItemPrice"),
        ),
        pickup_enabled=data.get("pickupEnabled", False),
        options=tuple(
            ListingOption(id=o["id"], label=o["label"], price_increment=o.get("priceIncrement", 0))
            for o in data.get("options", [])
        ),
        image_url=data.get("imageUrl"),
    )
