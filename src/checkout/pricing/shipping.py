"""Shipping fee rules and delivery-method compatibility.

Marketplace-wide rule: the first unit of a listing ships at the listing's
first-item price, every further unit at its additional-item price. Pure
functions, no I/O.
"""

from dataclasses import dataclass

from checkout.catalog.listing import Listing
from checkout.shared.money import Money


class DeliveryMethod:
    SHIPPING = "shipping"
    PICKUP = "pickup"
    NONE = "none"

    ALL = (SHIPPING, PICKUP, NONE)


@dataclass(frozen=True)
class DeliveryCompatibility:
    shipping_available: bool
    pickup_available: bool

    @property
    def requires_negotiation(self) -> bool:
        """No single delivery method covers the whole cart."""
        return not (self.shipping_available or self.pickup_available)

    @property
    def available_methods(self) -> list[str]:
        methods = []
        if self.shipping_available:
            methods.append(DeliveryMethod.SHIPPING)
        if self.pickup_available:
            methods.append(DeliveryMethod.PICKUP)
        return methods


def shipping_fee_for_item(first_item_price, additional_item_price, quantity, currency) -> Money | None:
    """Shipping for ``quantity`` units of one listing, or None if it does not ship.

    A first-item price of ``None`` means shipping is not offered. Zero is a
    real price (free shipping). A missing additional-item price counts as zero.
    """
    if first_item_price is None or quantity < 1:
        return None
    if quantity == 1:
        return Money(amount=first_item_price, currency=currency)
    additional = additional_item_price or 0
    return Money(amount=first_item_price + additional * (quantity - 1), currency=currency)


def listing_shipping_fee(listing: Listing, quantity: int, currency: str | None = None) -> Money | None:
    if not listing.shipping.enabled:
        return None
    return shipping_fee_for_item(
        listing.shipping.first_item_price,
        listing.shipping.additional_item_price,
        quantity,
        currency or listing.currency,
    )


def cart_shipping_total(listings, quantity_lookup, currency) -> Money | None:
    """Sum shipping over the listings that ship; None when none of them do.

    Listings without shipping contribute nothing but do not poison the total.
    ``quantity_lookup`` maps a listing id to the quantity being bought.
    """
    total = Money.zero(currency)
    any_shipping = False
    for listing in listings:
        if not listing.shipping.enabled:
            continue
        any_shipping = True
        fee = listing_shipping_fee(listing, quantity_lookup(listing.id), currency)
        if fee is not None:
            total = total + fee
    return total if any_shipping else None


def delivery_compatibility(listings) -> DeliveryCompatibility:
    """A method is available only if every listing supports it."""
    listings = list(listings)
    if not listings:
        return DeliveryCompatibility(shipping_available=False, pickup_available=False)
    return DeliveryCompatibility(
        shipping_available=all(listing.shipping.enabled for listing in listings),
        pickup_available=all(listing.pickup_enabled for listing in listings),
    )
