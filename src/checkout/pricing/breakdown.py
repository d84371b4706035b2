"""Order breakdown: item subtotals, per-seller grouping and totals.

A cart can hold listings from several sellers, but one ledger transaction
always belongs to exactly one seller. The cart page therefore shows one
breakdown per seller and checks each seller group out separately.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError

from checkout.catalog.listing import Listing, ListingOption
from checkout.pricing.shipping import (
    DeliveryCompatibility,
    DeliveryMethod,
    cart_shipping_total,
    delivery_compatibility,
)
from checkout.shared.money import Money, sum_money


@dataclass(frozen=True)
class CartLine:
    """A cart entry joined with its listing snapshot."""

    listing: Listing
    quantity: int
    option: ListingOption | None = None

    @property
    def unit_price(self) -> Money:
        return self.listing.unit_price(self.option)

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Totals:
    subtotal: Money
    shipping: Money | None
    total: Money


@dataclass(frozen=True)
class SellerGroup:
    author_id: str
    lines: tuple[CartLine, ...]

    @property
    def currency(self) -> str:
        return self.lines[0].listing.currency

    @property
    def listings(self) -> list[Listing]:
        return [line.listing for line in self.lines]

    @property
    def compatibility(self) -> DeliveryCompatibility:
        return delivery_compatibility(self.listings)


def items_subtotal(lines, currency) -> Money:
    return sum_money((line.line_total for line in lines), currency)


def _quantity_lookup(lines):
    quantities: dict[str, int] = {}
    for line in lines:
        quantities[line.listing.id] = quantities.get(line.listing.id, 0) + line.quantity
    return lambda listing_id: quantities.get(listing_id, 0)


def _unique_listings(lines) -> list[Listing]:
    seen: dict[str, Listing] = {}
    for line in lines:
        seen.setdefault(line.listing.id, line.listing)
    return list(seen.values())


def cart_totals(lines, currency) -> Totals:
    """Subtotal plus shipping for every line that ships, regardless of delivery choice."""
    lines = list(lines)
    subtotal = items_subtotal(lines, currency)
    shipping = cart_shipping_total(_unique_listings(lines), _quantity_lookup(lines), currency)
    total = subtotal + shipping if shipping is not None else subtotal
    return Totals(subtotal=subtotal, shipping=shipping, total=total)


def group_by_seller(lines) -> list[SellerGroup]:
    """Group lines by listing author, keeping first-seen seller order."""
    grouped: dict[str, list[CartLine]] = {}
    for line in lines:
        grouped.setdefault(line.listing.author_id, []).append(line)
    return [SellerGroup(author_id=author_id, lines=tuple(group)) for author_id, group in grouped.items()]


def select_delivery_method(compatibility: DeliveryCompatibility, requested: str | None = None) -> str:
    """Resolve the delivery method for a seller group.

    A single available method is picked automatically. When both are
    available the buyer must choose. When neither is, the order has to be
    negotiated with the seller and the method is ``none``.
    """
    available = compatibility.available_methods
    if not available:
        return DeliveryMethod.NONE
    if requested:
        if requested not in available:
            raise ValidationError({"delivery_method": [f"Delivery method '{requested}' is not available"]})
        return requested
    if len(available) == 1:
        return available[0]
    raise ValidationError({"delivery_method": ["Choose a delivery method"]})


def is_free_shipping(delivery_method: str | None, shipping_available: bool, shipping_fee: Money | None) -> bool:
    """Shipping selected and available, with no fee or a zero fee.

    Known ambiguity: a seller who deliberately charges zero and a listing whose
    shipping price is missing both read as free shipping here.
    """
    if delivery_method != DeliveryMethod.SHIPPING or not shipping_available:
        return False
    return shipping_fee is None or shipping_fee.is_zero()


def seller_totals(group: SellerGroup, delivery_method: str) -> Totals:
    """Totals for one seller group; shipping only counts when it is selected."""
    subtotal = items_subtotal(group.lines, group.currency)
    shipping = None
    if delivery_method == DeliveryMethod.SHIPPING:
        shipping = cart_shipping_total(
            _unique_listings(group.lines), _quantity_lookup(group.lines), group.currency
        )
    total = subtotal + shipping if shipping is not None else subtotal
    return Totals(subtotal=subtotal, shipping=shipping, total=total)
