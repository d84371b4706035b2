"""Authoritative line items, computed server-side for privileged transitions.

Prices always come from the listing snapshots the server fetched, never from
what the client sent. The client's folded cart items only say *which*
listings, options and quantities.
"""

from decimal import ROUND_HALF_UP, Decimal

from checkout.ledger.port import LedgerError, LedgerErrorCode
from checkout.ledger.transaction import LineItem
from checkout.pricing.shipping import DeliveryMethod, cart_shipping_total
from checkout.shared.money import Money, sum_money
from checkout.transaction.folding import cart_item_code

ITEM_CODE = "line-item/item"
SHIPPING_FEE_CODE = "line-item/shipping-fee"
PROVIDER_COMMISSION_CODE = "line-item/provider-commission"


def _item_line(code, listing, option_id, quantity) -> LineItem:
    unit = listing.unit_price(listing.option(option_id))
    return LineItem(code=code, unit_price=unit, quantity=quantity, line_total=unit * quantity)


def _commission(base: Money, percent: int) -> LineItem:
    amount = int((Decimal(base.amount) * Decimal(percent) / Decimal(100)).quantize(Decimal(1), ROUND_HALF_UP))
    return LineItem(
        code=PROVIDER_COMMISSION_CODE,
        unit_price=base,
        quantity=1,
        percentage=-percent,
        line_total=Money(amount=-amount, currency=base.currency),
        include_for=("provider",),
    )


def transaction_line_items(listing, order_data: dict, cart_listings, provider_commission_percent: int = 0):
    """Line items for ``listing`` plus any folded cart items.

    ``order_data`` keys: ``quantity``, ``deliveryMethod``, ``optionId`` and
    ``cartItems`` (the folded protected-data entries).
    """
    currency = listing.currency
    quantity = int(order_data.get("quantity") or 1)
    items = [_item_line(ITEM_CODE, listing, order_data.get("optionId"), quantity)]

    by_id = {cart_listing.id: cart_listing for cart_listing in cart_listings}
    quantities = {listing.id: quantity}
    shipped = [listing]
    for entry in order_data.get("cartItems") or []:
        cart_listing = by_id.get(entry["id"])
        if cart_listing is None:
            raise LedgerError(404, LedgerErrorCode.LISTING_NOT_FOUND, f"Cart listing {entry['id']} not found")
        entry_quantity = int(entry.get("quantity") or 1)
        option_id = (entry.get("selectedOption") or {}).get("id")
        items.append(_item_line(cart_item_code(cart_listing.id), cart_listing, option_id, entry_quantity))
        if cart_listing.id not in quantities:
            shipped.append(cart_listing)
        quantities[cart_listing.id] = quantities.get(cart_listing.id, 0) + entry_quantity

    if order_data.get("deliveryMethod") == DeliveryMethod.SHIPPING:
        fee = cart_shipping_total(shipped, lambda listing_id: quantities.get(listing_id, 0), currency)
        if fee is not None and not fee.is_zero():
            items.append(LineItem(code=SHIPPING_FEE_CODE, unit_price=fee, quantity=1, line_total=fee))

    if provider_commission_percent:
        base = sum_money((li.line_total for li in items if li.code != SHIPPING_FEE_CODE), currency)
        items.append(_commission(base, provider_commission_percent))

    return items
