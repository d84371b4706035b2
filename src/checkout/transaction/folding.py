"""Folding a multi-item cart into one ledger transaction.

The ledger transitions against a single listing. Every other cart entry is
serialised into ``protectedData.cartItems`` on that transaction with its
option price already added to the unit price, and priced server-side as a
``line-item/cart-item-<listing id>`` line.
"""

from checkout.pricing.breakdown import SellerGroup
from checkout.transaction.params import OrderDraft

CART_ITEM_PREFIX = "line-item/cart-item-"


def draft_for_seller_group(group: SellerGroup, delivery_method: str) -> OrderDraft:
    """First line becomes the primary listing, the rest ride along as auxiliary items."""
    primary, *rest = group.lines
    overrides = {}
    if primary.option is not None:
        overrides[primary.listing.id] = primary.option.price_increment
    return OrderDraft(
        primary_listing_id=primary.listing.id,
        quantity=primary.quantity,
        delivery_method=delivery_method,
        option_id=primary.option.id if primary.option else None,
        line_item_overrides=overrides,
        auxiliary_items=tuple(
            OrderDraft(
                primary_listing_id=line.listing.id,
                quantity=line.quantity,
                delivery_method=delivery_method,
                option_id=line.option.id if line.option else None,
                line_item_overrides={line.listing.id: line.option.price_increment} if line.option else {},
            )
            for line in rest
        ),
    )


def fold_cart_items(auxiliary_items, listings_by_id) -> list[dict]:
    """Compact form of the auxiliary items for the transaction's protected data.

    Raises ``KeyError`` for an auxiliary listing that is not in
    ``listings_by_id``.
    """
    folded = []
    for item in auxiliary_items:
        listing = listings_by_id[item.primary_listing_id]
        option = listing.option(item.option_id)
        increment = item.line_item_overrides.get(listing.id, option.price_increment if option else 0)
        entry = {
            "id": listing.id,
            "title": listing.title,
            "price": {"amount": listing.price.amount + increment, "currency": listing.currency},
            "quantity": item.quantity,
        }
        if listing.image_url:
            entry["imageUrl"] = listing.image_url
        if option is not None:
            entry["selectedOption"] = {"id": option.id, "label": option.label, "priceIncrement": increment}
        folded.append(entry)
    return folded


def cart_item_code(listing_id: str) -> str:
    return f"{CART_ITEM_PREFIX}{listing_id}"


def is_cart_item_line_item(code: str | None) -> bool:
    return bool(code) and code.startswith(CART_ITEM_PREFIX)


def extract_cart_item_id(code: str) -> str | None:
    if not is_cart_item_line_item(code):
        return None
    return code[len(CART_ITEM_PREFIX) :]


def cart_item_title(entry: dict | None, listing_id: str) -> str:
    """Display title for a folded cart line, with the option label when there is one."""
    if not entry or not entry.get("title"):
        return f"Item {listing_id[:8]}..."
    option = entry.get("selectedOption") or {}
    if option.get("label"):
        return f"{entry['title']} ({option['label']})"
    return entry["title"]
