"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="ShoppingCart")
class CartItemAdded:
    """A listing was added to the cart, or an existing entry grew."""

    __version__ = 1

    buyer_id = Identifier(required=True)
    listing_id = Identifier(required=True)
    option_id = String(max_length=100)
    quantity = Integer(required=True)


@checkout.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    __version__ = 1

    buyer_id = Identifier(required=True)
    listing_id = Identifier(required=True)
    option_id = String(max_length=100)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@checkout.event(part_of="ShoppingCart")
class CartItemRemoved:
    __version__ = 1

    buyer_id = Identifier(required=True)
    listing_id = Identifier(required=True)


@checkout.event(part_of="ShoppingCart")
class CartCleared:
    """Cart emptied locally after a purchase."""

    __version__ = 1

    buyer_id = Identifier(required=True)
    items_cleared = Integer(required=True)
