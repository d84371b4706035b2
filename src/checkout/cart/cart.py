"""Shopping Cart aggregate — the buyer's list of (listing, quantity, option).

The cart lives on the buyer's profile record upstream; this aggregate is the
local copy that mutations are applied to first. Persisting and reverting is
the job of ``CartService``; the aggregate only knows the rules:

- one entry per (listing, option) pair; adding again grows the entry
- ``1 <= quantity <= min(stock, max_quantity)``, out-of-range requests are
  clamped rather than rejected
- closed or sold-out listings cannot be added
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from checkout.cart.events import CartCleared, CartItemAdded, CartItemRemoved, CartQuantityUpdated
from checkout.domain import checkout

MAX_QUANTITY = 100


def max_quantity_for(stock, max_quantity=MAX_QUANTITY):
    return max(0, min(stock, max_quantity))


def clamp_quantity(quantity, stock, max_quantity=MAX_QUANTITY):
    """Clamp ``quantity`` into ``[1, min(stock, max_quantity)]``."""
    return max(1, min(quantity, max_quantity_for(stock, max_quantity)))


@checkout.entity(part_of="ShoppingCart")
class CartItem:
    listing_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    option_id = String(max_length=100)
    option_label = String(max_length=255)
    option_price_increment = Integer(default=0)
    added_at = DateTime()

    def matches(self, listing_id, option_id=None):
        return str(self.listing_id) == str(listing_id) and (self.option_id or None) == (option_id or None)

    def to_snapshot(self):
        entry = {"listingId": str(self.listing_id), "quantity": self.quantity}
        if self.option_id:
            entry["selectedOption"] = {
                "id": self.option_id,
                "label": self.option_label,
                "priceIncrement": self.option_price_increment or 0,
            }
        return entry


@checkout.aggregate
class ShoppingCart:
    buyer_id = Identifier(required=True)
    items = HasMany(CartItem)
    updated_at = DateTime()

    @invariant.post
    def entries_must_be_unique_per_listing_option(self):
        keys = [(str(i.listing_id), i.option_id or None) for i in self.items]
        if len(keys) != len(set(keys)):
            raise ValidationError({"items": ["Duplicate cart entry for the same listing and option"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, buyer_id):
        return cls(buyer_id=buyer_id, updated_at=datetime.now(UTC))

    @classmethod
    def from_snapshot(cls, buyer_id, snapshot):
        cart = cls.create(buyer_id)
        for entry in snapshot or []:
            cart.add_items(_item_from_snapshot(entry))
        return cart

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def find(self, listing_id, option_id=None):
        return next((i for i in self.items if i.matches(listing_id, option_id)), None)

    def entries_for(self, listing_id):
        return [i for i in self.items if str(i.listing_id) == str(listing_id)]

    def quantity_for(self, listing_id):
        return sum(i.quantity for i in self.entries_for(listing_id))

    @property
    def item_count(self):
        return sum(i.quantity for i in self.items)

    def snapshot(self):
        """Full cart as the JSON array stored on the buyer profile."""
        return [item.to_snapshot() for item in self.items]

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, listing, quantity=1, option_id=None, max_quantity=MAX_QUANTITY):
        """Add ``quantity`` of ``listing``; grows an existing entry for the same option."""
        if not listing.is_purchasable:
            raise ValidationError({"listing_id": ["Listing is not available for purchase"]})

        option = None
        if option_id is not None:
            option = listing.option(option_id)
            if option is None:
                raise ValidationError({"option_id": [f"Unknown option '{option_id}' for this listing"]})

        existing = self.find(listing.id, option_id)
        now = datetime.now(UTC)

        if existing:
            existing.quantity = clamp_quantity(existing.quantity + quantity, listing.stock, max_quantity)
            new_quantity = existing.quantity
        else:
            new_quantity = clamp_quantity(quantity, listing.stock, max_quantity)
            self.add_items(
                CartItem(
                    listing_id=listing.id,
                    quantity=new_quantity,
                    option_id=option.id if option else None,
                    option_label=option.label if option else None,
                    option_price_increment=option.price_increment if option else 0,
                    added_at=now,
                )
            )

        self.updated_at = now

        self.raise_(
            CartItemAdded(
                buyer_id=str(self.buyer_id),
                listing_id=str(listing.id),
                option_id=option_id,
                quantity=new_quantity,
            )
        )
        return new_quantity

    def set_quantity(self, listing, quantity, option_id=None, max_quantity=MAX_QUANTITY):
        """Set an entry's quantity, clamped to what the listing can supply."""
        item = self.find(listing.id, option_id)
        if item is None:
            raise ValidationError({"listing_id": ["Listing is not in the cart"]})

        previous_quantity = item.quantity
        item.quantity = clamp_quantity(quantity, listing.stock, max_quantity)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartQuantityUpdated(
                buyer_id=str(self.buyer_id),
                listing_id=str(listing.id),
                option_id=option_id,
                previous_quantity=previous_quantity,
                new_quantity=item.quantity,
            )
        )
        return item.quantity

    def remove_item(self, listing_id):
        """Remove every entry for ``listing_id``, whatever option it carries."""
        entries = self.entries_for(listing_id)
        if not entries:
            raise ValidationError({"listing_id": ["Listing is not in the cart"]})

        for entry in entries:
            self.remove_items(entry)
        self.updated_at = datetime.now(UTC)

        self.raise_(CartItemRemoved(buyer_id=str(self.buyer_id), listing_id=str(listing_id)))

    def clear(self):
        count = len(self.items)
        for item in list(self.items):
            self.remove_items(item)
        self.updated_at = datetime.now(UTC)

        self.raise_(CartCleared(buyer_id=str(self.buyer_id), items_cleared=count))

    # -------------------------------------------------------------------
    # Rollback support
    # -------------------------------------------------------------------
    def restore_entries(self, listing_id, entries):
        """Put the entries for ``listing_id`` back to a previous snapshot.

        Only touches that listing, so mutations applied to other listings
        since the snapshot was taken survive. No events are raised.
        """
        for current in self.entries_for(listing_id):
            self.remove_items(current)
        for entry in entries:
            self.add_items(_item_from_snapshot(entry))
        self.updated_at = datetime.now(UTC)


def _item_from_snapshot(entry):
    option = entry.get("selectedOption") or {}
    return CartItem(
        listing_id=entry["listingId"],
        quantity=int(entry["quantity"]),
        option_id=option.get("id"),
        option_label=option.get("label"),
        option_price_increment=int(option.get("priceIncrement") or 0),
    )
