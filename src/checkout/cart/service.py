"""Cart application service — optimistic mutations with rollback.

All cart changes go through here. A change is applied to the aggregate
immediately and a full-snapshot write is queued on the buyer's profile lane.
If that write fails the listing is put back as it was before the change, and
any later queued changes to the same listing are applied again on top, so
only the failed change is lost.
"""

import asyncio
from dataclasses import dataclass

from checkout.cart.cart import ShoppingCart
from checkout.catalog.listing import Listing
from checkout.domain import logger
from checkout.profile.port import ProfileStore
from checkout.profile.sync import ProfileSync
from checkout.settings import Settings

CART_FIELD = "cart"


@dataclass
class CartMutation:
    """Result of an optimistic cart change.

    ``cart`` already reflects the change. Await ``persisted`` for the
    upstream outcome; ``False`` means the change was rolled back.
    """

    cart: ShoppingCart
    persisted: asyncio.Task

    async def confirmed(self) -> bool:
        return await self.persisted


class _QueuedChange:
    """A local cart change whose profile write has not finished yet."""

    def __init__(self, listing_id, replay, before) -> None:
        self.listing_id = str(listing_id)
        self.replay = replay
        self.before = before


class CartService:
    def __init__(self, store: ProfileStore, settings: Settings, sync: ProfileSync | None = None) -> None:
        self._store = store
        self._settings = settings
        self._sync = sync or ProfileSync(store)
        self._carts: dict[str, ShoppingCart] = {}
        self._queued: dict[str, list[_QueuedChange]] = {}

    async def load(self, buyer_id: str, refresh: bool = False) -> ShoppingCart:
        """Local cart for ``buyer_id``, hydrated from the profile on first use."""
        if buyer_id in self._carts and not refresh:
            return self._carts[buyer_id]
        profile = await self._store.fetch_profile(buyer_id)
        cart = ShoppingCart.from_snapshot(buyer_id, profile.get(CART_FIELD) or [])
        self._carts[buyer_id] = cart
        return cart

    def local(self, buyer_id: str) -> ShoppingCart:
        cart = self._carts.get(buyer_id)
        if cart is None:
            cart = ShoppingCart.create(buyer_id)
            self._carts[buyer_id] = cart
        return cart

    def _schedule(self, buyer_id: str, cart: ShoppingCart, change: _QueuedChange, label: str) -> CartMutation:
        queue = self._queued.setdefault(buyer_id, [])
        queue.append(change)
        task = self._sync.schedule(buyer_id, CART_FIELD, cart.snapshot, lambda: self._revert(buyer_id, change), label)

        def settled(_task) -> None:
            if change in queue:
                queue.remove(change)

        task.add_done_callback(settled)
        return CartMutation(cart=cart, persisted=task)

    def _revert(self, buyer_id: str, failed: _QueuedChange) -> None:
        """Undo ``failed`` and re-apply the queued changes to the same listing that followed it."""
        cart = self.local(buyer_id)
        queue = self._queued.get(buyer_id, [])
        position = queue.index(failed)
        later = [c for c in queue[position + 1 :] if c.listing_id == failed.listing_id]
        queue.remove(failed)

        cart.restore_entries(failed.listing_id, failed.before)
        for change in later:
            change.before = [i.to_snapshot() for i in cart.entries_for(change.listing_id)]
            change.replay(cart)
        if later:
            logger.info("cart_changes_replayed", buyer_id=buyer_id, listing_id=failed.listing_id, count=len(later))

    def _before(self, cart: ShoppingCart, listing_id) -> list[dict]:
        return [i.to_snapshot() for i in cart.entries_for(listing_id)]

    def add(self, buyer_id: str, listing: Listing, quantity: int = 1, option_id: str | None = None) -> CartMutation:
        cart = self.local(buyer_id)
        max_quantity = self._settings.max_quantity
        before = self._before(cart, listing.id)
        new_quantity = cart.add_item(listing, quantity, option_id, max_quantity=max_quantity)

        def replay(target: ShoppingCart) -> None:
            target.add_item(listing, quantity, option_id, max_quantity=max_quantity)

        logger.info("cart_item_added", buyer_id=buyer_id, listing_id=listing.id, quantity=new_quantity)
        return self._schedule(buyer_id, cart, _QueuedChange(listing.id, replay, before), f"add:{listing.id}")

    def set_quantity(
        self, buyer_id: str, listing: Listing, quantity: int, option_id: str | None = None
    ) -> CartMutation:
        cart = self.local(buyer_id)
        max_quantity = self._settings.max_quantity
        before = self._before(cart, listing.id)
        new_quantity = cart.set_quantity(listing, quantity, option_id, max_quantity=max_quantity)

        def replay(target: ShoppingCart) -> None:
            # The entry may only have existed because of a change that was just undone
            if target.find(listing.id, option_id) is None:
                target.add_item(listing, new_quantity, option_id, max_quantity=max_quantity)
            else:
                target.set_quantity(listing, new_quantity, option_id, max_quantity=max_quantity)

        logger.info("cart_quantity_set", buyer_id=buyer_id, listing_id=listing.id, quantity=new_quantity)
        return self._schedule(buyer_id, cart, _QueuedChange(listing.id, replay, before), f"set:{listing.id}")

    def remove(self, buyer_id: str, listing_id: str) -> CartMutation:
        cart = self.local(buyer_id)
        before = self._before(cart, listing_id)
        cart.remove_item(listing_id)

        def replay(target: ShoppingCart) -> None:
            if target.entries_for(listing_id):
                target.remove_item(listing_id)

        logger.info("cart_item_removed", buyer_id=buyer_id, listing_id=listing_id)
        return self._schedule(buyer_id, cart, _QueuedChange(listing_id, replay, before), f"remove:{listing_id}")

    def clear(self, buyer_id: str) -> ShoppingCart:
        """Empty the local cart after a purchase. Never writes upstream.

        Removing purchased listings from the stored profile is done by the
        purchase cleanup worker, which also covers the buyer's other devices.
        """
        cart = self.local(buyer_id)
        if cart.items:
            cart.clear()
            logger.info("cart_cleared_locally", buyer_id=buyer_id)
        return cart

    async def settle(self, buyer_id: str) -> list[bool]:
        """Wait for all queued cart writes for ``buyer_id``."""
        return await self._sync.drain(buyer_id)
