"""Purchase cleanup — runs on the server once a transaction is purchased.

Reduces stock for every purchased listing (the primary one and each folded
cart item) and removes those listings from the buyer's stored cart. The
checkout page only clears its local copy of the cart; this worker is what
makes the purchase visible on the buyer's other devices.
"""

from checkout.catalog.port import ListingCatalog
from checkout.domain import logger
from checkout.ledger.process import TxState
from checkout.ledger.transaction import Transaction
from checkout.profile.port import ProfileStore
from checkout.transaction.line_items import ITEM_CODE


def purchased_quantities(transaction: Transaction) -> dict[str, int]:
    """Listing id -> purchased quantity, read from the transaction alone."""
    item = next((li for li in transaction.line_items if li.code == ITEM_CODE), None)
    quantities = {transaction.listing_id: item.quantity if item else 1}
    for entry in transaction.protected_data.get("cartItems") or []:
        quantities[entry["id"]] = quantities.get(entry["id"], 0) + int(entry.get("quantity", 1))
    return quantities


class PurchaseCleanup:
    def __init__(self, catalog: ListingCatalog, profiles: ProfileStore) -> None:
        self._catalog = catalog
        self._profiles = profiles
        self.handled: set[str] = set()

    async def handle(self, transaction: Transaction) -> bool:
        """Returns False when there was nothing to do."""
        if transaction.state != TxState.PURCHASED.value or transaction.id in self.handled:
            return False
        self.handled.add(transaction.id)

        quantities = purchased_quantities(transaction)
        for listing_id, quantity in quantities.items():
            await self._catalog.reduce_stock(listing_id, quantity)

        if transaction.customer_id:
            profile = await self._profiles.fetch_profile(transaction.customer_id)
            cart = profile.get("cart") or []
            remaining = [entry for entry in cart if entry.get("listingId") not in quantities]
            if len(remaining) != len(cart):
                await self._profiles.update_profile(transaction.customer_id, {"cart": remaining})

        logger.info(
            "purchase_cleaned_up",
            transaction_id=transaction.id,
            listings=sorted(quantities),
            buyer_id=transaction.customer_id,
        )
        return True
