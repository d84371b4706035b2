"""In-memory listing catalog for development and testing."""

from dataclasses import replace

from checkout.catalog.listing import Listing
from checkout.catalog.port import ListingCatalog


class InMemoryListingCatalog(ListingCatalog):
    def __init__(self, listings: list[Listing] | None = None) -> None:
        self._listings: dict[str, Listing] = {}
        self.calls: list[dict] = []
        for listing in listings or []:
            self.put(listing)

    def put(self, listing: Listing) -> None:
        self._listings[listing.id] = listing

    def close(self, listing_id: str) -> None:
        self._listings[listing_id] = replace(self._listings[listing_id], state="closed")

    def delete(self, listing_id: str) -> None:
        self._listings.pop(listing_id, None)

    async def fetch(self, listing_id: str) -> Listing | None:
        self.calls.append({"method": "fetch", "listing_id": listing_id})
        return self._listings.get(listing_id)

    async def fetch_many(self, listing_ids: list[str]) -> list[Listing]:
        self.calls.append({"method": "fetch_many", "listing_ids": list(listing_ids)})
        return [self._listings[i] for i in listing_ids if i in self._listings]

    async def reduce_stock(self, listing_id: str, quantity: int) -> Listing:
        self.calls.append({"method": "reduce_stock", "listing_id": listing_id, "quantity": quantity})
        listing = self._listings[listing_id]
        updated = replace(listing, stock=max(0, listing.stock - quantity))
        self._listings[listing_id] = updated
        return updated
