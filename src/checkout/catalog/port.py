"""Listing catalog port (abstract interface).

The catalog is an external collaborator; checkout only reads listing
snapshots and, after a purchase, decrements stock.
"""

from abc import ABC, abstractmethod

from checkout.catalog.listing import Listing


class ListingCatalog(ABC):
    @abstractmethod
    async def fetch(self, listing_id: str) -> Listing | None:
        """Return the listing, or None when it does not exist."""
        ...

    @abstractmethod
    async def fetch_many(self, listing_ids: list[str]) -> list[Listing]:
        """Return the listings that exist, in the order requested."""
        ...

    @abstractmethod
    async def reduce_stock(self, listing_id: str, quantity: int) -> Listing:
        """Decrement stock by ``quantity`` (never below zero)."""
        ...
