"""Buyer profile store port.

Upstream has no cart or favorites endpoint. Both are opaque JSON arrays on
the buyer's profile, written with a generic ``update_profile`` call that
replaces whole top-level fields.
"""

from abc import ABC, abstractmethod


class ProfileStoreError(Exception):
    """The profile write or read did not go through."""


class ProfileStore(ABC):
    @abstractmethod
    async def fetch_profile(self, buyer_id: str) -> dict:
        """Return the buyer's profile data (``{"cart": [...], "favorites": [...]}``)."""
        ...

    @abstractmethod
    async def update_profile(self, buyer_id: str, changes: dict) -> dict:
        """Replace the given top-level fields and return the stored profile."""
        ...
