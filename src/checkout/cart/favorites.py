"""Favorites — listing ids the buyer has saved, kept on the profile like the cart."""

import json

from protean.exceptions import ValidationError
from protean.fields import Identifier, Text

from checkout.domain import checkout, logger
from checkout.profile.port import ProfileStore
from checkout.profile.sync import ProfileSync

FAVORITES_FIELD = "favorites"


@checkout.event(part_of="FavoriteList")
class FavoriteAdded:
    __version__ = 1

    buyer_id = Identifier(required=True)
    listing_id = Identifier(required=True)


@checkout.event(part_of="FavoriteList")
class FavoriteRemoved:
    __version__ = 1

    buyer_id = Identifier(required=True)
    listing_id = Identifier(required=True)


@checkout.aggregate
class FavoriteList:
    buyer_id = Identifier(required=True)
    listing_ids = Text()  # JSON array, newest last

    @classmethod
    def create(cls, buyer_id, listing_ids=None):
        return cls(buyer_id=buyer_id, listing_ids=json.dumps(list(listing_ids or [])))

    @property
    def ids(self):
        return json.loads(self.listing_ids) if self.listing_ids else []

    def contains(self, listing_id):
        return listing_id in self.ids

    def add(self, listing_id):
        ids = self.ids
        if listing_id in ids:
            raise ValidationError({"listing_id": ["Listing is already a favorite"]})
        ids.append(listing_id)
        self.listing_ids = json.dumps(ids)
        self.raise_(FavoriteAdded(buyer_id=str(self.buyer_id), listing_id=listing_id))

    def remove(self, listing_id):
        ids = self.ids
        if listing_id not in ids:
            raise ValidationError({"listing_id": ["Listing is not a favorite"]})
        ids.remove(listing_id)
        self.listing_ids = json.dumps(ids)
        self.raise_(FavoriteRemoved(buyer_id=str(self.buyer_id), listing_id=listing_id))

    def restore(self, ids):
        self.listing_ids = json.dumps(list(ids))


class FavoritesService:
    def __init__(self, store: ProfileStore, sync: ProfileSync | None = None) -> None:
        self._store = store
        self._sync = sync or ProfileSync(store)
        self._lists: dict[str, FavoriteList] = {}

    async def load(self, buyer_id: str) -> FavoriteList:
        if buyer_id not in self._lists:
            profile = await self._store.fetch_profile(buyer_id)
            self._lists[buyer_id] = FavoriteList.create(buyer_id, profile.get(FAVORITES_FIELD) or [])
        return self._lists[buyer_id]

    def _undo_add(self, favorites, listing_id):
        def undo():
            if favorites.contains(listing_id):
                favorites.restore([i for i in favorites.ids if i != listing_id])

        return undo

    def _undo_remove(self, favorites, listing_id, position):
        def undo():
            if not favorites.contains(listing_id):
                ids = favorites.ids
                ids.insert(min(position, len(ids)), listing_id)
                favorites.restore(ids)

        return undo

    async def add(self, buyer_id: str, listing_id: str):
        favorites = await self.load(buyer_id)
        favorites.add(listing_id)
        logger.info("favorite_added", buyer_id=buyer_id, listing_id=listing_id)
        return self._sync.schedule(
            buyer_id, FAVORITES_FIELD, lambda: favorites.ids, self._undo_add(favorites, listing_id), "favorite"
        )

    async def remove(self, buyer_id: str, listing_id: str):
        favorites = await self.load(buyer_id)
        position = favorites.ids.index(listing_id) if favorites.contains(listing_id) else 0
        favorites.remove(listing_id)
        logger.info("favorite_removed", buyer_id=buyer_id, listing_id=listing_id)
        return self._sync.schedule(
            buyer_id,
            FAVORITES_FIELD,
            lambda: favorites.ids,
            self._undo_remove(favorites, listing_id, position),
            "unfavorite",
        )
