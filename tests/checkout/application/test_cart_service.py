"""Tests for optimistic cart and favorites writes against the profile store."""

import asyncio

import pytest
from checkout.cart.favorites import FavoritesService
from checkout.cart.service import CartService
from checkout.profile.fake_adapter import FakeProfileStore
from checkout.profile.sync import ProfileSync


@pytest.fixture()
def store():
    return FakeProfileStore()


@pytest.fixture()
def carts(store, settings):
    return CartService(store, settings, ProfileSync(store))


def _writes(store):
    return [c for c in store.calls if c["method"] == "update_profile"]


class TestLoad:
    async def test_hydrates_from_profile(self, carts, store):
        store.seed("buyer-1", cart=[{"listingId": "a", "quantity": 2}])
        cart = await carts.load("buyer-1")
        assert cart.quantity_for("a") == 2

    async def test_second_load_uses_local_copy(self, carts, store):
        await carts.load("buyer-1")
        await carts.load("buyer-1")
        assert len([c for c in store.calls if c["method"] == "fetch_profile"]) == 1


class TestOptimisticAdd:
    async def test_change_is_visible_before_the_write(self, carts, store, make_listing):
        store.configure(delay=0.01)
        mutation = carts.add("buyer-1", make_listing("a"), 2)
        assert mutation.cart.quantity_for("a") == 2
        assert await mutation.confirmed() is True
        assert store.profiles["buyer-1"]["cart"] == [{"listingId": "a", "quantity": 2}]

    async def test_write_carries_the_full_cart(self, carts, store, make_listing):
        await carts.add("buyer-1", make_listing("a"), 1).confirmed()
        await carts.add("buyer-1", make_listing("b"), 1).confirmed()
        assert [e["listingId"] for e in _writes(store)[-1]["changes"]["cart"]] == ["a", "b"]

    async def test_failed_write_is_rolled_back(self, carts, store, make_listing):
        store.configure(should_succeed=False)
        mutation = carts.add("buyer-1", make_listing("a"), 2)
        assert await mutation.confirmed() is False
        assert mutation.cart.entries_for("a") == []

    async def test_rollback_restores_previous_quantity(self, carts, store, make_listing):
        listing = make_listing("a", stock=10)
        await carts.add("buyer-1", listing, 2).confirmed()
        store.fail_next()
        mutation = carts.add("buyer-1", listing, 3)
        assert await mutation.confirmed() is False
        assert mutation.cart.quantity_for("a") == 2


class TestWriteOrdering:
    async def test_writes_are_serialised_per_buyer(self, carts, store, make_listing):
        store.configure(delay=0.01)
        carts.add("buyer-1", make_listing("a"), 1)
        carts.add("buyer-1", make_listing("b"), 1)
        carts.add("buyer-1", make_listing("c"), 1)
        assert await carts.settle("buyer-1") == [True, True, True]

        sizes = [len(c["changes"]["cart"]) for c in _writes(store)]
        assert sizes == sorted(sizes)
        assert store.profiles["buyer-1"]["cart"][-1]["listingId"] == "c"

    async def test_failed_middle_write_keeps_later_mutations(self, carts, store, make_listing):
        await carts.add("buyer-1", make_listing("a"), 1).confirmed()
        store.fail_next()
        failed = carts.add("buyer-1", make_listing("b"), 1)
        later = carts.add("buyer-1", make_listing("c"), 1)

        assert await failed.confirmed() is False
        assert await later.confirmed() is True
        cart = carts.local("buyer-1")
        assert cart.entries_for("b") == []
        assert cart.quantity_for("c") == 1
        assert [e["listingId"] for e in store.profiles["buyer-1"]["cart"]] == ["a", "c"]

    async def test_failed_add_keeps_later_quantity_change(self, carts, store, make_listing):
        listing = make_listing("a", stock=10)
        store.fail_next()
        first = carts.add("buyer-1", listing, 1)
        second = carts.set_quantity("buyer-1", listing, 3)

        assert await first.confirmed() is False
        assert await second.confirmed() is True
        assert carts.local("buyer-1").quantity_for("a") == 3
        assert store.profiles["buyer-1"]["cart"] == [{"listingId": "a", "quantity": 3}]

    async def test_failed_add_is_not_counted_by_a_later_add(self, carts, store, make_listing):
        listing = make_listing("a", stock=10)
        store.fail_next()
        first = carts.add("buyer-1", listing, 2)
        second = carts.add("buyer-1", listing, 1)

        assert await first.confirmed() is False
        assert await second.confirmed() is True
        assert carts.local("buyer-1").quantity_for("a") == 1
        assert store.profiles["buyer-1"]["cart"] == [{"listingId": "a", "quantity": 1}]

    async def test_failed_remove_keeps_later_add(self, carts, store, make_listing):
        listing = make_listing("a", stock=10)
        await carts.add("buyer-1", listing, 2).confirmed()
        store.fail_next()
        removed = carts.remove("buyer-1", "a")
        added = carts.add("buyer-1", listing, 1)

        assert await removed.confirmed() is False
        assert await added.confirmed() is True
        assert carts.local("buyer-1").quantity_for("a") == 3
        assert store.profiles["buyer-1"]["cart"] == [{"listingId": "a", "quantity": 3}]


class TestRemoveAndClear:
    async def test_remove_rollback(self, carts, store, make_listing):
        await carts.add("buyer-1", make_listing("a"), 2).confirmed()
        store.fail_next()
        mutation = carts.remove("buyer-1", "a")
        assert mutation.cart.entries_for("a") == []
        assert await mutation.confirmed() is False
        assert mutation.cart.quantity_for("a") == 2

    async def test_clear_never_writes_upstream(self, carts, store, make_listing):
        await carts.add("buyer-1", make_listing("a"), 1).confirmed()
        writes = len(_writes(store))
        carts.clear("buyer-1")
        await asyncio.sleep(0)
        assert carts.local("buyer-1").item_count == 0
        assert len(_writes(store)) == writes


class TestFavorites:
    async def test_add_and_persist(self, store):
        favorites = FavoritesService(store)
        assert await (await favorites.add("buyer-1", "a")) is True
        assert store.profiles["buyer-1"]["favorites"] == ["a"]

    async def test_failed_add_is_reverted(self, store):
        favorites = FavoritesService(store)
        store.fail_next()
        assert await (await favorites.add("buyer-1", "a")) is False
        assert not (await favorites.load("buyer-1")).contains("a")

    async def test_failed_remove_restores_position(self, store):
        store.seed("buyer-1", favorites=["a", "b", "c"])
        favorites = FavoritesService(store)
        store.fail_next()
        assert await (await favorites.remove("buyer-1", "b")) is False
        assert (await favorites.load("buyer-1")).ids == ["a", "b", "c"]
