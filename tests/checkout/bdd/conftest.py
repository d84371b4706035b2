"""Shared BDD fixtures and step definitions for the checkout core."""

import asyncio

import pytest
from checkout.cart.cart import ShoppingCart
from checkout.cart.events import CartCleared, CartItemAdded, CartItemRemoved, CartQuantityUpdated
from checkout.flow.page import CheckoutPage
from pytest_bdd import given, parsers, then

_CART_EVENT_CLASSES = {
    "CartItemAdded": CartItemAdded,
    "CartQuantityUpdated": CartQuantityUpdated,
    "CartItemRemoved": CartItemRemoved,
    "CartCleared": CartCleared,
}


def run(coro):
    """Drive one async step to completion."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def buyer_id():
    return "buyer-1"


@pytest.fixture()
def listings():
    return {}


@pytest.fixture()
def error():
    """Container for the error a When step captured."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps — Listings
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a listing "{listing_id}" with stock {stock:d}'))
def listing_with_stock(listings, services, make_listing, listing_id, stock):
    listings[listing_id] = make_listing(listing_id, stock=stock)
    services.catalog.put(listings[listing_id])


@given(parsers.cfparse('a listing "{listing_id}" priced {price:d} with shipping {first:d}'))
def listing_with_price(listings, services, make_listing, listing_id, price, first):
    listings[listing_id] = make_listing(listing_id, price=price, shipping=(first, 0))
    services.catalog.put(listings[listing_id])


@given(parsers.cfparse('listing "{listing_id}" is closed'))
def listing_is_closed(listings, services, listing_id):
    services.catalog.close(listing_id)
    listings[listing_id] = run(services.catalog.fetch(listing_id))


# ---------------------------------------------------------------------------
# Given steps — Cart
# ---------------------------------------------------------------------------
@given("an empty cart", target_fixture="cart")
def empty_cart(buyer_id):
    return ShoppingCart.create(buyer_id)


@given(parsers.cfparse('the cart holds {qty:d} of listing "{listing_id}"'), target_fixture="cart")
def cart_with_items(cart, listings, qty, listing_id):
    cart.add_item(listings[listing_id], qty)
    cart._events.clear()
    return cart


# ---------------------------------------------------------------------------
# Given steps — Checkout
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a checkout for listing "{listing_id}" has been priced'), target_fixture="page")
def priced_checkout(services, buyer_id, listing_id):
    async def _begin():
        page = await CheckoutPage.begin_from_listing(services, buyer_id, listing_id)
        await page.load()
        return page

    return run(_begin())


@given("the gateway declines cards")
def gateway_declines(services):
    services.gateway.configure(should_succeed=False)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("a {event_type} cart event is raised"))
def cart_event_raised(cart, event_type):
    event_cls = _CART_EVENT_CLASSES[event_type]
    assert any(isinstance(e, event_cls) for e in cart._events)


@then(parsers.cfparse("the action fails with a {error_type} error"))
def action_fails(error, error_type):
    assert error["exc"] is not None
    assert type(error["exc"]).__name__ == error_type
