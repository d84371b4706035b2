"""BDD tests for cart item management."""

from protean.exceptions import ValidationError
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/cart_items.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('{qty:d} of listing "{listing_id}" are added to the cart'))
def add_to_cart(cart, listings, qty, listing_id, error):
    try:
        cart.add_item(listings[listing_id], qty)
    except ValidationError as exc:
        error["exc"] = exc


@when(parsers.cfparse('the quantity of listing "{listing_id}" is set to {qty:d}'))
def set_cart_quantity(cart, listings, listing_id, qty):
    cart.set_quantity(listings[listing_id], qty)


@when(parsers.cfparse('listing "{listing_id}" is removed from the cart'))
def remove_from_cart(cart, listing_id):
    cart.remove_item(listing_id)


@when("the cart is cleared")
def clear_cart(cart):
    cart.clear()


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the cart holds {qty:d} units in total"))
def cart_total_units(cart, qty):
    assert cart.item_count == qty


@then(parsers.cfparse("the cart has {count:d} entry"))
def cart_has_one_entry(cart, count):
    assert len(cart.items) == count


@then(parsers.cfparse("the cart has {count:d} entries"))
def cart_has_entries(cart, count):
    assert len(cart.items) == count
