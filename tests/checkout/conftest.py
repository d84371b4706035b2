from datetime import UTC, datetime, timedelta

import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield


class FrozenClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def settings():
    from checkout.settings import Settings

    return Settings(environment="test", base_url="https://shop.test")


@pytest.fixture()
def make_listing():
    """Factory for listing snapshots. Prices are in øre (NOK minor units)."""
    from checkout.catalog.listing import Listing, ListingOption, ShippingProfile
    from checkout.shared.money import Money

    def _make(
        listing_id="lst-1",
        author_id="seller-1",
        price=10000,
        stock=5,
        shipping=(5000, 2000),
        pickup=False,
        options=(),
        state="published",
        title=None,
    ):
        first, additional = shipping if shipping else (None, None)
        return Listing(
            id=listing_id,
            title=title or f"Print {listing_id}",
            author_id=author_id,
            price=Money(amount=price, currency="NOK"),
            stock=stock,
            state=state,
            shipping=ShippingProfile(
                enabled=shipping is not None,
                first_item_price=first,
                additional_item_price=additional,
            ),
            pickup_enabled=pickup,
            options=tuple(ListingOption(id=o[0], label=o[1], price_increment=o[2]) for o in options),
        )

    return _make


@pytest.fixture()
def services(settings, clock):
    from checkout.services import build_services

    return build_services(settings, clock=clock)
