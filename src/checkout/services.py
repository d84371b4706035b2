"""Composition root for the checkout core.

Every external collaborator is built here once, from ``Settings``, and
handed down explicitly. Nothing in the package reaches for a module-level
client instance.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from checkout.cart.favorites import FavoritesService
from checkout.cart.service import CartService
from checkout.catalog.fake_adapter import InMemoryListingCatalog
from checkout.catalog.port import ListingCatalog
from checkout.ledger.fake_adapter import FakeLedger
from checkout.ledger.port import Ledger
from checkout.payment.gateway.fake_adapter import FakeGateway
from checkout.payment.gateway.port import PaymentGateway
from checkout.profile.fake_adapter import FakeProfileStore
from checkout.profile.port import ProfileStore
from checkout.profile.sync import ProfileSync
from checkout.purchase.cleanup import PurchaseCleanup
from checkout.session.storage import InMemorySessionStorage, SessionStorage
from checkout.settings import Settings
from checkout.transaction.privileged import PrivilegedTransactions


def _utcnow():
    return datetime.now(UTC)


@dataclass
class CheckoutServices:
    settings: Settings
    catalog: ListingCatalog
    ledger: Ledger
    gateway: PaymentGateway
    profiles: ProfileStore
    sessions: SessionStorage
    clock: Callable[[], datetime] = _utcnow
    privileged: PrivilegedTransactions = field(init=False)
    carts: CartService = field(init=False)
    favorites: FavoritesService = field(init=False)
    cleanup: PurchaseCleanup = field(init=False)

    def __post_init__(self) -> None:
        sync = ProfileSync(self.profiles)
        self.privileged = PrivilegedTransactions(self.ledger, self.catalog, self.settings)
        self.carts = CartService(self.profiles, self.settings, sync)
        self.favorites = FavoritesService(self.profiles, sync)
        self.cleanup = PurchaseCleanup(self.catalog, self.profiles)


def build_services(settings: Settings | None = None, clock=_utcnow) -> CheckoutServices:
    """Wire the in-memory adapters; the only adapters this package ships."""
    settings = settings or Settings.from_env()
    catalog = InMemoryListingCatalog()
    ledger = FakeLedger(catalog, clock=clock, payment_window=timedelta(minutes=settings.payment_window_minutes))
    return CheckoutServices(
        settings=settings,
        catalog=catalog,
        ledger=ledger,
        gateway=FakeGateway(),
        profiles=FakeProfileStore(),
        sessions=InMemorySessionStorage(),
        clock=clock,
    )
