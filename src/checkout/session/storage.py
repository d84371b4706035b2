"""Checkout session storage — the continuation that survives a page reload.

Written when checkout begins and after every step that changes the
transaction or payment attempt; read on every checkout page mount. The
redirect payment method depends on it: the page that receives the buyer back
from the external payment page has no memory of the page that sent them.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from checkout.catalog.listing import Listing, listing_from_dict, listing_to_dict
from checkout.ledger.transaction import Transaction
from checkout.payment.attempt import PaymentAttempt
from checkout.transaction.params import OrderDraft


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    buyer_id: str
    listing: Listing
    order_data: OrderDraft
    idempotency_key: str
    cart_items: tuple[dict, ...] = ()
    listings: tuple[Listing, ...] = ()
    transaction: Transaction | None = None
    speculative: Transaction | None = None
    payment_attempt: PaymentAttempt | None = None
    flow_state: str = "loading"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def listings_by_id(self) -> dict[str, Listing]:
        by_id = {listing.id: listing for listing in self.listings}
        by_id.setdefault(self.listing.id, self.listing)
        return by_id

    def updated(self, **changes) -> "CheckoutSession":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "buyerId": self.buyer_id,
            "listing": listing_to_dict(self.listing),
            "orderData": self.order_data.to_dict(),
            "idempotencyKey": self.idempotency_key,
            "cartItems": list(self.cart_items),
            "listings": [listing_to_dict(listing) for listing in self.listings],
            "transaction": self.transaction.to_dict() if self.transaction else None,
            "speculativeTransaction": self.speculative.to_dict() if self.speculative else None,
            "paymentAttempt": self.payment_attempt.to_dict() if self.payment_attempt else None,
            "flowState": self.flow_state,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckoutSession":
        return cls(
            session_id=data["sessionId"],
            buyer_id=data["buyerId"],
            listing=listing_from_dict(data["listing"]),
            order_data=OrderDraft.from_dict(data["orderData"]),
            idempotency_key=data["idempotencyKey"],
            cart_items=tuple(data.get("cartItems") or ()),
            listings=tuple(listing_from_dict(item) for item in data.get("listings") or ()),
            transaction=Transaction.from_dict(data["transaction"]) if data.get("transaction") else None,
            speculative=(
                Transaction.from_dict(data["speculativeTransaction"]) if data.get("speculativeTransaction") else None
            ),
            payment_attempt=PaymentAttempt(**data["paymentAttempt"]) if data.get("paymentAttempt") else None,
            flow_state=data.get("flowState", "loading"),
            created_at=datetime.fromisoformat(data["createdAt"]),
        )


class SessionStorage(ABC):
    @abstractmethod
    def save(self, session: CheckoutSession) -> None: ...

    @abstractmethod
    def load(self, session_id: str) -> CheckoutSession | None: ...

    @abstractmethod
    def delete(self, session_id: str) -> None: ...


class InMemorySessionStorage(SessionStorage):
    """Keeps sessions as JSON strings, exactly as a browser session store would."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def save(self, session: CheckoutSession) -> None:
        self._data[session.session_id] = json.dumps(session.to_dict())

    def load(self, session_id: str) -> CheckoutSession | None:
        raw = self._data.get(session_id)
        if raw is None:
            return None
        return CheckoutSession.from_dict(json.loads(raw))

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._data
