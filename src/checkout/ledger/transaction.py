"""Ledger transaction records as returned by the marketplace ledger."""

from dataclasses import dataclass, field
from datetime import datetime

from checkout.shared.money import Money, sum_money


@dataclass(frozen=True)
class LineItem:
    code: str
    unit_price: Money
    line_total: Money
    quantity: int = 1
    percentage: int | None = None
    reversal: bool = False
    include_for: tuple[str, ...] = ("customer", "provider")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "unitPrice": self.unit_price.to_wire(),
            "lineTotal": self.line_total.to_wire(),
            "quantity": self.quantity,
            "percentage": self.percentage,
            "reversal": self.reversal,
            "includeFor": list(self.include_for),
        }


@dataclass(frozen=True)
class Transaction:
    id: str | None
    process_alias: str
    state: str
    last_transition: str | None
    last_transitioned_at: datetime | None
    listing_id: str
    customer_id: str | None = None
    provider_id: str | None = None
    line_items: tuple[LineItem, ...] = ()
    protected_data: dict = field(default_factory=dict)
    booking: dict | None = None

    @property
    def currency(self) -> str | None:
        return self.line_items[0].line_total.currency if self.line_items else None

    def _total_for(self, role: str) -> Money | None:
        items = [li for li in self.line_items if role in li.include_for]
        if not items:
            return None
        return sum_money((li.line_total for li in items), items[0].line_total.currency)

    @property
    def payin_total(self) -> Money | None:
        """What the customer pays."""
        return self._total_for("customer")

    @property
    def payout_total(self) -> Money | None:
        return self._total_for("provider")

    @property
    def payment_intent(self) -> dict | None:
        return self.protected_data.get("paymentIntent")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "processAlias": self.process_alias,
            "state": self.state,
            "lastTransition": self.last_transition,
            "lastTransitionedAt": self.last_transitioned_at.isoformat() if self.last_transitioned_at else None,
            "listingId": self.listing_id,
            "customerId": self.customer_id,
            "providerId": self.provider_id,
            "lineItems": [li.to_dict() for li in self.line_items],
            "protectedData": self.protected_data,
            "booking": self.booking,
            "speculative": isinstance(self, SpeculativeTransaction),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        kind = SpeculativeTransaction if data.get("speculative") else Transaction
        last = data.get("lastTransitionedAt")
        return kind(
            id=data.get("id"),
            process_alias=data["processAlias"],
            state=data["state"],
            last_transition=data.get("lastTransition"),
            last_transitioned_at=datetime.fromisoformat(last) if last else None,
            listing_id=data["listingId"],
            customer_id=data.get("customerId"),
            provider_id=data.get("providerId"),
            line_items=tuple(
                LineItem(
                    code=li["code"],
                    unit_price=Money.from_wire(li["unitPrice"]),
                    line_total=Money.from_wire(li["lineTotal"]),
                    quantity=li.get("quantity", 1),
                    percentage=li.get("percentage"),
                    reversal=li.get("reversal", False),
                    include_for=tuple(li.get("includeFor", ("customer", "provider"))),
                )
                for li in data.get("lineItems", [])
            ),
            protected_data=dict(data.get("protectedData") or {}),
            booking=data.get("booking"),
        )


@dataclass(frozen=True)
class SpeculativeTransaction(Transaction):
    """What a transaction would become; the ledger kept nothing."""
