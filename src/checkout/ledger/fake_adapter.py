"""In-memory marketplace ledger for development and testing.

Enforces the purchase process (valid source states, privileged transitions
only from trusted callers, listing and stock checks) and records every call
so tests can assert which path was taken and that speculation left nothing
behind. Replaying the transition that produced the current state is a
no-op, as is repeating an ``initiate`` with an idempotency key already seen.
"""

import asyncio
import copy
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from checkout.catalog.port import ListingCatalog
from checkout.ledger.port import Ledger, LedgerError, LedgerErrorCode
from checkout.ledger.process import TxState, TxTransition, can_transition, transition_rule
from checkout.ledger.transaction import SpeculativeTransaction, Transaction


def _utcnow():
    return datetime.now(UTC)


def _protected_data(base, params) -> dict:
    """Merge the params' protected data; a payment intent id is recorded alongside it."""
    merged = {**(base or {}), **copy.deepcopy(params.get("protectedData") or {})}
    if params.get("paymentIntentId"):
        merged["paymentIntent"] = {"id": params["paymentIntentId"]}
    return merged


class FakeLedger(Ledger):
    def __init__(
        self,
        catalog: ListingCatalog,
        clock=_utcnow,
        payment_window: timedelta = timedelta(minutes=15),
    ) -> None:
        self._catalog = catalog
        self._clock = clock
        self._payment_window = payment_window
        self.transactions: dict[str, Transaction] = {}
        self.calls: list[dict] = []
        self.delay: float = 0.0
        self._idempotency: dict[str, str] = {}
        self._queued_errors: list[LedgerError] = []

    # -------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------
    def fail_next(self, error: LedgerError) -> None:
        self._queued_errors.append(error)

    def expire(self, transaction_id: str) -> Transaction:
        return self._apply(self.transactions[transaction_id], TxTransition.EXPIRE_PAYMENT.value, {})

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    @property
    def durable_calls(self) -> list[dict]:
        return [c for c in self.calls if c["method"] in ("initiate", "transition")]

    # -------------------------------------------------------------------
    # Ledger port
    # -------------------------------------------------------------------
    async def initiate(self, process_alias, transition, params, query, trusted=False):
        await self._enter("initiate", None, transition, params, query, trusted)
        key = params.get("idempotencyKey")
        if key and key in self._idempotency:
            return self._project(self.transactions[self._idempotency[key]], query)

        listing = await self._checked_listing(params)
        rule = self._checked_rule(TxState.INITIAL.value, transition, trusted)
        tx = Transaction(
            id=str(uuid4()),
            process_alias=process_alias,
            state=rule.to_state.value,
            last_transition=transition,
            last_transitioned_at=self._clock(),
            listing_id=listing.id,
            customer_id=params.get("customerId"),
            provider_id=listing.author_id,
            line_items=tuple(params.get("lineItems") or ()),
            protected_data=_protected_data({}, params),
            booking=None,
        )
        self.transactions[tx.id] = tx
        if key:
            self._idempotency[key] = tx.id
        return self._project(tx, query)

    async def transition(self, transaction_id, transition, params, query, trusted=False):
        await self._enter("transition", transaction_id, transition, params, query, trusted)
        tx = self._existing(transaction_id)
        if tx.last_transition == transition and tx.state == transition_rule(transition).to_state.value:
            return self._project(tx, query)

        self._expire_if_due(tx)
        self._checked_rule(self.transactions[transaction_id].state, transition, trusted)
        if params.get("listingId"):
            await self._checked_listing(params)
        tx = self._apply(self.transactions[transaction_id], transition, params)
        return self._project(tx, query)

    async def initiate_speculative(self, process_alias, transition, params, query, trusted=False):
        await self._enter("initiate_speculative", None, transition, params, query, trusted)
        listing = await self._checked_listing(params)
        rule = self._checked_rule(TxState.INITIAL.value, transition, trusted)
        return SpeculativeTransaction(
            id=None,
            process_alias=process_alias,
            state=rule.to_state.value,
            last_transition=transition,
            last_transitioned_at=self._clock(),
            listing_id=listing.id,
            customer_id=params.get("customerId"),
            provider_id=listing.author_id if "provider" in query.get("include", []) else None,
            line_items=tuple(params.get("lineItems") or ()),
            protected_data=_protected_data({}, params),
        )

    async def transition_speculative(self, transaction_id, transition, params, query, trusted=False):
        await self._enter("transition_speculative", transaction_id, transition, params, query, trusted)
        tx = self._existing(transaction_id)
        rule = self._checked_rule(tx.state, transition, trusted)
        if params.get("listingId"):
            await self._checked_listing(params)
        merged = _protected_data(tx.protected_data, params)
        return SpeculativeTransaction(
            id=tx.id,
            process_alias=tx.process_alias,
            state=rule.to_state.value,
            last_transition=transition,
            last_transitioned_at=self._clock(),
            listing_id=tx.listing_id,
            customer_id=tx.customer_id,
            provider_id=tx.provider_id if "provider" in query.get("include", []) else None,
            line_items=tuple(params.get("lineItems") or tx.line_items),
            protected_data=merged,
        )

    async def show(self, transaction_id, query=None):
        await self._enter("show", transaction_id, None, {}, query or {}, False)
        return self._existing(transaction_id)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    async def _enter(self, method, transaction_id, transition, params, query, trusted):
        self.calls.append(
            {
                "method": method,
                "transaction_id": transaction_id,
                "transition": transition,
                "params": params,
                "query": query,
                "trusted": trusted,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._queued_errors:
            raise self._queued_errors.pop(0)

    def _existing(self, transaction_id) -> Transaction:
        tx = self.transactions.get(transaction_id)
        if tx is None:
            raise LedgerError(404, LedgerErrorCode.TRANSACTION_NOT_FOUND, f"Transaction {transaction_id} not found")
        return tx

    async def _checked_listing(self, params):
        listing = await self._catalog.fetch(params.get("listingId"))
        if listing is None:
            raise LedgerError(404, LedgerErrorCode.LISTING_NOT_FOUND, "Listing not found")
        if listing.state != "published":
            raise LedgerError(404, LedgerErrorCode.LISTING_CLOSED, "Listing is closed")
        requested = params.get("stockReservationQuantity")
        if requested is not None and requested > listing.stock:
            raise LedgerError(409, LedgerErrorCode.STOCK_MISMATCH, "Not enough stock for the requested quantity")
        return listing

    def _checked_rule(self, state, transition, trusted):
        rule = transition_rule(transition)
        if rule.privileged and not trusted:
            raise LedgerError(403, LedgerErrorCode.FORBIDDEN, f"{transition} requires a trusted caller")
        if not can_transition(state, transition):
            raise LedgerError(409, LedgerErrorCode.INVALID_TRANSITION, f"Cannot {transition} from {state}")
        return rule

    def _expire_if_due(self, tx):
        if tx.state != TxState.PENDING_PAYMENT.value or tx.last_transitioned_at is None:
            return
        if self._clock() - tx.last_transitioned_at >= self._payment_window:
            self.expire(tx.id)
            raise LedgerError(409, LedgerErrorCode.PAYMENT_EXPIRED, "Payment window has expired")

    def _apply(self, tx, transition, params) -> Transaction:
        rule = transition_rule(transition)
        updated = replace(
            tx,
            state=rule.to_state.value,
            last_transition=transition,
            last_transitioned_at=self._clock(),
            line_items=tuple(params.get("lineItems") or tx.line_items),
            protected_data=_protected_data(tx.protected_data, params),
        )
        self.transactions[tx.id] = updated
        return updated

    def _project(self, tx, query):
        if "provider" in (query or {}).get("include", []):
            return tx
        return replace(tx, provider_id=None)
