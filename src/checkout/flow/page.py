"""Checkout page controller — one checkout session from mount to confirmation.

Ties the cart, the transaction protocol client and the payment orchestrator
to the flow state machine and keeps the session snapshot current, so that a
reload or a return from an external payment page can pick up where the
buyer left off.
"""

from uuid import uuid4

from checkout.cart.cart import clamp_quantity
from checkout.catalog.listing import Listing
from checkout.domain import logger
from checkout.errors import (
    CheckoutError,
    ListingUnavailable,
    NetworkOrServerError,
    PaymentAuthorizationFailed,
    PaymentWindowExpired,
    RedirectReturnMismatch,
    ValidationRejected,
)
from checkout.flow.state_machine import CheckoutFlow, FlowState
from checkout.ledger.process import TxState
from checkout.payment.orchestrator import PaymentOrchestrator, PaymentOutcome, PaymentSelection
from checkout.payment.redirect import parse_redirect_return
from checkout.pricing.breakdown import CartLine, group_by_seller, select_delivery_method
from checkout.pricing.shipping import delivery_compatibility
from checkout.session.storage import CheckoutSession
from checkout.transaction.client import TransactionProtocolClient
from checkout.transaction.expiry import should_skip_speculation
from checkout.transaction.folding import draft_for_seller_group
from checkout.transaction.params import OrderDraft, PricePreview
from checkout.utils.logging import add_context

ORDER_DETAILS_PATH = "/order/{transaction_id}"

# Error class -> flow state it sends the page to. Others leave the state alone.
_ERROR_STATES = {
    ListingUnavailable: FlowState.LISTING_GONE,
    PaymentWindowExpired: FlowState.PRICE_EXPIRED,
    PaymentAuthorizationFailed: FlowState.PAYMENT_FAILED,
    RedirectReturnMismatch: FlowState.REDIRECT_RETURN_MISMATCH,
}


class CheckoutPage:
    def __init__(self, services, session: CheckoutSession) -> None:
        self._services = services
        self.session = session
        self.flow = CheckoutFlow(FlowState(session.flow_state))
        self.navigation: str | None = None
        self.redirect_url: str | None = None
        self.transactions = TransactionProtocolClient(
            services.ledger,
            services.privileged,
            services.settings,
            session.listings_by_id,
            customer_id=session.buyer_id,
            transaction=session.transaction,
            idempotency_key=session.idempotency_key,
            clock=services.clock,
        )
        self.transactions.speculative = session.speculative
        self.payments = PaymentOrchestrator(
            services.gateway,
            self.transactions,
            services.settings,
            session.session_id,
            attempt=session.payment_attempt,
        )
        add_context(checkout_session=session.session_id)

    # -------------------------------------------------------------------
    # Beginning a checkout
    # -------------------------------------------------------------------
    @classmethod
    def _start(cls, services, buyer_id, draft, listings, cart_items=()) -> "CheckoutPage":
        by_id = {listing.id: listing for listing in listings}
        session = CheckoutSession(
            session_id=uuid4().hex,
            buyer_id=buyer_id,
            listing=by_id[draft.primary_listing_id],
            order_data=draft,
            idempotency_key=uuid4().hex,
            cart_items=tuple(cart_items),
            listings=tuple(listings),
        )
        services.sessions.save(session)
        logger.info(
            "checkout_started",
            session_id=session.session_id,
            buyer_id=buyer_id,
            listing_id=draft.primary_listing_id,
            items=len(draft.listing_ids),
        )
        return cls(services, session)

    @classmethod
    async def begin_from_listing(
        cls, services, buyer_id, listing_id, quantity=1, option_id=None, delivery_method=None
    ) -> "CheckoutPage":
        listing = await services.catalog.fetch(listing_id)
        if listing is None or not listing.is_purchasable:
            raise ListingUnavailable()
        option = listing.option(option_id)
        if option_id and option is None:
            raise ValidationRejected("The selected option is no longer offered.")

        draft = OrderDraft(
            primary_listing_id=listing.id,
            quantity=clamp_quantity(quantity, listing.stock, services.settings.max_quantity),
            delivery_method=select_delivery_method(delivery_compatibility([listing]), delivery_method),
            option_id=option.id if option else None,
            line_item_overrides={listing.id: option.price_increment} if option else {},
        )
        return cls._start(services, buyer_id, draft, [listing])

    @classmethod
    async def begin_from_cart(cls, services, buyer_id, author_id, delivery_method=None) -> "CheckoutPage":
        """Check out every cart entry sold by ``author_id`` as one transaction."""
        cart = await services.carts.load(buyer_id)
        ids = list(dict.fromkeys(str(item.listing_id) for item in cart.items))
        listings = {listing.id: listing for listing in await services.catalog.fetch_many(ids)}

        lines = []
        entries = []
        for item in cart.items:
            listing = listings.get(str(item.listing_id))
            if listing is None or listing.author_id != author_id:
                continue
            if not listing.is_purchasable:
                raise ListingUnavailable(f"'{listing.title}' is no longer available.")
            lines.append(CartLine(listing=listing, quantity=item.quantity, option=listing.option(item.option_id)))
            entries.append(item.to_snapshot())

        if not lines:
            raise ValidationRejected("There is nothing from this seller in your cart.")

        group = group_by_seller(lines)[0]
        draft = draft_for_seller_group(group, select_delivery_method(group.compatibility, delivery_method))
        return cls._start(services, buyer_id, draft, _unique(group.listings), entries)

    @classmethod
    def mount(cls, services, session_id: str) -> "CheckoutPage | None":
        session = services.sessions.load(session_id)
        if session is None:
            return None
        return cls(services, session)

    # -------------------------------------------------------------------
    # Session persistence
    # -------------------------------------------------------------------
    def _save(self) -> None:
        self.session = self.session.updated(
            transaction=self.transactions.transaction,
            speculative=self.transactions.speculative,
            payment_attempt=self.payments.attempt,
            flow_state=self.flow.state.value,
        )
        self._services.sessions.save(self.session)

    def _fail(self, error: CheckoutError) -> CheckoutError:
        target = _ERROR_STATES.get(type(error))
        if target is not None and self.flow.can_move_to(target):
            self.flow.fail(target, error)
        else:
            self.flow.error = error
        self._save()
        logger.warning(
            "checkout_error",
            code=error.code,
            flow_state=self.flow.state.value,
            retryable=error.retryable,
            detail=error.detail,
        )
        return error

    @property
    def draft(self) -> OrderDraft:
        return self.session.order_data

    @property
    def has_pending_payment(self) -> bool:
        tx = self.transactions.transaction
        return tx is not None and tx.state == TxState.PENDING_PAYMENT.value

    # -------------------------------------------------------------------
    # Mount
    # -------------------------------------------------------------------
    async def load(self, query: dict | None = None) -> FlowState:
        """Run on every page mount: resume a redirect return or price the order."""
        if self.flow.state == FlowState.DONE:
            return self.flow.state
        self.flow = CheckoutFlow()

        try:
            marker = parse_redirect_return(query)
        except RedirectReturnMismatch as exc:
            raise self._fail(exc) from exc

        if marker is not None:
            return await self._resume_redirect(marker)

        tx = self.transactions.transaction
        if tx is not None and tx.state == TxState.PURCHASED.value:
            self.flow.move_to(FlowState.DONE)
            self._save()
            return self.flow.state

        if should_skip_speculation(tx, is_redirect_return=False) or self.has_pending_payment:
            if self.transactions.payment_expired() or tx.state == TxState.PAYMENT_EXPIRED.value:
                raise self._fail(PaymentWindowExpired())
            # A started payment resumes where it stopped; only finishing it or a redirect cancel follow
            self.flow.move_to(FlowState.COMMITTING if self.has_pending_payment else FlowState.PREVIEW_READY)
            self._save()
            return self.flow.state

        await self._speculate(self.draft)
        return self.flow.state

    async def _speculate(self, draft: OrderDraft):
        try:
            result = await self.transactions.speculate(PricePreview(draft))
        except CheckoutError as exc:
            raise self._fail(exc) from exc

        if result is None:
            return None
        self.session = self.session.updated(order_data=draft)
        if self.flow.state in (FlowState.LOADING, FlowState.PREVIEW_READY):
            self.flow.move_to(FlowState.PREVIEW_READY)
        self._save()
        return result

    # -------------------------------------------------------------------
    # Buyer input
    # -------------------------------------------------------------------
    async def preview(self, delivery_method=None, quantity=None, option_id=None):
        """Re-price after the buyer changes delivery, quantity or option."""
        if self.flow.state not in (FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT):
            raise ValidationRejected("The order can no longer be changed.")

        listing = self.session.listing
        changes = {}
        if delivery_method is not None:
            compatibility = delivery_compatibility(self.session.listings_by_id.values())
            changes["delivery_method"] = select_delivery_method(compatibility, delivery_method)
        if quantity is not None:
            changes["quantity"] = clamp_quantity(quantity, listing.stock, self._services.settings.max_quantity)
        if option_id is not None:
            option = listing.option(option_id)
            if option is None:
                raise ValidationRejected("The selected option is no longer offered.")
            changes["option_id"] = option.id
            changes["line_item_overrides"] = {**self.draft.line_item_overrides, listing.id: option.price_increment}

        return await self._speculate(self.draft.with_changes(**changes))

    def start_collecting(self) -> None:
        self.flow.move_to(FlowState.COLLECTING_PAYMENT)
        self._save()

    async def wallet_capabilities(self):
        return await self.payments.wallet_capabilities()

    # -------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------
    async def submit(self, selection: PaymentSelection) -> PaymentOutcome:
        self.payments.check_submission(selection)
        if self.flow.state == FlowState.PAYMENT_FAILED:
            # Only declines land here, and a decline may always be retried
            self.retry_payment()
        if self.flow.state == FlowState.PREVIEW_READY:
            self.flow.move_to(FlowState.COLLECTING_PAYMENT)
        if self.flow.state != FlowState.COMMITTING:
            self.flow.move_to(FlowState.COMMITTING)
        self._save()

        try:
            outcome = await self.payments.submit(self.draft, selection)
        except NetworkOrServerError as exc:
            raise self._fail(exc) from exc
        except CheckoutError as exc:
            if type(exc) not in _ERROR_STATES and not self.has_pending_payment:
                self.flow.return_to_collecting(pending_payment=False)
            raise self._fail(exc) from exc

        if outcome.redirect_url:
            self.redirect_url = outcome.redirect_url
            self._save()
            return outcome

        self._finish(outcome)
        return outcome

    async def _resume_redirect(self, marker) -> FlowState:
        try:
            self.payments.match_return(marker)
            if self.flow.state == FlowState.LOADING:
                self.flow.move_to(FlowState.CONFIRMING)
            outcome = await self.payments.resume_redirect(marker)
        except CheckoutError as exc:
            raise self._fail(exc) from exc

        self._finish(outcome)
        return self.flow.state

    def _finish(self, outcome: PaymentOutcome) -> None:
        """Purchase done: clear the cart locally, then send the buyer to the order."""
        if self.flow.state == FlowState.COMMITTING:
            self.flow.move_to(FlowState.CONFIRMING)
        self.flow.move_to(FlowState.DONE)
        if self.session.cart_items:
            self._services.carts.clear(self.session.buyer_id)
        self.navigation = ORDER_DETAILS_PATH.format(transaction_id=outcome.transaction.id)
        self._save()
        logger.info("checkout_completed", transaction_id=outcome.transaction.id)

    # -------------------------------------------------------------------
    # Recovery
    # -------------------------------------------------------------------
    async def cancel_and_retry(self):
        """Abandon a redirect payment and go back to choosing a method."""
        try:
            tx = await self.payments.cancel_and_retry()
        except CheckoutError as exc:
            raise self._fail(exc) from exc

        if self.flow.state == FlowState.PREVIEW_READY:
            self.flow.move_to(FlowState.COLLECTING_PAYMENT)
        self.flow.return_to_collecting(pending_payment=False, redirect_cancelled=True)
        self.redirect_url = None
        self._save()
        return tx

    def retry_payment(self) -> None:
        """After a declined card, try again. Not while a payment is pending."""
        if self.has_pending_payment:
            raise ValidationRejected("A payment is still pending for this order. Cancel it before trying again.")
        self.flow.return_to_collecting(pending_payment=False)
        self._save()

    # -------------------------------------------------------------------
    # View
    # -------------------------------------------------------------------
    def view(self) -> dict:
        tx = self.transactions.transaction
        speculative = self.transactions.speculative
        priced = tx if tx is not None and tx.line_items else speculative
        error = self.flow.error
        return {
            "session_id": self.session.session_id,
            "flow_state": self.flow.state.value,
            "order_data": self.draft.to_dict(),
            "transaction": tx.to_dict() if tx else None,
            "line_items": [li.to_dict() for li in priced.line_items] if priced else [],
            "payin_total": priced.payin_total.to_wire() if priced and priced.payin_total else None,
            "payment_expired": self.transactions.payment_expired(),
            "clock_in_sync": self.transactions.clock_in_sync,
            "payment_attempt": self.payments.attempt.to_dict() if self.payments.attempt else None,
            "redirect_url": self.redirect_url,
            "navigation": self.navigation,
            "error": error.to_dict() if isinstance(error, CheckoutError) else None,
        }


def _unique(listings) -> list[Listing]:
    return list({listing.id: listing for listing in listings}.values())
