"""Checkout flow state machine.

State Machine:
    loading → previewReady → collectingPayment → committing → confirming → done
                   ↑______________|     (re-preview while collecting)
    loading → committing               (reload while a payment is pending)
    committing | paymentFailed → collectingPayment
        (only while the ledger holds no pending payment, or via redirect
        cancel-and-retry)
    any state  → listingGone | priceExpired | paymentFailed | redirectReturnMismatch

``committing → confirming → done`` is walked once. The error states are
terminal except ``paymentFailed``, from which the buyer may retry, and
``priceExpired``, which restarts pricing.
"""

from enum import Enum

from protean.exceptions import ValidationError

from checkout.domain import logger


class FlowState(Enum):
    LOADING = "loading"
    PREVIEW_READY = "previewReady"
    COLLECTING_PAYMENT = "collectingPayment"
    COMMITTING = "committing"
    CONFIRMING = "confirming"
    DONE = "done"
    LISTING_GONE = "listingGone"
    PRICE_EXPIRED = "priceExpired"
    PAYMENT_FAILED = "paymentFailed"
    REDIRECT_RETURN_MISMATCH = "redirectReturnMismatch"


ERROR_STATES = frozenset(
    {
        FlowState.LISTING_GONE,
        FlowState.PRICE_EXPIRED,
        FlowState.PAYMENT_FAILED,
        FlowState.REDIRECT_RETURN_MISMATCH,
    }
)

_VALID_TRANSITIONS = {
    FlowState.LOADING: {FlowState.PREVIEW_READY, FlowState.COMMITTING, FlowState.CONFIRMING, FlowState.DONE},
    FlowState.PREVIEW_READY: {FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT},
    FlowState.COLLECTING_PAYMENT: {FlowState.COMMITTING},
    FlowState.COMMITTING: {FlowState.CONFIRMING},
    FlowState.CONFIRMING: {FlowState.DONE},
    FlowState.DONE: set(),
    FlowState.LISTING_GONE: set(),
    FlowState.REDIRECT_RETURN_MISMATCH: set(),
    FlowState.PRICE_EXPIRED: {FlowState.LOADING},
    FlowState.PAYMENT_FAILED: set(),
}


class CheckoutFlow:
    def __init__(self, state: FlowState = FlowState.LOADING) -> None:
        self.state = state
        self.history: list[FlowState] = [state]
        self.error = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (FlowState.DONE, FlowState.LISTING_GONE, FlowState.REDIRECT_RETURN_MISMATCH)

    def can_move_to(self, target: FlowState) -> bool:
        if target in ERROR_STATES:
            return self.state is not FlowState.DONE
        return target in _VALID_TRANSITIONS[self.state]

    def _assert_can_transition(self, target: FlowState) -> None:
        if not self.can_move_to(target):
            raise ValidationError({"flow_state": [f"Cannot move checkout from {self.state.value} to {target.value}"]})

    def move_to(self, target: FlowState) -> None:
        self._assert_can_transition(target)
        logger.debug("checkout_flow_transition", source=self.state.value, target=target.value)
        self.state = target
        self.history.append(target)

    def fail(self, target: FlowState, error) -> None:
        self.move_to(target)
        self.error = error

    def return_to_collecting(self, pending_payment: bool, redirect_cancelled: bool = False) -> None:
        """Back to collecting payment after a submit that did not go through.

        While the ledger holds a pending payment for this checkout, only a
        redirect cancel-and-retry may reopen payment collection.
        """
        if self.state not in (FlowState.COMMITTING, FlowState.PAYMENT_FAILED, FlowState.COLLECTING_PAYMENT):
            raise ValidationError({"flow_state": [f"Cannot return to payment from {self.state.value}"]})
        if pending_payment and not redirect_cancelled:
            raise ValidationError({"flow_state": ["A payment is pending; cancel it before trying again"]})
        logger.debug("checkout_flow_transition", source=self.state.value, target=FlowState.COLLECTING_PAYMENT.value)
        self.state = FlowState.COLLECTING_PAYMENT
        self.history.append(self.state)
        self.error = None
