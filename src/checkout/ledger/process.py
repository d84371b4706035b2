"""Purchase process definition for the marketplace ledger.

State Machine:
    initial ──inquire──> inquiry
    initial | payment-cancelled ──request-payment──> pending-payment
    inquiry ──request-payment-after-inquiry──> pending-payment
    pending-payment ──confirm-payment──> purchased
    pending-payment ──cancel-payment──> payment-cancelled
    pending-payment ──expire-payment──> payment-expired

Transitions that price the order or touch the payment gateway are
privileged: they may only be invoked from the server side, which holds the
marketplace secrets and computes line items itself.
"""

from dataclasses import dataclass
from enum import Enum


class TxState(Enum):
    INITIAL = "initial"
    INQUIRY = "inquiry"
    PENDING_PAYMENT = "pending-payment"
    PAYMENT_CANCELLED = "payment-cancelled"
    PAYMENT_EXPIRED = "payment-expired"
    PURCHASED = "purchased"


class TxTransition(Enum):
    INQUIRE = "transition/inquire"
    REQUEST_PAYMENT = "transition/request-payment"
    REQUEST_PAYMENT_AFTER_INQUIRY = "transition/request-payment-after-inquiry"
    CONFIRM_PAYMENT = "transition/confirm-payment"
    CANCEL_PAYMENT = "transition/cancel-payment"
    EXPIRE_PAYMENT = "transition/expire-payment"


@dataclass(frozen=True)
class TransitionRule:
    name: TxTransition
    from_states: frozenset
    to_state: TxState
    privileged: bool
    actor: str = "customer"


_PROCESS: dict[TxTransition, TransitionRule] = {
    TxTransition.INQUIRE: TransitionRule(
        TxTransition.INQUIRE, frozenset({TxState.INITIAL}), TxState.INQUIRY, privileged=False
    ),
    TxTransition.REQUEST_PAYMENT: TransitionRule(
        TxTransition.REQUEST_PAYMENT,
        frozenset({TxState.INITIAL, TxState.PAYMENT_CANCELLED}),
        TxState.PENDING_PAYMENT,
        privileged=True,
    ),
    TxTransition.REQUEST_PAYMENT_AFTER_INQUIRY: TransitionRule(
        TxTransition.REQUEST_PAYMENT_AFTER_INQUIRY,
        frozenset({TxState.INQUIRY}),
        TxState.PENDING_PAYMENT,
        privileged=True,
    ),
    TxTransition.CONFIRM_PAYMENT: TransitionRule(
        TxTransition.CONFIRM_PAYMENT,
        frozenset({TxState.PENDING_PAYMENT}),
        TxState.PURCHASED,
        privileged=False,
    ),
    TxTransition.CANCEL_PAYMENT: TransitionRule(
        TxTransition.CANCEL_PAYMENT,
        frozenset({TxState.PENDING_PAYMENT}),
        TxState.PAYMENT_CANCELLED,
        privileged=True,
    ),
    TxTransition.EXPIRE_PAYMENT: TransitionRule(
        TxTransition.EXPIRE_PAYMENT,
        frozenset({TxState.PENDING_PAYMENT}),
        TxState.PAYMENT_EXPIRED,
        privileged=True,
        actor="system",
    ),
}

# Order of the happy path; used to answer "has the transaction got past X?"
_PROGRESS = {
    TxState.INITIAL: 0,
    TxState.INQUIRY: 1,
    TxState.PAYMENT_CANCELLED: 1,
    TxState.PENDING_PAYMENT: 2,
    TxState.PAYMENT_EXPIRED: 3,
    TxState.PURCHASED: 3,
}


def transition_rule(transition) -> TransitionRule:
    return _PROCESS[TxTransition(transition)]


def is_privileged(transition) -> bool:
    return transition_rule(transition).privileged


def can_transition(state, transition) -> bool:
    return TxState(state) in transition_rule(transition).from_states


def has_passed(state, milestone) -> bool:
    """True once ``state`` is strictly further along than ``milestone``."""
    return _PROGRESS[TxState(state)] > _PROGRESS[TxState(milestone)]


def request_transition_for(last_transition) -> TxTransition:
    """Pick the payment request transition that continues from ``last_transition``."""
    if last_transition == TxTransition.INQUIRE.value:
        return TxTransition.REQUEST_PAYMENT_AFTER_INQUIRY
    return TxTransition.REQUEST_PAYMENT
