"""Tests for the ledger purchase process definition."""

import pytest
from checkout.ledger.process import (
    TxState,
    TxTransition,
    can_transition,
    has_passed,
    is_privileged,
    request_transition_for,
    transition_rule,
)


class TestPrivilegedTransitions:
    @pytest.mark.parametrize(
        "transition",
        [
            TxTransition.REQUEST_PAYMENT,
            TxTransition.REQUEST_PAYMENT_AFTER_INQUIRY,
            TxTransition.CANCEL_PAYMENT,
            TxTransition.EXPIRE_PAYMENT,
        ],
    )
    def test_privileged(self, transition):
        assert is_privileged(transition.value)

    @pytest.mark.parametrize("transition", [TxTransition.INQUIRE, TxTransition.CONFIRM_PAYMENT])
    def test_unprivileged(self, transition):
        assert not is_privileged(transition.value)

    def test_unknown_transition(self):
        with pytest.raises(ValueError):
            transition_rule("transition/teleport")


class TestSourceStates:
    def test_request_payment_from_initial(self):
        assert can_transition("initial", TxTransition.REQUEST_PAYMENT.value)

    def test_request_payment_again_after_cancel(self):
        assert can_transition("payment-cancelled", TxTransition.REQUEST_PAYMENT.value)

    def test_confirm_only_from_pending(self):
        assert can_transition("pending-payment", TxTransition.CONFIRM_PAYMENT.value)
        assert not can_transition("initial", TxTransition.CONFIRM_PAYMENT.value)
        assert not can_transition("purchased", TxTransition.CONFIRM_PAYMENT.value)

    def test_expire_is_a_system_transition(self):
        assert transition_rule(TxTransition.EXPIRE_PAYMENT.value).actor == "system"
        assert transition_rule(TxTransition.EXPIRE_PAYMENT.value).to_state == TxState.PAYMENT_EXPIRED


class TestProgress:
    def test_purchased_has_passed_pending(self):
        assert has_passed("purchased", "pending-payment")

    def test_pending_has_not_passed_itself(self):
        assert not has_passed("pending-payment", "pending-payment")

    def test_cancelled_is_behind_pending(self):
        assert not has_passed("payment-cancelled", "pending-payment")


class TestRequestTransition:
    def test_default(self):
        assert request_transition_for(None) == TxTransition.REQUEST_PAYMENT

    def test_after_inquiry(self):
        assert request_transition_for("transition/inquire") == TxTransition.REQUEST_PAYMENT_AFTER_INQUIRY

    def test_after_cancel(self):
        assert request_transition_for("transition/cancel-payment") == TxTransition.REQUEST_PAYMENT
