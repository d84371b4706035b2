"""Tests for the checkout flow state machine."""

import pytest
from checkout.errors import PaymentAuthorizationFailed
from checkout.flow.state_machine import ERROR_STATES, CheckoutFlow, FlowState
from protean.exceptions import ValidationError


def _flow_at(*path):
    flow = CheckoutFlow()
    for state in path:
        flow.move_to(state)
    return flow


class TestHappyPath:
    def test_starts_loading(self):
        assert CheckoutFlow().state == FlowState.LOADING

    def test_full_path(self):
        flow = _flow_at(
            FlowState.PREVIEW_READY,
            FlowState.COLLECTING_PAYMENT,
            FlowState.COMMITTING,
            FlowState.CONFIRMING,
            FlowState.DONE,
        )
        assert flow.state == FlowState.DONE
        assert flow.is_terminal
        assert len(flow.history) == 6

    def test_re_preview_is_allowed(self):
        flow = _flow_at(FlowState.PREVIEW_READY, FlowState.PREVIEW_READY)
        assert flow.state == FlowState.PREVIEW_READY

    def test_redirect_return_goes_straight_to_confirming(self):
        assert _flow_at(FlowState.CONFIRMING).state == FlowState.CONFIRMING


class TestInvalidTransitions:
    def test_cannot_skip_commit(self):
        flow = _flow_at(FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT)
        with pytest.raises(ValidationError) as exc:
            flow.move_to(FlowState.DONE)
        assert "flow_state" in exc.value.messages

    def test_commit_is_walked_once(self):
        flow = _flow_at(FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT, FlowState.COMMITTING)
        with pytest.raises(ValidationError):
            flow.move_to(FlowState.COMMITTING)

    def test_done_is_final(self):
        flow = _flow_at(FlowState.DONE)
        for target in FlowState:
            assert not flow.can_move_to(target)


class TestErrorStates:
    @pytest.mark.parametrize("target", sorted(ERROR_STATES, key=lambda s: s.value))
    def test_reachable_from_any_live_state(self, target):
        flow = _flow_at(FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT, FlowState.COMMITTING)
        flow.fail(target, PaymentAuthorizationFailed())
        assert flow.state == target
        assert isinstance(flow.error, PaymentAuthorizationFailed)

    def test_listing_gone_is_terminal(self):
        flow = CheckoutFlow()
        flow.fail(FlowState.LISTING_GONE, None)
        assert flow.is_terminal

    def test_price_expired_restarts_pricing(self):
        flow = CheckoutFlow()
        flow.fail(FlowState.PRICE_EXPIRED, None)
        flow.move_to(FlowState.LOADING)
        assert flow.state == FlowState.LOADING


class TestReturnToCollecting:
    def test_after_declined_card(self):
        flow = _flow_at(FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT, FlowState.COMMITTING)
        flow.fail(FlowState.PAYMENT_FAILED, PaymentAuthorizationFailed())
        flow.return_to_collecting(pending_payment=False)
        assert flow.state == FlowState.COLLECTING_PAYMENT
        assert flow.error is None

    def test_blocked_while_payment_pending(self):
        flow = _flow_at(FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT, FlowState.COMMITTING)
        with pytest.raises(ValidationError):
            flow.return_to_collecting(pending_payment=True)

    def test_redirect_cancel_reopens_collection(self):
        flow = _flow_at(FlowState.PREVIEW_READY, FlowState.COLLECTING_PAYMENT, FlowState.COMMITTING)
        flow.return_to_collecting(pending_payment=True, redirect_cancelled=True)
        assert flow.state == FlowState.COLLECTING_PAYMENT

    def test_not_from_done(self):
        with pytest.raises(ValidationError):
            _flow_at(FlowState.DONE).return_to_collecting(pending_payment=False)
