"""Tests for payment window expiry and speculation skipping."""

from datetime import UTC, datetime, timedelta

from checkout.ledger.transaction import Transaction
from checkout.transaction.expiry import has_payment_expired, is_clock_in_sync, should_skip_speculation

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _tx(state, minutes_ago=0, tx_id="tx-1"):
    return Transaction(
        id=tx_id,
        process_alias="default-purchase/release-1",
        state=state,
        last_transition="transition/request-payment",
        last_transitioned_at=NOW - timedelta(minutes=minutes_ago),
        listing_id="lst-1",
    )


class TestClockInSync:
    def test_close_enough(self):
        assert is_clock_in_sync(NOW - timedelta(seconds=30), NOW)

    def test_too_far_apart(self):
        assert not is_clock_in_sync(NOW - timedelta(seconds=90), NOW)

    def test_local_clock_behind_ledger(self):
        assert not is_clock_in_sync(NOW + timedelta(minutes=5), NOW)

    def test_no_timestamp(self):
        assert not is_clock_in_sync(None, NOW)


class TestHasPaymentExpired:
    def test_no_transaction(self):
        assert not has_payment_expired(None, NOW, clock_in_sync=True)

    def test_expired_state_always_counts(self):
        assert has_payment_expired(_tx("payment-expired"), NOW, clock_in_sync=False)

    def test_pending_past_window(self):
        assert has_payment_expired(_tx("pending-payment", minutes_ago=15), NOW, clock_in_sync=True)

    def test_pending_inside_window(self):
        assert not has_payment_expired(_tx("pending-payment", minutes_ago=14), NOW, clock_in_sync=True)

    def test_local_clock_ignored_when_out_of_sync(self):
        assert not has_payment_expired(_tx("pending-payment", minutes_ago=60), NOW, clock_in_sync=False)

    def test_purchased_never_expires(self):
        assert not has_payment_expired(_tx("purchased", minutes_ago=60), NOW, clock_in_sync=True)


class TestShouldSkipSpeculation:
    def test_redirect_return(self):
        assert should_skip_speculation(None, is_redirect_return=True)

    def test_no_transaction(self):
        assert not should_skip_speculation(None, is_redirect_return=False)

    def test_purchased(self):
        assert should_skip_speculation(_tx("purchased"), is_redirect_return=False)

    def test_pending_is_still_priced(self):
        assert not should_skip_speculation(_tx("pending-payment"), is_redirect_return=False)

    def test_speculative_result_without_id(self):
        assert not should_skip_speculation(_tx("purchased", tx_id=None), is_redirect_return=False)
