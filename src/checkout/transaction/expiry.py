"""Payment window expiry, derived only from ledger timestamps.

The local clock is used for one thing: deciding whether it agrees with the
ledger closely enough that elapsed time can be trusted at all. When it does
not (ClockSkewFlag), only the ledger's own state counts.
"""

from datetime import datetime, timedelta

from checkout.ledger.process import TxState, has_passed

CLOCK_SKEW_TOLERANCE = timedelta(seconds=60)
PAYMENT_WINDOW = timedelta(minutes=15)


def is_clock_in_sync(last_transitioned_at: datetime | None, now: datetime, tolerance=CLOCK_SKEW_TOLERANCE) -> bool:
    if last_transitioned_at is None:
        return False
    return abs(last_transitioned_at - now) < tolerance


def has_payment_expired(transaction, now: datetime, clock_in_sync: bool, window=PAYMENT_WINDOW) -> bool:
    """``clock_in_sync`` must come from a speculate response, not from ``now`` itself."""
    if transaction is None:
        return False
    if transaction.state == TxState.PAYMENT_EXPIRED.value:
        return True
    if transaction.state != TxState.PENDING_PAYMENT.value or not clock_in_sync:
        return False
    return now - transaction.last_transitioned_at >= window


def should_skip_speculation(transaction, is_redirect_return: bool) -> bool:
    """A stored transaction past pending-payment, or a redirect return, is already priced."""
    if is_redirect_return:
        return True
    if transaction is None or transaction.id is None:
        return False
    return has_passed(transaction.state, TxState.PENDING_PAYMENT.value)
