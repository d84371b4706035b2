"""Transaction protocol client — speculate, commit and transition against the ledger.

One client serves one checkout session and remembers the durable
transaction it has seen. That memory drives two choices on every call:

- initiate vs transition: once a transaction id is known every call is a
  transition on that id, so a retried commit can never open a second
  transaction;
- privileged vs unprivileged: transitions that price the order or touch the
  payment gateway go through ``PrivilegedTransactions`` on the server, the
  rest go straight to the ledger without marketplace credentials.

Speculation never mutates the ledger. Responses to superseded speculate
requests are dropped so stale prices never overwrite fresher ones.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from checkout.domain import logger
from checkout.errors import (
    CheckoutError,
    ListingUnavailable,
    NetworkOrServerError,
    PaymentWindowExpired,
    ValidationRejected,
)
from checkout.ledger.port import DEFAULT_QUERY, Ledger, LedgerError, LedgerErrorCode
from checkout.ledger.process import TxTransition, is_privileged, request_transition_for
from checkout.ledger.transaction import SpeculativeTransaction, Transaction
from checkout.settings import Settings
from checkout.transaction.expiry import has_payment_expired, is_clock_in_sync
from checkout.transaction.folding import fold_cart_items
from checkout.transaction.params import ledger_params
from checkout.transaction.privileged import PrivilegedTransactions


def _utcnow():
    return datetime.now(UTC)


def translate_ledger_error(exc: Exception) -> CheckoutError:
    """Map a ledger failure onto the checkout error taxonomy."""
    if isinstance(exc, CheckoutError):
        return exc
    if not isinstance(exc, LedgerError):
        return NetworkOrServerError(detail=str(exc))
    if exc.code in (LedgerErrorCode.LISTING_NOT_FOUND, LedgerErrorCode.LISTING_CLOSED):
        return ListingUnavailable(detail=exc.message)
    if exc.code == LedgerErrorCode.PAYMENT_EXPIRED:
        return PaymentWindowExpired(detail=exc.message)
    if exc.code == LedgerErrorCode.STOCK_MISMATCH:
        return ValidationRejected(
            "The seller no longer has enough stock for this quantity. Please adjust it and try again.",
            detail=exc.message,
        )
    if exc.code == LedgerErrorCode.TRANSACTION_NOT_FOUND:
        return ValidationRejected("This order could not be found. Please start checkout again.", detail=exc.message)
    if exc.status == 404:
        return ListingUnavailable(detail=exc.message)
    if exc.status in (400, 403, 409, 422):
        return ValidationRejected(detail=exc.message)
    return NetworkOrServerError(detail=exc.message)


class TransactionProtocolClient:
    def __init__(
        self,
        ledger: Ledger,
        privileged: PrivilegedTransactions,
        settings: Settings,
        listings_by_id: dict,
        customer_id: str | None = None,
        transaction: Transaction | None = None,
        idempotency_key: str | None = None,
        clock=_utcnow,
    ) -> None:
        self._ledger = ledger
        self._privileged = privileged
        self._settings = settings
        self._listings = listings_by_id
        self._customer_id = customer_id
        self._transaction = transaction
        self._clock = clock
        self.idempotency_key = idempotency_key or uuid4().hex
        self.speculative: SpeculativeTransaction | None = None
        self.clock_in_sync: bool = False
        self.last_path: tuple[str, str] | None = None
        self._speculation_seq = 0

    @property
    def transaction(self) -> Transaction | None:
        return self._transaction

    @property
    def transaction_id(self) -> str | None:
        return self._transaction.id if self._transaction else None

    def request_transition(self) -> str:
        last = self._transaction.last_transition if self._transaction else None
        return request_transition_for(last).value

    # -------------------------------------------------------------------
    # Path selection
    # -------------------------------------------------------------------
    async def _call(self, transition: str, params: dict, speculative: bool):
        tx_id = self.transaction_id
        privileged = is_privileged(transition)
        alias = self._settings.process_alias
        query = dict(DEFAULT_QUERY)
        self.last_path = ("privileged" if privileged else "unprivileged", "transition" if tx_id else "initiate")

        if privileged:
            if tx_id:
                return await self._privileged.transition(tx_id, transition, params, query, speculative=speculative)
            return await self._privileged.initiate(alias, transition, params, query, speculative=speculative)

        if tx_id:
            if speculative:
                return await self._ledger.transition_speculative(tx_id, transition, params, query)
            return await self._ledger.transition(tx_id, transition, params, query)
        if speculative:
            return await self._ledger.initiate_speculative(alias, transition, params, query)
        return await self._ledger.initiate(alias, transition, params, query)

    def _params(self, order_params) -> dict:
        try:
            folded = fold_cart_items(order_params.draft.auxiliary_items, self._listings)
        except KeyError as exc:
            raise ListingUnavailable(detail=f"Cart listing {exc.args[0]} is missing") from exc
        params = ledger_params(order_params, folded)
        if self._customer_id and not self.transaction_id:
            params["customerId"] = self._customer_id
        return params

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    async def speculate(self, order_params, transition: str | None = None) -> SpeculativeTransaction | None:
        """Price ``order_params`` without touching the ledger's durable state.

        Returns None when a newer speculate call was issued while this one
        was in flight; its result is discarded.
        """
        transition = transition or self.request_transition()
        self._speculation_seq += 1
        request_id = self._speculation_seq
        params = self._params(order_params)

        try:
            result = await self._call(transition, params, speculative=True)
        except (LedgerError, ConnectionError, TimeoutError) as exc:
            if request_id != self._speculation_seq:
                logger.debug("speculation_error_discarded", request_id=request_id)
                return None
            error = translate_ledger_error(exc)
            logger.warning("speculation_failed", transition=transition, code=error.code, detail=error.detail)
            raise error from exc

        if request_id != self._speculation_seq:
            logger.debug("stale_speculation_discarded", request_id=request_id, latest=self._speculation_seq)
            return None

        self.speculative = result
        self.clock_in_sync = is_clock_in_sync(
            result.last_transitioned_at,
            self._clock(),
            tolerance=timedelta(seconds=self._settings.clock_skew_seconds),
        )
        logger.info(
            "speculation_accepted",
            transition=transition,
            path=self.last_path,
            payin_total=result.payin_total.amount if result.payin_total else None,
            clock_in_sync=self.clock_in_sync,
        )
        return result

    async def commit(self, order_params, transition: str | None = None) -> Transaction:
        """Durably request payment; retries become transitions on the known id."""
        transition = transition or self.request_transition()
        params = self._params(order_params)
        if not self.transaction_id:
            params["idempotencyKey"] = self.idempotency_key

        try:
            tx = await self._call(transition, params, speculative=False)
        except (LedgerError, ConnectionError, TimeoutError) as exc:
            error = translate_ledger_error(exc)
            logger.warning(
                "commit_failed",
                transition=transition,
                transaction_id=self.transaction_id,
                code=error.code,
                retryable=error.retryable,
            )
            raise error from exc

        self._transaction = tx
        logger.info("transaction_committed", transaction_id=tx.id, transition=transition, path=self.last_path)
        return tx

    async def transition(self, transition: str, params: dict | None = None) -> Transaction:
        if not self.transaction_id:
            raise ValidationRejected("There is no order to update.")
        try:
            tx = await self._call(transition, params or {}, speculative=False)
        except (LedgerError, ConnectionError, TimeoutError) as exc:
            error = translate_ledger_error(exc)
            logger.warning("transition_failed", transition=transition, transaction_id=self.transaction_id)
            raise error from exc

        self._transaction = tx
        logger.info("transaction_transitioned", transaction_id=tx.id, transition=transition, state=tx.state)
        return tx

    async def confirm_payment(self) -> Transaction:
        return await self.transition(TxTransition.CONFIRM_PAYMENT.value)

    async def cancel_payment(self) -> Transaction:
        """Privileged; no params and no line items."""
        return await self.transition(TxTransition.CANCEL_PAYMENT.value)

    async def refresh(self) -> Transaction | None:
        if not self.transaction_id:
            return None
        try:
            self._transaction = await self._ledger.show(self.transaction_id, dict(DEFAULT_QUERY))
        except (LedgerError, ConnectionError, TimeoutError) as exc:
            raise translate_ledger_error(exc) from exc
        return self._transaction

    def payment_expired(self) -> bool:
        return has_payment_expired(
            self._transaction,
            self._clock(),
            self.clock_in_sync,
            window=timedelta(minutes=self._settings.payment_window_minutes),
        )
