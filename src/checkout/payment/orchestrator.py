"""Payment orchestrator — drives the gateway for each payment method shape.

Card-like methods (stored card, one-time card, wallet) authorise first and
only then commit: create an intent for the previewed total, confirm it
(possibly through a bank challenge), request payment on the ledger with the
authorised intent, then confirm payment. The redirect method has to commit
first because the return URL carries the transaction id; it then hands the
browser to the gateway and finishes in ``resume_redirect`` when the buyer
comes back.

Every step is resumable: a retry after a network failure skips whatever the
ledger or the gateway has already recorded.
"""

from dataclasses import dataclass

from checkout.domain import logger
from checkout.errors import (
    NetworkOrServerError,
    PaymentAuthorizationFailed,
    RedirectReturnMismatch,
    ValidationRejected,
)
from checkout.ledger.process import TxState
from checkout.ledger.transaction import Transaction
from checkout.payment.attempt import AttemptStatus, PaymentAttempt, PaymentMethodKind
from checkout.payment.gateway.port import (
    GatewayNotReady,
    IntentResult,
    IntentStatus,
    PaymentGateway,
    WalletPaymentMethod,
)
from checkout.payment.redirect import RedirectReturn, build_return_url
from checkout.settings import Settings
from checkout.transaction.client import TransactionProtocolClient
from checkout.transaction.params import (
    OneTimeCardPayment,
    OrderDraft,
    RedirectPayment,
    StoredCardPayment,
    WalletCardPayment,
)

PAYMENT_FAILED_MESSAGE = "Payment failed. Please try again with another payment method."


@dataclass(frozen=True)
class CardInput:
    """What the gateway's card widget last reported. Never holds card numbers."""

    complete: bool = False
    token: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class PaymentSelection:
    method: PaymentMethodKind
    payment_method_id: str | None = None
    card: CardInput = CardInput()
    wallet: WalletPaymentMethod | None = None
    has_saved_default: bool = False
    save_payment_method: bool = False
    redirect_method_type: str = "klarna"


@dataclass(frozen=True)
class PaymentOutcome:
    transaction: Transaction
    attempt: PaymentAttempt
    redirect_url: str | None = None

    @property
    def completed(self) -> bool:
        return self.transaction.state == TxState.PURCHASED.value


def card_input_needs_attention(selection: PaymentSelection) -> bool:
    """True when the buyer still has card details to fill in."""
    if selection.method == PaymentMethodKind.ONE_TIME_CARD:
        return not (selection.card.complete and selection.card.token and not selection.card.error)
    if selection.method == PaymentMethodKind.WALLET_CARD and not selection.has_saved_default:
        return selection.wallet is None
    return False


def intent_failure_message(result: IntentResult) -> str | None:
    """None when the intent needs nothing more from the buyer."""
    intent, error = result.intent, result.error
    if not result.success or intent is None:
        return error or PAYMENT_FAILED_MESSAGE
    if intent.status in IntentStatus.USER_ACTIONS_DONE:
        return None
    if intent.status == IntentStatus.REQUIRES_PAYMENT_METHOD:
        return error or PAYMENT_FAILED_MESSAGE
    return f"Payment status: {intent.status}"


class PaymentOrchestrator:
    def __init__(
        self,
        gateway: PaymentGateway,
        transactions: TransactionProtocolClient,
        settings: Settings,
        session_id: str,
        attempt: PaymentAttempt | None = None,
    ) -> None:
        self._gateway = gateway
        self._transactions = transactions
        self._settings = settings
        self._session_id = session_id
        self.attempt = attempt
        self._in_flight = False

    @property
    def submitting(self) -> bool:
        return self._in_flight

    # -------------------------------------------------------------------
    # Wallets
    # -------------------------------------------------------------------
    def _wallet_config(self) -> dict:
        speculative = self._transactions.speculative
        total = speculative.payin_total if speculative else None
        return {
            "country": "NO",
            "currency": total.currency.lower() if total else None,
            "total": {"label": "Total", "amount": total.amount if total else 0},
        }

    async def wallet_capabilities(self) -> dict | None:
        """Which device wallets can pay; None hides the wallet option entirely."""
        capabilities = await self._gateway.payment_request(self._wallet_config()).can_make_payment()
        logger.debug("wallet_capabilities", capabilities=capabilities)
        return capabilities if capabilities and any(capabilities.values()) else None

    async def collect_wallet_payment_method(self) -> WalletPaymentMethod | None:
        request = self._gateway.payment_request(self._wallet_config())
        if not await request.can_make_payment():
            return None
        return await request.show()

    # -------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------
    def check_submission(self, selection: PaymentSelection) -> None:
        """Reject locally, before any network call."""
        if self._in_flight:
            raise ValidationRejected("Your payment is already being processed.")
        if card_input_needs_attention(selection):
            raise ValidationRejected("Please complete your payment details.")
        if selection.method == PaymentMethodKind.STORED_CARD and not selection.payment_method_id:
            raise ValidationRejected("Choose a saved card to pay with.")

    async def submit(self, draft: OrderDraft, selection: PaymentSelection) -> PaymentOutcome:
        self.check_submission(selection)
        self._in_flight = True
        try:
            if selection.method == PaymentMethodKind.REDIRECT_METHOD:
                return await self._submit_redirect(draft, selection)
            return await self._submit_card_like(draft, selection)
        finally:
            self._in_flight = False

    def _payin_total(self):
        speculative = self._transactions.speculative
        total = speculative.payin_total if speculative else None
        if total is None:
            raise ValidationRejected("The price for this order is not ready yet. Please wait a moment.")
        return total

    def _intent_key(self, method: PaymentMethodKind) -> str:
        return f"{self._transactions.idempotency_key}:{method.value}"

    async def _authorize(self, selection: PaymentSelection) -> PaymentAttempt:
        attempt = self.attempt
        if attempt is not None and attempt.kind == selection.method and attempt.is_authorized:
            return attempt

        attempt = PaymentAttempt.start(selection.method)
        intent = await self._gateway.create_payment_intent_client_flow(
            self._payin_total(), ("card",), self._intent_key(selection.method)
        )
        attempt = attempt.with_intent(intent.id, intent.client_secret)
        self.attempt = attempt

        if selection.method == PaymentMethodKind.ONE_TIME_CARD:
            details = {"card_token": selection.card.token}
        elif selection.method == PaymentMethodKind.WALLET_CARD and selection.wallet is not None:
            details = {"payment_method": selection.wallet.id}
        else:
            details = {"payment_method": selection.payment_method_id}

        result = await self._gateway.confirm_card_payment(intent.client_secret, details)
        message = intent_failure_message(result)
        if message is not None:
            self.attempt = attempt.failed(message)
            logger.warning("payment_authorization_failed", method=selection.method.value, intent_id=intent.id)
            raise PaymentAuthorizationFailed(message)

        self.attempt = attempt.authorized(result.intent.payment_method_id)
        logger.info("payment_authorized", method=selection.method.value, intent_id=intent.id)
        return self.attempt

    def _card_params(self, draft: OrderDraft, selection: PaymentSelection, attempt: PaymentAttempt):
        if selection.method == PaymentMethodKind.STORED_CARD:
            return StoredCardPayment(draft, selection.payment_method_id, attempt.gateway_intent_id)
        if selection.method == PaymentMethodKind.ONE_TIME_CARD:
            return OneTimeCardPayment(draft, attempt.gateway_intent_id, selection.save_payment_method)
        if selection.method == PaymentMethodKind.WALLET_CARD:
            wallet = selection.wallet
            payment_method_id = wallet.id if wallet else selection.payment_method_id
            wallet_name = wallet.wallet if wallet else "saved"
            return WalletCardPayment(draft, payment_method_id, wallet_name, attempt.gateway_intent_id)
        raise TypeError(f"Not a card-like method: {selection.method}")

    async def _submit_card_like(self, draft: OrderDraft, selection: PaymentSelection) -> PaymentOutcome:
        tx = self._transactions.transaction
        if tx is None or tx.state != TxState.PENDING_PAYMENT.value:
            attempt = await self._authorize(selection)
            tx = await self._transactions.commit(self._card_params(draft, selection, attempt))
        elif self.attempt is None or not self.attempt.is_authorized:
            raise ValidationRejected("This order is waiting for a payment that was started elsewhere.")

        tx = await self._transactions.confirm_payment()
        logger.info("payment_completed", transaction_id=tx.id, method=selection.method.value)
        return PaymentOutcome(transaction=tx, attempt=self.attempt)

    async def _submit_redirect(self, draft: OrderDraft, selection: PaymentSelection) -> PaymentOutcome:
        method = PaymentMethodKind.REDIRECT_METHOD
        intent = await self._gateway.create_payment_intent_client_flow(
            self._payin_total(), (selection.redirect_method_type,), self._intent_key(method)
        )
        self.attempt = PaymentAttempt.start(method).with_intent(intent.id, intent.client_secret)

        tx = await self._transactions.commit(RedirectPayment(draft, selection.redirect_method_type, intent.id))
        return_url = build_return_url(self._settings.base_url, self._session_id, tx.id, intent.client_secret)
        result = await self._gateway.confirm_redirect_payment(intent.client_secret, return_url)
        if not result.success or result.intent is None or not result.intent.redirect_url:
            self.attempt = self.attempt.failed(result.error or PAYMENT_FAILED_MESSAGE)
            raise PaymentAuthorizationFailed(result.error or PAYMENT_FAILED_MESSAGE)

        self.attempt = self.attempt.redirect_pending()
        logger.info("payment_redirect_started", transaction_id=tx.id, intent_id=intent.id)
        return PaymentOutcome(transaction=tx, attempt=self.attempt, redirect_url=result.intent.redirect_url)

    # -------------------------------------------------------------------
    # Redirect return
    # -------------------------------------------------------------------
    def match_return(self, marker: RedirectReturn) -> None:
        """The session must hold the very transaction and intent the URL names."""
        tx = self._transactions.transaction
        if tx is None or tx.id != marker.transaction_id:
            raise RedirectReturnMismatch(detail=f"No checkout session for transaction {marker.transaction_id}")
        if self.attempt is not None and self.attempt.client_secret and self.attempt.client_secret != marker.client_secret:
            raise RedirectReturnMismatch(detail="Payment intent does not belong to this checkout")

    async def resume_redirect(self, marker: RedirectReturn) -> PaymentOutcome:
        self.match_return(marker)
        tx = self._transactions.transaction
        attempt = self.attempt
        if attempt is None or attempt.status == AttemptStatus.FAILED.value:
            attempt = PaymentAttempt.start(PaymentMethodKind.REDIRECT_METHOD).with_intent(
                attempt.gateway_intent_id if attempt else None, marker.client_secret
            )
        if tx.state == TxState.PURCHASED.value:
            return PaymentOutcome(transaction=tx, attempt=attempt)

        try:
            await self._gateway.wait_until_ready(self._settings.gateway_ready_timeout_seconds)
            result = await self._gateway.retrieve_payment_intent(marker.client_secret)
        except GatewayNotReady as exc:
            raise NetworkOrServerError("The payment provider is still loading. Please try again.") from exc

        message = intent_failure_message(result)
        if message is not None:
            self.attempt = attempt.failed(message)
            logger.warning(
                "redirect_payment_failed",
                transaction_id=tx.id,
                status=result.intent.status if result.intent else None,
            )
            raise PaymentAuthorizationFailed(message)

        tx = await self._transactions.confirm_payment()
        self.attempt = attempt if attempt.is_authorized else attempt.authorized()
        logger.info("redirect_payment_confirmed", transaction_id=tx.id)
        return PaymentOutcome(transaction=tx, attempt=self.attempt)

    async def cancel_and_retry(self) -> Transaction:
        """Move a stuck redirect transaction back to a state that can be paid again."""
        tx = self._transactions.transaction
        if tx is None or tx.state != TxState.PENDING_PAYMENT.value:
            raise ValidationRejected("There is no pending payment to cancel.")
        tx = await self._transactions.cancel_payment()
        self.attempt = None
        logger.info("redirect_payment_cancelled", transaction_id=tx.id)
        return tx
