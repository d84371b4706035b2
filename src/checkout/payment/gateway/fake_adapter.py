"""Configurable fake payment gateway for development and testing.

Simulates the client-side gateway SDK without any external calls. It can be
configured at runtime to decline, to demand a challenge that passes or fails,
to report which wallets the device supports, and to start "not ready" so the
redirect-return path has to wait for initialisation.
"""

import asyncio
from dataclasses import replace
from urllib.parse import urlencode
from uuid import uuid4

from checkout.payment.gateway.port import (
    GatewayNotReady,
    IntentResult,
    IntentStatus,
    PaymentGateway,
    PaymentIntent,
    PaymentRequest,
    WalletPaymentMethod,
)


class FakePaymentRequest(PaymentRequest):
    def __init__(self, gateway: "FakeGateway", config: dict) -> None:
        self._gateway = gateway
        self.config = config

    async def can_make_payment(self) -> dict | None:
        self._gateway.calls.append({"method": "can_make_payment", "config": self.config})
        wallets = self._gateway.wallets
        if not wallets or not any(wallets.values()):
            return None
        return dict(wallets)

    async def show(self) -> WalletPaymentMethod | None:
        self._gateway.calls.append({"method": "payment_request_show"})
        if self._gateway.wallet_dismissed:
            return None
        wallet = next((name for name, ok in (self._gateway.wallets or {}).items() if ok), None)
        if wallet is None:
            return None
        return WalletPaymentMethod(id=f"pm_wallet_{uuid4().hex[:12]}", wallet=wallet)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, ready: bool = True) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Your card was declined."
        self.challenge: str | None = None
        self.wallets: dict | None = None
        self.wallet_dismissed: bool = False
        self.calls: list[dict] = []
        self.intents: dict[str, PaymentIntent] = {}
        self._keys: dict[str, str] = {}
        self._ready = asyncio.Event()
        if ready:
            self._ready.set()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Your card was declined.",
        challenge: str | None = None,
        wallets: dict | None = None,
    ) -> None:
        """``challenge`` is None (no challenge), "pass" or "fail"."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.challenge = challenge
        self.wallets = wallets

    def mark_ready(self) -> None:
        self._ready.set()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def complete_redirect(self, intent_id: str, succeeded: bool = True) -> PaymentIntent:
        """Simulate the buyer finishing (or abandoning) the external payment page."""
        status = IntentStatus.SUCCEEDED if succeeded else IntentStatus.REQUIRES_PAYMENT_METHOD
        intent = replace(self.intents[intent_id], status=status, last_error=None if succeeded else "Payment declined")
        self.intents[intent_id] = intent
        return intent

    def _by_secret(self, client_secret: str) -> PaymentIntent | None:
        return next((i for i in self.intents.values() if i.client_secret == client_secret), None)

    async def wait_until_ready(self, timeout: float) -> None:
        self.calls.append({"method": "wait_until_ready"})
        if self._ready.is_set():
            return
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except TimeoutError as exc:
            raise GatewayNotReady("Payment gateway did not initialise") from exc

    async def create_payment_intent_client_flow(self, amount, payment_method_types, idempotency_key):
        self.calls.append(
            {
                "method": "create_payment_intent_client_flow",
                "amount": amount.amount,
                "currency": amount.currency,
                "payment_method_types": tuple(payment_method_types),
                "idempotency_key": idempotency_key,
            }
        )
        existing = self.intents.get(self._keys.get(idempotency_key, ""))
        if (
            existing is not None
            and existing.status == IntentStatus.REQUIRES_PAYMENT_METHOD
            and existing.amount == amount.amount
            and existing.currency == amount.currency
        ):
            return existing
        intent_id = f"pi_{uuid4().hex[:16]}"
        intent = PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            status=IntentStatus.REQUIRES_PAYMENT_METHOD,
            amount=amount.amount,
            currency=amount.currency,
            payment_method_types=tuple(payment_method_types),
        )
        self.intents[intent_id] = intent
        self._keys[idempotency_key] = intent_id
        return intent

    async def confirm_card_payment(self, client_secret, details):
        self.calls.append(
            {"method": "confirm_card_payment", "client_secret": client_secret, "details": sorted(details)}
        )
        intent = self._by_secret(client_secret)
        if intent is None:
            return IntentResult(success=False, error="No such payment intent")

        if self.challenge:
            self.calls.append({"method": "challenge", "outcome": self.challenge})
        if self.challenge == "fail":
            failed = replace(intent, status=IntentStatus.REQUIRES_PAYMENT_METHOD, last_error="Authentication failed")
            self.intents[intent.id] = failed
            return IntentResult(success=False, intent=failed, error="We are unable to authenticate your payment.")
        if not self.should_succeed:
            failed = replace(intent, status=IntentStatus.REQUIRES_PAYMENT_METHOD, last_error=self.failure_reason)
            self.intents[intent.id] = failed
            return IntentResult(success=False, intent=failed, error=self.failure_reason)

        payment_method_id = details.get("payment_method") or f"pm_card_{uuid4().hex[:12]}"
        authorized = replace(
            intent, status=IntentStatus.REQUIRES_CAPTURE, payment_method_id=payment_method_id, last_error=None
        )
        self.intents[intent.id] = authorized
        return IntentResult(success=True, intent=authorized)

    async def confirm_redirect_payment(self, client_secret, return_url):
        self.calls.append({"method": "confirm_redirect_payment", "client_secret": client_secret, "return_url": return_url})
        intent = self._by_secret(client_secret)
        if intent is None:
            return IntentResult(success=False, error="No such payment intent")
        pending = replace(
            intent,
            status=IntentStatus.REQUIRES_ACTION,
            redirect_url=f"https://pay.example.test/redirect/{intent.id}?{urlencode({'return_url': return_url})}",
        )
        self.intents[intent.id] = pending
        return IntentResult(success=True, intent=pending)

    async def retrieve_payment_intent(self, client_secret):
        self.calls.append({"method": "retrieve_payment_intent", "client_secret": client_secret})
        if not self.is_ready:
            raise GatewayNotReady("Payment gateway is not initialised")
        intent = self._by_secret(client_secret)
        if intent is None:
            return IntentResult(success=False, error="No such payment intent")
        return IntentResult(success=True, intent=intent)

    def payment_request(self, config):
        return FakePaymentRequest(self, config)
