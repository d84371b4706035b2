"""Payment gateway port (abstract interface).

Mirrors the browser-side gateway SDK: intents are created for a client-side
confirmation flow and confirmed with either a card, a saved payment method
or a redirect to an external payment page. Raw card data never crosses this
boundary; the gateway's own widget turns it into an opaque token.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from checkout.shared.money import Money


class IntentStatus:
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"

    # The buyer has nothing left to do; the ledger can be told
    USER_ACTIONS_DONE = frozenset({PROCESSING, REQUIRES_CAPTURE, SUCCEEDED})


class GatewayNotReady(Exception):
    """The gateway SDK did not finish initialising in time."""


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    status: str
    amount: int
    currency: str
    payment_method_types: tuple[str, ...] = ("card",)
    payment_method_id: str | None = None
    redirect_url: str | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class IntentResult:
    """Outcome of a confirm or retrieve call."""

    success: bool
    intent: PaymentIntent | None = None
    error: str | None = None


@dataclass(frozen=True)
class WalletPaymentMethod:
    id: str
    wallet: str


class PaymentRequest(ABC):
    """A browser-native payment sheet (Apple Pay, Google Pay, Link)."""

    @abstractmethod
    async def can_make_payment(self) -> dict | None:
        """``{"apple_pay": bool, "google_pay": bool, "link": bool}`` or None."""
        ...

    @abstractmethod
    async def show(self) -> WalletPaymentMethod | None:
        """Open the sheet; None when the buyer dismissed it."""
        ...


class PaymentGateway(ABC):
    @abstractmethod
    async def wait_until_ready(self, timeout: float) -> None:
        """Block until the SDK is initialised; raise ``GatewayNotReady`` on timeout."""
        ...

    @abstractmethod
    async def create_payment_intent_client_flow(
        self, amount: Money, payment_method_types: tuple[str, ...], idempotency_key: str
    ) -> PaymentIntent: ...

    @abstractmethod
    async def confirm_card_payment(self, client_secret: str, details: dict) -> IntentResult:
        """Confirm with ``{"card_token": ...}`` or ``{"payment_method": ...}``.

        May run an out-of-band challenge (bank verification) before returning.
        """
        ...

    @abstractmethod
    async def confirm_redirect_payment(self, client_secret: str, return_url: str) -> IntentResult:
        """Prepare an off-site payment; the intent carries the ``redirect_url``."""
        ...

    @abstractmethod
    async def retrieve_payment_intent(self, client_secret: str) -> IntentResult: ...

    @abstractmethod
    def payment_request(self, config: dict) -> PaymentRequest: ...
