"""PaymentAttempt value object — one try at paying with one method.

Lifecycle:
    created ──> authorized
    created ──> failed
    created ──> redirect_pending ──> authorized | failed

A redirect attempt is written to the checkout session before the browser
leaves, so it can be picked up again on return.
"""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import String, Text

from checkout.domain import checkout


class PaymentMethodKind(Enum):
    STORED_CARD = "storedCard"
    ONE_TIME_CARD = "oneTimeCard"
    WALLET_CARD = "walletCard"
    REDIRECT_METHOD = "redirectMethod"


class AttemptStatus(Enum):
    CREATED = "created"
    REDIRECT_PENDING = "redirect_pending"
    AUTHORIZED = "authorized"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    AttemptStatus.CREATED: {AttemptStatus.AUTHORIZED, AttemptStatus.FAILED, AttemptStatus.REDIRECT_PENDING},
    AttemptStatus.REDIRECT_PENDING: {AttemptStatus.AUTHORIZED, AttemptStatus.FAILED},
    AttemptStatus.AUTHORIZED: set(),
    AttemptStatus.FAILED: set(),
}


@checkout.value_object
class PaymentAttempt:
    method = String(required=True, choices=PaymentMethodKind)
    status = String(required=True, choices=AttemptStatus, default=AttemptStatus.CREATED.value)
    gateway_intent_id = String(max_length=255)
    client_secret = String(max_length=255)
    payment_method_id = String(max_length=255)
    error = Text()

    @invariant.post
    def redirect_pending_needs_an_intent(self):
        if self.status == AttemptStatus.REDIRECT_PENDING.value and not self.client_secret:
            raise ValidationError({"client_secret": ["A redirect attempt must carry its intent client secret"]})

    @classmethod
    def start(cls, method: PaymentMethodKind):
        return cls(method=method.value, status=AttemptStatus.CREATED.value)

    @property
    def kind(self) -> PaymentMethodKind:
        return PaymentMethodKind(self.method)

    @property
    def is_authorized(self) -> bool:
        return self.status == AttemptStatus.AUTHORIZED.value

    def _moved(self, target: AttemptStatus, **changes):
        current = AttemptStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot move payment attempt from {current.value} to {target.value}"]})
        values = self.to_dict()
        values.update(changes)
        values["status"] = target.value
        return PaymentAttempt(**values)

    def with_intent(self, intent_id: str, client_secret: str):
        values = self.to_dict()
        values.update(gateway_intent_id=intent_id, client_secret=client_secret)
        return PaymentAttempt(**values)

    def authorized(self, payment_method_id=None):
        return self._moved(AttemptStatus.AUTHORIZED, payment_method_id=payment_method_id or self.payment_method_id)

    def failed(self, error: str):
        return self._moved(AttemptStatus.FAILED, error=error)

    def redirect_pending(self):
        return self._moved(AttemptStatus.REDIRECT_PENDING)
