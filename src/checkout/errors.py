"""Checkout error taxonomy.

Every failure that reaches the buyer is one of these. ``retryable`` tells the
page whether the same screen may simply try again; everything else forces the
buyer to restart checkout or go elsewhere.
"""


class CheckoutError(Exception):
    code = "checkout-error"
    retryable = False
    default_message = "Something went wrong during checkout."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.user_message = message or self.default_message
        self.detail = detail
        super().__init__(self.user_message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.user_message, "retryable": self.retryable}


class ListingUnavailable(CheckoutError):
    """Listing was deleted, closed or is otherwise gone. Fatal for this attempt."""

    code = "listing-unavailable"
    default_message = "This listing is no longer available."


class ValidationRejected(CheckoutError):
    """Input was rejected (stock changed, invalid transition). Fix and re-submit."""

    code = "validation-rejected"
    default_message = "Your order could not be placed. Please review it and try again."


class PaymentAuthorizationFailed(CheckoutError):
    code = "payment-authorization-failed"
    retryable = True
    default_message = "Your payment was declined. Please try again or use another payment method."


class PaymentWindowExpired(CheckoutError):
    code = "payment-window-expired"
    default_message = "The payment window for this order has expired. Please start checkout again."


class NetworkOrServerError(CheckoutError):
    code = "network-or-server-error"
    retryable = True
    default_message = "We could not reach the marketplace. Please try again."


class RedirectReturnMismatch(CheckoutError):
    code = "redirect-return-mismatch"
    default_message = "We could not find this checkout. Please check your order history before trying again."
