"""Checkout bounded context — cart, pricing, ledger transactions and payments.

Turns a buyer's cart (or a single listing) into a committed, paid marketplace
transaction. The ledger and the payment gateway are external services reached
through ports; everything else lives here.
"""

from protean.domain import Domain

from checkout.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

checkout = Domain(name="checkout")
