"""Marketplace ledger port (abstract interface).

The ledger owns transactions. Every method returns a transaction-shaped
resource or raises ``LedgerError``. ``trusted`` marks calls made from the
server side with marketplace credentials; privileged transitions refuse
untrusted callers.
"""

from abc import ABC, abstractmethod

from checkout.ledger.transaction import SpeculativeTransaction, Transaction


class LedgerErrorCode:
    LISTING_NOT_FOUND = "listing-not-found"
    LISTING_CLOSED = "listing-closed"
    TRANSACTION_NOT_FOUND = "transaction-not-found"
    INVALID_TRANSITION = "transaction-invalid-transition"
    STOCK_MISMATCH = "transaction-stock-mismatch"
    PAYMENT_EXPIRED = "transaction-payment-expired"
    FORBIDDEN = "transition-not-allowed"
    UNAVAILABLE = "service-unavailable"


class LedgerError(Exception):
    def __init__(self, status: int, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.status = status
        self.code = code
        self.message = message or code


DEFAULT_QUERY = {"include": ["booking", "provider"], "expand": True}


class Ledger(ABC):
    @abstractmethod
    async def initiate(
        self, process_alias: str, transition: str, params: dict, query: dict, trusted: bool = False
    ) -> Transaction: ...

    @abstractmethod
    async def transition(
        self, transaction_id: str, transition: str, params: dict, query: dict, trusted: bool = False
    ) -> Transaction: ...

    @abstractmethod
    async def initiate_speculative(
        self, process_alias: str, transition: str, params: dict, query: dict, trusted: bool = False
    ) -> SpeculativeTransaction: ...

    @abstractmethod
    async def transition_speculative(
        self, transaction_id: str, transition: str, params: dict, query: dict, trusted: bool = False
    ) -> SpeculativeTransaction: ...

    @abstractmethod
    async def show(self, transaction_id: str, query: dict | None = None) -> Transaction: ...
