"""Server-side handling of privileged transitions.

The browser never calls a privileged transition on the ledger itself. It
posts to this service, which fetches the listings, computes the line items,
merges the delivery method into protected data and then calls the ledger as
a trusted client. Any ``lineItems`` the client sent are discarded.
"""

from checkout.catalog.port import ListingCatalog
from checkout.domain import logger
from checkout.ledger.port import Ledger, LedgerError, LedgerErrorCode
from checkout.ledger.process import TxTransition
from checkout.settings import Settings
from checkout.transaction.line_items import transaction_line_items

# Transitions that move no money and carry no params
_PARAMLESS = {TxTransition.CANCEL_PAYMENT.value, TxTransition.EXPIRE_PAYMENT.value}


class PrivilegedTransactions:
    def __init__(self, ledger: Ledger, catalog: ListingCatalog, settings: Settings) -> None:
        self._ledger = ledger
        self._catalog = catalog
        self._settings = settings

    async def _priced(self, params: dict) -> dict:
        listing = await self._catalog.fetch(params.get("listingId"))
        if listing is None:
            raise LedgerError(404, LedgerErrorCode.LISTING_NOT_FOUND, "Listing not found")

        protected = dict(params.get("protectedData") or {})
        cart_items = protected.get("cartItems") or []
        cart_listings = await self._catalog.fetch_many([entry["id"] for entry in cart_items]) if cart_items else []
        order_data = {
            "quantity": params.get("stockReservationQuantity", 1),
            "deliveryMethod": params.get("deliveryMethod"),
            "optionId": (protected.get("mainListingOption") or {}).get("id"),
            "cartItems": cart_items,
        }
        line_items = transaction_line_items(
            listing, order_data, cart_listings, self._settings.provider_commission_percent
        )

        if params.get("deliveryMethod"):
            protected["deliveryMethod"] = params["deliveryMethod"]
        priced = {k: v for k, v in params.items() if k != "lineItems"}
        priced["protectedData"] = protected
        priced["lineItems"] = line_items
        return priced

    async def initiate(self, process_alias, transition, params, query, speculative=False):
        priced = await self._priced(params)
        logger.debug(
            "privileged_initiate",
            transition=transition,
            listing_id=params.get("listingId"),
            speculative=speculative,
            line_items=len(priced["lineItems"]),
        )
        if speculative:
            return await self._ledger.initiate_speculative(process_alias, transition, priced, query, trusted=True)
        return await self._ledger.initiate(process_alias, transition, priced, query, trusted=True)

    async def transition(self, transaction_id, transition, params, query, speculative=False):
        priced = {} if transition in _PARAMLESS else await self._priced(params)
        logger.debug(
            "privileged_transition",
            transaction_id=transaction_id,
            transition=transition,
            speculative=speculative,
        )
        if speculative:
            return await self._ledger.transition_speculative(transaction_id, transition, priced, query, trusted=True)
        return await self._ledger.transition(transaction_id, transition, priced, query, trusted=True)
