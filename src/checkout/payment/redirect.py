"""Return-URL contract for the redirect payment method.

The external payment page sends the buyer back to::

    <base>/checkout/sessions/<session>/return?klarna_return=true&txId=<id>&payment_intent_client_secret=<secret>

All three query parameters must be present for the return to be processed.
"""

from dataclasses import dataclass
from urllib.parse import urlencode

from checkout.errors import RedirectReturnMismatch

RETURN_MARKER = "klarna_return"
TX_ID_PARAM = "txId"
CLIENT_SECRET_PARAM = "payment_intent_client_secret"


@dataclass(frozen=True)
class RedirectReturn:
    transaction_id: str
    client_secret: str


def build_return_url(base_url: str, session_id: str, transaction_id: str, client_secret: str) -> str:
    query = urlencode(
        {RETURN_MARKER: "true", TX_ID_PARAM: transaction_id, CLIENT_SECRET_PARAM: client_secret}
    )
    return f"{base_url.rstrip('/')}/checkout/sessions/{session_id}/return?{query}"


def is_redirect_return(query) -> bool:
    return (query or {}).get(RETURN_MARKER) == "true"


def parse_redirect_return(query) -> RedirectReturn | None:
    """None when this is not a redirect return; mismatch when markers are partial."""
    if not is_redirect_return(query):
        return None
    transaction_id = query.get(TX_ID_PARAM)
    client_secret = query.get(CLIENT_SECRET_PARAM)
    if not transaction_id or not client_secret:
        raise RedirectReturnMismatch(detail="Return URL is missing the transaction id or intent secret")
    return RedirectReturn(transaction_id=transaction_id, client_secret=client_secret)
