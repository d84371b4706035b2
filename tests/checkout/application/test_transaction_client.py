"""Tests for speculate/commit/transition against the fake ledger."""

import asyncio

import pytest
from checkout.errors import ListingUnavailable, NetworkOrServerError, PaymentWindowExpired, ValidationRejected
from checkout.ledger.port import DEFAULT_QUERY, LedgerError, LedgerErrorCode
from checkout.ledger.transaction import SpeculativeTransaction
from checkout.transaction.client import TransactionProtocolClient, translate_ledger_error
from checkout.transaction.params import OrderDraft, PricePreview, StoredCardPayment


@pytest.fixture()
def listing(services, make_listing):
    listing = make_listing("lst-1", price=10000, stock=5)
    services.catalog.put(listing)
    return listing


@pytest.fixture()
def client(services, settings, clock, listing):
    return TransactionProtocolClient(
        services.ledger,
        services.privileged,
        settings,
        {listing.id: listing},
        customer_id="buyer-1",
        idempotency_key="idem-1",
        clock=clock,
    )


def _draft(quantity=1):
    return OrderDraft(primary_listing_id="lst-1", quantity=quantity)


def _payment(quantity=1):
    return StoredCardPayment(_draft(quantity), payment_method_id="pm_1", payment_intent_id="pi_1")


class TestSpeculate:
    async def test_speculation_never_creates_a_transaction(self, client, services):
        result = await client.speculate(PricePreview(_draft()))
        assert isinstance(result, SpeculativeTransaction)
        assert result.id is None
        assert services.ledger.transactions == {}
        assert services.ledger.durable_calls == []

    async def test_priced_through_the_privileged_path(self, client, services):
        result = await client.speculate(PricePreview(_draft(2)))
        assert client.last_path == ("privileged", "initiate")
        call = services.ledger.calls_to("initiate_speculative")[0]
        assert call["trusted"] is True
        assert result.payin_total.amount == 2 * 10000 + 5000 + 2000

    async def test_clock_sync_comes_from_the_response(self, client):
        await client.speculate(PricePreview(_draft()))
        assert client.clock_in_sync is True

    async def test_stale_response_is_discarded(self, client, services):
        services.ledger.delay = 0.02
        first = asyncio.create_task(client.speculate(PricePreview(_draft(1))))
        await asyncio.sleep(0)
        services.ledger.delay = 0
        second = await client.speculate(PricePreview(_draft(3)))

        assert await first is None
        assert client.speculative is second
        assert client.speculative.line_items[0].quantity == 3

    async def test_known_transaction_is_repriced_in_place(self, client, services):
        tx = await client.commit(_payment())
        await client.cancel_payment()

        result = await client.speculate(PricePreview(_draft(2)))

        assert client.last_path == ("privileged", "transition")
        call = services.ledger.calls_to("transition_speculative")[0]
        assert call["transaction_id"] == tx.id
        assert call["trusted"] is True
        assert result.id == tx.id
        assert result.state == "pending-payment"
        assert services.ledger.transactions[tx.id].state == "payment-cancelled"

    async def test_missing_cart_listing(self, client):
        draft = OrderDraft("lst-1", auxiliary_items=(OrderDraft("unknown"),))
        with pytest.raises(ListingUnavailable):
            await client.speculate(PricePreview(draft))


class TestCommit:
    async def test_commit_initiates_with_idempotency_key(self, client, services):
        tx = await client.commit(_payment())
        assert tx.state == "pending-payment"
        assert tx.customer_id == "buyer-1"
        call = services.ledger.calls_to("initiate")[0]
        assert call["params"]["idempotencyKey"] == "idem-1"
        assert call["query"] == DEFAULT_QUERY
        assert tx.payment_intent == {"id": "pi_1"}

    async def test_retry_is_a_transition_on_the_known_id(self, client, services):
        first = await client.commit(_payment())
        again = await client.commit(_payment())
        assert again.id == first.id
        assert client.last_path == ("privileged", "transition")
        assert len(services.ledger.transactions) == 1

    async def test_lost_response_does_not_open_a_second_transaction(self, services, settings, clock, listing, client):
        await client.commit(_payment())
        reloaded = TransactionProtocolClient(
            services.ledger, services.privileged, settings, {listing.id: listing}, idempotency_key="idem-1", clock=clock
        )
        await reloaded.commit(_payment())
        assert len(services.ledger.transactions) == 1

    async def test_client_line_items_are_ignored(self, client, services):
        await client.commit(_payment())
        params = services.ledger.calls_to("initiate")[0]["params"]
        assert [li.code for li in params["lineItems"]] == ["line-item/item", "line-item/shipping-fee"]

    async def test_stock_mismatch(self, client):
        with pytest.raises(ValidationRejected):
            await client.commit(_payment(quantity=9))

    async def test_closed_listing(self, client, services):
        services.catalog.close("lst-1")
        with pytest.raises(ListingUnavailable):
            await client.commit(_payment())

    async def test_network_failure_is_retryable(self, client, services):
        services.ledger.fail_next(LedgerError(503, LedgerErrorCode.UNAVAILABLE, "Service unavailable"))
        with pytest.raises(NetworkOrServerError) as exc:
            await client.commit(_payment())
        assert exc.value.retryable
        assert client.transaction is None


class TestTransitions:
    async def test_confirm_payment_is_unprivileged(self, client, services):
        await client.commit(_payment())
        tx = await client.confirm_payment()
        assert tx.state == "purchased"
        assert client.last_path == ("unprivileged", "transition")
        assert services.ledger.calls_to("transition")[-1]["trusted"] is False

    async def test_confirm_replay_is_a_no_op(self, client, services):
        await client.commit(_payment())
        first = await client.confirm_payment()
        again = await client.confirm_payment()
        assert again.last_transitioned_at == first.last_transitioned_at

    async def test_cancel_then_pay_again_on_the_same_transaction(self, client):
        tx = await client.commit(_payment())
        cancelled = await client.cancel_payment()
        assert cancelled.state == "payment-cancelled"
        again = await client.commit(_payment())
        assert again.id == tx.id
        assert again.state == "pending-payment"

    async def test_transition_without_transaction(self, client):
        with pytest.raises(ValidationRejected):
            await client.confirm_payment()

    async def test_expired_payment_window(self, client, clock, services):
        tx = await client.commit(_payment())
        clock.advance(minutes=16)
        with pytest.raises(PaymentWindowExpired):
            await client.confirm_payment()
        assert services.ledger.transactions[tx.id].state == "payment-expired"

    async def test_payment_expired_uses_ledger_timestamps(self, client, clock):
        await client.speculate(PricePreview(_draft()))
        await client.commit(_payment())
        assert not client.payment_expired()
        clock.advance(minutes=15)
        assert client.payment_expired()

    async def test_refresh(self, client):
        tx = await client.commit(_payment())
        assert (await client.refresh()).id == tx.id


class TestFakeLedgerGuards:
    async def test_privileged_transition_needs_a_trusted_caller(self, services, listing):
        with pytest.raises(LedgerError) as exc:
            await services.ledger.initiate(
                "default-purchase/release-1", "transition/request-payment", {"listingId": listing.id}, DEFAULT_QUERY
            )
        assert exc.value.status == 403

    async def test_invalid_source_state(self, client, services):
        tx = await client.commit(_payment())
        with pytest.raises(LedgerError) as exc:
            await services.ledger.transition(tx.id, "transition/inquire", {}, DEFAULT_QUERY)
        assert exc.value.code == LedgerErrorCode.INVALID_TRANSITION


class TestTranslateLedgerError:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (LedgerError(404, LedgerErrorCode.LISTING_NOT_FOUND, ""), ListingUnavailable),
            (LedgerError(409, LedgerErrorCode.PAYMENT_EXPIRED, ""), PaymentWindowExpired),
            (LedgerError(409, LedgerErrorCode.INVALID_TRANSITION, ""), ValidationRejected),
            (LedgerError(422, "unknown", ""), ValidationRejected),
            (LedgerError(500, "boom", ""), NetworkOrServerError),
            (ConnectionError("reset"), NetworkOrServerError),
        ],
    )
    def test_mapping(self, error, expected):
        assert isinstance(translate_ledger_error(error), expected)
