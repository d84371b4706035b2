"""Tests for order drafts, order param variants and cart folding."""

import pytest
from checkout.pricing.breakdown import CartLine, group_by_seller
from checkout.transaction.folding import (
    cart_item_code,
    cart_item_title,
    draft_for_seller_group,
    extract_cart_item_id,
    fold_cart_items,
    is_cart_item_line_item,
)
from checkout.transaction.params import (
    SPECULATIVE_CARD_TOKEN,
    Inquiry,
    OneTimeCardPayment,
    OrderDraft,
    PricePreview,
    RedirectPayment,
    StoredCardPayment,
    WalletCardPayment,
    ledger_params,
)


class TestOrderDraft:
    def test_quantity_must_be_positive(self):
        with pytest.raises(ValueError):
            OrderDraft(primary_listing_id="a", quantity=0)

    def test_unknown_delivery_method(self):
        with pytest.raises(ValueError):
            OrderDraft(primary_listing_id="a", delivery_method="drone")

    def test_listing_ids(self):
        draft = OrderDraft("a", auxiliary_items=(OrderDraft("b"), OrderDraft("c")))
        assert draft.listing_ids == ["a", "b", "c"]

    def test_with_changes_keeps_the_rest(self):
        draft = OrderDraft("a", quantity=2, option_id="oak", line_item_overrides={"a": 500})
        changed = draft.with_changes(delivery_method="pickup")
        assert changed.quantity == 2
        assert changed.option_id == "oak"
        assert changed.delivery_method == "pickup"
        assert draft.delivery_method == "shipping"

    def test_dict_round_trip_with_auxiliary_items(self):
        draft = OrderDraft("a", quantity=2, auxiliary_items=(OrderDraft("b", option_id="oak"),))
        assert OrderDraft.from_dict(draft.to_dict()) == draft


class TestLedgerParams:
    def test_price_preview_uses_placeholder_card_token(self):
        params = ledger_params(PricePreview(OrderDraft("a", quantity=2)), [])
        assert params["listingId"] == "a"
        assert params["stockReservationQuantity"] == 2
        assert params["cardToken"] == SPECULATIVE_CARD_TOKEN
        assert params["protectedData"] == {"deliveryMethod": "shipping"}

    def test_main_listing_option_in_protected_data(self):
        draft = OrderDraft("a", option_id="oak", line_item_overrides={"a": 500})
        params = ledger_params(PricePreview(draft), [])
        assert params["protectedData"]["mainListingOption"] == {"id": "oak", "priceIncrement": 500}

    def test_cart_items_in_protected_data(self):
        folded = [{"id": "b", "quantity": 1}]
        params = ledger_params(PricePreview(OrderDraft("a")), folded)
        assert params["protectedData"]["cartItems"] == folded

    def test_stored_card(self):
        params = ledger_params(StoredCardPayment(OrderDraft("a"), "pm_1", "pi_1"), [])
        assert params["paymentMethod"] == {"type": "storedCard", "id": "pm_1"}
        assert params["paymentIntentId"] == "pi_1"
        assert "cardToken" not in params

    def test_one_time_card(self):
        params = ledger_params(OneTimeCardPayment(OrderDraft("a"), "pi_1", save_payment_method=True), [])
        assert params["paymentMethod"] == {"type": "oneTimeCard", "save": True}

    def test_wallet_card(self):
        params = ledger_params(WalletCardPayment(OrderDraft("a"), "pm_w", "applePay", "pi_1"), [])
        assert params["paymentMethod"]["wallet"] == "applePay"

    def test_redirect(self):
        params = ledger_params(RedirectPayment(OrderDraft("a"), "klarna"), [])
        assert params["paymentMethodTypes"] == ["klarna"]
        assert "paymentIntentId" not in params

    def test_inquiry_carries_no_payment_fields(self):
        params = ledger_params(Inquiry(OrderDraft("a"), "Is this signed?"), [])
        assert params["message"] == "Is this signed?"
        assert "paymentMethod" not in params

    def test_unknown_variant_rejected(self):
        class Bogus:
            draft = OrderDraft("a")

        with pytest.raises(TypeError):
            ledger_params(Bogus(), [])


class TestFolding:
    def test_draft_for_seller_group(self, make_listing):
        a = make_listing("a", options=[("oak", "Oak", 500)])
        b = make_listing("b")
        group = group_by_seller([CartLine(a, 2, a.option("oak")), CartLine(b, 1)])[0]
        draft = draft_for_seller_group(group, "shipping")
        assert draft.primary_listing_id == "a"
        assert draft.quantity == 2
        assert draft.option_id == "oak"
        assert draft.line_item_overrides == {"a": 500}
        assert [item.primary_listing_id for item in draft.auxiliary_items] == ["b"]

    def test_fold_adds_option_increment_to_price(self, make_listing):
        b = make_listing("b", price=1000, options=[("oak", "Oak", 250)])
        folded = fold_cart_items((OrderDraft("b", quantity=2, option_id="oak"),), {"b": b})
        assert folded == [
            {
                "id": "b",
                "title": "Print b",
                "price": {"amount": 1250, "currency": "NOK"},
                "quantity": 2,
                "selectedOption": {"id": "oak", "label": "Oak", "priceIncrement": 250},
            }
        ]

    def test_fold_unknown_listing(self):
        with pytest.raises(KeyError):
            fold_cart_items((OrderDraft("missing"),), {})


class TestCartItemCodes:
    def test_code(self):
        assert cart_item_code("b") == "line-item/cart-item-b"

    def test_is_cart_item(self):
        assert is_cart_item_line_item("line-item/cart-item-b")
        assert not is_cart_item_line_item("line-item/item")
        assert not is_cart_item_line_item(None)

    def test_extract_id(self):
        assert extract_cart_item_id("line-item/cart-item-abc-123") == "abc-123"
        assert extract_cart_item_id("line-item/shipping-fee") is None

    def test_title_with_option(self):
        assert cart_item_title({"title": "Print", "selectedOption": {"label": "Oak"}}, "b") == "Print (Oak)"

    def test_title_fallback(self):
        assert cart_item_title(None, "0123456789abcdef") == "Item 01234567..."
