import random
from datetime import datetime

import pytest

from propertyhub.utils.gateway import (
    DemoPaymentGateway,
    ExpiredOrInvalidCard,
    InvalidCard,
    InvalidCVV,
    get_card_brand,
    validate_card_number,
    validate_cvv,
    validate_expiry_date,
)

NOW = datetime(2026, 6, 15)


def make_gateway(seed=1, sleep=None):
    return DemoPaymentGateway(min_delay=0, max_delay=0, rng=random.Random(seed), now=lambda: NOW,
                              sleep=sleep or (lambda s: None))


class TestCardValidation:

    def test_luhn_valid_numbers(self):
        assert validate_card_number("4242424242424242")
        assert validate_card_number("4242 4242 4242 4242")
        assert validate_card_number("378282246310005")

    def test_rejects_bad_checksum_and_length(self):
        assert not validate_card_number("4242424242424241")
        assert not validate_card_number("424242424242")
        assert not validate_card_number("42424242424242424242")
        assert not validate_card_number("4242-4242-4242-4242")

    def test_expiry_accepts_current_month_and_two_digit_years(self):
        assert validate_expiry_date(6, 2026, now=NOW)
        assert validate_expiry_date("12", "27", now=NOW)

    def test_expiry_rejects_past_and_bad_months(self):
        assert not validate_expiry_date(5, 2026, now=NOW)
        assert not validate_expiry_date(13, 2030, now=NOW)
        assert not validate_expiry_date(0, 2030, now=NOW)
        assert not validate_expiry_date("ab", 2030, now=NOW)

    @pytest.mark.parametrize("number, brand", [
        ("4242424242424242", "Visa"),
        ("5555555555554444", "Mastercard"),
        ("378282246310005", "Amex"),
        ("6011111111111117", "Discover"),
        ("6500000000000002", "Discover"),
        ("3000000000000004", "Unknown"),
    ])
    def test_brand_by_prefix(self, number, brand):
        assert get_card_brand(number) == brand

    def test_cvv_length_depends_on_brand(self):
        assert validate_cvv("123", "Visa")
        assert not validate_cvv("1234", "Visa")
        assert validate_cvv("1234", "Amex")
        assert not validate_cvv("123", "Amex")
        assert not validate_cvv("12a", "Visa")


class TestProcessPayment:

    def test_success_test_card(self):
        result = make_gateway().process_payment("4242424242424242", 12, 2030, "123", 1200.0)
        assert result["status"] == "success"
        assert result["card_brand"] == "Visa"
        assert result["card_last4"] == "4242"
        assert result["amount"] == 1200.0
        assert result["transaction_id"].startswith("TXN-")

    def test_transaction_ids_are_unique(self):
        gateway = make_gateway()
        ids = {gateway.process_payment("4242424242424242", 12, 2030, "123", 10)["transaction_id"] for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.parametrize("number, status, error", [
        ("4000000000000002", "declined", "Card declined"),
        ("4000000000009995", "insufficient_funds", "Insufficient funds"),
        ("4000000000000069", "expired", "Expired card"),
    ])
    def test_decline_test_cards(self, number, status, error):
        result = make_gateway().process_payment(number, 12, 2030, "123", 50)
        assert result["status"] == status
        assert result["error"] == error
        assert result["card_brand"] == "Visa"
        assert "transaction_id" not in result

    def test_validation_order(self):
        gateway = make_gateway()
        with pytest.raises(InvalidCard, match="Invalid card number"):
            gateway.process_payment("1234", 1, 2020, "1", 10)
        with pytest.raises(ExpiredOrInvalidCard, match="Invalid or expired card"):
            gateway.process_payment("4242424242424242", 1, 2020, "1", 10)
        with pytest.raises(InvalidCVV, match="Invalid CVV"):
            gateway.process_payment("4242424242424242", 12, 2030, "1", 10)

    def test_invalid_input_never_sleeps(self):
        calls = []
        gateway = DemoPaymentGateway(min_delay=1, max_delay=2, sleep=calls.append, now=lambda: NOW)
        with pytest.raises(InvalidCard):
            gateway.process_payment("4242424242424241", 12, 2030, "123", 10)
        assert calls == []

        gateway.process_payment("4242424242424242", 12, 2030, "123", 10)
        assert len(calls) == 1
        assert 1 <= calls[0] <= 2

    def test_unknown_valid_card_uses_random_source(self):
        class Fixed(random.Random):
            def __init__(self, value):
                super().__init__(0)
                self.value = value

            def random(self):
                return self.value

        card = "4111111111111111"
        approve = DemoPaymentGateway(min_delay=0, max_delay=0, rng=Fixed(0.1), now=lambda: NOW)
        decline = DemoPaymentGateway(min_delay=0, max_delay=0, rng=Fixed(0.95), now=lambda: NOW)

        assert approve.process_payment(card, 12, 2030, "123", 10)["status"] == "success"
        declined = decline.process_payment(card, 12, 2030, "123", 10)
        assert declined == {
            "status": "failed",
            "error": "Payment declined",
            "card_brand": "Visa",
            "processing_time": 0,
        }

    def test_refund(self):
        result = make_gateway().process_refund("TXN-1-ABC", 100)
        assert result["status"] == "success"
        assert result["refund_id"].startswith("REF-TXN-")
        assert result["transaction_id"] == "TXN-1-ABC"
