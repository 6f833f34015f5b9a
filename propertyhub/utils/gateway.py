"""
Demo payment gateway.

Simulates card processing without talking to a real processor. Card input is
validated first (Luhn, expiry, CVV); only a valid card is charged the
simulated processing delay. Known test cards map to fixed outcomes so the
payment flow can be exercised end to end.
"""
import random
import re
import time
import uuid
from datetime import datetime

from propertyhub.utils.errors import ValidationFailed

TEST_CARDS = {
    "4242424242424242": {"status": "success", "brand": "Visa"},
    "4000000000000002": {"status": "declined", "brand": "Visa", "error": "Card declined"},
    "4000000000009995": {"status": "insufficient_funds", "brand": "Visa", "error": "Insufficient funds"},
    "4000000000000069": {"status": "expired", "brand": "Visa", "error": "Expired card"},
    "5555555555554444": {"status": "success", "brand": "Mastercard"},
    "378282246310005": {"status": "success", "brand": "Amex"},
    "6011111111111117": {"status": "success", "brand": "Discover"},
}

RANDOM_SUCCESS_RATE = 0.8


class CardValidationError(ValidationFailed):
    """Malformed card input; raised before any processing delay."""


class InvalidCard(CardValidationError):
    def __init__(self):
        super().__init__("Invalid card number")


class ExpiredOrInvalidCard(CardValidationError):
    def __init__(self):
        super().__init__("Invalid or expired card")


class InvalidCVV(CardValidationError):
    def __init__(self):
        super().__init__("Invalid CVV")


def clean_card_number(card_number):
    return re.sub(r"\s", "", str(card_number or ""))


def validate_card_number(card_number):
    """13-19 digits passing the Luhn checksum."""
    cleaned = clean_card_number(card_number)
    if not re.fullmatch(r"\d{13,19}", cleaned):
        return False

    total = 0
    for index, char in enumerate(reversed(cleaned)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_expiry_date(month, year, now=None):
    now = now or datetime.now()
    try:
        exp_month = int(month)
        exp_year = int(year)
    except (TypeError, ValueError):
        return False

    if exp_year < 100:
        exp_year += 2000
    if exp_month < 1 or exp_month > 12:
        return False
    return (exp_year, exp_month) >= (now.year, now.month)


def get_card_brand(card_number):
    cleaned = clean_card_number(card_number)
    if cleaned.startswith("4"):
        return "Visa"
    if re.match(r"5[1-5]", cleaned):
        return "Mastercard"
    if re.match(r"3[47]", cleaned):
        return "Amex"
    if re.match(r"6(?:011|5)", cleaned):
        return "Discover"
    return "Unknown"


def validate_cvv(cvv, card_brand="Visa"):
    cvv = str(cvv or "")
    expected_length = 4 if card_brand == "Amex" else 3
    return cvv.isdigit() and len(cvv) == expected_length


def generate_transaction_id():
    return f"TXN-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8].upper()}"


class DemoPaymentGateway:

    def __init__(self, min_delay=1.0, max_delay=3.0, sleep=time.sleep, rng=None, now=None):
        self.min_delay = min_delay
        self.max_delay = max(max_delay, min_delay)
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.now = now or datetime.now

    @classmethod
    def from_config(cls, config):
        return cls(
            min_delay=config.get("PAYMENT_GATEWAY_MIN_DELAY", 1.0),
            max_delay=config.get("PAYMENT_GATEWAY_MAX_DELAY", 3.0),
        )

    def _simulate_latency(self):
        delay = self.rng.uniform(self.min_delay, self.max_delay) if self.max_delay else 0.0
        if delay:
            self.sleep(delay)
        return int(delay * 1000)

    def validate(self, card_number, expiry_month, expiry_year, cvv):
        if not validate_card_number(card_number):
            raise InvalidCard()
        if not validate_expiry_date(expiry_month, expiry_year, now=self.now()):
            raise ExpiredOrInvalidCard()
        brand = get_card_brand(card_number)
        if not validate_cvv(cvv, brand):
            raise InvalidCVV()
        return brand

    def process_payment(self, card_number, expiry_month, expiry_year, cvv, amount, zip_code=None):
        """
        Charge a card.

        Returns a dict with ``status == "success"`` and the transaction details,
        or a decline descriptor ``{status, error, card_brand, processing_time}``.
        Declines are results, not exceptions; only malformed card input raises.
        """
        brand = self.validate(card_number, expiry_month, expiry_year, cvv)
        processing_time = self._simulate_latency()
        cleaned = clean_card_number(card_number)

        test_result = TEST_CARDS.get(cleaned)
        if test_result:
            if test_result["status"] == "success":
                return self._success(cleaned, test_result["brand"], amount, processing_time)
            return {
                "status": test_result["status"],
                "error": test_result["error"],
                "card_brand": test_result["brand"],
                "processing_time": processing_time,
            }

        if self.rng.random() < RANDOM_SUCCESS_RATE:
            return self._success(cleaned, brand, amount, processing_time)
        return {
            "status": "failed",
            "error": "Payment declined",
            "card_brand": brand,
            "processing_time": processing_time,
        }

    def _success(self, cleaned, brand, amount, processing_time):
        return {
            "status": "success",
            "transaction_id": generate_transaction_id(),
            "card_brand": brand,
            "card_last4": cleaned[-4:],
            "amount": amount,
            "processing_time": processing_time,
            "message": "Payment processed successfully",
        }

    def process_refund(self, transaction_id, amount):
        self._simulate_latency()
        return {
            "status": "success",
            "refund_id": f"REF-{generate_transaction_id()}",
            "transaction_id": transaction_id,
            "amount": amount,
            "message": "Refund processed successfully",
        }
