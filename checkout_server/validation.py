"""Checkout field validation.

Validators never raise: they return a field -> message map and the caller
decides whether to block the step.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from .models import CardDetails, ContactInformation, PaymentMethod, ShippingAddress
from .translation import Translator

FieldErrors = dict[str, Optional[str]]

# (number, region) -> is the number valid for that calling-code region
PhoneChecker = Callable[[str, str], bool]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
COUNTRY_CODE_PATTERN = re.compile(r"^[A-Za-z]{2}$")

MIN_FULL_NAME_LENGTH = 2
MIN_CARD_NUMBER_DIGITS = 15
MAX_CARD_NUMBER_DIGITS = 19
EXPIRY_PATTERN = re.compile(r"^(0[1-9]|1[0-2])/\d{2}$")
CVV_PATTERN = re.compile(r"^\d{3,4}$")


@dataclass(frozen=True)
class PostalCodeFormat:
    pattern: re.Pattern
    example: str


# Countries missing here only need a non-empty postal code.
POSTAL_CODE_FORMATS: dict[str, PostalCodeFormat] = {
    "LT": PostalCodeFormat(re.compile(r"^(LT[-\s]?)?\d{5}$", re.IGNORECASE), "12345"),
    "LV": PostalCodeFormat(re.compile(r"^(LV[-\s]?)?\d{4}$", re.IGNORECASE), "LV-1234"),
    "EE": PostalCodeFormat(re.compile(r"^(EE[-\s]?)?\d{5}$", re.IGNORECASE), "12345"),
    "PL": PostalCodeFormat(re.compile(r"^\d{2}[-\s]?\d{3}$"), "12-345"),
    "DE": PostalCodeFormat(re.compile(r"^\d{5}$"), "12345"),
    "FR": PostalCodeFormat(re.compile(r"^\d{5}$"), "12345"),
    "ES": PostalCodeFormat(re.compile(r"^\d{5}$"), "12345"),
    "IT": PostalCodeFormat(re.compile(r"^\d{5}$"), "12345"),
    "NL": PostalCodeFormat(re.compile(r"^\d{4}\s?[A-Za-z]{2}$", re.IGNORECASE), "1234 AB"),
    "BE": PostalCodeFormat(re.compile(r"^\d{4}$"), "1234"),
}

PAYMENT_METHODS: dict[str, PaymentMethod] = {
    "cash": PaymentMethod(id="cash", name="Cash on delivery", description="Pay the courier on delivery"),
    "card": PaymentMethod(id="card", name="Credit / Debit Card", description="Pay securely with your card"),
    "stripe": PaymentMethod(id="stripe", name="Stripe", description="Card payment via Stripe", redirect=True),
    "paysera": PaymentMethod(id="paysera", name="Paysera", description="Bank link via Paysera", redirect=True),
}


def basic_phone_check(number: str, region: str) -> bool:
    """Default verdict: only phone characters and at least six digits."""
    cleaned = re.sub(r"[\s\-()]", "", number)
    if not re.fullmatch(r"\+?\d+", cleaned):
        return False
    return len(cleaned.lstrip("+")) >= 6


def postal_code_format(country: str) -> Optional[PostalCodeFormat]:
    return POSTAL_CODE_FORMATS.get((country or "").strip().upper())


def has_errors(errors: FieldErrors) -> bool:
    """True iff any field carries a message."""
    return any(message is not None for message in errors.values())


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


class CheckoutValidator:
    """Validates contact, address and payment input."""

    def __init__(
        self,
        translate: Optional[Translator] = None,
        phone_checker: PhoneChecker = basic_phone_check,
        default_region: str = "LT",
    ) -> None:
        self.t = translate or Translator()
        self.phone_checker = phone_checker
        self.default_region = default_region

    def _required(self, key: str, label: str) -> str:
        return self.t("checkout.field_required", "{field} is required", {"field": self.t(key, label)})

    def _invalid(self, key: str, label: str) -> str:
        return self.t("checkout.invalid_field", "Invalid {field}", {"field": self.t(key, label)})

    def validate_contact(self, contact: ContactInformation, region: Optional[str] = None) -> FieldErrors:
        errors: FieldErrors = {}

        if _blank(contact.full_name):
            errors["full_name"] = self._required("checkout.full_name", "Full Name")
        elif len(contact.full_name.strip()) < MIN_FULL_NAME_LENGTH:
            errors["full_name"] = self.t(
                "validation.min_length",
                "Must be at least {min} characters",
                {"min": str(MIN_FULL_NAME_LENGTH)},
            )

        if _blank(contact.email):
            errors["email"] = self._required("checkout.email", "Email")
        elif not EMAIL_PATTERN.match(contact.email.strip()):
            errors["email"] = self.t("checkout.invalid_email", "Please enter a valid email address")

        if _blank(contact.phone):
            errors["phone"] = self._required("checkout.phone", "Phone")
        elif not self.phone_checker(contact.phone.strip(), (region or self.default_region).upper()):
            errors["phone"] = self.t("validation.invalid_phone", "Please enter a valid phone number")

        return errors

    def validate_address(self, address: ShippingAddress) -> FieldErrors:
        errors: FieldErrors = {}

        if _blank(address.country):
            errors["country"] = self._required("checkout.country", "Country")
        elif not COUNTRY_CODE_PATTERN.match(address.country.strip()):
            errors["country"] = self._invalid("checkout.country", "Country")

        if _blank(address.address_line1):
            errors["address_line1"] = self._required("checkout.address_line_1", "Address")

        if _blank(address.city):
            errors["city"] = self._required("checkout.city", "City")

        if _blank(address.postal_code):
            errors["postal_code"] = self._required("checkout.postal_code", "Postal Code")
        else:
            fmt = postal_code_format(address.country)
            if fmt is not None and not fmt.pattern.match(address.postal_code.strip()):
                errors["postal_code"] = self.t(
                    "checkout.invalid_postal_code",
                    "Invalid postal code. Format: {format}",
                    {"format": fmt.example},
                )

        return errors

    def validate_card(self, card: CardDetails) -> FieldErrors:
        errors: FieldErrors = {}

        if _blank(card.card_number):
            errors["card_number"] = self._required("checkout.card_number", "Card Number")
        else:
            compact = re.sub(r"[\s\-]", "", card.card_number)
            if not compact.isdigit() or not MIN_CARD_NUMBER_DIGITS <= len(compact) <= MAX_CARD_NUMBER_DIGITS:
                errors["card_number"] = self._invalid("checkout.card_number", "Card Number")

        if _blank(card.expiry_date):
            errors["expiry_date"] = self._required("checkout.expiry_date", "Expiry Date")
        elif not EXPIRY_PATTERN.match(card.expiry_date.strip()):
            errors["expiry_date"] = self._invalid("checkout.expiry_date", "Expiry Date")

        if _blank(card.cvv):
            errors["cvv"] = self._required("checkout.cvv", "CVV")
        elif not CVV_PATTERN.match(card.cvv.strip()):
            errors["cvv"] = self._invalid("checkout.cvv", "CVV")

        if _blank(card.cardholder_name):
            errors["cardholder_name"] = self._required("checkout.cardholder_name", "Cardholder Name")

        return errors

    def validate_payment(self, payment_method: str, card: Optional[CardDetails] = None) -> FieldErrors:
        """Cash and redirect providers need nothing further; card needs every card field."""
        if payment_method not in PAYMENT_METHODS:
            return {"payment_method": self._invalid("checkout.payment_method", "Payment Method")}
        if payment_method == "card":
            return self.validate_card(card or CardDetails())
        return {}

    has_errors = staticmethod(has_errors)
