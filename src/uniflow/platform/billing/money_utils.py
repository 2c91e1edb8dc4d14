"""
Money and currency utilities using py-moneyed and Babel.

Provides currency handling with proper decimal precision,
locale-aware formatting, and the rounding policy used for commission amounts.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

INR = Currency("INR")

# Default locale for formatting
DEFAULT_LOCALE = "en_IN"

MONTHS_PER_YEAR = Decimal(12)


class MoneyHandler:
    """Central handler for money operations with proper error handling."""

    def __init__(self, default_currency: str = "INR", default_locale: str = DEFAULT_LOCALE) -> None:
        self.default_currency = self._validate_currency(default_currency)
        self.default_locale = self._validate_locale(default_locale)

    def _validate_currency(self, currency_code: str) -> Currency:
        """Validate and return Currency object."""
        try:
            return get_currency(currency_code.upper())
        except CurrencyDoesNotExist:
            raise ValueError(f"Invalid currency code: {currency_code}")

    def _validate_locale(self, locale_code: str) -> str:
        """Validate locale code."""
        try:
            Locale.parse(locale_code)
            return locale_code
        except (UnknownLocaleError, ValueError):
            return DEFAULT_LOCALE

    def create_money(
        self, amount: int | float | Decimal | str, currency: str | None = None
    ) -> Money:
        """Create Money object with proper validation."""
        currency = currency or self.default_currency.code
        validated_currency = self._validate_currency(currency)

        if isinstance(amount, Decimal):
            decimal_amount = amount
        else:
            decimal_amount = Decimal(str(amount))

        return Money(amount=decimal_amount, currency=validated_currency)

    def format_money(self, money: Money, locale: str | None = None, **kwargs: Any) -> str:
        """Format Money object with locale-aware formatting."""
        locale = locale or self.default_locale
        validated_locale = self._validate_locale(locale)

        try:
            return format_currency(
                number=money.amount, currency=money.currency.code, locale=validated_locale, **kwargs
            )
        except (TypeError, ValueError):
            return f"{money.currency.code} {money.amount}"

    def get_currency_precision(self, currency_code: str) -> int:
        """Get decimal precision for a currency."""
        return get_currency_precision(currency_code.upper())

    def round_money(self, money: Money) -> Money:
        """Round Money half-up to the currency's minor unit."""
        precision = self.get_currency_precision(money.currency.code)
        rounded_amount = money.amount.quantize(
            Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP
        )
        return Money(amount=rounded_amount, currency=money.currency)


# Global instance for convenience
money_handler = MoneyHandler()


def create_money(amount: int | float | Decimal | str, currency: str = "INR") -> Money:
    """Create Money object with default handler."""
    return money_handler.create_money(amount, currency)


def format_money(money: Money, locale: str | None = None, **kwargs: Any) -> str:
    """Format Money with default handler."""
    return money_handler.format_money(money, locale, **kwargs)


def round_money(money: Money) -> Money:
    """Round Money half-up to currency precision."""
    return money_handler.round_money(money)


def normalize_to_monthly(amount: Decimal, billing_cycle: str) -> Decimal:
    """Express a cycle amount per month; yearly amounts are divided by 12, unrounded."""
    if billing_cycle == "yearly":
        return amount / MONTHS_PER_YEAR
    return amount


def percentage_of(amount: Decimal, rate_percent: Decimal) -> Decimal:
    """Unrounded ``amount * rate / 100``."""
    return amount * rate_percent / Decimal(100)


__all__ = [
    "MoneyHandler",
    "money_handler",
    "create_money",
    "format_money",
    "round_money",
    "normalize_to_monthly",
    "percentage_of",
    "INR",
]
