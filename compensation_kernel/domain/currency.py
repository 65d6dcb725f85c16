"""Currency -- supported currencies and their minor-unit precision."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantize_exponent(self) -> Decimal:
        """Exponent for Decimal.quantize() at this currency's precision."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * self.decimal_places)


class CurrencyRegistry:
    """Registry of the currencies schools are billed and teachers are paid in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "ETB": CurrencyInfo("ETB", 2, "Ethiopian Birr"),
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "SAR": CurrencyInfo("SAR", 2, "Saudi Riyal"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham"),
        "EGP": CurrencyInfo("EGP", 2, "Egyptian Pound"),
        "KES": CurrencyInfo("KES", 2, "Kenyan Shilling"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "UGX": CurrencyInfo("UGX", 0, "Ugandan Shilling"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
        "BHD": CurrencyInfo("BHD", 3, "Bahraini Dinar"),
        "OMR": CurrencyInfo("OMR", 3, "Omani Rial"),
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is supported."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Get decimal places for a currency."""
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all supported currency codes."""
        return frozenset(cls._CURRENCIES.keys())
