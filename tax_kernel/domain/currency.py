"""Currency -- ISO 4217 codes GST invoices arrive in, with their minor units."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    decimal_places: int
    name: str


def _table(*entries: tuple[str, int, str]) -> dict[str, CurrencyInfo]:
    return {code: CurrencyInfo(code, places, name) for code, places, name in entries}


class CurrencyRegistry:
    """
    Currencies accepted on invoices.

    INR is the base currency every return is filed in. The rest cover
    import-of-services bills and export invoices; anything else is
    rejected at the Money boundary.
    """

    BASE_CURRENCY: ClassVar[str] = "INR"

    _KNOWN: ClassVar[dict[str, CurrencyInfo]] = _table(
        ("INR", 2, "Indian Rupee"),
        ("USD", 2, "US Dollar"),
        ("EUR", 2, "Euro"),
        ("GBP", 2, "Pound Sterling"),
        ("JPY", 0, "Japanese Yen"),
        ("CHF", 2, "Swiss Franc"),
        ("CAD", 2, "Canadian Dollar"),
        ("AUD", 2, "Australian Dollar"),
        ("SGD", 2, "Singapore Dollar"),
        ("HKD", 2, "Hong Kong Dollar"),
        ("CNY", 2, "Yuan Renminbi"),
        ("KRW", 0, "South Korean Won"),
        # Gulf
        ("AED", 2, "UAE Dirham"),
        ("SAR", 2, "Saudi Riyal"),
        ("QAR", 2, "Qatari Riyal"),
        ("BHD", 3, "Bahraini Dinar"),
        ("KWD", 3, "Kuwaiti Dinar"),
        ("OMR", 3, "Rial Omani"),
        # Neighbours
        ("NPR", 2, "Nepalese Rupee"),
        ("LKR", 2, "Sri Lanka Rupee"),
        ("BDT", 2, "Taka"),
    )

    @classmethod
    def lookup(cls, code: str) -> CurrencyInfo | None:
        if not isinstance(code, str):
            return None
        return cls._KNOWN.get(code.strip().upper())

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return cls.lookup(code) is not None

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Minor units for ``code``; two for anything unregistered."""
        info = cls.lookup(code)
        return 2 if info is None else info.decimal_places
