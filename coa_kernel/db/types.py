"""
Module: coa_kernel.db.types
Responsibility: Column types and validation helpers shared by every model.
    Centralizes exact-decimal storage, timezone-aware timestamps, and
    currency validation so that models and stores use identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, store/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere.  DecimalType stores Numeric(38, 9) on PostgreSQL
      and the exact decimal text on SQLite, whose NUMERIC affinity would
      otherwise round-trip through binary floating point.
    - UTCDateTime always returns timezone-aware UTC datetimes, including on
      backends that drop the offset.
    - validate_currency() accepts only ISO 4217 codes.

Failure modes:
    - AccountValidationError on an invalid ISO 4217 code.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated

from sqlalchemy import Date, DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

from coa_kernel.exceptions import AccountValidationError


class DecimalType(TypeDecorator):
    """
    Exact decimal column.

    Contract:
        Python ``Decimal`` in, the same ``Decimal`` out, on every backend.

    Guarantees:
        - PostgreSQL: Numeric(38, 9).
        - Other dialects: String(64) holding ``str(Decimal)``.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = Numeric(38, 9)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(38, 9, asdecimal=True))
        return dialect.type_descriptor(String(64))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError("Floating point values cannot be stored in a decimal column")
        value = Decimal(value)
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value)) if not isinstance(value, Decimal) else value


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back in UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# Monetary amount, stored exactly
Money = Annotated[Decimal, DecimalType()]

# ISO 4217 currency code (e.g., "USD", "EUR", "GBP")
Currency = Annotated[str, String(3)]

# Account code
AccountCode = Annotated[str, String(50)]

# Calendar date
CalendarDate = Annotated[date, Date()]

# Timestamp
Timestamp = Annotated[datetime, UTCDateTime()]

# Long text for descriptions
LongText = Annotated[str, String(4000)]


# ISO 4217 Currency Codes
ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    # Major currencies
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    # Other currencies (alphabetical)
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL", "BSD", "BTN", "BWP", "BYN", "BZD",
    "CDF", "CLP", "CNY", "COP", "CRC", "CUP", "CVE", "CZK",
    "DJF", "DKK", "DOP", "DZD",
    "EGP", "ERN", "ETB",
    "FJD", "FKP",
    "GEL", "GHS", "GIP", "GMD", "GNF", "GTQ", "GYD",
    "HKD", "HNL", "HTG", "HUF",
    "IDR", "ILS", "INR", "IQD", "IRR", "ISK",
    "JMD", "JOD",
    "KES", "KGS", "KHR", "KMF", "KPW", "KRW", "KWD", "KYD", "KZT",
    "LAK", "LBP", "LKR", "LRD", "LSL", "LYD",
    "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR", "MVR", "MWK", "MXN", "MYR", "MZN",
    "NAD", "NGN", "NIO", "NOK", "NPR",
    "OMR",
    "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG",
    "QAR",
    "RON", "RSD", "RUB", "RWF",
    "SAR", "SBD", "SCR", "SDG", "SEK", "SGD", "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SVC", "SYP", "SZL",
    "THB", "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS",
    "UAH", "UGX", "UYU", "UZS",
    "VES", "VND", "VUV",
    "WST",
    "XAF", "XCD", "XOF", "XPF",
    "YER",
    "ZAR", "ZMW", "ZWL",
})


def validate_currency(currency: str) -> str:
    """
    Validate that a currency code is a valid ISO 4217 code.

    Returns:
        The validated currency code (uppercase, trimmed).

    Raises:
        AccountValidationError: If the currency code is not valid.
    """
    if not currency or not isinstance(currency, str):
        raise AccountValidationError("currency", "currency code is required")

    normalized = currency.upper().strip()

    if normalized not in ISO_4217_CURRENCIES:
        raise AccountValidationError(
            "currency", f"'{currency}' is not an ISO 4217 currency code"
        )

    return normalized


def is_valid_currency(currency: str) -> bool:
    try:
        validate_currency(currency)
        return True
    except AccountValidationError:
        return False
