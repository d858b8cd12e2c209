"""
Stable Transaction Id Generation

DESIGN DECISION: Ids are derived from transaction content, never assigned
randomly. Priority order:
1. The exchange-supplied reference (Strike reference, Coinbase hash, ...)
   which is guaranteed unique by the exchange and survives re-export
2. A content hash over (exchange, date-to-second, type, amounts, price)

The content hash makes re-importing the same CSV idempotent: the same row
always produces the same id, so merging an old and a new export naturally
deduplicates.

The hash is a 32-bit rolling multiply-add, NOT a cryptographic hash. It is
kept because every id already persisted by users was produced with it;
switching algorithms would be a migration of its own. Collisions are possible
and ``detect_id_collisions`` exists to surface them in fixtures.
"""

import re
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterator, Union

from btc_ledger.identity.variants import REFERENCE_MARKER
from btc_ledger.models.transaction import Transaction, TransactionData


_REFERENCE_DISALLOWED = re.compile(r"[^a-zA-Z0-9_-]")
_VALID_ID = re.compile(r"^[a-z]+-(?:ref-[a-zA-Z0-9_-]+|[a-z0-9]+)$")
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_AMOUNT_QUANTUM = Decimal("0.00000001")
_COMPOSITE_SEPARATOR = "|"


def normalize_amount(amount: Union[Decimal, float, int, str]) -> str:
    """Fixed 8-decimal text, so float representation drift cannot change an id."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    quantized = value.quantize(_AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    if quantized == 0:
        quantized = abs(quantized)
    return format(quantized, "f")


def _utf16_code_units(text: str) -> Iterator[int]:
    encoded = text.encode("utf-16-le", "surrogatepass")
    for index in range(0, len(encoded), 2):
        yield encoded[index] | (encoded[index + 1] << 8)


def simple_hash(text: str) -> int:
    """
    Deterministic 32-bit string hash (h = h * 31 + c over UTF-16 code units).

    Returns the absolute value of the signed 32-bit result.
    """
    value = 0
    for unit in _utf16_code_units(text):
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    remaining = abs(number)
    while remaining:
        remaining, digit = divmod(remaining, 36)
        digits.append(_BASE36_DIGITS[digit])
    sign = "-" if number < 0 else ""
    return sign + "".join(reversed(digits))


def clean_reference(reference: str) -> str:
    return _REFERENCE_DISALLOWED.sub("", reference.strip())


def _as_transaction_data(data: Union[TransactionData, Mapping[str, Any]]) -> TransactionData:
    if isinstance(data, TransactionData):
        return data
    return TransactionData.model_validate(data)


def build_composite_key(data: TransactionData) -> str:
    """The content string that gets hashed for rows without a reference."""
    timestamp = data.date
    return _COMPOSITE_SEPARATOR.join([
        data.exchange.lower(),
        timestamp.strftime("%Y-%m-%d"),
        timestamp.strftime("%H:%M:%S"),
        data.type.lower(),
        normalize_amount(data.usd_amount),
        normalize_amount(data.btc_amount),
        normalize_amount(data.price) if data.price else "",
    ])


def generate_id(data: Union[TransactionData, Mapping[str, Any]]) -> str:
    """
    Generate the stable id for a transaction.

    Args:
        data: Parsed row (or a mapping with the same fields)

    Returns:
        ``{exchange}-ref-{reference}`` when a usable reference exists,
        otherwise ``{exchange}-{base36 content hash}``
    """
    data = _as_transaction_data(data)
    exchange = data.exchange.lower()

    if data.reference and data.reference.strip():
        cleaned = clean_reference(data.reference)
        # A reference made only of punctuation would collapse unrelated rows
        if cleaned:
            return f"{exchange}{REFERENCE_MARKER}{cleaned}"

    digest = to_base36(simple_hash(build_composite_key(data)))
    return f"{exchange}-{digest}"


def build_transaction(
    data: Union[TransactionData, Mapping[str, Any]],
    **metadata: Any,
) -> Transaction:
    """
    Turn an imported row (plus optional custody/fee metadata) into a
    Transaction carrying its stable id.
    """
    data = _as_transaction_data(data)
    return Transaction(
        id=generate_id(data),
        date=data.date,
        exchange=data.exchange,
        type=data.type,
        usd_amount=data.usd_amount,
        btc_amount=data.btc_amount,
        price=data.price if data.price is not None else Decimal("0"),
        reference=data.reference,
        **metadata,
    )


def is_valid_transaction_id(transaction_id: str) -> bool:
    return bool(_VALID_ID.match(transaction_id or ""))


def get_exchange_from_id(transaction_id: str) -> str:
    return (transaction_id or "").split("-")[0] or "unknown"


def is_reference_based_id(transaction_id: str) -> bool:
    return REFERENCE_MARKER in (transaction_id or "")


def detect_id_collisions(
    rows: Iterable[Union[TransactionData, Mapping[str, Any]]],
) -> list[str]:
    """
    Generate ids for every row and report rows that land on an id already
    taken by an earlier row. Diagnostic only: meant for test fixtures.
    """
    seen: dict[str, int] = {}
    collisions = []
    for index, row in enumerate(rows):
        transaction_id = generate_id(row)
        if transaction_id in seen:
            collisions.append(
                f'Collision at index {index}: ID "{transaction_id}" '
                f"already used by index {seen[transaction_id]}"
            )
        else:
            seen[transaction_id] = index
    return collisions
