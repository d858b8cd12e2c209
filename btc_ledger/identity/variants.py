"""
Transaction id variants.

Stored ids come in three shapes. Migration needs to know which one it is
looking at, so the shapes are parsed once here into a tagged variant instead
of being sniffed with string checks all over the code base.

- ``ReferenceBasedId``: ``{exchange}-ref-{reference}``, or a legacy Strike id
  whose tail looks like a Strike reference (``inferred=True``)
- ``ContentHashedId``: ``{exchange}-{base36 hash}``
- ``LegacyUnknownId``: anything else, including the old
  ``{exchange}-{epoch}-{row index}`` ids produced before stable ids existed

The Strike heuristic is best effort and can misclassify rows. It is kept as
a fallback only; a stored ``reference`` field always wins over it.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union


REFERENCE_MARKER = "-ref-"

# exchange-<epoch seconds or millis>-<row index>
_LEGACY_TIMESTAMP_ID = re.compile(r"^[^-]+-\d{10,13}-\d+$")
# base-36 of a 32-bit absolute value is at most 7 characters
_HASH_DIGEST = re.compile(r"^[0-9a-z]{1,7}$")
_STRIKE_PREFIX = "strike-"
_STRIKE_MIN_LENGTH = 20


@dataclass(frozen=True, slots=True)
class ReferenceBasedId:
    exchange: str
    reference: str
    inferred: bool = False


@dataclass(frozen=True, slots=True)
class ContentHashedId:
    exchange: str
    digest: str


@dataclass(frozen=True, slots=True)
class LegacyUnknownId:
    raw: str


TransactionIdentity = Union[ReferenceBasedId, ContentHashedId, LegacyUnknownId]


def parse_transaction_id(
    transaction_id: str,
    exchange: Optional[str] = None,
) -> TransactionIdentity:
    """
    Classify a stored id.

    Args:
        transaction_id: The id as persisted
        exchange: The row's exchange, used to confirm hash ids and to enable
                  the Strike heuristic

    Returns:
        The matching variant. Never raises.
    """
    raw = transaction_id or ""
    exchange_key = (exchange or "").strip().lower()

    if REFERENCE_MARKER in raw:
        prefix, reference = raw.split(REFERENCE_MARKER, 1)
        if reference:
            return ReferenceBasedId(exchange=prefix, reference=reference)
        return LegacyUnknownId(raw=raw)

    if _LEGACY_TIMESTAMP_ID.match(raw):
        return LegacyUnknownId(raw=raw)

    is_strike = exchange_key == "strike" or (not exchange_key and raw.startswith(_STRIKE_PREFIX))
    if (
        is_strike
        and raw.startswith(_STRIKE_PREFIX)
        and len(raw) > _STRIKE_MIN_LENGTH
        and raw.count("-") >= 2
    ):
        return ReferenceBasedId(
            exchange="strike",
            reference=raw[len(_STRIKE_PREFIX):],
            inferred=True,
        )

    if "-" in raw:
        prefix, digest = raw.rsplit("-", 1)
        prefix_ok = prefix == exchange_key if exchange_key else bool(prefix)
        if prefix_ok and _HASH_DIGEST.match(digest):
            return ContentHashedId(exchange=prefix, digest=digest)

    return LegacyUnknownId(raw=raw)


def extract_legacy_reference(transaction_id: str, exchange: Optional[str] = None) -> Optional[str]:
    """Best-effort reference recovery from a stored id."""
    identity = parse_transaction_id(transaction_id, exchange)
    if isinstance(identity, ReferenceBasedId):
        return identity.reference
    return None
