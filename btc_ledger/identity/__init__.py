"""Stable transaction identity package."""

from btc_ledger.identity.generator import (
    build_composite_key,
    build_transaction,
    clean_reference,
    detect_id_collisions,
    generate_id,
    get_exchange_from_id,
    is_reference_based_id,
    is_valid_transaction_id,
    normalize_amount,
    simple_hash,
    to_base36,
)
from btc_ledger.identity.variants import (
    ContentHashedId,
    LegacyUnknownId,
    ReferenceBasedId,
    TransactionIdentity,
    extract_legacy_reference,
    parse_transaction_id,
)

__all__ = [
    # Generation
    "build_composite_key",
    "build_transaction",
    "clean_reference",
    "detect_id_collisions",
    "generate_id",
    "normalize_amount",
    "simple_hash",
    "to_base36",
    # Inspection
    "get_exchange_from_id",
    "is_reference_based_id",
    "is_valid_transaction_id",
    # Variants
    "ContentHashedId",
    "LegacyUnknownId",
    "ReferenceBasedId",
    "TransactionIdentity",
    "extract_legacy_reference",
    "parse_transaction_id",
]
