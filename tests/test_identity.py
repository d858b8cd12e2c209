"""Tests for stable id generation and id variant parsing."""

import re
from datetime import datetime, timezone
from decimal import Decimal

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
    extract_legacy_reference,
    parse_transaction_id,
)
from btc_ledger.models.transaction import TransactionData


def _row(**overrides) -> TransactionData:
    values = {
        "exchange": "Strike",
        "date": datetime(2023, 7, 22, 4, 26, 40, tzinfo=timezone.utc),
        "usd_amount": Decimal("100"),
        "btc_amount": Decimal("0.001"),
        "type": "Purchase",
        "price": Decimal("100000"),
    }
    values.update(overrides)
    return TransactionData(**values)


class TestHashPrimitives:
    """Tests for the hash and encoding helpers."""

    def test_simple_hash_known_values(self):
        """Matches the classic h*31+c string hash."""
        assert simple_hash("") == 0
        assert simple_hash("a") == 97
        assert simple_hash("ab") == 97 * 31 + 98
        assert simple_hash("hello") == 99162322

    def test_simple_hash_wraps_to_signed_32_bits(self):
        """This string hashes to the minimum signed 32-bit value."""
        assert simple_hash("polygenelubricants") == 2147483648

    def test_simple_hash_is_never_negative(self):
        for text in ("coinbase|2024-01-01", "strike|x|y|z", "ü€𝄞"):
            assert simple_hash(text) >= 0

    def test_to_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"
        assert to_base36(3105) == "2e9"

    def test_normalize_amount(self):
        """Amounts become fixed 8-decimal text."""
        assert normalize_amount(Decimal("100")) == "100.00000000"
        assert normalize_amount(0.1) == "0.10000000"
        assert normalize_amount(Decimal("0.123456789")) == "0.12345679"
        assert normalize_amount(Decimal("-0")) == "0.00000000"

    def test_clean_reference(self):
        assert clean_reference("  abc 123!  ") == "abc123"
        assert clean_reference("A_b-C") == "A_b-C"


class TestGenerateId:
    """Tests for generate_id."""

    def test_composite_key_layout(self):
        """Lowercased exchange and type, second precision, fixed amounts."""
        assert build_composite_key(_row()) == (
            "strike|2023-07-22|04:26:40|purchase|100.00000000|0.00100000|100000.00000000"
        )

    def test_missing_price_leaves_field_empty(self):
        assert build_composite_key(_row(price=None)).endswith("|0.00100000|")

    def test_hash_id_form(self):
        """Rows without a reference get exchange-base36hash."""
        tx_id = generate_id(_row())
        expected = to_base36(simple_hash(build_composite_key(_row())))
        assert tx_id == f"strike-{expected}"
        assert re.match(r"^strike-[0-9a-z]+$", tx_id)

    def test_same_content_same_id(self):
        """Re-importing the same row yields the same id."""
        assert generate_id(_row()) == generate_id(_row())

    def test_sub_second_differences_collapse(self):
        """Ids are computed to the second."""
        later = datetime(2023, 7, 22, 4, 26, 40, 999000, tzinfo=timezone.utc)
        assert generate_id(_row(date=later)) == generate_id(_row())

    def test_float_drift_does_not_change_id(self):
        """0.1 + 0.2 style drift is absorbed by the 8-decimal form."""
        drifted = _row(btc_amount=Decimal("0.0010000000001"))
        assert generate_id(drifted) == generate_id(_row())

    def test_different_content_different_id(self):
        assert generate_id(_row(usd_amount=Decimal("101"))) != generate_id(_row())

    def test_timezone_is_normalized(self):
        """The same instant in another timezone gives the same id."""
        from datetime import timedelta

        shifted = datetime(2023, 7, 22, 6, 26, 40, tzinfo=timezone(timedelta(hours=2)))
        assert generate_id(_row(date=shifted)) == generate_id(_row())

    def test_reference_takes_priority(self):
        """With a reference, amounts do not affect the id."""
        first = generate_id(_row(reference="REF-123"))
        second = generate_id(_row(reference="REF-123", usd_amount=Decimal("5")))
        assert first == second == "strike-ref-REF-123"

    def test_reference_is_cleaned(self):
        assert generate_id(_row(reference=" ab/c 1 ")) == "strike-ref-abc1"

    def test_punctuation_only_reference_falls_back_to_hash(self):
        assert generate_id(_row(reference="!!!")) == generate_id(_row())

    def test_blank_reference_falls_back_to_hash(self):
        assert generate_id(_row(reference="   ")) == generate_id(_row())

    def test_accepts_mapping(self):
        """Import layers may hand over plain dicts with camelCase keys."""
        mapping = {
            "exchange": "Strike",
            "date": "2023-07-22T04:26:40Z",
            "usdAmount": "100",
            "btcAmount": "0.001",
            "type": "Purchase",
            "price": "100000",
        }
        assert generate_id(mapping) == generate_id(_row())


class TestIdHelpers:
    """Tests for id inspection helpers."""

    def test_is_valid_transaction_id(self):
        assert is_valid_transaction_id("strike-ref-abc_1")
        assert is_valid_transaction_id("coinbase-1a2b")
        assert not is_valid_transaction_id("Strike-1a2b")
        assert not is_valid_transaction_id("coinbase")
        assert not is_valid_transaction_id("")

    def test_get_exchange_from_id(self):
        assert get_exchange_from_id("coinbase-abc") == "coinbase"
        assert get_exchange_from_id("") == "unknown"

    def test_is_reference_based_id(self):
        assert is_reference_based_id("strike-ref-x")
        assert not is_reference_based_id("strike-abc")

    def test_build_transaction_assigns_id_and_metadata(self):
        tx = build_transaction(_row(), notes="cold storage", is_taxable=False)
        assert tx.id == generate_id(_row())
        assert tx.notes == "cold storage"
        assert tx.is_taxable is False
        assert tx.price == Decimal("100000")

    def test_build_transaction_defaults_missing_price_to_zero(self):
        tx = build_transaction(_row(price=None, type="Withdrawal"))
        assert tx.price == Decimal("0")

    def test_detect_id_collisions(self):
        """Identical rows are reported against the first occurrence."""
        rows = [_row(), _row(usd_amount=Decimal("7")), _row()]
        collisions = detect_id_collisions(rows)
        assert collisions == [
            f'Collision at index 2: ID "{generate_id(_row())}" already used by index 0'
        ]

    def test_no_collisions_for_distinct_rows(self):
        rows = [_row(usd_amount=Decimal(str(n))) for n in range(1, 50)]
        assert detect_id_collisions(rows) == []


class TestParseTransactionId:
    """Tests for the tagged id variants."""

    def test_reference_based(self):
        assert parse_transaction_id("strike-ref-XYZ") == ReferenceBasedId("strike", "XYZ")

    def test_reference_marker_without_reference(self):
        assert parse_transaction_id("strike-ref-") == LegacyUnknownId("strike-ref-")

    def test_legacy_timestamp_index_id(self):
        """Pre-stable ids are exchange-epoch-index."""
        identity = parse_transaction_id("strike-1690000000000-0", "Strike")
        assert identity == LegacyUnknownId("strike-1690000000000-0")

    def test_strike_heuristic(self):
        """Long dashed Strike ids are read as carrying a reference."""
        identity = parse_transaction_id("strike-abcd-efgh-ijkl-mnop", "Strike")
        assert identity == ReferenceBasedId("strike", "abcd-efgh-ijkl-mnop", inferred=True)

    def test_strike_heuristic_needs_strike_exchange(self):
        identity = parse_transaction_id("strike-abcd-efgh-ijkl-mnop", "Coinbase")
        assert isinstance(identity, LegacyUnknownId)

    def test_content_hashed(self):
        assert parse_transaction_id("coinbase-1a2b", "Coinbase") == ContentHashedId("coinbase", "1a2b")

    def test_content_hashed_prefix_must_match_exchange(self):
        assert isinstance(parse_transaction_id("coinbase-1a2b", "Kraken"), LegacyUnknownId)

    def test_unknown(self):
        assert parse_transaction_id("random") == LegacyUnknownId("random")
        assert parse_transaction_id("") == LegacyUnknownId("")

    def test_extract_legacy_reference(self):
        assert extract_legacy_reference("strike-ref-ABC", "Strike") == "ABC"
        assert extract_legacy_reference("coinbase-1a2b", "Coinbase") is None
