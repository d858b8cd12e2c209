"""Tests for the advisory transaction validator."""

from decimal import Decimal

from btc_ledger.models.transaction import Transaction
from btc_ledger.validation.validator import TransactionValidator

from conftest import make_transaction


def issue_types(report) -> list[str]:
    return [issue.issue_type for issue in report.issues]


class TestTransactionValidator:
    """Tests for TransactionValidator."""

    def setup_method(self):
        self.validator = TransactionValidator()

    def test_clean_set_is_valid(self):
        transactions = [
            make_transaction(minutes=1),
            make_transaction(minutes=2, reference="REF1"),
        ]
        report = self.validator.validate(transactions)
        assert report.valid
        assert report.issues == []
        assert report.stats.total_transactions == 2
        assert report.stats.reference_based_ids == 1
        assert report.stats.hash_based_ids == 1
        assert report.stats.unique_ids == 2

    def test_duplicate_id_is_an_error(self):
        tx = make_transaction()
        report = self.validator.validate([tx, tx])
        assert not report.valid
        assert issue_types(report) == ["duplicate_id"]
        assert report.stats.unique_ids == 1

    def test_missing_id_skips_other_checks(self):
        report = self.validator.validate([Transaction(id="", btc_amount=Decimal("-1"))])
        assert issue_types(report) == ["missing_id"]
        assert report.stats.unique_ids == 0

    def test_missing_fields(self):
        report = self.validator.validate([
            Transaction(id="coinbase-abc", btc_amount=Decimal("1"), usd_amount=Decimal("1")),
        ])
        assert "missing_field" in issue_types(report)
        assert "date, exchange, type" in report.issues[0].message

    def test_non_positive_btc_is_an_error(self):
        tx = make_transaction(btc="0")
        report = self.validator.validate([tx])
        assert not report.valid
        assert issue_types(report) == ["invalid_amount"]

    def test_negative_usd_is_an_error(self):
        tx = make_transaction().model_copy(update={"usd_amount": Decimal("-5")})
        report = self.validator.validate([tx])
        assert not report.valid
        assert issue_types(report) == ["invalid_amount"]

    def test_zero_usd_withdrawal_is_fine(self):
        tx = make_transaction(tx_type="Withdrawal", usd="0", price=None)
        report = self.validator.validate([tx])
        assert report.valid
        assert report.issues == []

    def test_zero_usd_purchase_is_a_warning(self):
        tx = make_transaction(usd="0")
        report = self.validator.validate([tx])
        assert report.valid
        assert issue_types(report) == ["zero_usd_amount"]
        assert report.warnings

    def test_malformed_id_is_a_warning(self):
        tx = make_transaction().model_copy(update={"id": "coinbase-1690000000000-3"})
        report = self.validator.validate([tx])
        assert report.valid
        assert issue_types(report) == ["malformed_id"]

    def test_does_not_mutate_input(self):
        tx = make_transaction(btc="0")
        before = tx.model_dump()
        self.validator.validate([tx])
        assert tx.model_dump() == before

    def test_summary_for_clean_set(self):
        report = self.validator.validate([make_transaction()])
        summary = self.validator.get_user_friendly_summary(report)
        assert summary.startswith("✅ All checks passed!")
        assert "1 transactions checked" in summary

    def test_summary_lists_problems(self):
        tx = make_transaction(btc="0")
        report = self.validator.validate([tx, tx])
        summary = self.validator.get_user_friendly_summary(report)
        assert "❌" in summary
        assert f"Duplicate transaction ID: {tx.id}" in summary
        assert "Nothing was changed" in summary
