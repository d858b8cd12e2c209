"""
Transaction Set Integrity Validation

Runs after a migration (and on demand) over the full transaction set.

Checks, per transaction:
- Identity: id present, not duplicated, well-formed
- Required fields: date, exchange, type
- Amounts: positive BTC, non-negative USD; zero USD is only expected for
  self-custody movements (withdrawals, transfers)

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review. Auto-correcting financial records would
hide exactly the problems the user needs to see.
"""

from collections.abc import Iterable

from btc_ledger.identity.generator import is_reference_based_id, is_valid_transaction_id
from btc_ledger.models.migration import ValidationIssue, ValidationReport, ValidationStats
from btc_ledger.models.transaction import Transaction, is_non_monetary_type


class TransactionValidator:
    """Produces an advisory ValidationReport for a transaction set."""

    def _validate_fields(self, transaction: Transaction) -> list[ValidationIssue]:
        issues = []
        tx_id = transaction.id

        missing = [
            name for name, value in (
                ("date", transaction.date),
                ("exchange", transaction.exchange),
                ("type", transaction.type),
            )
            if not value
        ]
        if missing:
            issues.append(ValidationIssue(
                transaction_id=tx_id,
                issue_type="missing_field",
                message=f"Transaction missing required fields ({', '.join(missing)}): {tx_id}",
                severity="error",
            ))

        if transaction.btc_amount <= 0:
            issues.append(ValidationIssue(
                transaction_id=tx_id,
                issue_type="invalid_amount",
                message=f"Transaction has non-positive BTC amount ({transaction.btc_amount}): {tx_id}",
                severity="error",
            ))

        if transaction.usd_amount < 0:
            issues.append(ValidationIssue(
                transaction_id=tx_id,
                issue_type="invalid_amount",
                message=f"Transaction has negative USD amount ({transaction.usd_amount}): {tx_id}",
                severity="error",
            ))
        elif transaction.usd_amount == 0 and not is_non_monetary_type(transaction.type):
            issues.append(ValidationIssue(
                transaction_id=tx_id,
                issue_type="zero_usd_amount",
                message=f"{transaction.type or 'Transaction'} has a zero USD amount: {tx_id}",
                severity="warning",
            ))

        return issues

    def validate(self, transactions: Iterable[Transaction]) -> ValidationReport:
        """
        Validate a full transaction set.

        Returns:
            ValidationReport; ``valid`` is False when any error-severity
            issue was found (warnings alone keep the set valid)
        """
        issues: list[ValidationIssue] = []
        seen_ids: set[str] = set()
        stats = ValidationStats()

        for position, transaction in enumerate(transactions):
            stats.total_transactions += 1
            tx_id = transaction.id

            if not tx_id:
                issues.append(ValidationIssue(
                    issue_type="missing_id",
                    message=f"Transaction at position {position} is missing an ID",
                    severity="error",
                ))
                continue

            if tx_id in seen_ids:
                issues.append(ValidationIssue(
                    transaction_id=tx_id,
                    issue_type="duplicate_id",
                    message=f"Duplicate transaction ID: {tx_id}",
                    severity="error",
                ))
            seen_ids.add(tx_id)

            if is_reference_based_id(tx_id):
                stats.reference_based_ids += 1
            else:
                stats.hash_based_ids += 1

            if not is_valid_transaction_id(tx_id):
                issues.append(ValidationIssue(
                    transaction_id=tx_id,
                    issue_type="malformed_id",
                    message=f"Transaction ID has an unexpected format: {tx_id}",
                    severity="warning",
                ))

            issues.extend(self._validate_fields(transaction))

        stats.unique_ids = len(seen_ids)

        return ValidationReport(
            valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            stats=stats,
        )

    def get_user_friendly_summary(self, report: ValidationReport) -> str:
        """
        Generate a user-friendly summary of a validation report.

        This is what we show to non-technical users.
        """
        stats = report.stats
        header = (
            f"{stats.total_transactions} transactions checked "
            f"({stats.reference_based_ids} with exchange references, "
            f"{stats.hash_based_ids} content-based)."
        )

        if report.valid and not report.warnings:
            return f"✅ All checks passed! {header}"

        lines = [header]

        if not report.valid:
            lines.append("")
            lines.append("❌ Some transactions have problems:")
            for issue in report.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")

        if report.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in report.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        lines.append("Nothing was changed. A backup of your previous data is kept.")

        return "\n".join(lines)
