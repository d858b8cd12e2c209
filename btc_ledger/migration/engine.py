"""
Migration Engine

Rewrites every persisted transaction to the current id scheme. The run is
gated by the version ledger, so it happens once per store no matter how many
contexts load the data concurrently.

Run order:
1. Back up the pre-migration rows
2. Per row: coerce, rebuild identity input, recompute the stable id
3. Collapse rows that now share an id (merge-with-self)
4. Persist the migrated set, when the caller supplies a persist step
5. Stamp the current storage version

The version is stamped last: if persisting fails the store still reports
that it needs migration, and the next load tries again.

DESIGN DECISION: Row-level failures never abort the run. The error is
recorded and the raw row is handed back in ``failed_rows`` so the caller can
persist it unchanged. A migration must never lose a financial record.
"""

import time
from collections.abc import Callable, Mapping
from typing import Any, Optional

from pydantic import ValidationError

from btc_ledger.dedup.merger import deduplicate
from btc_ledger.identity.generator import generate_id
from btc_ledger.identity.variants import ReferenceBasedId, parse_transaction_id
from btc_ledger.logging_setup import get_logger
from btc_ledger.migration.backup import BackupManager
from btc_ledger.migration.version_ledger import VersionLedger
from btc_ledger.models.migration import MigrationResult, ValidationReport
from btc_ledger.models.transaction import Transaction
from btc_ledger.services.storage.interface import StorageError
from btc_ledger.validation.validator import TransactionValidator


logger = get_logger(__name__)

# Receives (migrated transactions, raw rows that failed). Raises StorageError.
PersistStep = Callable[[list[Transaction], list[Any]], None]


class RowMigrationError(ValueError):
    """A single persisted row could not be migrated."""
    pass


def reconstruct_reference(transaction: Transaction) -> Optional[str]:
    """
    Find the exchange reference for a stored row.

    A stored ``reference`` field always wins. Otherwise the id is parsed and
    a reference-based variant (including the inferred Strike shape) donates
    its reference. Best effort only: the id heuristics can misclassify.
    """
    if transaction.reference and transaction.reference.strip():
        return transaction.reference

    identity = parse_transaction_id(transaction.id, transaction.exchange)
    match identity:
        case ReferenceBasedId(reference=reference):
            return reference
        case _:
            return None


def migrate_row(row: Any) -> Transaction:
    """
    Migrate one persisted row to the current id scheme.

    Every field other than ``id`` is carried over unchanged.

    Raises:
        RowMigrationError: If the row cannot be coerced or identified
    """
    if isinstance(row, Transaction):
        transaction = row
    elif isinstance(row, Mapping):
        try:
            transaction = Transaction.model_validate(dict(row))
        except ValidationError as e:
            raise RowMigrationError(f"unreadable fields: {e.error_count()} validation errors") from e
    else:
        raise RowMigrationError(f"expected an object, got {type(row).__name__}")

    try:
        data = transaction.to_transaction_data(reference=reconstruct_reference(transaction))
    except ValueError as e:
        raise RowMigrationError(str(e)) from e

    return transaction.model_copy(update={"id": generate_id(data)})


class MigrationEngine:
    """Runs version-gated migrations over a full transaction set."""

    def __init__(
        self,
        version_ledger: VersionLedger,
        backup_manager: BackupManager,
        validator: Optional[TransactionValidator] = None,
    ):
        self.version_ledger = version_ledger
        self.backup_manager = backup_manager
        self.validator = validator or TransactionValidator()

    def needs_migration(self) -> bool:
        return self.version_ledger.needs_migration()

    def migrate(
        self,
        existing: list[Any],
        persist: Optional[PersistStep] = None,
    ) -> MigrationResult:
        """
        Migrate ``existing`` if the version ledger says so.

        On a current store this is a no-op: success with zero counts and the
        ledger untouched.

        Args:
            existing: Rows as persisted
            persist: Writes the migrated set; the version is stamped only
                     after it returns
        """
        if not self.version_ledger.needs_migration():
            logger.debug("migration_skipped", reason="version_current")
            return MigrationResult(success=True)
        return self._run_migration(existing, persist)

    def force_migrate(
        self,
        existing: list[Any],
        persist: Optional[PersistStep] = None,
    ) -> MigrationResult:
        """Clear the version record and migrate unconditionally."""
        try:
            self.version_ledger.clear()
        except StorageError as e:
            logger.error("force_migration_failed", error=str(e))
            return MigrationResult(success=False, errors=[f"Failed to clear version record: {e}"])
        return self._run_migration(existing, persist)

    def _run_migration(
        self,
        existing: list[Any],
        persist: Optional[PersistStep],
    ) -> MigrationResult:
        started = time.perf_counter()
        prior = self.version_ledger.get_version()
        prior_version = prior.version if prior else 1

        logger.info("migration_started", count=len(existing), from_version=prior_version)

        result = MigrationResult()
        result.backup_created = self.backup_manager.create_backup(existing, prior_version)

        migrated: list[Transaction] = []
        for index, row in enumerate(existing):
            try:
                migrated.append(migrate_row(row))
            except RowMigrationError as e:
                row_id = row.get("id") if isinstance(row, Mapping) else None
                result.errors.append(f"Row {index} ({row_id or 'no id'}): {e}")
                result.failed_rows.append(row)

        result.error_count = len(result.failed_rows)
        result.migrated_count = len(migrated)

        deduplicated = deduplicate(migrated)
        result.transactions = deduplicated.merged
        result.duplicates_removed = deduplicated.duplicate_count

        if persist is not None:
            try:
                persist(result.transactions, result.failed_rows)
            except StorageError as e:
                result.errors.append(f"Failed to save migrated transactions: {e}")
                result.success = False
                logger.error("migration_failed", error=str(e), migrated_count=result.migrated_count)
                return result

        try:
            self.version_ledger.mark_current()
        except StorageError as e:
            result.errors.append(f"Failed to write version record: {e}")
            result.success = False
            logger.error("migration_failed", error=str(e), migrated_count=result.migrated_count)
            return result

        result.success = True
        logger.info(
            "migration_completed",
            migrated_count=result.migrated_count,
            error_count=result.error_count,
            duplicates_removed=result.duplicates_removed,
            backup_created=result.backup_created,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    def validate_migrated_data(self, transactions: list[Transaction]) -> ValidationReport:
        """Advisory integrity check; never mutates ``transactions``."""
        return self.validator.validate(transactions)
