"""
Pre-Migration Backup

A single backup slot holds the transaction set as it was before the last
migration. Restoring puts those rows back and clears the version record so
the next load migrates them again.

DESIGN DECISION: Restore is all-or-nothing. The backup is fully parsed
before anything is written, and if clearing the version record fails the
transaction write is rolled back.
"""

from typing import Any, Optional

from pydantic import ValidationError

from btc_ledger.logging_setup import get_logger
from btc_ledger.migration.version_ledger import VersionLedger
from btc_ledger.models.migration import Backup, BackupInfo, RestoreResult
from btc_ledger.models.transaction import Transaction
from btc_ledger.services.storage.interface import StorageError
from btc_ledger.services.storage.kv_store import KeyValueStore


logger = get_logger(__name__)


def _raw_row(row: Any) -> Any:
    if isinstance(row, Transaction):
        return row.to_storage_dict()
    return row


class BackupManager:
    """Owns the backup slot in the key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        version_ledger: VersionLedger,
        backup_key: str = "btc-tracker:backup-v1",
        transactions_key: str = "btc-tracker:transactions",
    ):
        self.store = store
        self.version_ledger = version_ledger
        self.backup_key = backup_key
        self.transactions_key = transactions_key

    def create_backup(self, transactions: list[Any], version: Optional[int] = None) -> bool:
        """
        Overwrite the backup slot with ``transactions``.

        Args:
            transactions: Rows as persisted (raw dicts or Transactions)
            version: Storage version the rows belong to, 1 when unknown

        Returns:
            True on success. Never raises: a failed backup is logged and the
            caller decides whether to continue.
        """
        backup = Backup(
            transactions=[_raw_row(row) for row in transactions],
            version=version or 1,
        )
        try:
            self.store.set_json(self.backup_key, backup.model_dump(mode="json"))
        except StorageError as e:
            logger.error(
                "backup_failed",
                count=len(transactions),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("backup_created", count=len(transactions), version=backup.version)
        return True

    def _load(self) -> Optional[Backup]:
        """
        Raises:
            CorruptedDataError: If the slot holds unreadable JSON
            ValidationError: If the slot does not hold a backup
        """
        raw = self.store.get_json(self.backup_key)
        if raw is None:
            return None
        return Backup.model_validate(raw)

    def get_info(self) -> BackupInfo:
        try:
            backup = self._load()
        except (StorageError, ValidationError) as e:
            logger.warning("backup_unreadable", error=str(e))
            return BackupInfo(exists=False)

        if backup is None:
            return BackupInfo(exists=False)
        return BackupInfo(
            exists=True,
            timestamp=backup.timestamp,
            count=len(backup.transactions),
        )

    def restore(self) -> RestoreResult:
        """
        Replace the current transaction set with the backup.

        Returns:
            RestoreResult with the restored row count, or the reason nothing
            changed
        """
        try:
            backup = self._load()
        except (StorageError, ValidationError) as e:
            logger.warning("restore_failed", reason="backup_unreadable", error=str(e))
            return RestoreResult(success=False, error=f"Backup is unreadable: {e}")

        if backup is None:
            logger.warning("restore_failed", reason="no_backup")
            return RestoreResult(success=False, error="No backup found")

        try:
            previous_raw = self.store.get(self.transactions_key)
        except StorageError as e:
            logger.error("restore_failed", reason="current_data_unreadable", error=str(e))
            return RestoreResult(success=False, error=f"Failed to read current transactions: {e}")

        try:
            self.store.set_json(self.transactions_key, backup.transactions)
        except StorageError as e:
            logger.error("restore_failed", reason="write_failed", error=str(e))
            return RestoreResult(success=False, error=f"Failed to write transactions: {e}")

        try:
            self.version_ledger.clear()
        except StorageError as e:
            logger.error("restore_failed", reason="version_clear_failed", error=str(e))
            error = f"Failed to clear version record: {e}"
            try:
                self._rollback(previous_raw)
            except StorageError as rollback_error:
                logger.error("restore_rollback_failed", error=str(rollback_error))
                error = f"{error}; rollback failed: {rollback_error}"
            return RestoreResult(success=False, error=error)

        logger.info("backup_restored", count=len(backup.transactions))
        return RestoreResult(success=True, count=len(backup.transactions))

    def _rollback(self, previous_raw: Optional[str]) -> None:
        if previous_raw is None:
            self.store.remove(self.transactions_key)
        else:
            self.store.set(self.transactions_key, previous_raw)
