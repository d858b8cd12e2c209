"""
Main Orchestrator for the BTC Ledger

This module ties together all the components and exposes the surface the
presentation layer works with:
1. Load (storage facade -> migration if needed -> in-memory set)
2. Import / manual entry (identity -> merge -> persist)
3. Auth changes (backend selection -> one-time transfer -> reload)
4. Recovery (backup restore, integrity validation)

DESIGN DECISION: The manager never raises across its public methods.
Failures are recorded in ``error`` and the in-memory set is left as it was,
so the presentation layer can keep rendering the last good state.
"""

from collections.abc import Iterable
from typing import Any, Optional, Union

from pydantic import ValidationError

from btc_ledger.audit.logger import AuditLogger
from btc_ledger.config import Settings, get_settings
from btc_ledger.dedup.merger import merge
from btc_ledger.identity.generator import build_transaction
from btc_ledger.logging_setup import configure_logging, get_logger
from btc_ledger.migration.backup import BackupManager
from btc_ledger.migration.engine import MigrationEngine
from btc_ledger.migration.version_ledger import VersionLedger
from btc_ledger.models.migration import BackupInfo, RestoreResult, ValidationReport
from btc_ledger.models.storage import AuthState, StorageProviderConfig, TransferSummary
from btc_ledger.models.transaction import MergeResult, Transaction, TransactionData
from btc_ledger.services.storage.auto import AutoStorageProvider
from btc_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
)
from btc_ledger.services.storage.kv_store import JSONFileStore, KeyValueStore
from btc_ledger.services.storage.local import LocalTransactionStorage
from btc_ledger.validation.validator import TransactionValidator


logger = get_logger(__name__)


class TransactionManager:
    """
    In-memory view of the user's transaction set, kept in sync with storage.

    Attributes:
        transactions: Current set, as last loaded or saved
        loading: True while a load is in flight
        error: Message of the last failed operation, None after a success
    """

    def __init__(
        self,
        storage: AutoStorageProvider,
        backup_manager: BackupManager,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._backup_manager = backup_manager
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger or AuditLogger()

        self.transactions: list[Transaction] = []
        self.loading = False
        self.error: Optional[str] = None

    @property
    def storage(self) -> AutoStorageProvider:
        return self._storage

    async def initialize(self, auth_state: Optional[AuthState] = None) -> bool:
        """Initialize storage for ``auth_state`` and load the set."""
        config = StorageProviderConfig(auth_state=auth_state or AuthState())
        result = await self._storage.initialize(config)
        if not result.success:
            self.error = result.error or "Failed to initialize storage"
            return False
        return await self.load()

    async def load(self) -> bool:
        """Reload the set from the active backend."""
        self.loading = True
        try:
            result = await self._storage.get_transactions()
        finally:
            self.loading = False

        if not result.success:
            self.error = result.error or "Failed to load transactions"
            await self._audit_logger.log_error(
                error_type="load_failed",
                error_message=self.error,
                details={"provider": self._storage.active_provider_type.value},
            )
            return False

        self.transactions = result.data or []
        self.error = None
        logger.info("transactions_loaded", count=len(self.transactions))
        return True

    async def handle_auth_change(self, auth_state: AuthState) -> Optional[TransferSummary]:
        """
        Forward an auth signal to storage and reload once it has settled.

        Superseded and still-loading signals do not reload.
        """
        summary = await self._storage.update_auth_state(auth_state)
        if auth_state.loading or self._storage.auth_state is not auth_state:
            return summary
        await self.load()
        return summary

    async def add_transaction(
        self,
        transaction: Union[Transaction, TransactionData],
    ) -> Optional[Transaction]:
        """
        Persist a single transaction (an imported row gets its stable id).

        Returns:
            The saved transaction, or None on failure
        """
        if isinstance(transaction, TransactionData):
            transaction = build_transaction(transaction)

        result = await self._storage.save_transaction(transaction)
        if not result.success:
            self.error = result.error or "Failed to add transaction"
            return None

        saved = result.data or transaction
        self.transactions = [tx for tx in self.transactions if tx.id != saved.id] + [saved]
        self.error = None
        return saved

    async def merge_transactions(self, new_transactions: Iterable[Transaction]) -> MergeResult:
        """
        Merge ``new_transactions`` into the current set and persist it.

        On failure the current set is returned unchanged with
        ``duplicate_count=0``.
        """
        incoming = list(new_transactions)
        merged = merge(self.transactions, incoming)

        result = await self._storage.save_transactions(merged.merged)
        if not result.success:
            self.error = result.error or "Failed to merge transactions"
            return MergeResult(merged=self.transactions, duplicate_count=0)

        self.transactions = result.data if result.data is not None else merged.merged
        self.error = None
        await self._audit_logger.log_transactions_merged(
            incoming_count=len(incoming),
            duplicate_count=merged.duplicate_count,
            total_count=len(self.transactions),
        )
        return MergeResult(merged=self.transactions, duplicate_count=merged.duplicate_count)

    async def import_rows(
        self,
        rows: Iterable[Union[TransactionData, dict[str, Any]]],
    ) -> MergeResult:
        """
        Assign stable ids to parsed import rows and merge them in.

        Rows that fail to parse are skipped and counted in the log.
        Re-importing the same export yields only duplicates.
        """
        built = []
        skipped = 0
        for row in rows:
            try:
                built.append(build_transaction(row))
            except ValidationError as e:
                skipped += 1
                logger.warning("import_row_rejected", error_count=e.error_count())
        if skipped:
            logger.warning("import_rows_skipped", skipped=skipped, accepted=len(built))
        return await self.merge_transactions(built)

    async def clear_all_transactions(self) -> bool:
        """Remove every transaction. Confirmation is the caller's job."""
        result = await self._storage.clear_transactions()
        if not result.success:
            self.error = result.error or "Failed to clear transactions"
            return False
        self.transactions = []
        self.error = None
        return True

    def get_exchanges_list(self) -> list[str]:
        return sorted({tx.exchange for tx in self.transactions if tx.exchange})

    def get_backup_info(self) -> BackupInfo:
        return self._backup_manager.get_info()

    async def restore_backup(self) -> RestoreResult:
        """
        Put the pre-migration set back into the local store.

        The next load migrates it again, since restoring clears the version.
        """
        result = self._backup_manager.restore()
        await self._audit_logger.log_restore(
            success=result.success,
            count=result.count,
            error=result.error,
        )
        if not result.success:
            self.error = result.error
            return result

        await self.load()
        return result

    async def validate(self) -> ValidationReport:
        """Advisory integrity report over the current set."""
        report = self._validator.validate(self.transactions)
        await self._audit_logger.log_validation_report(report)
        return report


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
) -> TransactionManager:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to ``get_settings()``)
        store: Key-value store for the local backend. Defaults to the JSON
               file configured in ``LedgerSettings``.

    Returns:
        A TransactionManager that still needs ``initialize()``
    """
    settings = settings or get_settings()
    ledger = settings.ledger
    configure_logging(ledger.effective_log_level)

    store = store or JSONFileStore(ledger.local_store_path, ledger.max_local_storage_bytes)
    version_ledger = VersionLedger(store, ledger.version_key)
    backup_manager = BackupManager(
        store,
        version_ledger,
        backup_key=ledger.backup_key,
        transactions_key=ledger.transactions_key,
    )
    validator = TransactionValidator()
    migration_engine = MigrationEngine(version_ledger, backup_manager, validator)

    remote = None
    audit_storage = None
    if ledger.enable_remote:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            remote = GoogleSheetsTransactionStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except ValidationError as e:
            # Remote not configured - continue local-only
            logger.warning("remote_storage_not_configured", error=str(e))

    audit_logger = AuditLogger(audit_storage)
    local = LocalTransactionStorage(
        store,
        migration_engine,
        transactions_key=ledger.transactions_key,
        audit_logger=audit_logger,
    )
    storage = AutoStorageProvider(
        local,
        remote,
        audit_logger=audit_logger,
        auth_settle_seconds=ledger.auth_settle_seconds,
    )

    return TransactionManager(storage, backup_manager, validator, audit_logger)
