"""
Local (On-Device) Transaction Storage

Persists the whole transaction set as one JSON array under a single store
key. Loading is where migrations happen: if the version ledger reports an
old or missing version, the set is migrated, the result persisted, and the
current version stamped.

DESIGN DECISION: Rows that cannot be read are never dropped. Rows that fail
migration, and rows that fail to parse on later loads, are written back
verbatim alongside the readable set. Only an explicit clear removes them.
"""

from typing import Any, Optional

from pydantic import ValidationError

from btc_ledger.audit.logger import AuditLogger
from btc_ledger.logging_setup import get_logger
from btc_ledger.migration.engine import MigrationEngine
from btc_ledger.models.migration import MigrationResult
from btc_ledger.models.storage import (
    ProviderStatus,
    StorageProviderConfig,
    StorageProviderType,
    StorageResult,
    TransactionQuery,
)
from btc_ledger.models.transaction import Transaction
from btc_ledger.queries.filters import apply_query
from btc_ledger.services.storage.interface import (
    BaseTransactionStorage,
    CorruptedDataError,
    NotFoundError,
    StorageError,
)
from btc_ledger.services.storage.kv_store import KeyValueStore


logger = get_logger(__name__)


class LocalTransactionStorage(BaseTransactionStorage):
    """Transaction storage backed by a KeyValueStore."""

    provider_type = StorageProviderType.LOCAL

    def __init__(
        self,
        store: KeyValueStore,
        migration_engine: MigrationEngine,
        transactions_key: str = "btc-tracker:transactions",
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__()
        self.store = store
        self.migration_engine = migration_engine
        self.transactions_key = transactions_key
        self._audit = audit_logger
        self.last_migration: Optional[MigrationResult] = None

    # =========================================================================
    # RAW ACCESS
    # =========================================================================

    def _read_raw(self) -> Optional[list[Any]]:
        """
        Raises:
            CorruptedDataError: If the stored value is not a JSON array
        """
        raw = self.store.get_json(self.transactions_key)
        if raw is None:
            return None
        if not isinstance(raw, list):
            raise CorruptedDataError(
                f"Value under {self.transactions_key!r} is not a list of transactions"
            )
        return raw

    @staticmethod
    def _parse_rows(rows: list[Any]) -> tuple[list[Transaction], list[Any]]:
        transactions = []
        unreadable = []
        for row in rows:
            if not isinstance(row, dict):
                unreadable.append(row)
                continue
            try:
                transaction = Transaction.model_validate(row)
            except ValidationError:
                unreadable.append(row)
                continue
            # Rows that cannot be identified stay raw so a save never drops them
            if transaction.date is None or not transaction.exchange:
                unreadable.append(row)
            else:
                transactions.append(transaction)
        return transactions, unreadable

    def _write(self, transactions: list[Transaction], preserved: list[Any]) -> None:
        payload = [tx.to_storage_dict() for tx in transactions] + list(preserved)
        self.store.set_json(self.transactions_key, payload)

    def _preserved_rows(self) -> list[Any]:
        rows = self._read_raw() or []
        return self._parse_rows(rows)[1]

    async def _load(self) -> list[Transaction]:
        """
        Load the readable set, migrating first when the store is behind.

        Raises:
            StorageError: If the store cannot be read or written
        """
        rows = self._read_raw()
        ledger = self.migration_engine.version_ledger

        if rows is None:
            # Fresh store: nothing to migrate, stamp the current version
            if ledger.needs_migration():
                ledger.mark_current()
            return []

        if self.migration_engine.needs_migration():
            return await self._migrate(rows)

        transactions, unreadable = self._parse_rows(rows)
        if unreadable:
            logger.warning(
                "unreadable_rows_skipped",
                count=len(unreadable),
                total=len(rows),
            )
        return transactions

    async def _migrate(self, rows: list[Any]) -> list[Transaction]:
        result = self.migration_engine.migrate(rows, persist=self._write)
        self.last_migration = result
        if self._audit:
            await self._audit.log_migration(result)

        if not result.success:
            # Version not stamped: the next load migrates again
            return self._parse_rows(rows)[0]

        if self._audit:
            report = self.migration_engine.validate_migrated_data(result.transactions)
            await self._audit.log_validation_report(report)
        return result.transactions

    # =========================================================================
    # PROVIDER CONTRACT
    # =========================================================================

    async def initialize(
        self,
        config: Optional[StorageProviderConfig] = None,
    ) -> StorageResult[None]:
        self._config = config
        self._ready = True
        return self._create_result(True, None, None, "initialize")

    async def get_status(self) -> StorageResult[ProviderStatus]:
        try:
            rows = self._read_raw()
        except StorageError as e:
            status = ProviderStatus(provider=self.provider_type, is_healthy=False)
            return self._create_result(True, status, str(e), "get_status")

        status = ProviderStatus(
            provider=self.provider_type,
            is_healthy=True,
            transaction_count=len(rows) if rows else 0,
            active_provider=self.provider_type,
        )
        return self._create_result(True, status, None, "get_status")

    async def get_transactions(
        self,
        query: Optional[TransactionQuery] = None,
    ) -> StorageResult[list[Transaction]]:
        try:
            transactions = await self._load()
        except StorageError as e:
            return self._handle_error(e, "get_transactions")
        return self._create_result(True, apply_query(transactions, query), None, "get_transactions")

    async def get_transaction(self, transaction_id: str) -> StorageResult[Optional[Transaction]]:
        try:
            transactions = await self._load()
        except StorageError as e:
            return self._handle_error(e, "get_transaction")
        found = next((tx for tx in transactions if tx.id == transaction_id), None)
        return self._create_result(True, found, None, "get_transaction")

    async def save_transaction(self, transaction: Transaction) -> StorageResult[Transaction]:
        """Insert, or replace the row with the same id."""
        try:
            transactions = await self._load()
            updated = [tx for tx in transactions if tx.id != transaction.id]
            updated.append(transaction)
            self._write(updated, self._preserved_rows())
        except StorageError as e:
            return self._handle_error(e, "save_transaction")
        return self._create_result(True, transaction, None, "save_transaction")

    async def save_transactions(
        self,
        transactions: list[Transaction],
    ) -> StorageResult[list[Transaction]]:
        """Replace the readable set with ``transactions``."""
        try:
            # Loading first lets a pending migration run before the overwrite
            await self._load()
            self._write(transactions, self._preserved_rows())
        except StorageError as e:
            return self._handle_error(e, "save_transactions")
        return self._create_result(True, transactions, None, "save_transactions")

    async def delete_transaction(self, transaction_id: str) -> StorageResult[None]:
        try:
            transactions = await self._load()
            remaining = [tx for tx in transactions if tx.id != transaction_id]
            if len(remaining) == len(transactions):
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            self._write(remaining, self._preserved_rows())
        except StorageError as e:
            return self._handle_error(e, "delete_transaction")
        return self._create_result(True, None, None, "delete_transaction")

    async def remove_transactions(self, transaction_ids: list[str]) -> StorageResult[None]:
        """
        Remove the given ids, keeping every other row.

        Unreadable rows are written back untouched, so after a backend
        transfer they stay on the device instead of disappearing.
        """
        removed = set(transaction_ids)
        try:
            transactions = await self._load()
            remaining = [tx for tx in transactions if tx.id not in removed]
            self._write(remaining, self._preserved_rows())
        except StorageError as e:
            return self._handle_error(e, "remove_transactions")
        return self._create_result(True, None, None, "remove_transactions")

    async def clear_transactions(self) -> StorageResult[None]:
        """Remove the transaction set and the version record."""
        try:
            self.store.remove(self.transactions_key)
            self.migration_engine.version_ledger.clear()
        except StorageError as e:
            return self._handle_error(e, "clear_transactions")
        logger.info("local_transactions_cleared")
        return self._create_result(True, None, None, "clear_transactions")
