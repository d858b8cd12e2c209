"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap between the on-device store and the remote store at runtime
2. Use in-memory storage for testing
3. Put an auto-switching facade in front of both backends
4. Keep business logic decoupled from storage implementation

Every public provider method returns a StorageResult and never raises.
The exceptions below are raised INSIDE providers and translated into
failed results at the public boundary.
"""

from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Optional

from btc_ledger.logging_setup import get_logger
from btc_ledger.models.audit import AuditEvent
from btc_ledger.models.storage import (
    ProviderStatus,
    StorageProviderConfig,
    StorageProviderType,
    StorageResult,
    StorageResultMetadata,
    StorageStats,
    TransactionQuery,
)
from btc_ledger.models.transaction import Transaction


logger = get_logger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class StorageQuotaExceededError(StorageError):
    """The write would exceed the store's size quota."""
    pass


class CorruptedDataError(StorageError):
    """Persisted data could not be parsed."""
    pass


class NotAuthenticatedError(StorageError):
    """The backend needs an authenticated identity for this operation."""
    pass


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage providers.

    Any backend (on-device store, Google Sheets, the auto-switching facade)
    must implement these methods.
    """

    provider_type: StorageProviderType

    @abstractmethod
    async def initialize(
        self,
        config: Optional[StorageProviderConfig] = None,
    ) -> StorageResult[None]:
        """Prepare the provider for use."""
        pass

    @abstractmethod
    def is_ready(self) -> bool:
        pass

    @abstractmethod
    async def get_status(self) -> StorageResult[ProviderStatus]:
        pass

    @abstractmethod
    async def get_transactions(
        self,
        query: Optional[TransactionQuery] = None,
    ) -> StorageResult[list[Transaction]]:
        """
        Get all transactions for the current user.

        Args:
            query: Optional filtering, sorting and pagination
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> StorageResult[Optional[Transaction]]:
        """Get one transaction by id (data is None when absent)."""
        pass

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> StorageResult[Transaction]:
        """Insert or replace a single transaction."""
        pass

    @abstractmethod
    async def save_transactions(
        self,
        transactions: list[Transaction],
    ) -> StorageResult[list[Transaction]]:
        """Persist a full transaction set."""
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> StorageResult[None]:
        pass

    @abstractmethod
    async def clear_transactions(self) -> StorageResult[None]:
        """Remove every transaction of the current user."""
        pass

    @abstractmethod
    async def get_stats(self) -> StorageResult[StorageStats]:
        pass

    @abstractmethod
    async def dispose(self) -> None:
        pass


class BaseTransactionStorage(TransactionStorageInterface):
    """Shared result construction and error handling for providers."""

    def __init__(self):
        self._ready = False
        self._config: Optional[StorageProviderConfig] = None

    def is_ready(self) -> bool:
        return self._ready

    def _create_result(
        self,
        success: bool,
        data: Any = None,
        error: Optional[str] = None,
        operation: str = "unknown",
    ) -> StorageResult:
        return StorageResult(
            success=success,
            data=data,
            error=error,
            metadata=StorageResultMetadata(
                operation=operation,
                provider=self.provider_type,
            ),
        )

    def _handle_error(self, error: BaseException, operation: str) -> StorageResult:
        logger.warning(
            "storage_operation_failed",
            provider=self.provider_type.value,
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        return self._create_result(False, None, str(error) or type(error).__name__, operation)

    async def get_stats(self) -> StorageResult[StorageStats]:
        result = await self.get_transactions()
        if not result.success:
            return self._create_result(False, None, result.error, "get_stats")

        transactions = result.data or []
        dates = [tx.date for tx in transactions if tx.date is not None]
        stats = StorageStats(
            total_transactions=len(transactions),
            oldest_transaction=min(dates) if dates else None,
            newest_transaction=max(dates) if dates else None,
            transactions_by_exchange=dict(Counter(tx.exchange for tx in transactions)),
            transactions_by_type=dict(Counter(tx.type for tx in transactions)),
        )
        return self._create_result(True, stats, None, "get_stats")

    async def dispose(self) -> None:
        self._ready = False


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass
