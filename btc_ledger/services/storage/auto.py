"""
Auto-Switching Storage Facade

Callers talk to one provider; this facade decides where records live.

- Not authenticated (or remote unavailable): local store
- Authenticated with a user id: Google Sheets
- Auth still loading: keep whatever is active

When authentication arrives while local records exist, they are transferred
once: written to the remote backend through its merging ``save_transactions``
and removed locally only after the remote write succeeded AND the auth
signal that started the transfer is still the latest one.

DESIGN DECISION: There is no lock. Auth signals bump a generation counter
and settle for a short delay before anything is committed; a transfer that
finds a newer generation leaves local data in place. The remote merge is
idempotent, so a repeated transfer is harmless while a lost one is not
possible.

Any remote failure falls back to local transparently and marks the transfer
pending; it is retried on the next authentication signal.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional

from btc_ledger.audit.logger import AuditLogger, create_correlation_id
from btc_ledger.logging_setup import get_logger
from btc_ledger.models.storage import (
    AuthState,
    ProviderStatus,
    StorageProviderConfig,
    StorageProviderType,
    StorageResult,
    TransactionQuery,
    TransferSummary,
)
from btc_ledger.models.transaction import Transaction
from btc_ledger.services.storage.google_sheets import GoogleSheetsTransactionStorage
from btc_ledger.services.storage.interface import (
    BaseTransactionStorage,
    TransactionStorageInterface,
)
from btc_ledger.services.storage.local import LocalTransactionStorage


logger = get_logger(__name__)


class AutoStorageProvider(BaseTransactionStorage):
    """Routes every operation to the local or the remote provider."""

    provider_type = StorageProviderType.AUTO

    def __init__(
        self,
        local: LocalTransactionStorage,
        remote: Optional[GoogleSheetsTransactionStorage] = None,
        audit_logger: Optional[AuditLogger] = None,
        auth_settle_seconds: float = 0.5,
    ):
        super().__init__()
        self.local = local
        self.remote = remote
        self._audit = audit_logger or AuditLogger()
        self._settle_seconds = auth_settle_seconds

        self._active: TransactionStorageInterface = local
        self._auth = AuthState()
        self._enable_auth = True
        self._remote_ready = False
        self._generation = 0
        self._transfer_pending = False

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def active_provider_type(self) -> StorageProviderType:
        return self._active.provider_type

    @property
    def transfer_pending(self) -> bool:
        return self._transfer_pending

    @property
    def auth_state(self) -> AuthState:
        return self._auth

    def _remote_available(self) -> bool:
        return self.remote is not None and self._enable_auth and self._remote_ready

    async def _ensure_remote(self) -> None:
        """(Re)initialize the remote backend for an authenticated signal."""
        if self.remote is None or not self._enable_auth or self._remote_ready:
            return
        result = await self.remote.initialize(self._config)
        self._remote_ready = result.success
        if not result.success:
            error = result.error or "remote initialization failed"
            await self._audit.log_external_service_error(service="google_sheets", error_message=error)
            await self._fallback("initialize", error)

    async def _select_provider(self, auth: AuthState) -> None:
        previous = self._active
        if auth.has_identity and self._remote_available():
            self.remote.set_user(auth.user_id)
            self._active = self.remote
        else:
            self._active = self.local

        if self._active is not previous:
            await self._audit.log_provider_selected(
                provider=self._active.provider_type.value,
                is_authenticated=auth.is_authenticated,
            )

    async def _fallback(self, operation: str, error: str) -> None:
        self._active = self.local
        self._transfer_pending = True
        await self._audit.log_storage_fallback(operation=operation, error=error)

    # =========================================================================
    # AUTH SIGNALS AND TRANSFER
    # =========================================================================

    async def update_auth_state(self, auth: AuthState) -> Optional[TransferSummary]:
        """
        Handle a signal from the auth layer.

        Returns:
            The transfer summary when a transfer ran (or was superseded),
            otherwise None
        """
        self._generation += 1
        generation = self._generation
        self._auth = auth

        if auth.loading:
            logger.debug("auth_loading", generation=generation)
            return None

        if self._settle_seconds:
            await asyncio.sleep(self._settle_seconds)
        if generation != self._generation:
            logger.debug("auth_signal_superseded", generation=generation)
            return None

        if auth.has_identity:
            await self._ensure_remote()
        await self._select_provider(auth)

        if self._active is self.remote:
            return await self._transfer(generation)
        return None

    async def transfer_local_to_remote(self) -> TransferSummary:
        """Move local records to the remote backend for the current user."""
        if self._active is not self.remote:
            return TransferSummary()
        return await self._transfer(self._generation)

    def _still_current(self, generation: int, user_id: Optional[str]) -> bool:
        return (
            generation == self._generation
            and self._auth.has_identity
            and self._auth.user_id == user_id
            and self._active is self.remote
        )

    async def _transfer(self, generation: int) -> TransferSummary:
        user_id = self._auth.user_id
        local_result = await self.local.get_transactions()
        if not local_result.success:
            logger.error("transfer_local_read_failed", error=local_result.error)
            self._transfer_pending = True
            return TransferSummary(errors=1)

        local_transactions = local_result.data or []
        if not local_transactions:
            self._transfer_pending = False
            return TransferSummary()

        count = len(local_transactions)
        correlation_id = create_correlation_id()
        await self._audit.log_transfer_started(count=count, correlation_id=correlation_id)

        remote_result = await self.remote.save_transactions(local_transactions)
        if not remote_result.success:
            error = remote_result.error or "remote write failed"
            await self._audit.log_transfer_failed(
                count=count, error=error, correlation_id=correlation_id,
            )
            await self._fallback("transfer", error)
            return TransferSummary(errors=count)

        if not self._still_current(generation, user_id):
            self._transfer_pending = True
            await self._audit.log_transfer_superseded(count=count, correlation_id=correlation_id)
            return TransferSummary(transferred=count, superseded=True)

        cleared = await self.local.remove_transactions([tx.id for tx in local_transactions])
        self._transfer_pending = not cleared.success
        await self._audit.log_transfer_completed(
            count=count,
            local_cleared=cleared.success,
            correlation_id=correlation_id,
        )
        return TransferSummary(transferred=count, local_cleared=cleared.success)

    # =========================================================================
    # PROVIDER CONTRACT
    # =========================================================================

    async def _run(
        self,
        operation: str,
        call: Callable[[TransactionStorageInterface], Awaitable[StorageResult]],
    ) -> StorageResult:
        provider = self._active
        result = await call(provider)
        if provider is self.remote and not result.success:
            await self._fallback(operation, result.error or "remote operation failed")
            result = await call(self.local)
        return result

    async def initialize(
        self,
        config: Optional[StorageProviderConfig] = None,
    ) -> StorageResult[None]:
        config = config or StorageProviderConfig()
        self._config = config
        self._enable_auth = config.enable_auth
        if config.auth_settle_seconds is not None:
            self._settle_seconds = config.auth_settle_seconds

        local_result = await self.local.initialize(config)
        if not local_result.success:
            return self._create_result(False, None, local_result.error, "initialize")

        self._ready = True
        await self.update_auth_state(config.auth_state)
        logger.info(
            "storage_initialized",
            active_provider=self.active_provider_type.value,
            remote_configured=self.remote is not None,
        )
        return self._create_result(True, None, None, "initialize")

    async def get_status(self) -> StorageResult[ProviderStatus]:
        active_status = await self._active.get_status()
        inner = active_status.data
        status = ProviderStatus(
            provider=self.provider_type,
            is_healthy=bool(inner and inner.is_healthy),
            is_authenticated=self._auth.is_authenticated,
            transaction_count=inner.transaction_count if inner else None,
            active_provider=self.active_provider_type,
            transfer_pending=self._transfer_pending,
        )
        return self._create_result(True, status, active_status.error, "get_status")

    async def get_transactions(
        self,
        query: Optional[TransactionQuery] = None,
    ) -> StorageResult[list[Transaction]]:
        return await self._run("get_transactions", lambda p: p.get_transactions(query))

    async def get_transaction(self, transaction_id: str) -> StorageResult[Optional[Transaction]]:
        return await self._run("get_transaction", lambda p: p.get_transaction(transaction_id))

    async def save_transaction(self, transaction: Transaction) -> StorageResult[Transaction]:
        result = await self._run("save_transaction", lambda p: p.save_transaction(transaction))
        if result.success:
            await self._audit.log_transaction_saved(
                transaction_id=transaction.id,
                exchange=transaction.exchange,
                provider=self.active_provider_type.value,
            )
        return result

    async def save_transactions(
        self,
        transactions: list[Transaction],
    ) -> StorageResult[list[Transaction]]:
        return await self._run("save_transactions", lambda p: p.save_transactions(transactions))

    async def delete_transaction(self, transaction_id: str) -> StorageResult[None]:
        return await self._run("delete_transaction", lambda p: p.delete_transaction(transaction_id))

    async def clear_transactions(self) -> StorageResult[None]:
        """Clear the active backend, and local records too when remote is active."""
        result = await self._run("clear_transactions", lambda p: p.clear_transactions())
        if not result.success:
            return result

        if self._active is self.remote:
            local_result = await self.local.clear_transactions()
            if not local_result.success:
                return self._create_result(False, None, local_result.error, "clear_transactions")
            self._transfer_pending = False

        await self._audit.log_transactions_cleared(provider=self.active_provider_type.value)
        return self._create_result(True, None, None, "clear_transactions")

    async def dispose(self) -> None:
        await self.local.dispose()
        if self.remote is not None:
            await self.remote.dispose()
        self._ready = False
