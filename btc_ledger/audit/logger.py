"""
Audit Logger

DESIGN DECISION: Every operation that changes which records exist, or where
they live, is logged. This provides:
1. Traceability of migrations, restores and backend transfers
2. Debugging capability when a user reports missing or doubled records
3. A history the user can inspect in the AuditLog sheet

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events (e.g. one transfer)
"""

from typing import Optional
from uuid import UUID, uuid4

from btc_ledger.logging_setup import get_logger
from btc_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from btc_ledger.models.migration import MigrationResult, ValidationReport
from btc_ledger.services.storage.interface import AuditStorageInterface


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. An audit storage backend such as Google Sheets (when configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence must not break the operation being audited
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_migration(
        self,
        result: MigrationResult,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of a migration run."""
        if result.success:
            event = AuditEventBuilder.migration_completed(
                migrated_count=result.migrated_count,
                error_count=result.error_count,
                duplicates_removed=result.duplicates_removed,
                backup_created=result.backup_created,
                correlation_id=correlation_id,
            )
        else:
            event = AuditEventBuilder.migration_failed(
                errors=result.errors,
                correlation_id=correlation_id,
            )
        await self.log(event)

    async def log_validation_report(
        self,
        report: ValidationReport,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a validation report, but only when it found something."""
        if not report.issues:
            return
        event = AuditEventBuilder.validation_issues_found(
            issue_count=len(report.issues),
            error_count=report.error_count,
            stats=report.stats.model_dump(),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_restore(
        self,
        success: bool,
        count: int = 0,
        error: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        if success:
            event = AuditEventBuilder.backup_restored(count=count, correlation_id=correlation_id)
        else:
            event = AuditEventBuilder.restore_failed(
                error=error or "unknown error",
                correlation_id=correlation_id,
            )
        await self.log(event)

    async def log_transaction_saved(
        self,
        transaction_id: str,
        exchange: str,
        provider: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            exchange=exchange,
            provider=provider,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_merged(
        self,
        incoming_count: int,
        duplicate_count: int,
        total_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_merged(
            incoming_count=incoming_count,
            duplicate_count=duplicate_count,
            total_count=total_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_cleared(
        self,
        provider: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_cleared(
            provider=provider,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_provider_selected(
        self,
        provider: str,
        is_authenticated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.provider_selected(
            provider=provider,
            is_authenticated=is_authenticated,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_fallback(
        self,
        operation: str,
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a remote failure that was answered from local storage."""
        event = AuditEventBuilder.storage_fallback(
            operation=operation,
            error=error,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_started(
        self,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transfer_started(count=count, correlation_id=correlation_id)
        await self.log(event)

    async def log_transfer_completed(
        self,
        count: int,
        local_cleared: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transfer_completed(
            count=count,
            local_cleared=local_cleared,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_failed(
        self,
        count: int,
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transfer_failed(
            count=count,
            error=error,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_superseded(
        self,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transfer_superseded(count=count, correlation_id=correlation_id)
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step operation (e.g. a backend
    transfer). Pass it through all subsequent operations.
    """
    return uuid4()
