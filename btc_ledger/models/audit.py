"""
Audit Models for the BTC Ledger

Every operation that changes which records exist, or where they live, is
logged for audit purposes:
1. Migrations and their row-level failures
2. Backups and restores
3. Backend transfers and fallbacks
4. Saves, merges and clears

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from btc_ledger.models.migration import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Migration
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_FAILED = "migration_failed"

    # Backup
    BACKUP_RESTORED = "backup_restored"
    RESTORE_FAILED = "restore_failed"

    # Validation
    VALIDATION_ISSUES_FOUND = "validation_issues_found"

    # Persistence
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTIONS_MERGED = "transactions_merged"
    TRANSACTIONS_CLEARED = "transactions_cleared"

    # Provider switching
    PROVIDER_SELECTED = "provider_selected"
    STORAGE_FALLBACK = "storage_fallback"
    TRANSFER_STARTED = "transfer_started"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_FAILED = "transfer_failed"
    TRANSFER_SUPERSEDED = "transfer_superseded"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Transaction ids are strings, so ``entity_id`` is a string too.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'backup', 'provider')"
    )
    entity_id: Optional[str] = None
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one backend transfer)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.migration_completed(migrated_count=10, ...)
        event = AuditEventBuilder.transfer_failed(count=3, error="...", ...)
    """

    @staticmethod
    def migration_completed(
        migrated_count: int,
        error_count: int,
        duplicates_removed: int,
        backup_created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        severity = AuditSeverity.WARNING if error_count else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            severity=severity,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description=(
                f"Migration completed: {migrated_count} migrated, "
                f"{error_count} errors, {duplicates_removed} duplicates removed"
            ),
            details={
                "migrated_count": migrated_count,
                "error_count": error_count,
                "duplicates_removed": duplicates_removed,
                "backup_created": backup_created,
            },
        )

    @staticmethod
    def migration_failed(
        errors: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description="Migration failed",
            error_message="; ".join(errors)[:1000] if errors else None,
            details={"errors": errors},
        )

    @staticmethod
    def backup_restored(
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_RESTORED,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Backup restored: {count} transactions",
            details={"count": count},
            is_user_action=True,
        )

    @staticmethod
    def restore_failed(
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup restore failed",
            error_message=error,
            is_user_action=True,
        )

    @staticmethod
    def validation_issues_found(
        issue_count: int,
        error_count: int,
        stats: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_ISSUES_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description=f"Validation found {issue_count} issues ({error_count} errors)",
            details={
                "issue_count": issue_count,
                "error_count": error_count,
                "stats": stats,
            },
        )

    @staticmethod
    def transaction_saved(
        transaction_id: str,
        exchange: str,
        provider: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {transaction_id}",
            details={"exchange": exchange, "provider": provider},
            is_user_action=True,
        )

    @staticmethod
    def transactions_merged(
        incoming_count: int,
        duplicate_count: int,
        total_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_MERGED,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description=(
                f"Merged {incoming_count} transactions "
                f"({duplicate_count} duplicates), {total_count} total"
            ),
            details={
                "incoming_count": incoming_count,
                "duplicate_count": duplicate_count,
                "total_count": total_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def transactions_cleared(
        provider: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description=f"All transactions cleared from {provider}",
            details={"provider": provider},
            is_user_action=True,
        )

    @staticmethod
    def provider_selected(
        provider: str,
        is_authenticated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROVIDER_SELECTED,
            entity_type="provider",
            entity_id=provider,
            correlation_id=correlation_id,
            description=f"Active storage provider: {provider}",
            details={"is_authenticated": is_authenticated},
        )

    @staticmethod
    def storage_fallback(
        operation: str,
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type="provider",
            correlation_id=correlation_id,
            description=f"Remote storage unavailable during {operation}, using local",
            error_message=error,
            details={"operation": operation},
        )

    @staticmethod
    def transfer_started(
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_STARTED,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description=f"Transferring {count} local transactions to remote storage",
            details={"count": count},
        )

    @staticmethod
    def transfer_completed(
        count: int,
        local_cleared: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description=f"Transferred {count} transactions to remote storage",
            details={"count": count, "local_cleared": local_cleared},
        )

    @staticmethod
    def transfer_failed(
        count: int,
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description=f"Transfer of {count} transactions failed; local data kept",
            error_message=error,
            details={"count": count},
        )

    @staticmethod
    def transfer_superseded(
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_SUPERSEDED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction_set",
            correlation_id=correlation_id,
            description="Auth state changed during transfer; local data kept",
            details={"count": count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
