"""
Data Models Package

This package contains all Pydantic models used by the BTC Ledger.
All data flowing through the system must conform to these schemas.
"""

from btc_ledger.models.transaction import (
    MergeResult,
    Transaction,
    TransactionData,
    TransactionType,
    ensure_utc,
    is_non_monetary_type,
)
from btc_ledger.models.migration import (
    Backup,
    BackupInfo,
    LedgerState,
    MigrationResult,
    RestoreResult,
    ValidationIssue,
    ValidationReport,
    ValidationStats,
    VersionRecord,
)
from btc_ledger.models.storage import (
    AuthState,
    ProviderStatus,
    StorageProviderConfig,
    StorageProviderType,
    StorageResult,
    StorageStats,
    TransactionQuery,
    TransferSummary,
)
from btc_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "MergeResult",
    "Transaction",
    "TransactionData",
    "TransactionType",
    "ensure_utc",
    "is_non_monetary_type",
    # Migration models
    "Backup",
    "BackupInfo",
    "LedgerState",
    "MigrationResult",
    "RestoreResult",
    "ValidationIssue",
    "ValidationReport",
    "ValidationStats",
    "VersionRecord",
    # Storage contract
    "AuthState",
    "ProviderStatus",
    "StorageProviderConfig",
    "StorageProviderType",
    "StorageResult",
    "StorageStats",
    "TransactionQuery",
    "TransferSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
