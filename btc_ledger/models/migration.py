"""
Migration, Backup and Validation Models

These models describe the persisted bookkeeping around the transaction set:
the storage version marker, the single backup slot, and the reports the
migration engine and validator hand back to callers.

DESIGN DECISION: Every operation that can partially fail returns one of
these structured results instead of raising. Callers decide whether to show
a message, retry or fall back.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from btc_ledger.models.transaction import Transaction


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# VERSION LEDGER
# =============================================================================

class LedgerState(str, Enum):
    """
    State of the persisted version marker.

    ABSENT and STALE both require migration. CURRENT does not.
    """
    ABSENT = "absent"
    STALE = "stale"
    CURRENT = "current"


class VersionRecord(BaseModel):
    """Schema version of the persisted transaction set."""
    model_config = ConfigDict(populate_by_name=True)

    version: int = Field(..., ge=1)
    migrated_at: datetime = Field(
        default_factory=utc_now,
        alias="migratedAt",
    )
    previous_version: Optional[int] = Field(
        default=None,
        alias="previousVersion",
    )


# =============================================================================
# BACKUP
# =============================================================================

class Backup(BaseModel):
    """
    Snapshot of the pre-migration transaction set.

    Single slot: each migration overwrites the previous backup. Rows are
    kept exactly as they were persisted, unparsed, so a restore puts back
    even rows the migration could not read.
    """

    transactions: list[Any] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)


class BackupInfo(BaseModel):
    """Backup summary for display."""

    exists: bool
    timestamp: Optional[datetime] = None
    count: Optional[int] = None


class RestoreResult(BaseModel):
    success: bool
    count: int = 0
    error: Optional[str] = None


# =============================================================================
# MIGRATION
# =============================================================================

class MigrationResult(BaseModel):
    """
    Aggregate result of a migration run.

    ``success`` is True when the orchestration completed, even with row-level
    errors. It is False only when the run itself failed (e.g. the version
    record could not be written).
    """

    success: bool = False
    migrated_count: int = 0
    error_count: int = 0
    errors: list[str] = Field(default_factory=list)
    duplicates_removed: int = 0
    backup_created: bool = False

    # The migrated, deduplicated set (empty when nothing ran)
    transactions: list[Transaction] = Field(default_factory=list)
    # Raw rows that could not be migrated, kept verbatim
    failed_rows: list[Any] = Field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return (not self.success) or self.error_count > 0 or self.duplicates_removed > 0


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single integrity issue found in a transaction set."""

    transaction_id: Optional[str] = Field(
        default=None,
        description="Id of the offending transaction, if it has one"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing_id', 'duplicate_id', 'invalid_amount')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
    )


class ValidationStats(BaseModel):
    total_transactions: int = 0
    reference_based_ids: int = 0
    hash_based_ids: int = 0
    unique_ids: int = 0


class ValidationReport(BaseModel):
    """
    Advisory report over a transaction set.

    Never used to mutate data. Auto-correcting financial records silently
    is not acceptable, so issues are only reported.
    """

    valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    stats: ValidationStats = Field(default_factory=ValidationStats)
    validated_at: datetime = Field(default_factory=utc_now)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
