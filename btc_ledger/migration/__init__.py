"""Storage versioning, backup and id migration."""

from btc_ledger.migration.backup import BackupManager
from btc_ledger.migration.engine import (
    MigrationEngine,
    RowMigrationError,
    migrate_row,
    reconstruct_reference,
)
from btc_ledger.migration.version_ledger import CURRENT_STORAGE_VERSION, VersionLedger

__all__ = [
    "BackupManager",
    "CURRENT_STORAGE_VERSION",
    "MigrationEngine",
    "RowMigrationError",
    "VersionLedger",
    "migrate_row",
    "reconstruct_reference",
]
