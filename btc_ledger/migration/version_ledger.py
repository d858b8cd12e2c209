"""
Storage Version Ledger

Tracks the schema version of the persisted transaction set. The migration
engine runs only while the ledger reports ABSENT or STALE, which makes a
migration safe to trigger from several contexts at once: whoever finishes
first stamps CURRENT and the rest become no-ops.
"""

from typing import Optional

from pydantic import ValidationError

from btc_ledger.logging_setup import get_logger
from btc_ledger.models.migration import LedgerState, VersionRecord
from btc_ledger.services.storage.interface import CorruptedDataError, StorageError
from btc_ledger.services.storage.kv_store import KeyValueStore


logger = get_logger(__name__)

# Version 3: reference-based and content-hashed stable ids
CURRENT_STORAGE_VERSION = 3


class VersionLedger:
    """Reads and writes the version record under a single store key."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "btc-tracker:storage-version",
        current_version: int = CURRENT_STORAGE_VERSION,
    ):
        self.store = store
        self.key = key
        self.current_version = current_version

    def get_version(self) -> Optional[VersionRecord]:
        """
        Returns:
            The stored record, or None when absent or unreadable. An
            unreadable record reads as absent, so migration runs again.
        """
        try:
            raw = self.store.get_json(self.key)
        except CorruptedDataError as e:
            logger.warning("version_record_corrupted", key=self.key, error=str(e))
            return None
        except StorageError as e:
            logger.warning("version_record_unreadable", key=self.key, error=str(e))
            return None

        if raw is None:
            return None

        try:
            return VersionRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning("version_record_invalid", key=self.key, error=str(e))
            return None

    def state(self) -> LedgerState:
        record = self.get_version()
        if record is None:
            return LedgerState.ABSENT
        if record.version < self.current_version:
            return LedgerState.STALE
        return LedgerState.CURRENT

    def needs_migration(self) -> bool:
        return self.state() != LedgerState.CURRENT

    def set_version(self, record: VersionRecord) -> None:
        """
        Raises:
            StorageError: If the store rejects the write
        """
        self.store.set_json(self.key, record.model_dump(mode="json", by_alias=True))
        logger.info(
            "storage_version_set",
            version=record.version,
            previous_version=record.previous_version,
        )

    def mark_current(self) -> VersionRecord:
        """Stamp the current version, keeping the prior one as previous_version."""
        prior = self.get_version()
        record = VersionRecord(
            version=self.current_version,
            previous_version=prior.version if prior else 1,
        )
        self.set_version(record)
        return record

    def clear(self) -> None:
        self.store.remove(self.key)
