"""Tests for the pre-migration backup slot."""

import json

import pytest

from btc_ledger.migration.backup import BackupManager
from btc_ledger.migration.version_ledger import VersionLedger
from btc_ledger.models.migration import LedgerState
from btc_ledger.services.storage.interface import StorageError
from btc_ledger.services.storage.kv_store import InMemoryStore

from conftest import BACKUP_KEY, TRANSACTIONS_KEY, VERSION_KEY, make_transaction


class VersionClearFailingStore(InMemoryStore):
    """Store whose version key cannot be removed."""

    def remove(self, key: str) -> None:
        if key == VERSION_KEY:
            raise StorageError("disk unavailable")
        super().remove(key)


class UnreadableKeyStore(InMemoryStore):
    """Store whose reads of one key fail."""

    def __init__(self, unreadable_key: str):
        super().__init__()
        self.unreadable_key = unreadable_key

    def get(self, key: str):
        if key == self.unreadable_key:
            raise StorageError("read failed")
        return super().get(key)


class RollbackFailingStore(VersionClearFailingStore):
    """Accepts one write of the transaction set, rejects the next."""

    writes = 0

    def set(self, key: str, value: str) -> None:
        if key == TRANSACTIONS_KEY:
            self.writes += 1
            if self.writes > 1:
                raise StorageError("disk full")
        super().set(key, value)


LEGACY_ROWS = [
    {"id": "coinbase-1690000000000-0", "exchange": "Coinbase", "usdAmount": 10},
    {"id": "coinbase-1690000000000-1", "exchange": "Coinbase", "usdAmount": 20},
]


class TestBackupManager:
    """Tests for BackupManager."""

    def test_no_backup_info(self, backup_manager):
        info = backup_manager.get_info()
        assert not info.exists
        assert info.count is None

    def test_create_backup_and_info(self, backup_manager):
        assert backup_manager.create_backup(LEGACY_ROWS, 2)
        info = backup_manager.get_info()
        assert info.exists
        assert info.count == 2
        assert info.timestamp is not None

    def test_backup_keeps_rows_verbatim(self, store, backup_manager):
        rows = LEGACY_ROWS + ["not an object"]
        backup_manager.create_backup(rows)
        stored = json.loads(store.get(BACKUP_KEY))
        assert stored["transactions"] == rows
        assert stored["version"] == 1

    def test_backup_accepts_transactions(self, store, backup_manager):
        tx = make_transaction()
        backup_manager.create_backup([tx], 3)
        stored = json.loads(store.get(BACKUP_KEY))
        assert stored["transactions"][0]["id"] == tx.id

    def test_create_backup_never_raises(self):
        store = InMemoryStore(max_size_bytes=10)
        manager = BackupManager(store, VersionLedger(store, VERSION_KEY), BACKUP_KEY, TRANSACTIONS_KEY)
        assert manager.create_backup(LEGACY_ROWS) is False

    def test_restore_replaces_data_and_clears_version(self, store, backup_manager, version_ledger):
        backup_manager.create_backup(LEGACY_ROWS)
        store.set_json(TRANSACTIONS_KEY, [{"id": "coinbase-new"}])
        version_ledger.mark_current()

        result = backup_manager.restore()

        assert result.success
        assert result.count == 2
        assert store.get_json(TRANSACTIONS_KEY) == LEGACY_ROWS
        assert version_ledger.state() == LedgerState.ABSENT

    def test_restore_without_backup_changes_nothing(self, store, backup_manager, version_ledger):
        store.set_json(TRANSACTIONS_KEY, [{"id": "coinbase-new"}])
        version_ledger.mark_current()

        result = backup_manager.restore()

        assert not result.success
        assert result.error == "No backup found"
        assert store.get_json(TRANSACTIONS_KEY) == [{"id": "coinbase-new"}]
        assert version_ledger.state() == LedgerState.CURRENT

    def test_restore_with_corrupted_backup(self, store, backup_manager):
        store.set(BACKUP_KEY, "{oops")
        result = backup_manager.restore()
        assert not result.success
        assert "unreadable" in result.error
        assert not backup_manager.get_info().exists

    @pytest.mark.parametrize("previous", [None, [{"id": "coinbase-new"}]])
    def test_restore_rolls_back_when_version_clear_fails(self, previous):
        store = VersionClearFailingStore()
        ledger = VersionLedger(store, VERSION_KEY)
        manager = BackupManager(store, ledger, BACKUP_KEY, TRANSACTIONS_KEY)
        manager.create_backup(LEGACY_ROWS)
        if previous is not None:
            store.set_json(TRANSACTIONS_KEY, previous)

        result = manager.restore()

        assert not result.success
        assert "version record" in result.error
        assert store.get_json(TRANSACTIONS_KEY) == previous

    def test_restore_reports_rollback_failure(self):
        store = RollbackFailingStore()
        manager = BackupManager(store, VersionLedger(store, VERSION_KEY), BACKUP_KEY, TRANSACTIONS_KEY)
        manager.create_backup(LEGACY_ROWS)
        store.set_json(TRANSACTIONS_KEY, [{"id": "coinbase-new"}])
        store.writes = 0

        result = manager.restore()

        assert not result.success
        assert "rollback failed" in result.error

    def test_restore_when_current_data_unreadable(self):
        store = UnreadableKeyStore(TRANSACTIONS_KEY)
        manager = BackupManager(store, VersionLedger(store, VERSION_KEY), BACKUP_KEY, TRANSACTIONS_KEY)
        manager.create_backup(LEGACY_ROWS)

        result = manager.restore()

        assert not result.success
        assert "read failed" in result.error
