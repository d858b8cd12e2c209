"""
Shared fixtures.

No real Google API calls in tests: the remote backend runs against an
in-memory worksheet that mimics the gspread calls we use.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from btc_ledger.audit.logger import AuditLogger
from btc_ledger.identity.generator import build_transaction
from btc_ledger.migration.backup import BackupManager
from btc_ledger.migration.engine import MigrationEngine
from btc_ledger.migration.version_ledger import VersionLedger
from btc_ledger.models.transaction import Transaction, TransactionData
from btc_ledger.services.storage.auto import AutoStorageProvider
from btc_ledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    TRANSACTION_COLUMNS,
    GoogleSheetsTransactionStorage,
)
from btc_ledger.services.storage.interface import ConnectionError
from btc_ledger.services.storage.kv_store import InMemoryStore
from btc_ledger.services.storage.local import LocalTransactionStorage


TRANSACTIONS_KEY = "btc-tracker:transactions"
VERSION_KEY = "btc-tracker:storage-version"
BACKUP_KEY = "btc-tracker:backup-v1"

BASE_DATE = datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc)


def make_transaction(
    exchange: str = "Coinbase",
    minutes: int = 0,
    usd: str = "100",
    btc: str = "0.001",
    tx_type: str = "Purchase",
    price: Optional[str] = "100000",
    reference: Optional[str] = None,
    **metadata,
) -> Transaction:
    """Build a transaction with its stable id."""
    data = TransactionData(
        exchange=exchange,
        date=BASE_DATE + timedelta(minutes=minutes),
        usd_amount=Decimal(usd),
        btc_amount=Decimal(btc),
        type=tx_type,
        price=Decimal(price) if price is not None else None,
        reference=reference,
    )
    return build_transaction(data, **metadata)


class FakeWorksheet:
    """The subset of gspread.Worksheet used by the Sheets storage."""

    def __init__(self, header: list[str], row_count: int = 1000):
        self.rows: list[list[str]] = [list(header)]
        self.row_count = row_count
        self.fail_with: Optional[Exception] = None
        self.update_calls = 0

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def get_all_values(self) -> list[list[str]]:
        self._check()
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self._check()
        self.rows.append([str(v) for v in row])

    def update(self, values, range_name):
        self._check()
        self.update_calls += 1
        start = int(range_name[1:]) - 1
        for offset, row in enumerate(values):
            index = start + offset
            while len(self.rows) <= index:
                self.rows.append([])
            self.rows[index] = [str(v) for v in row]

    def delete_rows(self, index: int):
        self._check()
        del self.rows[index - 1]

    def add_rows(self, count: int):
        self.row_count += count


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    def __init__(self):
        self.transactions_sheet = FakeWorksheet(TRANSACTION_COLUMNS)
        self.audit_sheet = FakeWorksheet(AUDIT_COLUMNS)
        self.available = True

    def _check(self):
        if not self.available:
            raise ConnectionError("Google Sheets unreachable")

    def get_transactions_sheet(self) -> FakeWorksheet:
        self._check()
        return self.transactions_sheet

    def get_audit_sheet(self) -> FakeWorksheet:
        self._check()
        return self.audit_sheet


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def version_ledger(store) -> VersionLedger:
    return VersionLedger(store, VERSION_KEY)


@pytest.fixture
def backup_manager(store, version_ledger) -> BackupManager:
    return BackupManager(store, version_ledger, BACKUP_KEY, TRANSACTIONS_KEY)


@pytest.fixture
def engine(version_ledger, backup_manager) -> MigrationEngine:
    return MigrationEngine(version_ledger, backup_manager)


@pytest.fixture
def local_storage(store, engine) -> LocalTransactionStorage:
    return LocalTransactionStorage(store, engine, TRANSACTIONS_KEY, AuditLogger())


@pytest.fixture
def sheets_client() -> FakeSheetsClient:
    return FakeSheetsClient()


@pytest.fixture
def remote_storage(sheets_client) -> GoogleSheetsTransactionStorage:
    return GoogleSheetsTransactionStorage(sheets_client)


@pytest.fixture
def auto_provider(local_storage, remote_storage) -> AutoStorageProvider:
    return AutoStorageProvider(
        local_storage,
        remote_storage,
        audit_logger=AuditLogger(),
        auth_settle_seconds=0,
    )
