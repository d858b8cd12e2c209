"""
Storage Services Package

Provides the storage contract (interfaces, result helpers, exceptions) and
the on-device key-value stores.

Providers live in their own modules and are imported from there:
``local`` (key-value store), ``google_sheets`` (remote backend) and
``auto`` (the facade switching between them). They depend on the migration
and audit packages, which in turn depend on this package.
"""

from btc_ledger.services.storage.interface import (
    AuditStorageInterface,
    BaseTransactionStorage,
    ConnectionError,
    CorruptedDataError,
    DuplicateError,
    NotAuthenticatedError,
    NotFoundError,
    StorageError,
    StorageQuotaExceededError,
    TransactionStorageInterface,
)
from btc_ledger.services.storage.kv_store import (
    InMemoryStore,
    JSONFileStore,
    KeyValueStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BaseTransactionStorage",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "CorruptedDataError",
    "DuplicateError",
    "NotAuthenticatedError",
    "NotFoundError",
    "StorageError",
    "StorageQuotaExceededError",
    # Key-value stores
    "InMemoryStore",
    "JSONFileStore",
    "KeyValueStore",
]
