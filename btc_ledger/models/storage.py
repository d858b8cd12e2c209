"""
Storage Contract Models

Every storage provider (local, remote, and the auto-switching facade) speaks
the same result contract: ``{success, data?, error?}``. Nothing about the
remote protocol leaks past this boundary.
"""

from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from btc_ledger.models.migration import utc_now


T = TypeVar("T")


class StorageProviderType(str, Enum):
    """Available storage provider types."""
    LOCAL = "local"
    GOOGLE_SHEETS = "google_sheets"
    AUTO = "auto"


class StorageResultMetadata(BaseModel):
    operation: str = "unknown"
    timestamp: datetime = Field(default_factory=utc_now)
    provider: StorageProviderType


class StorageResult(BaseModel, Generic[T]):
    """
    Result of a storage operation.

    Providers never raise across their public methods; failures come back
    as ``success=False`` with a human-readable ``error``.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    metadata: Optional[StorageResultMetadata] = None


class AuthState(BaseModel):
    """
    Authentication signal supplied by the auth layer.

    ``loading`` means the auth layer has not settled yet; the facade keeps
    its current backend until it has.
    """

    is_authenticated: bool = False
    user_id: Optional[str] = None
    loading: bool = False

    @property
    def has_identity(self) -> bool:
        return self.is_authenticated and bool(self.user_id)


class StorageProviderConfig(BaseModel):
    """Configuration passed to ``initialize``."""

    enable_auth: bool = Field(
        default=True,
        description="Allow switching to the remote backend when authenticated"
    )
    auth_state: AuthState = Field(default_factory=AuthState)
    auth_settle_seconds: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Override for the auth debounce delay"
    )


class TransactionQuery(BaseModel):
    """Filtering, sorting and pagination for ``get_transactions``."""

    exchange: Optional[str] = None
    type: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None

    sort_by: Optional[str] = Field(
        default=None,
        pattern="^(date|amount|exchange|type)$",
    )
    sort_order: str = Field(
        default="asc",
        pattern="^(asc|desc)$",
    )

    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    only_taxable_events: bool = False


class ProviderStatus(BaseModel):
    provider: StorageProviderType
    is_healthy: bool
    is_authenticated: bool = False
    transaction_count: Optional[int] = None
    active_provider: Optional[StorageProviderType] = None
    transfer_pending: bool = False
    checked_at: datetime = Field(default_factory=utc_now)


class StorageStats(BaseModel):
    total_transactions: int = 0
    oldest_transaction: Optional[datetime] = None
    newest_transaction: Optional[datetime] = None
    transactions_by_exchange: dict[str, int] = Field(default_factory=dict)
    transactions_by_type: dict[str, int] = Field(default_factory=dict)


class TransferSummary(BaseModel):
    """Outcome of moving local records into the remote backend."""

    transferred: int = 0
    errors: int = 0
    local_cleared: bool = False
    superseded: bool = False
