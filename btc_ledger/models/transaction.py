"""
Core Transaction Models for the BTC Ledger

These models define the schemas for every ledger entry flowing through the
system. They are designed to:
1. Survive round trips through both storage backends without losing fields
2. Accept legacy persisted data (camelCase keys, float amounts, naive dates)
3. Be serializable for storage and logging

DESIGN DECISION: The Transaction model is deliberately permissive about
amounts. Legacy data may contain zero or negative values, and the validation
report must be able to SEE those rows. Rejecting them at parse time would
silently drop financial records, which is worse than reporting them.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """
    Known transaction types.

    The stored ``type`` field stays a free string so that exchange exports
    with unexpected labels still import. This enum names the values the
    ledger understands.
    """
    # Acquisitions
    PURCHASE = "Purchase"
    BUY = "Buy"
    TRADE = "Trade"

    # Self-custody movements
    WITHDRAWAL = "Withdrawal"
    TRANSFER = "Transfer"

    # Disposals
    SALE = "Sale"
    SELL = "Sell"

    @classmethod
    def from_label(cls, label: str) -> Optional["TransactionType"]:
        """Case-insensitive lookup, None for unknown labels."""
        normalized = (label or "").strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        return None

    @property
    def is_acquisition(self) -> bool:
        return self in (TransactionType.PURCHASE, TransactionType.BUY, TransactionType.TRADE)

    @property
    def is_disposal(self) -> bool:
        return self in (TransactionType.SALE, TransactionType.SELL)

    @property
    def is_self_custody_movement(self) -> bool:
        return self in (TransactionType.WITHDRAWAL, TransactionType.TRANSFER)


def is_non_monetary_type(label: str) -> bool:
    """Withdrawals and transfers may carry a zero USD amount and price."""
    known = TransactionType.from_label(label)
    return known is not None and known.is_self_custody_movement


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# IMPORT-LAYER INPUT
# =============================================================================

class TransactionData(BaseModel):
    """
    Raw parsed row handed over by the CSV/import layer.

    This is the only input the identity generator needs. Everything else
    about a transaction (custody metadata, notes) does not affect identity.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
    )

    exchange: str = Field(
        ...,
        min_length=1,
        description="Exchange or wallet the row came from"
    )
    date: datetime = Field(
        ...,
        description="When the transaction happened"
    )
    usd_amount: Decimal = Field(
        ...,
        alias="usdAmount",
        description="USD value of the transaction"
    )
    btc_amount: Decimal = Field(
        ...,
        alias="btcAmount",
        description="BTC quantity of the transaction"
    )
    type: str = Field(
        ...,
        description="Transaction type label as exported"
    )
    price: Optional[Decimal] = Field(
        default=None,
        description="BTC price in USD at transaction time"
    )
    reference: Optional[str] = Field(
        default=None,
        description="Exchange-native transaction identifier"
    )

    @field_validator('date')
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class Transaction(BaseModel):
    """
    A single ledger entry.

    CRITICAL: ``id`` is a pure function of either ``reference`` or the tuple
    (exchange, date-to-second, type, usd_amount, btc_amount, price). Two rows
    with the same tuple collapse to the same id. That is how re-importing the
    same CSV stays idempotent.

    Unknown keys found in persisted data are kept (extra="allow") so that a
    load/save cycle never strips fields written by newer or older versions.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="allow",
    )

    # Identity
    id: str = Field(
        default="",
        description="Stable transaction identifier"
    )

    # Required content (legacy rows may still miss some of these)
    date: Optional[datetime] = Field(
        default=None,
        description="When the transaction happened (UTC)"
    )
    exchange: str = Field(
        default="",
        description="Exchange or wallet name"
    )
    type: str = Field(
        default="",
        description="Transaction type label"
    )
    usd_amount: Decimal = Field(
        default=Decimal("0"),
        alias="usdAmount",
        description="USD amount, zero only for non-monetary events"
    )
    btc_amount: Decimal = Field(
        default=Decimal("0"),
        alias="btcAmount",
        description="BTC amount, 8-decimal precision"
    )
    price: Decimal = Field(
        default=Decimal("0"),
        description="BTC price in USD, may be zero for withdrawals"
    )
    reference: Optional[str] = Field(
        default=None,
        description="Exchange-native transaction identifier"
    )

    # Custody and fee metadata
    destination_wallet: Optional[str] = Field(
        default=None,
        alias="destinationWallet",
        description="Wallet name or address the bitcoin was sent to"
    )
    network_fee: Optional[Decimal] = Field(
        default=None,
        alias="networkFee",
        description="Network fee in BTC"
    )
    network_fee_usd: Optional[Decimal] = Field(
        default=None,
        alias="networkFeeUsd",
        description="Network fee in USD at transaction time"
    )
    is_self_custody: Optional[bool] = Field(
        default=None,
        alias="isSelfCustody",
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    is_taxable: Optional[bool] = Field(
        default=None,
        alias="isTaxable",
    )

    @field_validator('date')
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        return ensure_utc(v)

    @field_validator('price', 'usd_amount', 'btc_amount', mode='before')
    @classmethod
    def null_amount_is_zero(cls, v):
        """Legacy rows sometimes store null instead of 0."""
        return Decimal("0") if v is None else v

    @property
    def transaction_type(self) -> Optional[TransactionType]:
        return TransactionType.from_label(self.type)

    def to_transaction_data(self, reference: Optional[str] = None) -> TransactionData:
        """
        Rebuild identity input from stored content.

        Raises:
            ValueError: If date or exchange is missing (cannot identify the row)
        """
        if self.date is None:
            raise ValueError(f"transaction {self.id or '<no id>'} has no date")
        if not self.exchange:
            raise ValueError(f"transaction {self.id or '<no id>'} has no exchange")

        return TransactionData(
            exchange=self.exchange,
            date=self.date,
            usd_amount=self.usd_amount,
            btc_amount=self.btc_amount,
            type=self.type,
            price=self.price,
            reference=reference if reference is not None else self.reference,
        )

    def to_storage_dict(self) -> dict:
        """Serialize with the camelCase keys of the persisted layout."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MergeResult(BaseModel):
    """Outcome of merging two transaction collections. Not persisted."""

    merged: list[Transaction] = Field(default_factory=list)
    duplicate_count: int = Field(default=0, ge=0)
