"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the remote (synced) backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: a full-set write puts the new rows in place first and
  blanks out leftover rows afterwards, so an interrupted write never leaves
  the sheet empty
- Limited query capabilities (we filter in Python)

All users share one worksheet; every row carries the owning ``user_id``.
"""

import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from btc_ledger.config import GoogleSheetsSettings, get_settings
from btc_ledger.dedup.merger import merge
from btc_ledger.logging_setup import get_logger
from btc_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from btc_ledger.models.migration import utc_now
from btc_ledger.models.storage import (
    ProviderStatus,
    StorageProviderConfig,
    StorageProviderType,
    StorageResult,
    TransactionQuery,
)
from btc_ledger.models.transaction import Transaction
from btc_ledger.queries.filters import apply_query
from btc_ledger.services.storage.interface import (
    AuditStorageInterface,
    BaseTransactionStorage,
    ConnectionError,
    NotAuthenticatedError,
    NotFoundError,
    StorageError,
)


logger = get_logger(__name__)


# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "user_id",
    "id",
    "date",
    "exchange",
    "type",
    "usd_amount",
    "btc_amount",
    "price",
    "reference",
    "destination_wallet",
    "network_fee",
    "network_fee_usd",
    "is_self_custody",
    "notes",
    "is_taxable",
    "extra_json",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Sheet API calls are retried on API errors (quota, 5xx) only
sheets_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except (ValueError, gspread.exceptions.GSpreadException) as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 1000,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000,
        )


def _cell(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _optional_decimal(value: Optional[Decimal]) -> str:
    return str(value) if value is not None else ""


def _optional_bool(value: Optional[bool]) -> str:
    return str(value) if value is not None else ""


def _parse_bool(value: str) -> Optional[bool]:
    return value.lower() == "true" if value else None


class GoogleSheetsTransactionStorage(BaseTransactionStorage):
    """
    Google Sheets implementation of transaction storage.

    Transactions are stored as rows, one transaction per row, scoped by
    the authenticated user's id. Fields the model does not know about are
    kept in ``extra_json`` so nothing is lost in a round trip.
    """

    provider_type = StorageProviderType.GOOGLE_SHEETS

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        user_id: Optional[str] = None,
    ):
        super().__init__()
        self._client = client or GoogleSheetsClient()
        self._user_id = user_id

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def set_user(self, user_id: Optional[str]) -> None:
        self._user_id = user_id

    def _require_user(self) -> str:
        if not self._user_id:
            raise NotAuthenticatedError("Remote storage requires an authenticated user")
        return self._user_id

    # =========================================================================
    # ROW CONVERSION
    # =========================================================================

    def _transaction_to_row(self, user_id: str, tx: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            user_id,
            tx.id,
            tx.date.isoformat() if tx.date else "",
            tx.exchange,
            tx.type,
            str(tx.usd_amount),
            str(tx.btc_amount),
            str(tx.price),
            tx.reference or "",
            tx.destination_wallet or "",
            _optional_decimal(tx.network_fee),
            _optional_decimal(tx.network_fee_usd),
            _optional_bool(tx.is_self_custody),
            tx.notes or "",
            _optional_bool(tx.is_taxable),
            json.dumps(tx.model_extra, default=str) if tx.model_extra else "",
            utc_now().isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """
        Convert a spreadsheet row to a Transaction.

        Raises:
            ValueError: If a cell cannot be parsed
        """
        extra = json.loads(_cell(row, 15)) if _cell(row, 15) else {}
        if not isinstance(extra, dict):
            extra = {}
        extra = {k: v for k, v in extra.items() if k not in Transaction.model_fields}
        try:
            network_fee = Decimal(_cell(row, 10)) if _cell(row, 10) else None
            network_fee_usd = Decimal(_cell(row, 11)) if _cell(row, 11) else None
            return Transaction(
                **extra,
                id=_cell(row, 1),
                date=datetime.fromisoformat(_cell(row, 2)) if _cell(row, 2) else None,
                exchange=_cell(row, 3),
                type=_cell(row, 4),
                usd_amount=Decimal(_cell(row, 5, "0")),
                btc_amount=Decimal(_cell(row, 6, "0")),
                price=Decimal(_cell(row, 7, "0")),
                reference=_cell(row, 8) or None,
                destination_wallet=_cell(row, 9) or None,
                network_fee=network_fee,
                network_fee_usd=network_fee_usd,
                is_self_custody=_parse_bool(_cell(row, 12)),
                notes=_cell(row, 13) or None,
                is_taxable=_parse_bool(_cell(row, 14)),
            )
        except InvalidOperation as e:
            raise ValueError(f"invalid amount in row for {_cell(row, 1)}: {e}") from e

    # =========================================================================
    # SHEET ACCESS
    # =========================================================================

    @sheets_retry
    def _read_all_rows(self) -> list[list]:
        """All rows of the sheet, excluding the header."""
        sheet = self._client.get_transactions_sheet()
        return sheet.get_all_values()[1:]

    def _split_rows(
        self,
        user_id: str,
    ) -> tuple[list[list], list[tuple[int, Transaction]], list[list]]:
        """
        Returns:
            (rows of other users, [(sheet row number, transaction)] of this
            user, raw rows of this user that could not be read)
        """
        others = []
        mine = []
        unreadable = []
        for row_number, row in enumerate(self._read_all_rows(), start=2):
            if not row or not _cell(row, 1):
                continue
            if row[0] != user_id:
                others.append(row)
                continue
            try:
                mine.append((row_number, self._row_to_transaction(row)))
            except ValueError as e:
                unreadable.append(row)
                logger.warning(
                    "remote_row_unreadable",
                    row_number=row_number,
                    transaction_id=_cell(row, 1),
                    error=str(e),
                )
        return others, mine, unreadable

    @sheets_retry
    def _rewrite(self, rows: list[list]) -> None:
        """
        Replace the sheet body with ``rows``.

        New content is written first; leftover rows below are blanked in the
        same update rather than cleared beforehand.
        """
        sheet = self._client.get_transactions_sheet()
        previous_count = len(sheet.get_all_values())
        values = [TRANSACTION_COLUMNS] + rows
        blank = [""] * len(TRANSACTION_COLUMNS)
        values.extend([blank] * max(0, previous_count - len(values)))

        if len(values) > sheet.row_count:
            sheet.add_rows(len(values) - sheet.row_count)
        sheet.update(values=values, range_name="A1")

    @sheets_retry
    def _upsert_row(self, row_number: Optional[int], row: list) -> None:
        sheet = self._client.get_transactions_sheet()
        if row_number is None:
            sheet.append_row(row, value_input_option="RAW")
        else:
            sheet.update(values=[row], range_name=f"A{row_number}")

    @sheets_retry
    def _delete_row(self, row_number: int) -> None:
        self._client.get_transactions_sheet().delete_rows(row_number)

    # =========================================================================
    # PROVIDER CONTRACT
    # =========================================================================

    async def initialize(
        self,
        config: Optional[StorageProviderConfig] = None,
    ) -> StorageResult[None]:
        self._config = config
        if config is not None and config.auth_state.has_identity:
            self._user_id = config.auth_state.user_id
        try:
            self._client.get_transactions_sheet()
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            self._ready = False
            return self._handle_error(e, "initialize")
        self._ready = True
        return self._create_result(True, None, None, "initialize")

    async def get_status(self) -> StorageResult[ProviderStatus]:
        try:
            _, mine, _ = self._split_rows(self._require_user())
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            status = ProviderStatus(
                provider=self.provider_type,
                is_healthy=False,
                is_authenticated=bool(self._user_id),
            )
            return self._create_result(True, status, str(e), "get_status")

        status = ProviderStatus(
            provider=self.provider_type,
            is_healthy=True,
            is_authenticated=True,
            transaction_count=len(mine),
            active_provider=self.provider_type,
        )
        return self._create_result(True, status, None, "get_status")

    async def get_transactions(
        self,
        query: Optional[TransactionQuery] = None,
    ) -> StorageResult[list[Transaction]]:
        try:
            _, mine, _ = self._split_rows(self._require_user())
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            return self._handle_error(e, "get_transactions")
        transactions = [tx for _, tx in mine]
        return self._create_result(True, apply_query(transactions, query), None, "get_transactions")

    async def get_transaction(self, transaction_id: str) -> StorageResult[Optional[Transaction]]:
        try:
            _, mine, _ = self._split_rows(self._require_user())
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            return self._handle_error(e, "get_transaction")
        found = next((tx for _, tx in mine if tx.id == transaction_id), None)
        return self._create_result(True, found, None, "get_transaction")

    async def save_transaction(self, transaction: Transaction) -> StorageResult[Transaction]:
        """Insert, or replace the row with the same id."""
        try:
            user_id = self._require_user()
            _, mine, _ = self._split_rows(user_id)
            row_number = next((n for n, tx in mine if tx.id == transaction.id), None)
            self._upsert_row(row_number, self._transaction_to_row(user_id, transaction))
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            return self._handle_error(e, "save_transaction")
        return self._create_result(True, transaction, None, "save_transaction")

    async def save_transactions(
        self,
        transactions: list[Transaction],
    ) -> StorageResult[list[Transaction]]:
        """
        Merge ``transactions`` into the user's remote rows.

        Remote rows not present in ``transactions`` are kept, so a transfer
        from a second device never erases records written by the first.
        Rows that cannot be parsed are kept as they are; only
        ``clear_transactions`` removes them.

        Returns:
            The merged set now stored for the user
        """
        try:
            user_id = self._require_user()
            others, mine, unreadable = self._split_rows(user_id)
            result = merge([tx for _, tx in mine], transactions)
            rows = others + [self._transaction_to_row(user_id, tx) for tx in result.merged]
            # Unreadable rows of this user are written back untouched
            rows.extend(unreadable)
            self._rewrite(rows)
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            return self._handle_error(e, "save_transactions")

        logger.info(
            "remote_transactions_saved",
            incoming=len(transactions),
            duplicates=result.duplicate_count,
            total=len(result.merged),
        )
        return self._create_result(True, result.merged, None, "save_transactions")

    async def delete_transaction(self, transaction_id: str) -> StorageResult[None]:
        try:
            _, mine, _ = self._split_rows(self._require_user())
            row_number = next((n for n, tx in mine if tx.id == transaction_id), None)
            if row_number is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            self._delete_row(row_number)
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            return self._handle_error(e, "delete_transaction")
        return self._create_result(True, None, None, "delete_transaction")

    async def clear_transactions(self) -> StorageResult[None]:
        """Remove every row of the current user; other users are untouched."""
        try:
            others, _, _ = self._split_rows(self._require_user())
            self._rewrite(others)
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            return self._handle_error(e, "clear_transactions")
        return self._create_result(True, None, None, "clear_transactions")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            correlation_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_cell(row, 10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            self._append(event.to_sheets_row())
        except (StorageError, gspread.exceptions.GSpreadException) as e:
            logger.warning(
                "audit_event_not_persisted",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False
        return True

    @sheets_retry
    def _append(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("audit_row_unreadable", event_id=row[0], error=str(e))

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
