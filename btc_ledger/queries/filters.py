"""
Transaction Query Filtering

DESIGN DECISION: Filtering is DETERMINISTIC and happens in Python.
Neither backend has real query capabilities (a key-value blob and a
worksheet), so every provider loads the user's set and applies the same
filter here. Both backends therefore answer a query identically.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from btc_ledger.models.storage import TransactionQuery
from btc_ledger.models.transaction import Transaction, ensure_utc


_EARLIEST = datetime.min


def is_taxable_event(transaction: Transaction) -> bool:
    """An explicit ``is_taxable`` flag wins; otherwise disposals are taxable."""
    if transaction.is_taxable is not None:
        return transaction.is_taxable
    known = transaction.transaction_type
    return known is not None and known.is_disposal


def _matches(transaction: Transaction, query: TransactionQuery) -> bool:
    if query.exchange and transaction.exchange.lower() != query.exchange.lower():
        return False
    if query.type and transaction.type.lower() != query.type.lower():
        return False

    if query.start_date or query.end_date:
        if transaction.date is None:
            return False
        if query.start_date and transaction.date < ensure_utc(query.start_date):
            return False
        if query.end_date and transaction.date > ensure_utc(query.end_date):
            return False

    if query.min_amount is not None and transaction.usd_amount < Decimal(str(query.min_amount)):
        return False
    if query.max_amount is not None and transaction.usd_amount > Decimal(str(query.max_amount)):
        return False

    if query.only_taxable_events and not is_taxable_event(transaction):
        return False

    return True


def _sort_key(sort_by: str):
    if sort_by == "date":
        # Undated legacy rows sort first
        return lambda tx: (tx.date is not None, tx.date or _EARLIEST)
    if sort_by == "amount":
        return lambda tx: tx.usd_amount
    if sort_by == "exchange":
        return lambda tx: tx.exchange.lower()
    return lambda tx: tx.type.lower()


def apply_query(
    transactions: list[Transaction],
    query: Optional[TransactionQuery],
) -> list[Transaction]:
    """
    Filter, sort and paginate ``transactions``.

    Returns the input unchanged when ``query`` is None.
    """
    if query is None:
        return transactions

    matched = [tx for tx in transactions if _matches(tx, query)]

    if query.sort_by:
        matched.sort(key=_sort_key(query.sort_by), reverse=query.sort_order == "desc")

    end = query.offset + query.limit if query.limit is not None else None
    return matched[query.offset:end]
