"""Tests for in-Python query filtering."""

from datetime import timedelta

from btc_ledger.models.storage import TransactionQuery
from btc_ledger.queries.filters import apply_query, is_taxable_event

from conftest import BASE_DATE, make_transaction


def sample_set():
    return [
        make_transaction(exchange="Coinbase", minutes=0, usd="100"),
        make_transaction(exchange="Strike", minutes=60, usd="250"),
        make_transaction(exchange="Coinbase", minutes=120, usd="50", tx_type="Sale"),
        make_transaction(exchange="Kraken", minutes=180, usd="0", tx_type="Withdrawal", price=None),
    ]


class TestApplyQuery:
    """Tests for apply_query."""

    def test_none_query_returns_input(self):
        transactions = sample_set()
        assert apply_query(transactions, None) is transactions

    def test_exchange_filter_is_case_insensitive(self):
        result = apply_query(sample_set(), TransactionQuery(exchange="coinbase"))
        assert [tx.exchange for tx in result] == ["Coinbase", "Coinbase"]

    def test_type_filter(self):
        result = apply_query(sample_set(), TransactionQuery(type="withdrawal"))
        assert [tx.exchange for tx in result] == ["Kraken"]

    def test_date_range(self):
        query = TransactionQuery(
            start_date=BASE_DATE + timedelta(minutes=30),
            end_date=BASE_DATE + timedelta(minutes=120),
        )
        result = apply_query(sample_set(), query)
        assert [tx.exchange for tx in result] == ["Strike", "Coinbase"]

    def test_naive_query_dates_are_utc(self):
        query = TransactionQuery(start_date=(BASE_DATE + timedelta(minutes=150)).replace(tzinfo=None))
        assert [tx.exchange for tx in apply_query(sample_set(), query)] == ["Kraken"]

    def test_amount_range(self):
        result = apply_query(sample_set(), TransactionQuery(min_amount=60, max_amount=300))
        assert sorted(str(tx.usd_amount) for tx in result) == ["100", "250"]

    def test_sort_by_amount_desc(self):
        query = TransactionQuery(sort_by="amount", sort_order="desc")
        result = apply_query(sample_set(), query)
        assert [str(tx.usd_amount) for tx in result] == ["250", "100", "50", "0"]

    def test_sort_by_date_puts_undated_first(self):
        transactions = sample_set()
        transactions[1] = transactions[1].model_copy(update={"date": None})
        result = apply_query(transactions, TransactionQuery(sort_by="date"))
        assert result[0].date is None
        assert result[1].exchange == "Coinbase"

    def test_pagination(self):
        query = TransactionQuery(sort_by="date", offset=1, limit=2)
        result = apply_query(sample_set(), query)
        assert [tx.exchange for tx in result] == ["Strike", "Coinbase"]

    def test_only_taxable_events(self):
        transactions = sample_set()
        transactions.append(make_transaction(exchange="Strike", minutes=240, is_taxable=True))
        result = apply_query(transactions, TransactionQuery(only_taxable_events=True))
        assert [(tx.exchange, tx.type) for tx in result] == [
            ("Coinbase", "Sale"),
            ("Strike", "Purchase"),
        ]


class TestTaxableEvents:
    def test_explicit_flag_wins(self):
        assert not is_taxable_event(make_transaction(tx_type="Sale", is_taxable=False))
        assert is_taxable_event(make_transaction(tx_type="Withdrawal", is_taxable=True))

    def test_disposals_default_to_taxable(self):
        assert is_taxable_event(make_transaction(tx_type="Sell"))
        assert not is_taxable_event(make_transaction(tx_type="Buy"))
