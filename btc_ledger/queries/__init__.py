from btc_ledger.queries.filters import apply_query, is_taxable_event

__all__ = ["apply_query", "is_taxable_event"]
