from btc_ledger.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
