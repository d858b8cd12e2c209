"""Deduplicating merge package."""

from btc_ledger.dedup.merger import deduplicate, merge

__all__ = ["deduplicate", "merge"]
