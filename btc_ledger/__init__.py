"""
BTC Ledger - Source Package

A personal bitcoin transaction ledger that survives CSV re-imports, schema
changes and a switch between on-device and remote storage without
duplicating or losing a financial record.

DESIGN PRINCIPLES:
1. Ids come from content, so re-importing is idempotent
2. Migrations are version-gated and always backed up first
3. No silent corrections
4. Every move of records between stores is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "BTC Ledger Team"
