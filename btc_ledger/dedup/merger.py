"""
Transaction Set Merging

Merges two transaction collections keyed by id. Used for:
1. Importing a new CSV export on top of existing data
2. Collapsing ids that became identical after a migration (merge-with-self)
3. Writing local records into a remote store that already holds some

DESIGN DECISION: When an id collides, the row with the LATER transaction
date wins. Arrival order is irrelevant, which keeps the merge commutative
for distinct dates and safe to run redundantly from several contexts.
On equal dates the row already held is kept.
"""

from collections.abc import Iterable

from btc_ledger.models.transaction import MergeResult, Transaction


def _is_newer(candidate: Transaction, current: Transaction) -> bool:
    if candidate.date is None:
        return False
    if current.date is None:
        return True
    return candidate.date > current.date


def merge(
    existing: Iterable[Transaction],
    incoming: Iterable[Transaction],
) -> MergeResult:
    """
    Merge ``incoming`` into ``existing``.

    Every incoming row whose id is already held counts as a duplicate,
    whether or not it replaced the held row.

    Returns:
        MergeResult with unique-id ``merged`` (order not meaningful) and
        ``duplicate_count``
    """
    by_id: dict[str, Transaction] = {}
    for transaction in existing:
        by_id[transaction.id] = transaction

    duplicate_count = 0
    for transaction in incoming:
        current = by_id.get(transaction.id)
        if current is None:
            by_id[transaction.id] = transaction
            continue

        duplicate_count += 1
        if _is_newer(transaction, current):
            by_id[transaction.id] = transaction

    return MergeResult(merged=list(by_id.values()), duplicate_count=duplicate_count)


def deduplicate(transactions: Iterable[Transaction]) -> MergeResult:
    """Collapse rows sharing an id within a single collection."""
    return merge([], transactions)
