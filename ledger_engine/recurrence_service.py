"""Rule maintenance for recurring transactions.

Every helper takes the current transaction list and returns a new one with the
recurrence metadata recomputed, leaving persistence to the caller.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import List, Sequence, Tuple
from uuid import UUID

from ledger_engine.models import Recurrence, RecurrenceStatus, Transaction
from ledger_engine.recurring_projection import refresh_recurrence_metadata


class TransactionNotFoundError(LookupError):
    """Raised when a transaction id is not part of the ledger."""


def set_rule(
    transactions: Sequence[Transaction],
    transaction_id: UUID,
    recurrence: Recurrence,
) -> List[Transaction]:
    index, txn = _find(transactions, transaction_id)
    return _replace_and_refresh(transactions, index, txn.with_recurrence(recurrence))


def clear_rule(
    transactions: Sequence[Transaction],
    transaction_id: UUID,
) -> Tuple[List[Transaction], bool]:
    """Drop the recurrence from a transaction; the flag tells whether it had one."""
    index, txn = _find(transactions, transaction_id)
    had_recurrence = txn.recurrence is not None
    updated = txn.with_recurrence(None)
    if not had_recurrence:
        items = list(transactions)
        items[index] = updated
        return items, False
    return _replace_and_refresh(transactions, index, updated), True


def set_status(
    transactions: Sequence[Transaction],
    transaction_id: UUID,
    status: RecurrenceStatus,
) -> List[Transaction]:
    index, txn = _find(transactions, transaction_id)
    recurrence = _require_recurrence(txn)
    updated = txn.with_recurrence(replace(recurrence, status=status))
    return _replace_and_refresh(transactions, index, updated)


def skip_date(
    transactions: Sequence[Transaction],
    transaction_id: UUID,
    skipped: date,
) -> Tuple[List[Transaction], bool]:
    """Add ``skipped`` to the rule's exceptions; the flag is False if it was already there."""
    index, txn = _find(transactions, transaction_id)
    recurrence = _require_recurrence(txn)
    if recurrence.is_exception(skipped):
        return list(transactions), False
    updated = txn.with_recurrence(recurrence.with_exception(skipped))
    return _replace_and_refresh(transactions, index, updated), True


def _find(transactions: Sequence[Transaction], transaction_id: UUID) -> Tuple[int, Transaction]:
    for index, txn in enumerate(transactions):
        if txn.id == transaction_id:
            return index, txn
    raise TransactionNotFoundError(f"transaction {transaction_id} not found")


def _require_recurrence(txn: Transaction) -> Recurrence:
    if txn.recurrence is None:
        raise ValueError("transaction has no recurrence")
    return txn.recurrence


def _replace_and_refresh(
    transactions: Sequence[Transaction],
    index: int,
    updated: Transaction,
) -> List[Transaction]:
    items = list(transactions)
    items[index] = updated
    return refresh_recurrence_metadata(items)
