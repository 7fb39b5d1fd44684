from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union
from uuid import UUID, uuid4

from ledger_engine.currency_conversion import CurrencyCode
from ledger_engine.time_interval import TimeInterval

NEXT_OCCURRENCE_GUARD = 512


class TransactionStatus(str, Enum):
    PLANNED = "planned"
    COMPLETED = "completed"
    MISSED = "missed"
    SIMULATED = "simulated"


class RecurrenceMode(str, Enum):
    # Follows the planned schedule regardless of when an instance was performed.
    FIXED_SCHEDULE = "fixed_schedule"
    # Next period starts from the date the previous instance was actually performed.
    AFTER_LAST_PERFORMED = "after_last_performed"


class RecurrenceStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class CategoryKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class Never:
    pass


@dataclass(frozen=True)
class OnDate:
    date: date


@dataclass(frozen=True)
class AfterOccurrences:
    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError("count must not be negative.")


RecurrenceEnd = Union[Never, OnDate, AfterOccurrences]


@dataclass(frozen=True)
class Recurrence:
    start_date: date
    interval: TimeInterval
    series_id: Optional[UUID] = None
    mode: RecurrenceMode = RecurrenceMode.FIXED_SCHEDULE
    end: RecurrenceEnd = field(default_factory=Never)
    exceptions: tuple[date, ...] = ()
    status: RecurrenceStatus = RecurrenceStatus.ACTIVE
    last_generated: Optional[date] = None
    last_completed: Optional[date] = None
    next_scheduled: Optional[date] = None
    generated_occurrences: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "exceptions", tuple(sorted(set(self.exceptions))))
        object.__setattr__(self, "mode", RecurrenceMode(self.mode))
        object.__setattr__(self, "status", RecurrenceStatus(self.status))

    def is_active(self) -> bool:
        return self.status is RecurrenceStatus.ACTIVE

    def is_exception(self, candidate: date) -> bool:
        index = bisect_left(self.exceptions, candidate)
        return index < len(self.exceptions) and self.exceptions[index] == candidate

    def allows_occurrence(self, occurrence_index: int, candidate: date) -> bool:
        if candidate < self.start_date:
            return False
        if isinstance(self.end, OnDate):
            return candidate <= self.end.date
        if isinstance(self.end, AfterOccurrences):
            return occurrence_index < self.end.count
        return True

    def next_occurrence(self, last_scheduled: date, last_performed: Optional[date]) -> date:
        anchor = last_scheduled
        if self.mode is RecurrenceMode.AFTER_LAST_PERFORMED and last_performed is not None:
            anchor = last_performed
        candidate = self.interval.next_date(anchor)
        guard = 0
        while self.is_exception(candidate) and guard < NEXT_OCCURRENCE_GUARD:
            candidate = self.interval.next_date(candidate)
            guard += 1
        return candidate

    def with_exception(self, skipped: date) -> Recurrence:
        return replace(self, exceptions=self.exceptions + (skipped,))

    def with_metadata(
        self,
        last_generated: Optional[date],
        last_completed: Optional[date],
        next_scheduled: Optional[date],
        generated_occurrences: int,
    ) -> Recurrence:
        status = self.status
        if status is not RecurrenceStatus.PAUSED:
            status = (
                RecurrenceStatus.ACTIVE
                if next_scheduled is not None
                else RecurrenceStatus.COMPLETED
            )
        return replace(
            self,
            last_generated=last_generated,
            last_completed=last_completed,
            next_scheduled=next_scheduled,
            generated_occurrences=generated_occurrences,
            status=status,
        )


@dataclass(frozen=True)
class Account:
    id: UUID
    name: str
    currency: Optional[CurrencyCode] = None

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", CurrencyCode(self.currency))


@dataclass(frozen=True)
class Category:
    id: UUID
    name: str
    kind: CategoryKind = CategoryKind.EXPENSE
    parent_id: Optional[UUID] = None


@dataclass(frozen=True)
class Transaction:
    """A ledger entry.

    A template owns a ``recurrence``; realized instances of the series only carry
    ``recurrence_series_id``.
    """

    id: UUID
    from_account: UUID
    to_account: UUID
    scheduled_date: date
    budgeted_amount: Decimal
    category_id: Optional[UUID] = None
    actual_date: Optional[date] = None
    actual_amount: Optional[Decimal] = None
    currency: Optional[CurrencyCode] = None
    notes: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    recurrence_series_id: Optional[UUID] = None
    status: TransactionStatus = TransactionStatus.PLANNED

    def __post_init__(self) -> None:
        object.__setattr__(self, "budgeted_amount", _coerce_amount(self.budgeted_amount))
        if self.actual_amount is not None:
            object.__setattr__(self, "actual_amount", _coerce_amount(self.actual_amount))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", CurrencyCode(self.currency))
        object.__setattr__(self, "status", TransactionStatus(self.status))
        if self.recurrence is not None:
            recurrence = self.recurrence
            if recurrence.series_id is None:
                recurrence = replace(recurrence, series_id=self.id)
            if recurrence.start_date != self.scheduled_date:
                recurrence = replace(recurrence, start_date=self.scheduled_date)
            object.__setattr__(self, "recurrence", recurrence)
            object.__setattr__(self, "recurrence_series_id", recurrence.series_id)

    @classmethod
    def create(
        cls,
        from_account: UUID,
        to_account: UUID,
        scheduled_date: date,
        budgeted_amount: Decimal | int | float | str,
        **kwargs,
    ) -> Transaction:
        return cls(
            id=uuid4(),
            from_account=from_account,
            to_account=to_account,
            scheduled_date=scheduled_date,
            budgeted_amount=budgeted_amount,
            **kwargs,
        )

    @property
    def series_id(self) -> Optional[UUID]:
        if self.recurrence_series_id is not None:
            return self.recurrence_series_id
        if self.recurrence is not None:
            return self.id
        return None

    @property
    def is_template(self) -> bool:
        return self.recurrence is not None

    def with_recurrence(self, recurrence: Optional[Recurrence]) -> Transaction:
        if recurrence is None:
            return replace(self, recurrence=None, recurrence_series_id=None)
        return replace(self, recurrence=recurrence)

    def mark_completed(
        self, actual_date: date, actual_amount: Decimal | int | float | str
    ) -> Transaction:
        return replace(
            self,
            actual_date=actual_date,
            actual_amount=_coerce_amount(actual_amount),
            status=TransactionStatus.COMPLETED,
        )

    def as_planned_instance(self, scheduled_date: date, series_id: UUID) -> Transaction:
        """Detached, not-yet-performed copy of this entry on ``scheduled_date``."""
        return replace(
            self,
            id=uuid4(),
            scheduled_date=scheduled_date,
            actual_date=None,
            actual_amount=None,
            status=TransactionStatus.PLANNED,
            recurrence=None,
            recurrence_series_id=series_id,
        )


def templates(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [txn for txn in transactions if txn.recurrence is not None]


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
