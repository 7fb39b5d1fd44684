from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum


class TimeUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


UNIT_LABELS = {
    TimeUnit.DAY: ("Daily", "Day"),
    TimeUnit.WEEK: ("Weekly", "Week"),
    TimeUnit.MONTH: ("Monthly", "Month"),
    TimeUnit.YEAR: ("Yearly", "Year"),
}


class InvalidWindowError(ValueError):
    """Raised when a date window does not end after it starts."""


@dataclass(frozen=True)
class TimeInterval:
    every: int
    unit: TimeUnit

    def __post_init__(self) -> None:
        if self.every < 1:
            raise ValueError("every must be a positive integer.")
        object.__setattr__(self, "unit", TimeUnit(self.unit))

    def next_date(self, from_date: date) -> date:
        return self._shift(from_date, self.every)

    def previous_date(self, from_date: date) -> date:
        return self._shift(from_date, -self.every)

    def add_to(self, from_date: date, steps: int) -> date:
        current = from_date
        step = self.next_date if steps > 0 else self.previous_date
        for _ in range(abs(steps)):
            current = step(current)
        return current

    def label(self) -> str:
        single, unit_name = UNIT_LABELS[self.unit]
        if self.every == 1:
            return single
        return f"Every {self.every} {unit_name}s"

    def normalize_anchor(self, value: date) -> date:
        """Snap a date to the start of the period that contains it."""
        if self.unit is TimeUnit.DAY:
            return value
        if self.unit is TimeUnit.WEEK:
            return value - timedelta(days=value.weekday())
        if self.unit is TimeUnit.MONTH:
            month_index = value.month - 1
            block = (month_index // self.every) * self.every
            return date(value.year, block + 1, 1)
        offset = (value.year - 1) % self.every
        return date(value.year - offset, 1, 1)

    def cycle_start(self, anchor: date, reference: date) -> date:
        """Start of the cycle (counted from ``anchor``) that contains ``reference``."""
        if self.unit in {TimeUnit.DAY, TimeUnit.WEEK}:
            interval_days = self.every * (7 if self.unit is TimeUnit.WEEK else 1)
            steps = (reference - anchor).days // interval_days
            return anchor + timedelta(days=steps * interval_days)
        if self.unit is TimeUnit.MONTH:
            months_between = (reference.year - anchor.year) * 12 + (
                reference.month - anchor.month
            )
            steps = months_between // self.every
            start = _add_months(anchor, steps * self.every).replace(day=1)
            if start > reference:
                start = _add_months(start, -self.every)
            return start
        steps = (reference.year - anchor.year) // self.every
        start = _add_months(anchor, steps * self.every * 12).replace(month=1, day=1)
        if start > reference:
            start = _add_months(start, -self.every * 12)
        return start

    def _shift(self, from_date: date, amount: int) -> date:
        if self.unit is TimeUnit.DAY:
            return from_date + timedelta(days=amount)
        if self.unit is TimeUnit.WEEK:
            return from_date + timedelta(weeks=amount)
        if self.unit is TimeUnit.MONTH:
            return _add_months(from_date, amount)
        return _add_months(from_date, amount * 12)


@dataclass(frozen=True)
class DateWindow:
    """Half-open date range ``[start, end)``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidWindowError("date window end must be after start.")

    def contains(self, value: date) -> bool:
        return self.start <= value < self.end

    @property
    def report_date(self) -> date:
        return self.end - timedelta(days=1)

    def shift(self, interval: TimeInterval, steps: int) -> DateWindow:
        return DateWindow(
            start=interval.add_to(self.start, steps),
            end=interval.add_to(self.end, steps),
        )

    def scope(self, reference: date) -> BudgetScope:
        if self.contains(reference):
            return BudgetScope.CURRENT
        if self.end <= reference:
            return BudgetScope.PAST
        if self.start > reference:
            return BudgetScope.FUTURE
        return BudgetScope.CUSTOM


class BudgetScope(str, Enum):
    PAST = "past"
    CURRENT = "current"
    FUTURE = "future"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return self.value.capitalize()


def _add_months(start_date: date, months: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // 12
    month = total_month % 12 + 1
    last_day = monthrange(year, month)[1]
    day = min(start_date.day, last_day)
    return date(year, month, day)
