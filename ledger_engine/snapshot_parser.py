from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Literal, Mapping
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from ledger_engine.currency_conversion import (
    CurrencyCode,
    CustomDate,
    FxBook,
    FxRate,
    FxTolerance,
    ReportDate,
    TransactionDate,
    ValuationPolicy,
    normalize_currency,
)
from ledger_engine.ledger import LedgerSnapshot
from ledger_engine.models import (
    Account,
    AfterOccurrences,
    Category,
    CategoryKind,
    Never,
    OnDate,
    Recurrence,
    RecurrenceEnd,
    RecurrenceMode,
    RecurrenceStatus,
    Transaction,
    TransactionStatus,
)
from ledger_engine.time_interval import TimeInterval, TimeUnit


class IntervalRecord(BaseModel):
    every: int = Field(default=1, ge=1)
    unit: TimeUnit = TimeUnit.MONTH

    def to_domain(self) -> TimeInterval:
        return TimeInterval(every=self.every, unit=self.unit)


class RecurrenceEndRecord(BaseModel):
    kind: Literal["never", "on_date", "after_occurrences"] = "never"
    date: dt.date | None = None
    count: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_payload(self) -> "RecurrenceEndRecord":
        if self.kind == "on_date" and self.date is None:
            raise ValueError("on_date end requires a date")
        if self.kind == "after_occurrences" and self.count is None:
            raise ValueError("after_occurrences end requires a count")
        return self

    def to_domain(self) -> RecurrenceEnd:
        if self.kind == "on_date":
            return OnDate(self.date)
        if self.kind == "after_occurrences":
            return AfterOccurrences(self.count)
        return Never()


class RecurrenceRecord(BaseModel):
    series_id: UUID | None = None
    start_date: dt.date
    interval: IntervalRecord
    mode: RecurrenceMode = RecurrenceMode.FIXED_SCHEDULE
    end: RecurrenceEndRecord = Field(default_factory=RecurrenceEndRecord)
    exceptions: list[dt.date] = Field(default_factory=list)
    status: RecurrenceStatus = RecurrenceStatus.ACTIVE
    last_generated: dt.date | None = None
    last_completed: dt.date | None = None
    next_scheduled: dt.date | None = None
    generated_occurrences: int = 0

    def to_domain(self) -> Recurrence:
        return Recurrence(
            start_date=self.start_date,
            interval=self.interval.to_domain(),
            series_id=self.series_id,
            mode=self.mode,
            end=self.end.to_domain(),
            exceptions=tuple(self.exceptions),
            status=self.status,
            last_generated=self.last_generated,
            last_completed=self.last_completed,
            next_scheduled=self.next_scheduled,
            generated_occurrences=self.generated_occurrences,
        )


class TransactionRecord(BaseModel):
    id: UUID
    from_account: UUID
    to_account: UUID
    category_id: UUID | None = None
    scheduled_date: dt.date
    actual_date: dt.date | None = None
    budgeted_amount: Decimal
    actual_amount: Decimal | None = None
    currency: str | None = None
    notes: str | None = None
    recurrence: RecurrenceRecord | None = None
    recurrence_series_id: UUID | None = None
    status: TransactionStatus = TransactionStatus.PLANNED

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str | None) -> str | None:
        return normalize_currency(v) if v else None

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            from_account=self.from_account,
            to_account=self.to_account,
            scheduled_date=self.scheduled_date,
            budgeted_amount=self.budgeted_amount,
            category_id=self.category_id,
            actual_date=self.actual_date,
            actual_amount=self.actual_amount,
            currency=CurrencyCode(self.currency) if self.currency else None,
            notes=self.notes,
            recurrence=self.recurrence.to_domain() if self.recurrence else None,
            recurrence_series_id=self.recurrence_series_id,
            status=self.status,
        )


class AccountRecord(BaseModel):
    id: UUID
    name: str
    currency: str | None = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str | None) -> str | None:
        return normalize_currency(v) if v else None

    def to_domain(self) -> Account:
        return Account(
            id=self.id,
            name=self.name,
            currency=CurrencyCode(self.currency) if self.currency else None,
        )


class CategoryRecord(BaseModel):
    id: UUID
    name: str
    kind: CategoryKind = CategoryKind.EXPENSE
    parent_id: UUID | None = None

    def to_domain(self) -> Category:
        return Category(id=self.id, name=self.name, kind=self.kind, parent_id=self.parent_id)


class FxRateRecord(BaseModel):
    from_currency: str
    to_currency: str
    date: dt.date
    rate: Decimal
    source: str | None = None
    notes: str | None = None

    @field_validator("from_currency", "to_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency(v)

    def to_domain(self) -> FxRate:
        return FxRate(
            from_currency=CurrencyCode(self.from_currency),
            to_currency=CurrencyCode(self.to_currency),
            date=self.date,
            rate=self.rate,
            source=self.source,
            notes=self.notes,
        )


class ValuationRecord(BaseModel):
    kind: Literal["transaction_date", "report_date", "custom_date"] = "transaction_date"
    date: dt.date | None = None

    @model_validator(mode="after")
    def check_date(self) -> "ValuationRecord":
        if self.kind == "custom_date" and self.date is None:
            raise ValueError("custom_date valuation requires a date")
        return self

    def to_domain(self) -> ValuationPolicy:
        if self.kind == "report_date":
            return ReportDate()
        if self.kind == "custom_date":
            return CustomDate(self.date)
        return TransactionDate()


class LedgerRecord(BaseModel):
    name: str
    created_on: dt.date
    base_currency: str = "USD"
    valuation_policy: ValuationRecord = Field(default_factory=ValuationRecord)
    fx_tolerance_days: int = Field(default=0, ge=0)
    fx_rates: list[FxRateRecord] = Field(default_factory=list)
    budget_period: IntervalRecord = Field(default_factory=IntervalRecord)
    accounts: list[AccountRecord] = Field(default_factory=list)
    categories: list[CategoryRecord] = Field(default_factory=list)
    transactions: list[TransactionRecord] = Field(default_factory=list)

    @field_validator("base_currency")
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        return normalize_currency(v)

    def to_domain(self) -> LedgerSnapshot:
        book = FxBook(tolerance=FxTolerance(days=self.fx_tolerance_days))
        for record in self.fx_rates:
            book.add_rate(record.to_domain())
        return LedgerSnapshot(
            name=self.name,
            created_on=self.created_on,
            accounts=[record.to_domain() for record in self.accounts],
            categories=[record.to_domain() for record in self.categories],
            transactions=[record.to_domain() for record in self.transactions],
            base_currency=CurrencyCode(self.base_currency),
            valuation_policy=self.valuation_policy.to_domain(),
            fx_book=book,
            budget_period=self.budget_period.to_domain(),
        )


def parse_ledger_snapshot(payload: Mapping[str, Any]) -> LedgerSnapshot:
    """Validate a plain mapping (as stored by the persistence layer) into a snapshot."""
    return LedgerRecord.model_validate(payload).to_domain()
