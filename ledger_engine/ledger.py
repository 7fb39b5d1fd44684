from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from ledger_engine.currency_conversion import (
    ConversionContext,
    CurrencyCode,
    FxBook,
    FxTolerance,
    TransactionDate,
    ValuationPolicy,
)
from ledger_engine.models import Account, Category, Transaction
from ledger_engine.settings import LedgerSettings
from ledger_engine.time_interval import TimeInterval, TimeUnit


def monthly_period() -> TimeInterval:
    return TimeInterval(every=1, unit=TimeUnit.MONTH)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Read view of a ledger handed to forecasting and aggregation calls."""

    name: str
    created_on: date
    accounts: Sequence[Account] = ()
    categories: Sequence[Category] = ()
    transactions: Sequence[Transaction] = ()
    base_currency: CurrencyCode = field(default_factory=lambda: CurrencyCode("USD"))
    valuation_policy: ValuationPolicy = field(default_factory=TransactionDate)
    fx_book: FxBook = field(default_factory=FxBook)
    budget_period: TimeInterval = field(default_factory=monthly_period)

    def __post_init__(self) -> None:
        object.__setattr__(self, "accounts", tuple(self.accounts))
        object.__setattr__(self, "categories", tuple(self.categories))
        object.__setattr__(self, "transactions", tuple(self.transactions))
        if isinstance(self.base_currency, str):
            object.__setattr__(self, "base_currency", CurrencyCode(self.base_currency))

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        name: str,
        created_on: date,
        accounts: Sequence[Account] = (),
        categories: Sequence[Category] = (),
        transactions: Sequence[Transaction] = (),
        fx_book: Optional[FxBook] = None,
        budget_period: Optional[TimeInterval] = None,
    ) -> LedgerSnapshot:
        existing = fx_book.rates if fx_book is not None else {}
        book = FxBook(
            tolerance=FxTolerance(days=settings.fx_tolerance_days),
            rates={pair: list(series) for pair, series in existing.items()},
        )
        return cls(
            name=name,
            created_on=created_on,
            accounts=accounts,
            categories=categories,
            transactions=transactions,
            base_currency=CurrencyCode(settings.base_currency),
            valuation_policy=settings.valuation(),
            fx_book=book,
            budget_period=budget_period or monthly_period(),
        )

    def account(self, account_id: UUID) -> Optional[Account]:
        return next((acct for acct in self.accounts if acct.id == account_id), None)

    def category(self, category_id: UUID) -> Optional[Category]:
        return next((cat for cat in self.categories if cat.id == category_id), None)

    def transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return next((txn for txn in self.transactions if txn.id == transaction_id), None)

    def transaction_currency(self, txn: Transaction) -> CurrencyCode:
        if txn.currency is not None:
            return txn.currency
        for account_id in (txn.from_account, txn.to_account):
            account = self.account(account_id)
            if account is not None and account.currency is not None:
                return account.currency
        return self.base_currency

    def conversion_context(self, report_date: date) -> ConversionContext:
        return ConversionContext(
            policy=self.valuation_policy,
            report_date=report_date,
            base_currency=self.base_currency,
            fx_book=self.fx_book,
        )
