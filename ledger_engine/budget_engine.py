from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from ledger_engine.currency_conversion import (
    ConversionContext,
    ConvertedAmount,
    CurrencyCode,
    MissingRateError,
    convert_amount,
    describe_policy,
)
from ledger_engine.ledger import LedgerSnapshot
from ledger_engine.models import Account, Category, Transaction
from ledger_engine.time_interval import BudgetScope, DateWindow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNCATEGORIZED = "Uncategorized"
UNKNOWN_CATEGORY = "Unknown Category"
UNKNOWN_ACCOUNT = "Unknown Account"


class BudgetStatus(str, Enum):
    ON_TRACK = "On Track"
    OVER_BUDGET = "Over Budget"
    UNDER_BUDGET = "Under Budget"
    EMPTY = "Empty"
    INCOMPLETE = "Incomplete"


@dataclass(frozen=True)
class BudgetTotals:
    budgeted: Decimal
    real: Decimal
    remaining: Decimal
    variance: Decimal
    percent_used: Optional[Decimal]
    status: BudgetStatus
    incomplete: bool

    @classmethod
    def from_parts(cls, budgeted: Decimal, real: Decimal, incomplete: bool) -> BudgetTotals:
        percent_used = (real / budgeted) * HUNDRED if budgeted > ZERO else None
        if incomplete:
            status = BudgetStatus.INCOMPLETE
        elif budgeted == ZERO and real == ZERO:
            status = BudgetStatus.EMPTY
        elif real > budgeted:
            status = BudgetStatus.OVER_BUDGET
        elif real < budgeted:
            status = BudgetStatus.UNDER_BUDGET
        else:
            status = BudgetStatus.ON_TRACK
        return cls(
            budgeted=budgeted,
            real=real,
            remaining=budgeted - real,
            variance=real - budgeted,
            percent_used=percent_used,
            status=status,
            incomplete=incomplete,
        )


@dataclass(frozen=True)
class CategoryBudget:
    category_id: Optional[UUID]
    name: str
    totals: BudgetTotals


@dataclass(frozen=True)
class AccountBudget:
    account_id: UUID
    name: str
    totals: BudgetTotals


@dataclass(frozen=True)
class BudgetSummary:
    scope: BudgetScope
    window: DateWindow
    totals: BudgetTotals
    per_category: List[CategoryBudget]
    per_account: List[AccountBudget]
    orphaned_transactions: int
    incomplete_transactions: int
    disclosures: List[str]


class _Accumulator:
    def __init__(self) -> None:
        self.budgeted = ZERO
        self.real = ZERO
        self.missing_budget = False
        self.missing_real = False

    def totals(self) -> BudgetTotals:
        return BudgetTotals.from_parts(
            self.budgeted,
            self.real,
            self.missing_budget or self.missing_real,
        )


def summarize_window(
    ledger: LedgerSnapshot,
    window: DateWindow,
    scope: BudgetScope,
    transactions: Optional[Sequence[Transaction]] = None,
) -> BudgetSummary:
    """Budgeted vs actual totals inside ``window``, valued in the ledger's base currency.

    ``transactions`` overrides the ledger's own list (forecast overlays, simulations).
    Amounts whose FX rate cannot be resolved are left out of the sums; the affected
    scopes are flagged incomplete and a warning is appended to the disclosures.
    """
    txns = ledger.transactions if transactions is None else transactions
    report_date = window.report_date
    context = ledger.conversion_context(report_date)
    category_lookup = {cat.id: cat for cat in ledger.categories}
    account_lookup = {acct.id: acct for acct in ledger.accounts}

    overall = _Accumulator()
    by_category: Dict[Optional[UUID], _Accumulator] = {}
    by_account: Dict[UUID, _Accumulator] = {}
    rate_lines = {
        f"Valuation policy: {describe_policy(ledger.valuation_policy)} "
        f"(report date {report_date.isoformat()})"
    }
    warnings: List[str] = []
    orphaned = 0
    incomplete_count = 0

    for txn in txns:
        budget_in = window.contains(txn.scheduled_date)
        actual_in = txn.actual_date is not None and window.contains(txn.actual_date)
        if not budget_in and not actual_in:
            continue

        scopes = (
            overall,
            by_category.setdefault(txn.category_id, _Accumulator()),
            by_account.setdefault(txn.from_account, _Accumulator()),
        )
        currency = ledger.transaction_currency(txn)
        incomplete = False

        if budget_in:
            converted = _convert(
                txn, txn.budgeted_amount, currency, txn.scheduled_date, context, "budget", warnings
            )
            if converted is None:
                _flag(scopes, missing_budget=True)
                incomplete = True
            else:
                rate_lines.add(converted.disclosure())
                for acc in scopes:
                    acc.budgeted += converted.amount

        if actual_in:
            if txn.actual_amount is None:
                _flag(scopes, missing_real=True)
                incomplete = True
            else:
                converted = _convert(
                    txn, txn.actual_amount, currency, txn.actual_date, context, "actual", warnings
                )
                if converted is None:
                    _flag(scopes, missing_real=True)
                    incomplete = True
                else:
                    rate_lines.add(converted.disclosure())
                    for acc in scopes:
                        acc.real += converted.amount

        if actual_in and not budget_in:
            _flag(scopes, missing_budget=True)
            incomplete = True
        if budget_in and txn.actual_amount is None:
            _flag(scopes, missing_real=True)
            incomplete = True

        category_missing = txn.category_id is not None and txn.category_id not in category_lookup
        if txn.from_account not in account_lookup or category_missing:
            orphaned += 1
        if incomplete:
            incomplete_count += 1

    per_category = [
        CategoryBudget(
            category_id=category_id,
            name=_category_name(category_id, category_lookup),
            totals=acc.totals(),
        )
        for category_id, acc in by_category.items()
    ]
    per_category.sort(key=lambda row: row.name)
    per_account = [
        AccountBudget(
            account_id=account_id,
            name=_account_name(account_id, account_lookup),
            totals=acc.totals(),
        )
        for account_id, acc in by_account.items()
    ]
    per_account.sort(key=lambda row: row.name)

    logger.debug(
        "Summarized %s window %s..%s: %d incomplete, %d orphaned",
        scope.value,
        window.start,
        window.end,
        incomplete_count,
        orphaned,
    )
    return BudgetSummary(
        scope=scope,
        window=window,
        totals=overall.totals(),
        per_category=per_category,
        per_account=per_account,
        orphaned_transactions=orphaned,
        incomplete_transactions=incomplete_count,
        disclosures=sorted(rate_lines) + warnings,
    )


def budget_anchor_date(ledger: LedgerSnapshot) -> date:
    base = min(
        (txn.scheduled_date for txn in ledger.transactions),
        default=ledger.created_on,
    )
    return ledger.budget_period.normalize_anchor(base)


def budget_window_containing(ledger: LedgerSnapshot, reference: date) -> DateWindow:
    period = ledger.budget_period
    start = period.cycle_start(budget_anchor_date(ledger), reference)
    return DateWindow(start=start, end=period.next_date(start))


def summarize_period_containing(ledger: LedgerSnapshot, reference: date) -> BudgetSummary:
    window = budget_window_containing(ledger, reference)
    return summarize_window(ledger, window, window.scope(reference))


def summarize_period_offset(ledger: LedgerSnapshot, reference: date, offset: int) -> BudgetSummary:
    window = budget_window_containing(ledger, reference).shift(ledger.budget_period, offset)
    return summarize_window(ledger, window, window.scope(reference))


def summaries_before(ledger: LedgerSnapshot, reference: date, periods: int) -> List[BudgetSummary]:
    return [summarize_period_offset(ledger, reference, -step) for step in range(1, periods + 1)]


def summaries_after(ledger: LedgerSnapshot, reference: date, periods: int) -> List[BudgetSummary]:
    return [summarize_period_offset(ledger, reference, step) for step in range(1, periods + 1)]


def summarize_range(
    ledger: LedgerSnapshot,
    start_date: date,
    end_date: date,
    transactions: Optional[Sequence[Transaction]] = None,
) -> BudgetSummary:
    window = DateWindow(start=start_date, end=end_date)
    return summarize_window(ledger, window, BudgetScope.CUSTOM, transactions)


def _convert(
    txn: Transaction,
    amount: Decimal,
    currency: CurrencyCode,
    on_date: date,
    context: ConversionContext,
    kind: str,
    warnings: List[str],
) -> Optional[ConvertedAmount]:
    try:
        return convert_amount(amount, currency, on_date, context)
    except MissingRateError as exc:
        logger.warning("Transaction %s %s conversion failed: %s", txn.id, kind, exc)
        warnings.append(f"{txn.id} {kind} conversion failed: {exc}")
        return None


def _flag(
    scopes: Sequence[_Accumulator],
    missing_budget: bool = False,
    missing_real: bool = False,
) -> None:
    for acc in scopes:
        acc.missing_budget = acc.missing_budget or missing_budget
        acc.missing_real = acc.missing_real or missing_real


def _category_name(category_id: Optional[UUID], lookup: Dict[UUID, Category]) -> str:
    if category_id is None:
        return UNCATEGORIZED
    category = lookup.get(category_id)
    return category.name if category is not None else UNKNOWN_CATEGORY


def _account_name(account_id: UUID, lookup: Dict[UUID, Account]) -> str:
    account = lookup.get(account_id)
    return account.name if account is not None else UNKNOWN_ACCOUNT
