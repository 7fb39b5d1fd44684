from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from ledger_engine.budget_engine import BudgetSummary, BudgetTotals, summarize_window
from ledger_engine.ledger import LedgerSnapshot
from ledger_engine.models import Transaction
from ledger_engine.recurring_projection import ForecastResult, forecast_for_window
from ledger_engine.time_interval import BudgetScope, DateWindow


@dataclass(frozen=True)
class ForecastReport:
    scope: BudgetScope
    forecast: ForecastResult
    summary: BudgetSummary


@dataclass(frozen=True)
class BudgetTotalsDelta:
    budgeted: Decimal
    real: Decimal
    remaining: Decimal
    variance: Decimal

    @classmethod
    def between(cls, base: BudgetTotals, other: BudgetTotals) -> BudgetTotalsDelta:
        return cls(
            budgeted=other.budgeted - base.budgeted,
            real=other.real - base.real,
            remaining=other.remaining - base.remaining,
            variance=other.variance - base.variance,
        )


@dataclass(frozen=True)
class BudgetImpact:
    label: str
    base: BudgetSummary
    simulated: BudgetSummary
    delta: BudgetTotalsDelta


def forecast_window_report(
    ledger: LedgerSnapshot,
    window: DateWindow,
    reference_date: date,
    transactions: Optional[Sequence[Transaction]] = None,
) -> ForecastReport:
    """Forecast ``window`` and summarize it with the synthesized occurrences overlaid."""
    base = list(ledger.transactions if transactions is None else transactions)
    forecast = forecast_for_window(window, reference_date, base)
    overlay = base + [item.transaction for item in forecast.transactions]
    scope = window.scope(reference_date)
    return ForecastReport(
        scope=scope,
        forecast=forecast,
        summary=summarize_window(ledger, window, scope, overlay),
    )


def summarize_impact(
    ledger: LedgerSnapshot,
    window: DateWindow,
    scope: BudgetScope,
    simulated_transactions: Sequence[Transaction],
    label: str = "simulation",
) -> BudgetImpact:
    """Compare the ledger's own totals with an alternative transaction list."""
    base = summarize_window(ledger, window, scope)
    simulated = summarize_window(ledger, window, scope, simulated_transactions)
    return BudgetImpact(
        label=label,
        base=base,
        simulated=simulated,
        delta=BudgetTotalsDelta.between(base.totals, simulated.totals),
    )
