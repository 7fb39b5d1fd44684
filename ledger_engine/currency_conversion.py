from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Union

ONE = Decimal("1")
ZERO = Decimal("0")
RATE_EPSILON = Decimal("1e-12")

SOURCE_MANUAL = "manual"
SOURCE_NEAREST_PRIOR = "nearest_prior"
SOURCE_PARITY = "parity"


class MissingRateError(LookupError):
    """Raised when no FX rate can be resolved for a currency pair and date."""


@dataclass(frozen=True)
class CurrencyCode:
    """ISO 4217 code, upper-cased at construction."""

    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", normalize_currency(self.code))

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True)
class FxRate:
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    date: date
    rate: Decimal
    source: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "from_currency", _coerce_currency(self.from_currency))
        object.__setattr__(self, "to_currency", _coerce_currency(self.to_currency))
        object.__setattr__(self, "rate", _coerce_amount(self.rate))

    @property
    def pair(self) -> tuple[str, str]:
        return (self.from_currency.code, self.to_currency.code)


@dataclass(frozen=True)
class FxTolerance:
    days: int = 0

    def __post_init__(self) -> None:
        if self.days < 0:
            raise ValueError("tolerance days must not be negative.")


@dataclass(frozen=True)
class RateLookup:
    rate: Decimal
    date: date
    source: str


@dataclass
class FxBook:
    """Directional FX rate store keyed by currency pair.

    Only the direction a rate was entered in is stored; the inverse is derived on
    lookup.
    """

    tolerance: FxTolerance = field(default_factory=FxTolerance)
    rates: dict[tuple[str, str], list[FxRate]] = field(default_factory=dict)

    def add_rate(self, rate: FxRate) -> None:
        series = self.rates.setdefault(rate.pair, [])
        dates = [entry.date for entry in series]
        index = bisect_left(dates, rate.date)
        if index < len(series) and series[index].date == rate.date:
            series[index] = rate
        else:
            series.insert(index, rate)

    def remove_rate(
        self,
        from_currency: CurrencyCode | str,
        to_currency: CurrencyCode | str,
        on_date: date,
    ) -> bool:
        source = _coerce_currency(from_currency).code
        target = _coerce_currency(to_currency).code
        removed = False
        for pair in ((source, target), (target, source)):
            series = self.rates.get(pair)
            if not series:
                continue
            kept = [entry for entry in series if entry.date != on_date]
            if len(kept) != len(series):
                removed = True
            if kept:
                self.rates[pair] = kept
            else:
                del self.rates[pair]
        return removed

    def all_rates(self) -> list[FxRate]:
        entries = [entry for series in self.rates.values() for entry in series]
        return sorted(entries, key=lambda entry: (entry.date, entry.pair))

    def lookup_rate(
        self,
        from_currency: CurrencyCode | str,
        to_currency: CurrencyCode | str,
        on_date: date,
    ) -> RateLookup:
        source = _coerce_currency(from_currency).code
        target = _coerce_currency(to_currency).code
        if source == target:
            return RateLookup(rate=ONE, date=on_date, source=SOURCE_PARITY)

        direct = self.rates.get((source, target))
        if direct:
            found = self._resolve(direct, on_date)
            if found is not None:
                return found
            raise MissingRateError(_missing_message(source, target, on_date))

        inverse = self.rates.get((target, source))
        if inverse:
            found = self._resolve(inverse, on_date)
            if found is not None:
                inverted = ONE / found.rate if abs(found.rate) > RATE_EPSILON else ZERO
                return RateLookup(rate=inverted, date=found.date, source=found.source)
            raise MissingRateError(_missing_message(source, target, on_date))

        raise MissingRateError(f"No FX rates recorded for {source} -> {target}.")

    def _resolve(self, series: list[FxRate], on_date: date) -> RateLookup | None:
        dates = [entry.date for entry in series]
        index = bisect_right(dates, on_date) - 1
        if index < 0:
            return None
        entry = series[index]
        if entry.date == on_date:
            return RateLookup(
                rate=entry.rate,
                date=entry.date,
                source=entry.source or SOURCE_MANUAL,
            )
        if self.tolerance.days > 0 and on_date - entry.date <= timedelta(
            days=self.tolerance.days
        ):
            return RateLookup(rate=entry.rate, date=entry.date, source=SOURCE_NEAREST_PRIOR)
        return None


@dataclass(frozen=True)
class TransactionDate:
    label = "TransactionDate"


@dataclass(frozen=True)
class ReportDate:
    label = "ReportDate"


@dataclass(frozen=True)
class CustomDate:
    date: date
    label = "CustomDate"


ValuationPolicy = Union[TransactionDate, ReportDate, CustomDate]


def policy_date(policy: ValuationPolicy, transaction_date: date, report_date: date) -> date:
    if isinstance(policy, TransactionDate):
        return transaction_date
    if isinstance(policy, ReportDate):
        return report_date
    if isinstance(policy, CustomDate):
        return policy.date
    raise TypeError(f"Unsupported valuation policy: {policy!r}")


def describe_policy(policy: ValuationPolicy) -> str:
    if isinstance(policy, CustomDate):
        return f"CustomDate({policy.date.isoformat()})"
    return policy.label


@dataclass(frozen=True)
class ConvertedAmount:
    amount: Decimal
    rate_used: Decimal
    rate_date: date
    source: str
    from_currency: CurrencyCode
    to_currency: CurrencyCode

    def disclosure(self) -> str:
        return (
            f"{self.from_currency} → {self.to_currency} @ {self.rate_used:.6f} "
            f"on {self.rate_date.isoformat()} ({self.source})"
        )


@dataclass(frozen=True)
class ConversionContext:
    """Everything needed to value an amount in the ledger's base currency."""

    policy: ValuationPolicy
    report_date: date
    base_currency: CurrencyCode
    fx_book: FxBook

    def effective_date(self, transaction_date: date) -> date:
        return policy_date(self.policy, transaction_date, self.report_date)


def convert_amount(
    amount: Decimal | int | float | str,
    source_currency: CurrencyCode | str,
    transaction_date: date,
    context: ConversionContext,
) -> ConvertedAmount:
    """Value ``amount`` in the context's base currency under its valuation policy."""
    source = _coerce_currency(source_currency)
    coerced_amount = _coerce_amount(amount)
    lookup_date = context.effective_date(transaction_date)
    lookup = context.fx_book.lookup_rate(source, context.base_currency, lookup_date)
    return ConvertedAmount(
        amount=coerced_amount * lookup.rate,
        rate_used=lookup.rate,
        rate_date=lookup.date,
        source=lookup.source,
        from_currency=source,
        to_currency=context.base_currency,
    )


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def _coerce_currency(value: CurrencyCode | str) -> CurrencyCode:
    if isinstance(value, CurrencyCode):
        return value
    return CurrencyCode(value)


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def _missing_message(source: str, target: str, on_date: date) -> str:
    return f"No FX rate for {source} -> {target} on or near {on_date.isoformat()}."
