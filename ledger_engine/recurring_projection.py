from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from ledger_engine.models import (
    Recurrence,
    RecurrenceMode,
    RecurrenceStatus,
    Transaction,
    templates,
)
from ledger_engine.time_interval import DateWindow

logger = logging.getLogger(__name__)

MAX_FORECAST_OCCURRENCES = 1024
PENDING_WINDOW_DAYS = 7
SNAPSHOT_LOOKAHEAD_DAYS = 365 * 5
ZERO = Decimal("0")


class ScheduledStatus(str, Enum):
    OVERDUE = "overdue"
    PENDING = "pending"
    FUTURE = "future"

    @classmethod
    def classify(cls, scheduled: date, reference: date) -> ScheduledStatus:
        if scheduled < reference:
            return cls.OVERDUE
        if scheduled <= reference + timedelta(days=PENDING_WINDOW_DAYS):
            return cls.PENDING
        return cls.FUTURE


@dataclass(frozen=True)
class Occurrence:
    index: int
    scheduled_date: date
    transaction: Optional[Transaction] = None

    @property
    def is_virtual(self) -> bool:
        return self.transaction is None


@dataclass(frozen=True)
class ScheduledInstance:
    series_id: UUID
    template_id: UUID
    occurrence_index: int
    scheduled_date: date
    status: ScheduledStatus
    exists_in_ledger: bool
    transaction_id: Optional[UUID] = None


@dataclass(frozen=True)
class ForecastTransaction:
    transaction: Transaction
    status: ScheduledStatus
    occurrence_index: int


@dataclass(frozen=True)
class ForecastTotals:
    generated: int = 0
    projected_inflow: Decimal = ZERO
    projected_outflow: Decimal = ZERO
    net: Decimal = ZERO

    @classmethod
    def from_transactions(cls, items: Sequence[ForecastTransaction]) -> ForecastTotals:
        inflow = ZERO
        outflow = ZERO
        for item in items:
            amount = item.transaction.budgeted_amount
            if amount >= ZERO:
                outflow += amount
            else:
                inflow += abs(amount)
        return cls(
            generated=len(items),
            projected_inflow=inflow,
            projected_outflow=outflow,
            net=inflow - outflow,
        )


@dataclass(frozen=True)
class ForecastResult:
    window: DateWindow
    reference_date: date
    instances: List[ScheduledInstance]
    transactions: List[ForecastTransaction]
    totals: ForecastTotals


@dataclass(frozen=True)
class RecurrenceSnapshot:
    series_id: UUID
    template_id: UUID
    start_date: date
    interval_label: str
    next_due: Optional[date]
    overdue: int
    pending: int
    status: RecurrenceStatus


@dataclass(frozen=True)
class SeriesMetadata:
    series_id: UUID
    last_generated: Optional[date]
    last_completed: Optional[date]
    next_due: Optional[date]
    total_occurrences: int


def build_occurrences(
    recurrence: Recurrence,
    known_instances: Iterable[Transaction],
    limit_date: date,
) -> List[Occurrence]:
    """Step the recurrence from its start date up to (excluding) ``limit_date``.

    Each generated date claims at most one known instance with the same scheduled
    date; dates without one are virtual.
    """
    occurrences: List[Occurrence] = []
    if limit_date <= recurrence.start_date:
        return occurrences

    entries = sorted(known_instances, key=lambda txn: txn.scheduled_date)
    cursor = 0
    occurrence_index = 0
    skipped = 0
    scheduled_date = recurrence.start_date

    while scheduled_date < limit_date and len(occurrences) < MAX_FORECAST_OCCURRENCES:
        if not recurrence.allows_occurrence(occurrence_index, scheduled_date):
            break
        if recurrence.is_exception(scheduled_date):
            skipped += 1
            if skipped >= MAX_FORECAST_OCCURRENCES:
                logger.debug("Series %s exhausted its exception budget", recurrence.series_id)
                break
            scheduled_date = recurrence.interval.next_date(scheduled_date)
            continue

        while cursor < len(entries) and entries[cursor].scheduled_date < scheduled_date:
            cursor += 1
        matched = None
        if cursor < len(entries) and entries[cursor].scheduled_date == scheduled_date:
            matched = entries[cursor]
            cursor += 1

        occurrences.append(Occurrence(occurrence_index, scheduled_date, matched))

        anchor = scheduled_date
        if (
            recurrence.mode is RecurrenceMode.AFTER_LAST_PERFORMED
            and matched is not None
            and matched.actual_date is not None
        ):
            anchor = matched.actual_date
        scheduled_date = recurrence.interval.next_date(anchor)
        occurrence_index += 1

    if len(occurrences) >= MAX_FORECAST_OCCURRENCES:
        logger.debug("Series %s truncated at %d occurrences", recurrence.series_id, len(occurrences))
    return occurrences


def forecast_for_window(
    window: DateWindow,
    reference_date: date,
    transactions: Sequence[Transaction],
) -> ForecastResult:
    series_map = _collect_series_entries(transactions)
    instances: List[ScheduledInstance] = []
    generated: List[ForecastTransaction] = []

    for template in templates(transactions):
        # Existing instances are still reported once the synthesis cap is hit.
        remaining = max(MAX_FORECAST_OCCURRENCES - len(generated), 0)
        entries = series_map.get(template.series_id, [template])
        series_instances, series_generated = project_series(
            template,
            entries,
            window,
            reference_date,
            max_generated=remaining,
        )
        instances.extend(series_instances)
        generated.extend(series_generated)

    if len(generated) >= MAX_FORECAST_OCCURRENCES:
        logger.debug("Forecast reached the %d synthesized instance cap", MAX_FORECAST_OCCURRENCES)
    instances.sort(key=lambda inst: inst.scheduled_date)
    return ForecastResult(
        window=window,
        reference_date=reference_date,
        instances=instances,
        transactions=generated,
        totals=ForecastTotals.from_transactions(generated),
    )


def project_series(
    template: Transaction,
    entries: Iterable[Transaction],
    window: DateWindow,
    reference_date: date,
    max_generated: int = MAX_FORECAST_OCCURRENCES,
) -> Tuple[List[ScheduledInstance], List[ForecastTransaction]]:
    """Scheduled instances and synthesized transactions of one series inside ``window``."""
    recurrence = template.recurrence
    if recurrence is None:
        raise ValueError("template must carry a recurrence.")
    series_id = template.series_id
    instances: List[ScheduledInstance] = []
    generated: List[ForecastTransaction] = []

    for occurrence in build_occurrences(recurrence, entries, window.end):
        if not window.contains(occurrence.scheduled_date):
            continue
        status = ScheduledStatus.classify(occurrence.scheduled_date, reference_date)
        existing = occurrence.transaction
        if existing is not None:
            if existing.actual_date is None:
                instances.append(
                    ScheduledInstance(
                        series_id=series_id,
                        template_id=template.id,
                        occurrence_index=occurrence.index,
                        scheduled_date=occurrence.scheduled_date,
                        status=status,
                        exists_in_ledger=True,
                        transaction_id=existing.id,
                    )
                )
            continue
        if not recurrence.is_active():
            continue
        if len(generated) >= max_generated:
            continue
        generated.append(
            ForecastTransaction(
                transaction=template.as_planned_instance(occurrence.scheduled_date, series_id),
                status=status,
                occurrence_index=occurrence.index,
            )
        )
        instances.append(
            ScheduledInstance(
                series_id=series_id,
                template_id=template.id,
                occurrence_index=occurrence.index,
                scheduled_date=occurrence.scheduled_date,
                status=status,
                exists_in_ledger=False,
            )
        )

    return instances, generated


def snapshot_recurrences(
    transactions: Sequence[Transaction],
    reference_date: date,
) -> List[RecurrenceSnapshot]:
    series_map = _collect_series_entries(transactions)
    lookahead_end = reference_date + timedelta(days=SNAPSHOT_LOOKAHEAD_DAYS)
    snapshots: List[RecurrenceSnapshot] = []

    for template in templates(transactions):
        recurrence = template.recurrence
        entries = series_map.get(template.series_id, [template])
        overdue = 0
        pending = 0
        next_due = recurrence.next_scheduled

        for occurrence in build_occurrences(recurrence, entries, lookahead_end):
            if occurrence.transaction is not None:
                if occurrence.transaction.actual_date is not None:
                    continue
            elif not recurrence.is_active():
                continue
            status = ScheduledStatus.classify(occurrence.scheduled_date, reference_date)
            if status is ScheduledStatus.OVERDUE:
                overdue += 1
            elif status is ScheduledStatus.PENDING:
                pending += 1
            if next_due is None and occurrence.scheduled_date >= reference_date:
                next_due = occurrence.scheduled_date

        snapshots.append(
            RecurrenceSnapshot(
                series_id=template.series_id,
                template_id=template.id,
                start_date=recurrence.start_date,
                interval_label=recurrence.interval.label(),
                next_due=next_due,
                overdue=overdue,
                pending=pending,
                status=recurrence.status,
            )
        )

    snapshots.sort(
        key=lambda snap: (snap.next_due is None, snap.next_due or date.min, str(snap.template_id))
    )
    return snapshots


def rebuild_metadata(transactions: Sequence[Transaction]) -> Dict[UUID, SeriesMetadata]:
    states: Dict[UUID, List[Tuple[date, Optional[date]]]] = {}
    for txn in transactions:
        if txn.series_id is not None:
            states.setdefault(txn.series_id, []).append((txn.scheduled_date, txn.actual_date))
    for series_states in states.values():
        series_states.sort(key=lambda state: state[0])

    metadata: Dict[UUID, SeriesMetadata] = {}
    for template in templates(transactions):
        series_id = template.series_id
        if series_id in metadata:
            continue
        recurrence = template.recurrence
        series_states = states.get(
            series_id, [(template.scheduled_date, template.actual_date)]
        )
        completed = [actual for _, actual in series_states if actual is not None]
        metadata[series_id] = SeriesMetadata(
            series_id=series_id,
            last_generated=max(
                (scheduled for scheduled, _ in series_states),
                default=recurrence.start_date,
            ),
            last_completed=max(completed) if completed else None,
            next_due=_next_due_from_states(recurrence, series_states),
            total_occurrences=len(series_states),
        )
    return metadata


def refresh_recurrence_metadata(transactions: Sequence[Transaction]) -> List[Transaction]:
    """Return ``transactions`` with every template's cached metadata recomputed."""
    metadata = rebuild_metadata(transactions)
    refreshed: List[Transaction] = []
    for txn in transactions:
        series = metadata.get(txn.series_id) if txn.recurrence is not None else None
        if series is None:
            refreshed.append(txn)
            continue
        refreshed.append(
            txn.with_recurrence(
                txn.recurrence.with_metadata(
                    series.last_generated,
                    series.last_completed,
                    series.next_due,
                    series.total_occurrences,
                )
            )
        )
    return refreshed


def materialize_due_instances(
    reference_date: date,
    transactions: Sequence[Transaction],
) -> List[Transaction]:
    """Concrete planned transactions for virtual occurrences due on or before ``reference_date``.

    The results are detached from the recurrence definition and only carry the series
    id; inserting them into the ledger is left to the caller.
    """
    creations: List[Transaction] = []
    limit_end = reference_date + timedelta(days=1)
    series_map = _collect_series_entries(transactions)

    for template in templates(transactions):
        recurrence = template.recurrence
        if not recurrence.is_active():
            continue
        series_id = template.series_id
        entries = series_map.get(series_id, [template])
        for occurrence in build_occurrences(recurrence, entries, limit_end):
            if occurrence.scheduled_date > reference_date or not occurrence.is_virtual:
                continue
            creations.append(template.as_planned_instance(occurrence.scheduled_date, series_id))
            if len(creations) >= MAX_FORECAST_OCCURRENCES:
                logger.debug("Materialization stopped at %d instances", len(creations))
                return creations

    return creations


def _collect_series_entries(
    transactions: Iterable[Transaction],
) -> Dict[UUID, List[Transaction]]:
    series_map: Dict[UUID, List[Transaction]] = {}
    for txn in transactions:
        if txn.series_id is not None:
            series_map.setdefault(txn.series_id, []).append(txn)
    return series_map


def _next_due_from_states(
    recurrence: Recurrence,
    states: Sequence[Tuple[date, Optional[date]]],
) -> Optional[date]:
    if recurrence.status is RecurrenceStatus.COMPLETED:
        return None
    if not states:
        return recurrence.start_date
    last_scheduled = max(scheduled for scheduled, _ in states)
    last_actual = next(
        (actual for scheduled, actual in reversed(states) if scheduled == last_scheduled),
        None,
    )
    candidate = recurrence.next_occurrence(last_scheduled, last_actual)
    attempts = 0
    while recurrence.is_exception(candidate):
        candidate = recurrence.interval.next_date(candidate)
        attempts += 1
        if attempts >= MAX_FORECAST_OCCURRENCES:
            return None
    if recurrence.allows_occurrence(len(states), candidate):
        return candidate
    return None
