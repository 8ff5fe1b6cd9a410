from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from enum import Enum

from owner_analytics.services.metrics_service import HUNDRED, ZERO, duration_hours, safe_ratio, sum_decimal
from owner_analytics.services.report_service import ReportWindow, day_window, local_day
from owner_analytics.services.rows import RowSet, ShiftStatus

MIN_ACTIVE_DAYS = 3
BASELINE_DAYS = 7
DEVIATION_THRESHOLD_PERCENT = Decimal('50')
REPEATED_AFTER_DAYS = 3

DEFAULT_SHIFT_HOURS = Decimal('8')
SHIFT_HOURS_CAP = Decimal('24')
LONG_SHIFT_FACTOR = Decimal('1.5')
LONG_SHIFT_MIN_HOURS = Decimal('10')
NO_SALES_AFTER_HOUR = 12
MIN_DISCOUNTED_ORDERS = 2

MAX_CONFIDENCE = 100
MIN_CONFIDENCE = 40
MAX_NOTES = 3


class OperationalInsightType(str, Enum):
    REFUNDS_AFTER_PAYMENT = 'repeated_cancellation_after_payment'
    EXCESSIVE_DISCOUNTS = 'excessive_discounts'
    LONG_OPEN_SHIFTS = 'long_open_shifts'
    NO_SALES_DURING_HOURS = 'no_sales_during_hours'


class InsightSeverity(str, Enum):
    FIRST = 'first'
    REPEATED = 'repeated'


DEDUCTIONS: dict[OperationalInsightType, dict[InsightSeverity, int]] = {
    OperationalInsightType.REFUNDS_AFTER_PAYMENT: {InsightSeverity.FIRST: 10, InsightSeverity.REPEATED: 15},
    OperationalInsightType.EXCESSIVE_DISCOUNTS: {InsightSeverity.FIRST: 5, InsightSeverity.REPEATED: 10},
    OperationalInsightType.LONG_OPEN_SHIFTS: {InsightSeverity.FIRST: 5, InsightSeverity.REPEATED: 10},
    OperationalInsightType.NO_SALES_DURING_HOURS: {InsightSeverity.FIRST: 10, InsightSeverity.REPEATED: 15},
}

NOTES: dict[OperationalInsightType, dict[InsightSeverity, str]] = {
    OperationalInsightType.REFUNDS_AFTER_PAYMENT: {
        InsightSeverity.FIRST: 'Order cancellations after payment are higher than recent activity.',
        InsightSeverity.REPEATED: 'Order cancellations after payment have continued over recent days.',
    },
    OperationalInsightType.EXCESSIVE_DISCOUNTS: {
        InsightSeverity.FIRST: 'Discount usage is higher compared to recent activity.',
        InsightSeverity.REPEATED: 'Elevated discount usage has continued over recent days.',
    },
    OperationalInsightType.LONG_OPEN_SHIFTS: {
        InsightSeverity.FIRST: 'A shift has been open longer than typical duration.',
        InsightSeverity.REPEATED: 'Extended shift durations have continued over recent days.',
    },
    OperationalInsightType.NO_SALES_DURING_HOURS: {
        InsightSeverity.FIRST: 'No sales recorded during operating hours today.',
        InsightSeverity.REPEATED: 'Low sales activity has continued over recent days.',
    },
}

_ID_PREFIX = {
    OperationalInsightType.REFUNDS_AFTER_PAYMENT: 'cancellation',
    OperationalInsightType.EXCESSIVE_DISCOUNTS: 'discounts',
    OperationalInsightType.LONG_OPEN_SHIFTS: 'shift',
    OperationalInsightType.NO_SALES_DURING_HOURS: 'nosales',
}


@dataclass(frozen=True)
class Baseline:
    avg_refunds_per_day: Decimal
    avg_discount_rate: Decimal
    avg_shift_hours: Decimal
    avg_orders_per_day: Decimal
    active_days: int


@dataclass(frozen=True)
class TodayActivity:
    refund_count: int
    paid_orders: int
    revenue: Decimal
    discounts: Decimal
    discounted_orders: int
    max_open_shift_hours: Decimal
    has_open_shift: bool


@dataclass(frozen=True)
class OperationalInsight:
    id: str
    type: OperationalInsightType
    severity: InsightSeverity
    detected_at: datetime
    consecutive_days: int
    current_value: Decimal
    baseline_value: Decimal
    deviation_percent: Decimal


@dataclass(frozen=True)
class OperationalInsightsResult:
    insights: list[OperationalInsight] = field(default_factory=list)
    baseline: Baseline | None = None
    is_new_restaurant: bool = True
    confidence_score: int = MAX_CONFIDENCE
    notes: list[str] = field(default_factory=list)


def compute_baseline(rows: RowSet, *, now: datetime, tz: tzinfo = timezone.utc, days: int = BASELINE_DAYS) -> Baseline:
    """Average daily activity over the days before today.

    Only days with at least one paid order count as active. Closed shift
    durations are capped so a forgotten shift does not skew the average.
    """
    window = ReportWindow(start=day_window(now, tz, days_ago=days).start, end=day_window(now, tz).start)
    paid = [order for order in rows.orders if order.is_paid and window.contains(order.created_at)]
    active_days = len({local_day(order.created_at, tz) for order in paid})
    if active_days == 0:
        return Baseline(
            avg_refunds_per_day=ZERO,
            avg_discount_rate=ZERO,
            avg_shift_hours=DEFAULT_SHIFT_HOURS,
            avg_orders_per_day=ZERO,
            active_days=0,
        )

    refunds = sum(1 for refund in rows.refunds if window.contains(refund.created_at))
    revenue = sum_decimal(order.total for order in paid)
    discounts = sum_decimal(order.discount_value for order in paid)
    shift_hours = [
        min(duration_hours(shift.opened_at, shift.closed_at), SHIFT_HOURS_CAP)
        for shift in rows.shifts
        if shift.status == ShiftStatus.CLOSED and shift.closed_at is not None and window.contains(shift.opened_at)
    ]
    days_decimal = Decimal(active_days)
    return Baseline(
        avg_refunds_per_day=Decimal(refunds) / days_decimal,
        avg_discount_rate=safe_ratio(discounts, revenue) * HUNDRED,
        avg_shift_hours=sum_decimal(shift_hours) / Decimal(len(shift_hours)) if shift_hours else DEFAULT_SHIFT_HOURS,
        avg_orders_per_day=Decimal(len(paid)) / days_decimal,
        active_days=active_days,
    )


def compute_today_activity(rows: RowSet, *, now: datetime, tz: tzinfo = timezone.utc) -> TodayActivity:
    today = day_window(now, tz)
    paid = [order for order in rows.orders if order.is_paid and today.contains(order.created_at)]
    open_shifts = [shift for shift in rows.shifts if shift.is_open]
    return TodayActivity(
        refund_count=sum(1 for refund in rows.refunds if today.contains(refund.created_at)),
        paid_orders=len(paid),
        revenue=sum_decimal(order.total for order in paid),
        discounts=sum_decimal(order.discount_value for order in paid),
        discounted_orders=sum(1 for order in paid if order.discount_value > 0),
        max_open_shift_hours=max((duration_hours(shift.opened_at, now) for shift in open_shifts), default=ZERO),
        has_open_shift=bool(open_shifts),
    )


def _deviation(current: Decimal, baseline: Decimal) -> Decimal:
    return safe_ratio(current - baseline, baseline) * HUNDRED


def _severity(consecutive_days: int) -> InsightSeverity:
    return InsightSeverity.REPEATED if consecutive_days >= REPEATED_AFTER_DAYS else InsightSeverity.FIRST


def confidence_score(insights: list[OperationalInsight]) -> int:
    score = MAX_CONFIDENCE - sum(DEDUCTIONS[insight.type][insight.severity] for insight in insights)
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, score))


def operational_notes(insights: list[OperationalInsight]) -> list[str]:
    return [NOTES[insight.type][insight.severity] for insight in insights[:MAX_NOTES]]


def _detected(
    baseline: Baseline,
    today: TodayActivity,
    local_hour: int,
) -> list[tuple[OperationalInsightType, Decimal, Decimal, Decimal]]:
    found = []

    if today.refund_count > 1:
        current = Decimal(today.refund_count)
        if baseline.avg_refunds_per_day > 0:
            deviation = _deviation(current, baseline.avg_refunds_per_day)
        else:
            deviation = HUNDRED
        if deviation >= DEVIATION_THRESHOLD_PERCENT:
            found.append((OperationalInsightType.REFUNDS_AFTER_PAYMENT, current, baseline.avg_refunds_per_day, deviation))

    if today.paid_orders > 0 and baseline.avg_discount_rate > 0:
        rate = safe_ratio(today.discounts, today.revenue) * HUNDRED
        deviation = _deviation(rate, baseline.avg_discount_rate)
        if deviation >= DEVIATION_THRESHOLD_PERCENT and today.discounted_orders > MIN_DISCOUNTED_ORDERS:
            found.append((OperationalInsightType.EXCESSIVE_DISCOUNTS, rate, baseline.avg_discount_rate, deviation))

    hours = today.max_open_shift_hours
    if hours > baseline.avg_shift_hours * LONG_SHIFT_FACTOR and hours > LONG_SHIFT_MIN_HOURS:
        deviation = _deviation(hours, baseline.avg_shift_hours)
        found.append((OperationalInsightType.LONG_OPEN_SHIFTS, hours, baseline.avg_shift_hours, deviation))

    if (
        local_hour >= NO_SALES_AFTER_HOUR
        and today.paid_orders == 0
        and today.has_open_shift
        and baseline.avg_orders_per_day > 0
    ):
        found.append((OperationalInsightType.NO_SALES_DURING_HOURS, ZERO, baseline.avg_orders_per_day, HUNDRED))

    return found


def detect_operational_insights(
    rows: RowSet,
    *,
    now: datetime,
    tz: tzinfo = timezone.utc,
    previous_streaks: Mapping[OperationalInsightType, int] | None = None,
) -> OperationalInsightsResult:
    """Compare today's activity with the recent baseline.

    ``previous_streaks`` holds, per insight type, how many consecutive days
    before today it was already detected. Three or more days in a row,
    today included, marks an insight as repeated.
    """
    baseline = compute_baseline(rows, now=now, tz=tz)
    if baseline.active_days < MIN_ACTIVE_DAYS:
        return OperationalInsightsResult(baseline=baseline)

    previous_streaks = previous_streaks or {}
    today = compute_today_activity(rows, now=now, tz=tz)
    stamp = local_day(now, tz).strftime('%Y%m%d')
    insights = []
    for insight_type, current, baseline_value, deviation in _detected(baseline, today, now.astimezone(tz).hour):
        consecutive = previous_streaks.get(insight_type, 0) + 1
        insights.append(
            OperationalInsight(
                id=f'{_ID_PREFIX[insight_type]}_{stamp}',
                type=insight_type,
                severity=_severity(consecutive),
                detected_at=now,
                consecutive_days=consecutive,
                current_value=current,
                baseline_value=baseline_value,
                deviation_percent=deviation,
            )
        )
    return OperationalInsightsResult(
        insights=insights,
        baseline=baseline,
        is_new_restaurant=False,
        confidence_score=confidence_score(insights),
        notes=operational_notes(insights),
    )
