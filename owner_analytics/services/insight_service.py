from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import Enum

from owner_analytics.services.join_service import JoinMaps, build_join_maps
from owner_analytics.services.metrics_service import (
    HUNDRED,
    duration_hours,
    duration_minutes,
    format_money,
    percent_change,
    quantize_display,
    safe_ratio,
    sum_decimal,
)
from owner_analytics.services.report_service import ReportWindow, day_window, local_day
from owner_analytics.services.rows import (
    ACTIVE_TABLE_STATUSES,
    PENDING_ORDER_STATUSES,
    OrderStatus,
    RowSet,
)


class AlertType(str, Enum):
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'
    SUCCESS = 'success'


class AlertCategory(str, Enum):
    OPERATIONAL = 'operational'
    PERFORMANCE = 'performance'


class AlertRule(str, Enum):
    LONG_OPEN_SHIFT = 'long_open_shift'
    STUCK_ORDER = 'stuck_order'
    LONG_OCCUPIED_TABLE = 'long_occupied_table'
    EXCESSIVE_REFUNDS = 'excessive_refunds'
    SALES_SWING = 'sales_swing'
    HIGH_CANCELLATION_RATE = 'high_cancellation_rate'
    HIGH_VOID_RATE = 'high_void_rate'
    HIGH_DISCOUNT_USAGE = 'high_discount_usage'
    NO_SALES_YET = 'no_sales_yet'
    GOOD_PERFORMANCE = 'good_performance'


SEVERITY_ORDER = {
    AlertType.ERROR: 0,
    AlertType.WARNING: 1,
    AlertType.INFO: 2,
    AlertType.SUCCESS: 3,
}


@dataclass(frozen=True)
class AlertThresholds:
    long_shift_hours: Decimal = Decimal('10')
    stuck_order_minutes: int = 30
    long_table_minutes: int = 90
    max_refunds_per_day: int = 5
    sales_swing_percent: Decimal = Decimal('20')
    cancellation_min_orders: int = 5
    cancellation_rate_percent: Decimal = Decimal('15')
    max_weekly_voids: int = 20
    void_window_days: int = 7
    discount_rate_percent: Decimal = Decimal('15')
    no_sales_after_hour: int = 11
    good_performance_min_paid: int = 10
    good_performance_max_weekly_voids: int = 5


@dataclass(frozen=True)
class ThresholdOverrides:
    long_shift_hours: Decimal | None = None
    stuck_order_minutes: int | None = None
    long_table_minutes: int | None = None
    max_refunds_per_day: int | None = None
    sales_swing_percent: Decimal | None = None
    cancellation_min_orders: int | None = None
    cancellation_rate_percent: Decimal | None = None
    max_weekly_voids: int | None = None
    void_window_days: int | None = None
    discount_rate_percent: Decimal | None = None
    no_sales_after_hour: int | None = None
    good_performance_min_paid: int | None = None
    good_performance_max_weekly_voids: int | None = None


def _validate_thresholds(thresholds: AlertThresholds) -> None:
    if thresholds.long_shift_hours <= 0:
        raise ValueError('Long shift hours must be greater than zero')
    if thresholds.stuck_order_minutes <= 0 or thresholds.long_table_minutes <= 0:
        raise ValueError('Order and table age thresholds must be greater than zero')
    if thresholds.sales_swing_percent <= 0:
        raise ValueError('Sales swing percent must be greater than zero')
    for name in ('cancellation_rate_percent', 'discount_rate_percent'):
        value = getattr(thresholds, name)
        if value < 0 or value > HUNDRED:
            raise ValueError(f'{name.replace("_", " ").capitalize()} must be between 0 and 100')
    for name in (
        'max_refunds_per_day',
        'cancellation_min_orders',
        'max_weekly_voids',
        'good_performance_min_paid',
        'good_performance_max_weekly_voids',
    ):
        if getattr(thresholds, name) < 0:
            raise ValueError(f'{name.replace("_", " ").capitalize()} cannot be negative')
    if thresholds.void_window_days < 1:
        raise ValueError('Void window must be at least one day')
    if not 0 <= thresholds.no_sales_after_hour <= 23:
        raise ValueError('No-sales hour must be between 0 and 23')


def resolve_thresholds(defaults: AlertThresholds, overrides: ThresholdOverrides | None = None) -> AlertThresholds:
    if overrides is None:
        _validate_thresholds(defaults)
        return defaults

    values = {}
    for threshold in fields(AlertThresholds):
        override = getattr(overrides, threshold.name)
        values[threshold.name] = override if override is not None else getattr(defaults, threshold.name)
    resolved = AlertThresholds(**values)
    _validate_thresholds(resolved)
    return resolved


@dataclass(frozen=True)
class Alert:
    id: str
    type: AlertType
    rule: AlertRule
    title: str
    message: str
    timestamp: datetime
    category: AlertCategory
    params: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class OpenShiftSnapshot:
    shift_id: str
    cashier_email: str
    opened_at: datetime


@dataclass(frozen=True)
class PendingOrderSnapshot:
    order_id: str
    order_number: int | None
    status: OrderStatus
    created_at: datetime


@dataclass(frozen=True)
class OccupiedTableSnapshot:
    table_id: str
    table_name: str
    oldest_active_at: datetime


@dataclass(frozen=True)
class AlertMetrics:
    """Point-in-time figures the alert rules compare against thresholds."""

    day: date
    local_hour: int
    open_shifts: list[OpenShiftSnapshot] = field(default_factory=list)
    pending_orders: list[PendingOrderSnapshot] = field(default_factory=list)
    occupied_tables: list[OccupiedTableSnapshot] = field(default_factory=list)
    today_order_count: int = 0
    today_paid_count: int = 0
    today_cancelled_count: int = 0
    today_refund_count: int = 0
    today_sales: Decimal = Decimal('0')
    yesterday_sales: Decimal = Decimal('0')
    today_discounts: Decimal = Decimal('0')
    weekly_void_count: int = 0


def build_alert_metrics(
    rows: RowSet,
    *,
    now: datetime,
    tz: tzinfo = timezone.utc,
    void_window_days: int = 7,
    joins: JoinMaps | None = None,
) -> AlertMetrics:
    joins = joins or build_join_maps(rows)
    today = day_window(now, tz)
    yesterday = day_window(now, tz, days_ago=1)
    void_window = ReportWindow(start=now - timedelta(days=void_window_days), end=today.end)

    today_orders = [order for order in rows.orders if today.contains(order.created_at)]
    today_paid = [order for order in today_orders if order.is_paid]
    order_created = {order.id: order.created_at for order in rows.orders}

    oldest_by_table: dict[str, datetime] = {}
    for order in rows.orders:
        if order.table_id is None or order.status not in ACTIVE_TABLE_STATUSES:
            continue
        current = oldest_by_table.get(order.table_id)
        if current is None or order.created_at < current:
            oldest_by_table[order.table_id] = order.created_at

    return AlertMetrics(
        day=local_day(now, tz),
        local_hour=now.astimezone(tz).hour,
        open_shifts=sorted(
            (
                OpenShiftSnapshot(
                    shift_id=shift.id,
                    cashier_email=joins.email_for_cashier(shift.cashier_id),
                    opened_at=shift.opened_at,
                )
                for shift in rows.shifts
                if shift.is_open
            ),
            key=lambda snap: snap.shift_id,
        ),
        pending_orders=sorted(
            (
                PendingOrderSnapshot(
                    order_id=order.id,
                    order_number=order.order_number,
                    status=order.status,
                    created_at=order.created_at,
                )
                for order in rows.orders
                if order.status in PENDING_ORDER_STATUSES
            ),
            key=lambda snap: snap.order_id,
        ),
        occupied_tables=[
            OccupiedTableSnapshot(table_id=table_id, table_name=joins.table_name(table_id), oldest_active_at=oldest)
            for table_id, oldest in sorted(oldest_by_table.items())
        ],
        today_order_count=len(today_orders),
        today_paid_count=len(today_paid),
        today_cancelled_count=sum(1 for order in today_orders if order.status == OrderStatus.CANCELLED),
        today_refund_count=sum(1 for refund in rows.refunds if today.contains(refund.created_at)),
        today_sales=sum_decimal(order.total for order in today_paid),
        yesterday_sales=sum_decimal(
            order.total for order in rows.orders if order.is_paid and yesterday.contains(order.created_at)
        ),
        today_discounts=sum_decimal(order.discount_value for order in today_paid),
        weekly_void_count=sum(
            1
            for item in rows.order_items
            if item.voided and void_window.contains(item.created_at or order_created.get(item.order_id))
        ),
    )


RuleFn = Callable[[AlertMetrics, AlertThresholds, datetime], list[Alert]]


def _long_open_shifts(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    alerts = []
    for shift in metrics.open_shifts:
        hours = duration_hours(shift.opened_at, now)
        if hours < thresholds.long_shift_hours:
            continue
        alerts.append(
            Alert(
                id=f'long-open-shift:{shift.shift_id}',
                type=AlertType.WARNING,
                rule=AlertRule.LONG_OPEN_SHIFT,
                title='Long Open Shift',
                message=(
                    f'A shift has been open for {quantize_display(hours, 1)} hours. '
                    'Consider checking if it should be closed.'
                ),
                timestamp=now,
                category=AlertCategory.OPERATIONAL,
                params={'shift_id': shift.shift_id, 'cashier': shift.cashier_email, 'hours': hours},
            )
        )
    return alerts


def _stuck_orders(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    alerts = []
    for order in metrics.pending_orders:
        minutes = duration_minutes(order.created_at, now)
        if minutes < thresholds.stuck_order_minutes:
            continue
        label = f'#{order.order_number}' if order.order_number is not None else order.order_id
        alerts.append(
            Alert(
                id=f'stuck-order:{order.order_id}',
                type=AlertType.WARNING,
                rule=AlertRule.STUCK_ORDER,
                title='Order Waiting Too Long',
                message=f'Order {label} has been {order.status.value} for {minutes} minutes.',
                timestamp=now,
                category=AlertCategory.OPERATIONAL,
                params={'order_id': order.order_id, 'status': order.status.value, 'minutes': minutes},
            )
        )
    return alerts


def _long_occupied_tables(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    alerts = []
    for table in metrics.occupied_tables:
        minutes = duration_minutes(table.oldest_active_at, now)
        if minutes < thresholds.long_table_minutes:
            continue
        alerts.append(
            Alert(
                id=f'long-table:{table.table_id}',
                type=AlertType.INFO,
                rule=AlertRule.LONG_OCCUPIED_TABLE,
                title='Table Occupied For A Long Time',
                message=f'Table {table.table_name} has been occupied for {minutes} minutes.',
                timestamp=now,
                category=AlertCategory.OPERATIONAL,
                params={'table_id': table.table_id, 'minutes': minutes},
            )
        )
    return alerts


def _excessive_refunds(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    if metrics.today_refund_count <= thresholds.max_refunds_per_day:
        return []
    return [
        Alert(
            id=f'excessive-refunds:{metrics.day.isoformat()}',
            type=AlertType.WARNING,
            rule=AlertRule.EXCESSIVE_REFUNDS,
            title='Many Refunds Today',
            message=f'{metrics.today_refund_count} refunds have been issued today.',
            timestamp=now,
            category=AlertCategory.OPERATIONAL,
            params={'refund_count': metrics.today_refund_count},
        )
    ]


def _sales_swing(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    change = percent_change(metrics.today_sales, metrics.yesterday_sales)
    if change is None:
        return []
    params = {
        'change_percent': change,
        'today_sales': metrics.today_sales,
        'yesterday_sales': metrics.yesterday_sales,
    }
    versus = f'({format_money(metrics.today_sales, decimals=2)} vs {format_money(metrics.yesterday_sales, decimals=2)})'
    if change >= thresholds.sales_swing_percent:
        return [
            Alert(
                id=f'sales-up:{metrics.day.isoformat()}',
                type=AlertType.SUCCESS,
                rule=AlertRule.SALES_SWING,
                title='Sales Up!',
                message=f"Today's sales are up {quantize_display(change, 0)}% compared to yesterday {versus}",
                timestamp=now,
                category=AlertCategory.PERFORMANCE,
                params=params,
            )
        ]
    if change <= -thresholds.sales_swing_percent:
        return [
            Alert(
                id=f'sales-down:{metrics.day.isoformat()}',
                type=AlertType.WARNING,
                rule=AlertRule.SALES_SWING,
                title='Sales Down',
                message=f"Today's sales are down {quantize_display(abs(change), 0)}% compared to yesterday {versus}",
                timestamp=now,
                category=AlertCategory.PERFORMANCE,
                params=params,
            )
        ]
    return []


def _high_cancellations(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    if metrics.today_order_count <= thresholds.cancellation_min_orders:
        return []
    rate = safe_ratio(Decimal(metrics.today_cancelled_count), Decimal(metrics.today_order_count)) * HUNDRED
    if rate <= thresholds.cancellation_rate_percent:
        return []
    return [
        Alert(
            id=f'high-cancellations:{metrics.day.isoformat()}',
            type=AlertType.ERROR,
            rule=AlertRule.HIGH_CANCELLATION_RATE,
            title='High Cancellation Rate',
            message=(
                f"{quantize_display(rate, 0)}% of today's orders were cancelled "
                f'({metrics.today_cancelled_count} of {metrics.today_order_count})'
            ),
            timestamp=now,
            category=AlertCategory.OPERATIONAL,
            params={
                'rate_percent': rate,
                'cancelled': metrics.today_cancelled_count,
                'total': metrics.today_order_count,
            },
        )
    ]


def _high_voids(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    if metrics.weekly_void_count <= thresholds.max_weekly_voids:
        return []
    return [
        Alert(
            id=f'high-voids:{metrics.day.isoformat()}',
            type=AlertType.WARNING,
            rule=AlertRule.HIGH_VOID_RATE,
            title='High Void Count',
            message=(
                f'{metrics.weekly_void_count} items voided in the last {thresholds.void_window_days} days. '
                'Consider reviewing with staff.'
            ),
            timestamp=now,
            category=AlertCategory.OPERATIONAL,
            params={'void_count': metrics.weekly_void_count},
        )
    ]


def _high_discounts(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    if metrics.today_sales <= 0:
        return []
    rate = metrics.today_discounts / metrics.today_sales * HUNDRED
    if rate <= thresholds.discount_rate_percent:
        return []
    return [
        Alert(
            id=f'high-discounts:{metrics.day.isoformat()}',
            type=AlertType.WARNING,
            rule=AlertRule.HIGH_DISCOUNT_USAGE,
            title='High Discount Usage',
            message=(
                f"{quantize_display(rate, 0)}% of today's sales were discounted "
                f'({format_money(metrics.today_discounts, decimals=2)})'
            ),
            timestamp=now,
            category=AlertCategory.PERFORMANCE,
            params={'rate_percent': rate, 'discounts': metrics.today_discounts},
        )
    ]


def _no_sales_yet(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    if metrics.local_hour < thresholds.no_sales_after_hour or metrics.today_paid_count > 0:
        return []
    return [
        Alert(
            id=f'no-sales-today:{metrics.day.isoformat()}',
            type=AlertType.INFO,
            rule=AlertRule.NO_SALES_YET,
            title='No Sales Today',
            message='No completed orders have been recorded today yet.',
            timestamp=now,
            category=AlertCategory.PERFORMANCE,
            params={'hour': metrics.local_hour},
        )
    ]


def _good_performance(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    if (
        metrics.today_paid_count < thresholds.good_performance_min_paid
        or metrics.today_cancelled_count > 0
        or metrics.weekly_void_count >= thresholds.good_performance_max_weekly_voids
    ):
        return []
    return [
        Alert(
            id=f'good-performance:{metrics.day.isoformat()}',
            type=AlertType.SUCCESS,
            rule=AlertRule.GOOD_PERFORMANCE,
            title='Great Performance!',
            message='Operations are running smoothly with low cancellations and voids.',
            timestamp=now,
            category=AlertCategory.PERFORMANCE,
            params={'paid_orders': metrics.today_paid_count},
        )
    ]


RULES: tuple[RuleFn, ...] = (
    _long_open_shifts,
    _stuck_orders,
    _long_occupied_tables,
    _excessive_refunds,
    _sales_swing,
    _high_cancellations,
    _high_voids,
    _high_discounts,
    _no_sales_yet,
    _good_performance,
)


def evaluate_alerts(metrics: AlertMetrics, thresholds: AlertThresholds, now: datetime) -> list[Alert]:
    alerts: list[Alert] = []
    for rule in RULES:
        alerts.extend(rule(metrics, thresholds, now))
    return alerts


def sort_alerts(alerts: list[Alert]) -> list[Alert]:
    return sorted(alerts, key=lambda alert: SEVERITY_ORDER[alert.type])


def count_by_type(alerts: list[Alert]) -> dict[str, int]:
    counts = {alert_type.value: 0 for alert_type in AlertType}
    for alert in alerts:
        counts[alert.type.value] += 1
    return counts


def alerts_for_rows(
    rows: RowSet,
    *,
    now: datetime,
    thresholds: AlertThresholds,
    tz: tzinfo = timezone.utc,
) -> list[Alert]:
    metrics = build_alert_metrics(rows, now=now, tz=tz, void_window_days=thresholds.void_window_days)
    return sort_alerts(evaluate_alerts(metrics, thresholds, now))