from datetime import datetime, timezone

from fastapi import Request

from owner_analytics.config import settings
from owner_analytics.services.insight_service import AlertThresholds
from owner_analytics.services.metrics_service import CashBasis


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def get_cash_basis() -> CashBasis:
    return CashBasis(settings.cash_basis.strip().lower())


def get_alert_thresholds() -> AlertThresholds:
    return AlertThresholds(
        long_shift_hours=settings.alert_long_shift_hours,
        stuck_order_minutes=settings.alert_stuck_order_minutes,
        long_table_minutes=settings.alert_long_table_minutes,
        max_refunds_per_day=settings.alert_max_refunds_per_day,
        sales_swing_percent=settings.alert_sales_swing_percent,
        cancellation_min_orders=settings.alert_cancellation_min_orders,
        cancellation_rate_percent=settings.alert_cancellation_rate_percent,
        max_weekly_voids=settings.alert_max_weekly_voids,
        void_window_days=settings.alert_void_window_days,
        discount_rate_percent=settings.alert_discount_rate_percent,
        no_sales_after_hour=settings.alert_no_sales_after_hour,
        good_performance_min_paid=settings.alert_good_performance_min_paid,
        good_performance_max_weekly_voids=settings.alert_good_performance_max_weekly_voids,
    )
