from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from owner_analytics.config import settings
from owner_analytics.db import get_db
from owner_analytics.dependencies import get_alert_thresholds, get_cash_basis, get_client_ip, get_now
from owner_analytics.services.audit_service import log_audit
from owner_analytics.services.export_service import columns_for, paginate, to_csv
from owner_analytics.services.insight_service import (
    AlertThresholds,
    ThresholdOverrides,
    alerts_for_rows,
    count_by_type,
    resolve_thresholds,
)
from owner_analytics.services.join_service import JoinMaps, build_join_maps
from owner_analytics.services.metrics_service import CashBasis
from owner_analytics.services.operational_insight_service import (
    BASELINE_DAYS,
    OperationalInsightType,
    detect_operational_insights,
)
from owner_analytics.services.provider_factory import get_row_provider
from owner_analytics.services.report_service import (
    AmountCountRow,
    BranchPerformanceRow,
    CashDifferenceRow,
    CashierSalesRow,
    DailyPoint,
    DailySummary,
    ItemSalesRow,
    NamedCount,
    OrderDetailRow,
    OrderType,
    ProfitRow,
    ReportFilters,
    ReportWindow,
    SalesSummary,
    ShiftSummaryRow,
    apply_filters,
    build_branch_report,
    build_cash_differences,
    build_costing_report,
    build_daily_summary,
    build_financial_report,
    build_menu_report,
    build_orders_report,
    build_refund_void_insights,
    build_sales_summary,
    build_shift_report,
    build_staff_report,
    build_trends,
    day_window,
    local_day,
    restrict_to_window,
)
from owner_analytics.services.row_provider import RowProvider
from owner_analytics.services.rows import RowSet

logger = logging.getLogger(__name__)

router = APIRouter(tags=['reports'])

DEFAULT_WINDOW_DAYS = 7


@dataclass(frozen=True)
class ReportContext:
    restaurant_id: str
    rows: RowSet
    joins: JoinMaps
    window: ReportWindow
    filters: ReportFilters
    now: datetime
    tz: tzinfo
    cash_basis: CashBasis


@dataclass(frozen=True)
class ReportDefinition:
    build: Callable[[ReportContext], object]
    export_rows: Callable[[object], list]
    export_type: type
    # Ignores start/end and covers yesterday plus today.
    today_scoped: bool = False


REPORTS: dict[str, ReportDefinition] = {
    'summary': ReportDefinition(
        build=lambda ctx: build_sales_summary(ctx.rows),
        export_rows=lambda report: [report],
        export_type=SalesSummary,
    ),
    'staff': ReportDefinition(
        build=lambda ctx: build_staff_report(ctx.rows, ctx.joins),
        export_rows=lambda report: report.cashier_sales,
        export_type=CashierSalesRow,
    ),
    'costing': ReportDefinition(
        build=lambda ctx: build_costing_report(ctx.rows, ctx.joins),
        export_rows=lambda report: report.profit_by_item,
        export_type=ProfitRow,
    ),
    'financial': ReportDefinition(
        build=lambda ctx: build_financial_report(ctx.rows, ctx.joins),
        export_rows=lambda report: report.payments_by_method,
        export_type=AmountCountRow,
    ),
    'orders': ReportDefinition(
        build=lambda ctx: build_orders_report(ctx.rows, ctx.tz),
        export_rows=lambda report: report.details,
        export_type=OrderDetailRow,
    ),
    'menu': ReportDefinition(
        build=lambda ctx: build_menu_report(ctx.rows, ctx.joins),
        export_rows=lambda report: report.item_performance,
        export_type=ItemSalesRow,
    ),
    'branches': ReportDefinition(
        build=lambda ctx: build_branch_report(ctx.rows, ctx.joins),
        export_rows=lambda report: report.branches,
        export_type=BranchPerformanceRow,
    ),
    'shifts': ReportDefinition(
        build=lambda ctx: build_shift_report(ctx.rows, now=ctx.now, joins=ctx.joins, basis=ctx.cash_basis),
        export_rows=lambda report: report.shifts,
        export_type=ShiftSummaryRow,
    ),
    'cash-differences': ReportDefinition(
        build=lambda ctx: build_cash_differences(ctx.rows, window=ctx.window, joins=ctx.joins, basis=ctx.cash_basis),
        export_rows=lambda report: report.rows,
        export_type=CashDifferenceRow,
    ),
    'trends': ReportDefinition(
        build=lambda ctx: build_trends(ctx.rows, ctx.window, ctx.tz),
        export_rows=lambda report: report.daily,
        export_type=DailyPoint,
    ),
    'daily-summary': ReportDefinition(
        build=lambda ctx: build_daily_summary(ctx.rows, now=ctx.now, tz=ctx.tz),
        export_rows=lambda report: [report],
        export_type=DailySummary,
        today_scoped=True,
    ),
    'refund-voids': ReportDefinition(
        build=lambda ctx: build_refund_void_insights(ctx.rows, now=ctx.now, tz=ctx.tz, joins=ctx.joins),
        export_rows=lambda report: report.top_void_reasons,
        export_type=NamedCount,
        today_scoped=True,
    ),
}


def _parse_date(raw: str | None, *, label: str) -> date | None:
    raw = (raw or '').strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid {label} date') from exc


def _report_window(start_raw: str | None, end_raw: str | None, *, now: datetime, tz: tzinfo) -> ReportWindow:
    end_date = _parse_date(end_raw, label='end') or local_day(now, tz)
    start_date = _parse_date(start_raw, label='start') or end_date - timedelta(days=DEFAULT_WINDOW_DAYS - 1)
    try:
        return ReportWindow.for_dates(start_date, end_date, tz)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _report_filters(
    branch_id: str | None,
    cashier_id: str | None,
    payment_method: str | None,
    order_type: str | None,
) -> ReportFilters:
    parsed_type = None
    if order_type:
        try:
            parsed_type = OrderType(order_type.strip().lower())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail='Invalid order type') from exc
    return ReportFilters(
        branch_id=(branch_id or '').strip() or None,
        cashier_id=(cashier_id or '').strip() or None,
        payment_method=(payment_method or '').strip().lower() or None,
        order_type=parsed_type,
    )


def _fetch(provider: RowProvider, *, restaurant_id: str, window: ReportWindow) -> RowSet:
    rows = provider.fetch_rows(restaurant_id=restaurant_id, start=window.start, end=window.end)
    if rows.coercions:
        logger.warning(
            'Coerced malformed numeric fields to zero for restaurant %s: %s',
            restaurant_id,
            dict(sorted(rows.coercions.items())),
        )
    return rows


def _report_definition(name: str) -> ReportDefinition:
    definition = REPORTS.get(name)
    if definition is None:
        raise HTTPException(status_code=404, detail='Report not found')
    return definition


def _report_context(
    definition: ReportDefinition,
    *,
    restaurant_id: str,
    start: str | None,
    end: str | None,
    filters: ReportFilters,
    provider: RowProvider,
    now: datetime,
    cash_basis: CashBasis,
) -> ReportContext:
    tz = settings.report_tz
    if definition.today_scoped:
        window = ReportWindow(start=day_window(now, tz, days_ago=1).start, end=day_window(now, tz).end)
    else:
        window = _report_window(start, end, now=now, tz=tz)
    raw_rows = _fetch(provider, restaurant_id=restaurant_id, window=window)
    joins = build_join_maps(raw_rows)
    return ReportContext(
        restaurant_id=restaurant_id,
        rows=apply_filters(restrict_to_window(raw_rows, window), filters, joins),
        joins=joins,
        window=window,
        filters=filters,
        now=now,
        tz=tz,
        cash_basis=cash_basis,
    )


@router.get('/reports/orders/details')
def order_details(
    restaurant_id: str = Query(...),
    start: str | None = None,
    end: str | None = None,
    branch_id: str | None = None,
    cashier_id: str | None = None,
    payment_method: str | None = None,
    order_type: str | None = None,
    page: int = 1,
    page_size: int = 50,
    provider: RowProvider = Depends(get_row_provider),
    now: datetime = Depends(get_now),
    cash_basis: CashBasis = Depends(get_cash_basis),
):
    ctx = _report_context(
        REPORTS['orders'],
        restaurant_id=restaurant_id,
        start=start,
        end=end,
        filters=_report_filters(branch_id, cashier_id, payment_method, order_type),
        provider=provider,
        now=now,
        cash_basis=cash_basis,
    )
    report = build_orders_report(ctx.rows, ctx.tz)
    try:
        return paginate(report.details, page, page_size)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get('/reports/{name}')
def report(
    name: str,
    restaurant_id: str = Query(...),
    start: str | None = None,
    end: str | None = None,
    branch_id: str | None = None,
    cashier_id: str | None = None,
    payment_method: str | None = None,
    order_type: str | None = None,
    provider: RowProvider = Depends(get_row_provider),
    now: datetime = Depends(get_now),
    cash_basis: CashBasis = Depends(get_cash_basis),
):
    definition = _report_definition(name)
    ctx = _report_context(
        definition,
        restaurant_id=restaurant_id,
        start=start,
        end=end,
        filters=_report_filters(branch_id, cashier_id, payment_method, order_type),
        provider=provider,
        now=now,
        cash_basis=cash_basis,
    )
    return definition.build(ctx)


@router.get('/reports/{name}/export.csv')
def export_report(
    name: str,
    request: Request,
    restaurant_id: str = Query(...),
    start: str | None = None,
    end: str | None = None,
    branch_id: str | None = None,
    cashier_id: str | None = None,
    payment_method: str | None = None,
    order_type: str | None = None,
    provider: RowProvider = Depends(get_row_provider),
    now: datetime = Depends(get_now),
    cash_basis: CashBasis = Depends(get_cash_basis),
    db: Session = Depends(get_db),
):
    definition = _report_definition(name)
    ctx = _report_context(
        definition,
        restaurant_id=restaurant_id,
        start=start,
        end=end,
        filters=_report_filters(branch_id, cashier_id, payment_method, order_type),
        provider=provider,
        now=now,
        cash_basis=cash_basis,
    )
    records = definition.export_rows(definition.build(ctx))
    body = to_csv(records, columns_for(definition.export_type), decimals=settings.display_decimals)

    if settings.audit_exports:
        log_audit(
            db,
            action='REPORT_EXPORTED_CSV',
            restaurant_id=restaurant_id,
            ip=get_client_ip(request),
            metadata={
                'report': name,
                'start': ctx.window.start.isoformat(),
                'end': ctx.window.end.isoformat(),
                'row_count': len(records),
            },
        )
        db.commit()

    filename = f'{name}-{local_day(ctx.window.start, ctx.tz).isoformat()}.csv'
    return StreamingResponse(
        iter([body]),
        media_type='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


def _decimal_param(raw: str | None, *, label: str) -> Decimal | None:
    if raw is None or not raw.strip():
        return None
    try:
        return Decimal(raw.strip())
    except InvalidOperation as exc:
        raise HTTPException(status_code=400, detail=f'Invalid {label}') from exc


@router.get('/alerts')
def alerts(
    restaurant_id: str = Query(...),
    long_shift_hours: str | None = None,
    stuck_order_minutes: int | None = None,
    long_table_minutes: int | None = None,
    max_refunds_per_day: int | None = None,
    sales_swing_percent: str | None = None,
    discount_rate_percent: str | None = None,
    provider: RowProvider = Depends(get_row_provider),
    now: datetime = Depends(get_now),
    defaults: AlertThresholds = Depends(get_alert_thresholds),
):
    overrides = ThresholdOverrides(
        long_shift_hours=_decimal_param(long_shift_hours, label='long shift hours'),
        stuck_order_minutes=stuck_order_minutes,
        long_table_minutes=long_table_minutes,
        max_refunds_per_day=max_refunds_per_day,
        sales_swing_percent=_decimal_param(sales_swing_percent, label='sales swing percent'),
        discount_rate_percent=_decimal_param(discount_rate_percent, label='discount rate percent'),
    )
    try:
        thresholds = resolve_thresholds(defaults, overrides)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    tz = settings.report_tz
    window = ReportWindow(
        start=min(now - timedelta(days=thresholds.void_window_days), day_window(now, tz, days_ago=1).start),
        end=day_window(now, tz).end,
    )
    rows = _fetch(provider, restaurant_id=restaurant_id, window=window)
    result = alerts_for_rows(rows, now=now, thresholds=thresholds, tz=tz)
    return {'alerts': result, 'counts': count_by_type(result)}


def _parse_streaks(raw_streaks: list[str]) -> dict[OperationalInsightType, int]:
    streaks: dict[OperationalInsightType, int] = {}
    for raw in raw_streaks:
        insight_type, _, days = raw.partition(':')
        try:
            streaks[OperationalInsightType(insight_type.strip())] = int(days)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f'Invalid streak: {raw}') from exc
    if any(days < 0 for days in streaks.values()):
        raise HTTPException(status_code=400, detail='Streak days cannot be negative')
    return streaks


@router.get('/insights/operational')
def operational_insights(
    restaurant_id: str = Query(...),
    streak: list[str] = Query(default=[]),
    provider: RowProvider = Depends(get_row_provider),
    now: datetime = Depends(get_now),
):
    previous_streaks = _parse_streaks(streak)
    tz = settings.report_tz
    window = ReportWindow(start=day_window(now, tz, days_ago=BASELINE_DAYS).start, end=day_window(now, tz).end)
    rows = _fetch(provider, restaurant_id=restaurant_id, window=window)
    return detect_operational_insights(rows, now=now, tz=tz, previous_streaks=previous_streaks)
