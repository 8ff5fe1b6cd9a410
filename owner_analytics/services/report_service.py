from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import Enum

from owner_analytics.services.aggregation_service import Accumulator, aggregate, aggregate_many, count_by
from owner_analytics.services.join_service import JoinMaps, build_join_maps
from owner_analytics.services.metrics_service import (
    ZERO,
    CashBasis,
    MarginBand,
    average_order_value,
    cash_difference,
    cash_movements,
    duration_minutes,
    expected_cash,
    gross_sales,
    margin_band,
    margin_percent,
    net_cash_payments,
    net_total_after_refunds,
    order_total_is_consistent,
    percent_change,
    share_percent,
    sum_decimal,
)
from owner_analytics.services.rows import (
    PENDING_ORDER_STATUSES,
    UNCATEGORIZED,
    UNKNOWN,
    OrderItemRow,
    OrderRow,
    OrderStatus,
    RowSet,
    ShiftRow,
)
from owner_analytics.services.sort_utils import ascending_metric_key, descending_metric_key

TOP_SELLER_COUNT = 5
TOP_VOID_REASON_COUNT = 3
NO_REASON = 'No reason'


class OrderType(str, Enum):
    DINE_IN = 'dine_in'
    TAKEAWAY = 'takeaway'


@dataclass(frozen=True)
class ReportWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError('End must be on or after start')

    def contains(self, moment: datetime | None) -> bool:
        return moment is not None and self.start <= moment < self.end

    @classmethod
    def for_dates(cls, start_date: date, end_date: date, tz: tzinfo = timezone.utc) -> ReportWindow:
        if end_date < start_date:
            raise ValueError('End date must be on or after start date')
        return cls(
            start=datetime.combine(start_date, time.min, tzinfo=tz),
            end=datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz),
        )


@dataclass(frozen=True)
class ReportFilters:
    branch_id: str | None = None
    cashier_id: str | None = None
    payment_method: str | None = None
    order_type: OrderType | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.branch_id or self.cashier_id or self.payment_method or self.order_type)


def local_day(moment: datetime, tz: tzinfo) -> date:
    return moment.astimezone(tz).date()


def day_window(now: datetime, tz: tzinfo, *, days_ago: int = 0) -> ReportWindow:
    day = local_day(now, tz) - timedelta(days=days_ago)
    return ReportWindow.for_dates(day, day, tz)


def apply_filters(rows: RowSet, filters: ReportFilters, joins: JoinMaps | None = None) -> RowSet:
    if filters.is_empty:
        return rows
    joins = joins or build_join_maps(rows)

    def keep_order(order: OrderRow) -> bool:
        if filters.branch_id and order.branch_id != filters.branch_id:
            return False
        if filters.cashier_id and joins.cashier_for_shift(order.shift_id) != filters.cashier_id:
            return False
        if filters.order_type == OrderType.DINE_IN and not order.is_dine_in:
            return False
        if filters.order_type == OrderType.TAKEAWAY and order.is_dine_in:
            return False
        return True

    def keep_shift(shift: ShiftRow) -> bool:
        if filters.branch_id and shift.branch_id != filters.branch_id:
            return False
        if filters.cashier_id and shift.cashier_id != filters.cashier_id:
            return False
        return True

    orders = [order for order in rows.orders if keep_order(order)]
    order_ids = {order.id for order in orders}
    shifts = [shift for shift in rows.shifts if keep_shift(shift)]
    shift_ids = {shift.id for shift in shifts}
    method = (filters.payment_method or '').strip().lower()
    return replace(
        rows,
        orders=orders,
        order_items=[item for item in rows.order_items if item.order_id in order_ids],
        shifts=shifts,
        refunds=[refund for refund in rows.refunds if refund.order_id in order_ids],
        payments=[
            payment
            for payment in rows.payments
            if payment.order_id in order_ids and (not method or payment.method == method)
        ],
        shift_transactions=[txn for txn in rows.shift_transactions if txn.shift_id in shift_ids],
    )


def restrict_to_window(rows: RowSet, window: ReportWindow) -> RowSet:
    """Drop carried-over rows that fall outside ``window``.

    Providers also return pending orders and open shifts from before the
    window so alerts can see them; window reports must not count those.
    """
    orders = [order for order in rows.orders if window.contains(order.created_at)]
    order_ids = {order.id for order in orders}
    shifts = [
        shift
        for shift in rows.shifts
        if window.contains(shift.opened_at) or window.contains(shift.closed_at)
    ]
    shift_ids = {shift.id for shift in shifts}
    return replace(
        rows,
        orders=orders,
        order_items=[item for item in rows.order_items if item.order_id in order_ids],
        shifts=shifts,
        refunds=[refund for refund in rows.refunds if window.contains(refund.created_at)],
        payments=[payment for payment in rows.payments if payment.order_id in order_ids],
        shift_transactions=[txn for txn in rows.shift_transactions if txn.shift_id in shift_ids],
    )


def _paid_order_ids(rows: RowSet) -> set[str]:
    return {order.id for order in rows.orders if order.is_paid}


def _sold_items(rows: RowSet) -> list[OrderItemRow]:
    paid_ids = _paid_order_ids(rows)
    return [item for item in rows.order_items if not item.voided and item.order_id in paid_ids]


def _item_key(item: OrderItemRow) -> str:
    return item.menu_item_id or f'name:{item.name}'


# ---------------------------------------------------------------- sales summary


@dataclass(frozen=True)
class SalesSummary:
    total_sales: Decimal
    order_count: int
    average_order_value: Decimal
    refunds_total: Decimal
    refund_count: int
    net_after_refunds: Decimal


def build_sales_summary(rows: RowSet) -> SalesSummary:
    paid = [order for order in rows.orders if order.is_paid]
    total_sales = sum_decimal(order.total for order in paid)
    return SalesSummary(
        total_sales=total_sales,
        order_count=len(paid),
        average_order_value=average_order_value(total_sales, len(paid)),
        refunds_total=sum_decimal(refund.amount for refund in rows.refunds),
        refund_count=len(rows.refunds),
        net_after_refunds=net_total_after_refunds(rows.orders, rows.refunds),
    )


# ---------------------------------------------------------------- staff


@dataclass(frozen=True)
class CashierSalesRow:
    cashier_id: str
    email: str
    total_sales: Decimal
    order_count: int
    average_order_value: Decimal


@dataclass(frozen=True)
class CashierActivityRow:
    cashier_id: str
    email: str
    void_count: int
    refund_count: int


@dataclass(frozen=True)
class VoidDetailRow:
    order_number: int | None
    item_name: str
    cashier: str
    reason: str
    created_at: datetime | None


@dataclass(frozen=True)
class StaffReport:
    cashier_sales: list[CashierSalesRow]
    cashier_activity: list[CashierActivityRow]
    void_details: list[VoidDetailRow]


def build_staff_report(rows: RowSet, joins: JoinMaps | None = None) -> StaffReport:
    joins = joins or build_join_maps(rows)
    orders_by_id = {order.id: order for order in rows.orders}

    sales = aggregate(
        rows.orders,
        key=lambda order: joins.cashier_for_shift(order.shift_id),
        sums={'total': lambda order: order.total},
        where=lambda order: order.is_paid,
    )
    cashier_sales = [
        CashierSalesRow(
            cashier_id=str(cashier_id),
            email=joins.email_for_cashier(str(cashier_id)),
            total_sales=acc.total('total'),
            order_count=acc.count,
            average_order_value=average_order_value(acc.total('total'), acc.count),
        )
        for cashier_id, acc in sales.items()
    ]
    cashier_sales.sort(key=lambda row: descending_metric_key(row.total_sales, row.email))

    voided_items = [item for item in rows.order_items if item.voided and item.order_id in orders_by_id]
    voids = count_by(voided_items, key=lambda item: joins.cashier_for_order(item.order_id))
    refunds = count_by(rows.refunds, key=lambda refund: joins.cashier_for_order(refund.order_id))

    cashier_activity = [
        CashierActivityRow(
            cashier_id=str(cashier_id),
            email=joins.email_for_cashier(str(cashier_id)),
            void_count=voids.get(cashier_id, 0),
            refund_count=refunds.get(cashier_id, 0),
        )
        for cashier_id in sorted(set(voids) | set(refunds), key=str)
    ]
    cashier_activity.sort(key=lambda row: descending_metric_key(row.void_count + row.refund_count, row.email))

    void_details = []
    for item in voided_items:
        order = orders_by_id[item.order_id]
        void_details.append(
            VoidDetailRow(
                order_number=order.order_number,
                item_name=item.name,
                cashier=joins.email_for_cashier(joins.cashier_for_shift(order.shift_id)),
                reason=item.void_reason or NO_REASON,
                created_at=item.created_at or order.created_at,
            )
        )
    return StaffReport(cashier_sales=cashier_sales, cashier_activity=cashier_activity, void_details=void_details)


# ---------------------------------------------------------------- costing


@dataclass(frozen=True)
class ProfitRow:
    key: str
    name: str
    quantity: Decimal
    revenue: Decimal
    cogs: Decimal
    profit: Decimal
    margin: Decimal
    band: MarginBand


@dataclass(frozen=True)
class CostingReport:
    gross_sales: Decimal
    total_cogs: Decimal
    gross_profit: Decimal
    profit_margin: Decimal
    profit_by_item: list[ProfitRow]
    profit_by_category: list[ProfitRow]
    profit_by_branch: list[ProfitRow]


_LINE_SUMS = {
    'quantity': lambda item: item.quantity,
    'revenue': lambda item: item.revenue,
    'cogs': lambda item: item.cogs,
}


def _profit_rows(groups: dict[Hashable, Accumulator], name_for) -> list[ProfitRow]:
    out = []
    for key, acc in groups.items():
        revenue = acc.total('revenue')
        cogs = acc.total('cogs')
        margin = margin_percent(revenue, cogs)
        out.append(
            ProfitRow(
                key=str(key),
                name=name_for(key),
                quantity=acc.total('quantity'),
                revenue=revenue,
                cogs=cogs,
                profit=revenue - cogs,
                margin=margin,
                band=margin_band(margin),
            )
        )
    out.sort(key=lambda row: descending_metric_key(row.profit, row.name))
    return out


def build_costing_report(rows: RowSet, joins: JoinMaps | None = None) -> CostingReport:
    joins = joins or build_join_maps(rows)
    items = _sold_items(rows)
    item_names: dict[str, str] = {}
    for item in items:
        info = joins.menu_item(item.menu_item_id)
        item_names.setdefault(_item_key(item), info.name if item.menu_item_id in joins.menu_items else item.name)

    def category_key(item: OrderItemRow) -> str:
        return joins.menu_item(item.menu_item_id).category_id or UNCATEGORIZED

    def branch_key(item: OrderItemRow) -> str:
        return joins.branch_for_order(item.order_id) or UNKNOWN

    overall, groups = aggregate_many(
        items,
        keys={'item': _item_key, 'category': category_key, 'branch': branch_key},
        sums=_LINE_SUMS,
    )
    revenue = overall.total('revenue')
    cogs = overall.total('cogs')
    return CostingReport(
        gross_sales=revenue,
        total_cogs=cogs,
        gross_profit=revenue - cogs,
        profit_margin=margin_percent(revenue, cogs),
        profit_by_item=_profit_rows(groups['item'], lambda key: item_names.get(str(key), UNKNOWN)),
        profit_by_category=_profit_rows(groups['category'], lambda key: joins.category_name(str(key))),
        profit_by_branch=_profit_rows(groups['branch'], lambda key: joins.branch_name(str(key))),
    )


# ---------------------------------------------------------------- financial


@dataclass(frozen=True)
class AmountCountRow:
    label: str
    total: Decimal
    count: int
    share_percent: Decimal = ZERO


@dataclass(frozen=True)
class CashierCountRow:
    cashier_id: str
    email: str
    count: int


@dataclass(frozen=True)
class FinancialReport:
    gross_sales: Decimal
    total_discounts: Decimal
    net_sales: Decimal
    total_tax: Decimal
    total_service_charge: Decimal
    final_total: Decimal
    refunds_total: Decimal
    net_after_refunds: Decimal
    payments_by_method: list[AmountCountRow]
    refunds_by_reason: list[AmountCountRow]
    refunds_by_cashier: list[CashierCountRow]


def _amount_count_rows(groups: dict[Hashable, Accumulator]) -> list[AmountCountRow]:
    grand_total = sum_decimal(acc.total('amount') for acc in groups.values())
    out = [
        AmountCountRow(
            label=str(label),
            total=acc.total('amount'),
            count=acc.count,
            share_percent=share_percent(acc.total('amount'), grand_total),
        )
        for label, acc in groups.items()
    ]
    out.sort(key=lambda row: descending_metric_key(row.total, row.label))
    return out


def build_financial_report(rows: RowSet, joins: JoinMaps | None = None) -> FinancialReport:
    joins = joins or build_join_maps(rows)
    overall, _ = aggregate_many(
        rows.orders,
        keys={},
        sums={
            'gross': gross_sales,
            'discount': lambda order: order.discount_value,
            'subtotal': lambda order: order.subtotal,
            'tax': lambda order: order.tax_amount,
            'service': lambda order: order.service_charge,
            'total': lambda order: order.total,
        },
        where=lambda order: order.is_paid,
    )
    refunds_total = sum_decimal(refund.amount for refund in rows.refunds)
    by_method = aggregate(rows.payments, key=lambda payment: payment.method, sums={'amount': lambda p: p.amount})
    by_reason = aggregate(
        rows.refunds, key=lambda refund: refund.reason or NO_REASON, sums={'amount': lambda r: r.amount}
    )
    by_cashier = count_by(rows.refunds, key=lambda refund: joins.cashier_for_order(refund.order_id))
    refunds_by_cashier = [
        CashierCountRow(cashier_id=str(cashier_id), email=joins.email_for_cashier(str(cashier_id)), count=count)
        for cashier_id, count in by_cashier.items()
    ]
    refunds_by_cashier.sort(key=lambda row: descending_metric_key(row.count, row.email))
    return FinancialReport(
        gross_sales=overall.total('gross'),
        total_discounts=overall.total('discount'),
        net_sales=overall.total('subtotal'),
        total_tax=overall.total('tax'),
        total_service_charge=overall.total('service'),
        final_total=overall.total('total'),
        refunds_total=refunds_total,
        net_after_refunds=overall.total('total') - refunds_total,
        payments_by_method=_amount_count_rows(by_method),
        refunds_by_reason=_amount_count_rows(by_reason),
        refunds_by_cashier=refunds_by_cashier,
    )


# ---------------------------------------------------------------- orders


@dataclass(frozen=True)
class HourCount:
    hour: int
    count: int


@dataclass(frozen=True)
class OrderDetailRow:
    order_id: str
    order_number: int | None
    status: str
    source: str
    type: str
    total: Decimal
    created_at: datetime


@dataclass(frozen=True)
class OrdersReport:
    total_orders: int
    status_counts: dict[str, int]
    paid_count: int
    open_count: int
    cancelled_count: int
    refunded_count: int
    dine_in_count: int
    takeaway_count: int
    total_revenue: Decimal
    average_order_value: Decimal
    peak_hours: list[HourCount]
    orders_by_source: dict[str, int]
    inconsistent_order_ids: list[str]
    details: list[OrderDetailRow] = field(default_factory=list)


def build_orders_report(rows: RowSet, tz: tzinfo = timezone.utc) -> OrdersReport:
    status_counts = {
        str(status.value if isinstance(status, OrderStatus) else UNKNOWN): count
        for status, count in count_by(rows.orders, key=lambda order: order.status).items()
    }
    paid = [order for order in rows.orders if order.is_paid]
    revenue = sum_decimal(order.total for order in paid)
    hours = count_by(
        paid,
        key=lambda order: order.created_at.astimezone(tz).hour,
        where=lambda order: order.has_timestamp,
    )
    peak_hours = sorted((HourCount(hour=int(h), count=c) for h, c in hours.items()), key=lambda hc: (-hc.count, hc.hour))
    details = [
        OrderDetailRow(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status.value if order.status else UNKNOWN,
            source=order.source,
            type=OrderType.DINE_IN.value if order.is_dine_in else OrderType.TAKEAWAY.value,
            total=order.total,
            created_at=order.created_at,
        )
        for order in sorted(rows.orders, key=lambda o: (o.created_at, o.id), reverse=True)
    ]
    return OrdersReport(
        total_orders=len(rows.orders),
        status_counts=status_counts,
        paid_count=len(paid),
        open_count=sum(1 for order in rows.orders if order.status in PENDING_ORDER_STATUSES),
        cancelled_count=status_counts.get(OrderStatus.CANCELLED.value, 0),
        refunded_count=status_counts.get(OrderStatus.REFUNDED.value, 0),
        dine_in_count=sum(1 for order in paid if order.is_dine_in),
        takeaway_count=sum(1 for order in paid if not order.is_dine_in),
        total_revenue=revenue,
        average_order_value=average_order_value(revenue, len(paid)),
        peak_hours=peak_hours,
        orders_by_source={str(k): v for k, v in count_by(rows.orders, key=lambda order: order.source).items()},
        inconsistent_order_ids=sorted(order.id for order in rows.orders if not order_total_is_consistent(order)),
        details=details,
    )


# ---------------------------------------------------------------- menu


@dataclass(frozen=True)
class ItemSalesRow:
    key: str
    name: str
    quantity: Decimal
    revenue: Decimal


@dataclass(frozen=True)
class MenuReport:
    item_performance: list[ItemSalesRow]
    category_performance: list[ItemSalesRow]
    top_sellers: list[ItemSalesRow]
    least_sellers: list[ItemSalesRow]


def build_menu_report(rows: RowSet, joins: JoinMaps | None = None) -> MenuReport:
    joins = joins or build_join_maps(rows)
    items = _sold_items(rows)
    item_names: dict[str, str] = {}
    for item in items:
        item_names.setdefault(_item_key(item), item.name)

    _, groups = aggregate_many(
        items,
        keys={
            'item': _item_key,
            'category': lambda item: joins.menu_item(item.menu_item_id).category_id or UNCATEGORIZED,
        },
        sums={'quantity': lambda item: item.quantity, 'revenue': lambda item: item.revenue},
    )

    def to_rows(dimension: str, name_for) -> list[ItemSalesRow]:
        out = [
            ItemSalesRow(key=str(key), name=name_for(str(key)), quantity=acc.total('quantity'), revenue=acc.total('revenue'))
            for key, acc in groups[dimension].items()
        ]
        out.sort(key=lambda row: descending_metric_key(row.revenue, row.name))
        return out

    item_performance = to_rows('item', lambda key: item_names.get(key, UNKNOWN))
    least = sorted(item_performance, key=lambda row: ascending_metric_key(row.revenue, row.name))
    return MenuReport(
        item_performance=item_performance,
        category_performance=to_rows('category', joins.category_name),
        top_sellers=item_performance[:TOP_SELLER_COUNT],
        least_sellers=least[:TOP_SELLER_COUNT],
    )


# ---------------------------------------------------------------- branches


@dataclass(frozen=True)
class BranchPerformanceRow:
    branch_id: str
    name: str
    total_sales: Decimal
    order_count: int
    shift_count: int
    average_order_value: Decimal
    sales_percent: Decimal


@dataclass(frozen=True)
class BranchReport:
    branches: list[BranchPerformanceRow]
    total_sales: Decimal
    total_orders: int


def build_branch_report(rows: RowSet, joins: JoinMaps | None = None) -> BranchReport:
    joins = joins or build_join_maps(rows)
    sales = aggregate(
        rows.orders,
        key=lambda order: order.branch_id or UNKNOWN,
        sums={'total': lambda order: order.total},
        where=lambda order: order.is_paid,
    )
    shifts = count_by(rows.shifts, key=lambda shift: shift.branch_id or UNKNOWN)
    total_sales = sum_decimal(acc.total('total') for acc in sales.values())
    total_orders = sum(acc.count for acc in sales.values())

    out = []
    for branch_id in set(sales) | set(shifts):
        acc = sales.get(branch_id, Accumulator())
        out.append(
            BranchPerformanceRow(
                branch_id=str(branch_id),
                name=joins.branch_name(str(branch_id)),
                total_sales=acc.total('total'),
                order_count=acc.count,
                shift_count=shifts.get(branch_id, 0),
                average_order_value=average_order_value(acc.total('total'), acc.count),
                sales_percent=share_percent(acc.total('total'), total_sales),
            )
        )
    out.sort(key=lambda row: descending_metric_key(row.total_sales, row.name))
    return BranchReport(branches=out, total_sales=total_sales, total_orders=total_orders)


# ---------------------------------------------------------------- shifts & cash


@dataclass(frozen=True)
class ShiftSummaryRow:
    shift_id: str
    cashier_id: str
    cashier_email: str
    status: str
    opened_at: datetime
    closed_at: datetime | None
    duration_minutes: int
    opening_cash: Decimal
    closing_cash: Decimal | None
    total_sales: Decimal
    cash_in: Decimal
    cash_out: Decimal
    expected_cash: Decimal
    difference: Decimal | None


@dataclass(frozen=True)
class TableUsageRow:
    table_id: str
    table_name: str
    order_count: int
    avg_occupancy_minutes: int


@dataclass(frozen=True)
class ShiftReport:
    shifts: list[ShiftSummaryRow]
    open_shift_count: int
    closed_shift_count: int
    total_difference: Decimal
    table_usage: list[TableUsageRow]


def _shift_summary(
    shift: ShiftRow,
    rows: RowSet,
    joins: JoinMaps,
    sales_by_shift: dict[Hashable, Accumulator],
    now: datetime,
    basis: CashBasis,
) -> ShiftSummaryRow:
    cash_in, cash_out = cash_movements(rows.shift_transactions, shift.id)
    sales = sales_by_shift.get(shift.id, Accumulator()).total('total')
    if basis == CashBasis.CASH_PAYMENTS:
        shift_orders = [
            order
            for order in rows.orders
            if order.shift_id == shift.id and order.status in {OrderStatus.PAID, OrderStatus.REFUNDED}
        ]
        takings = net_cash_payments(shift_orders, rows.payments, rows.refunds)
    else:
        takings = sales
    expected = expected_cash(shift.opening_cash, takings, cash_in, cash_out)
    cashier_id = shift.cashier_id or UNKNOWN
    return ShiftSummaryRow(
        shift_id=shift.id,
        cashier_id=cashier_id,
        cashier_email=joins.email_for_cashier(shift.cashier_id),
        status=shift.status.value,
        opened_at=shift.opened_at,
        closed_at=shift.closed_at,
        duration_minutes=duration_minutes(shift.opened_at, shift.closed_at or now),
        opening_cash=shift.opening_cash,
        closing_cash=shift.closing_cash,
        total_sales=sales,
        cash_in=cash_in,
        cash_out=cash_out,
        expected_cash=expected,
        difference=cash_difference(shift.closing_cash, expected),
    )


def _sales_by_shift(rows: RowSet) -> dict[Hashable, Accumulator]:
    return aggregate(
        rows.orders,
        key=lambda order: order.shift_id,
        sums={'total': lambda order: order.total},
        where=lambda order: order.is_paid and order.shift_id is not None,
    )


def build_shift_report(
    rows: RowSet,
    *,
    now: datetime,
    joins: JoinMaps | None = None,
    basis: CashBasis = CashBasis.SALES,
) -> ShiftReport:
    joins = joins or build_join_maps(rows)
    sales_by_shift = _sales_by_shift(rows)
    summaries = [_shift_summary(shift, rows, joins, sales_by_shift, now, basis) for shift in rows.shifts]
    summaries.sort(key=lambda row: (row.opened_at, row.shift_id), reverse=True)

    table_groups = aggregate(
        rows.orders,
        key=lambda order: order.table_id,
        sums={
            'minutes': lambda order: duration_minutes(order.created_at, order.updated_at) if order.updated_at else 0,
        },
        where=lambda order: order.table_id is not None,
    )
    table_usage = [
        TableUsageRow(
            table_id=str(table_id),
            table_name=joins.table_name(str(table_id)),
            order_count=acc.count,
            avg_occupancy_minutes=int(round(acc.total('minutes') / acc.count)) if acc.count else 0,
        )
        for table_id, acc in table_groups.items()
    ]
    table_usage.sort(key=lambda row: descending_metric_key(row.order_count, row.table_name))

    differences = [row.difference for row in summaries if row.difference is not None]
    return ShiftReport(
        shifts=summaries,
        open_shift_count=sum(1 for shift in rows.shifts if shift.is_open),
        closed_shift_count=len(differences),
        total_difference=sum_decimal(differences),
        table_usage=table_usage,
    )


@dataclass(frozen=True)
class CashDifferenceRow:
    shift_id: str
    cashier_email: str
    closed_at: datetime | None
    expected_cash: Decimal
    actual_cash: Decimal
    difference: Decimal


@dataclass(frozen=True)
class CashDifferences:
    rows: list[CashDifferenceRow]
    total_difference: Decimal
    closed_shift_count: int


def build_cash_differences(
    rows: RowSet,
    *,
    window: ReportWindow | None = None,
    joins: JoinMaps | None = None,
    basis: CashBasis = CashBasis.SALES,
) -> CashDifferences:
    joins = joins or build_join_maps(rows)
    sales_by_shift = _sales_by_shift(rows)
    out = []
    for shift in rows.shifts:
        if shift.closing_cash is None:
            continue
        if window is not None and not window.contains(shift.closed_at):
            continue
        summary = _shift_summary(shift, rows, joins, sales_by_shift, shift.closed_at or shift.opened_at, basis)
        out.append(
            CashDifferenceRow(
                shift_id=shift.id,
                cashier_email=summary.cashier_email,
                closed_at=shift.closed_at,
                expected_cash=summary.expected_cash,
                actual_cash=shift.closing_cash,
                difference=summary.difference if summary.difference is not None else ZERO,
            )
        )
    out.sort(key=lambda row: (row.closed_at or datetime.min.replace(tzinfo=timezone.utc), row.shift_id), reverse=True)
    return CashDifferences(
        rows=out,
        total_difference=sum_decimal(row.difference for row in out),
        closed_shift_count=len(out),
    )


# ---------------------------------------------------------------- trends


@dataclass(frozen=True)
class DailyPoint:
    day: date
    sales: Decimal
    orders: int


@dataclass(frozen=True)
class HourlyPoint:
    hour: int
    sales: Decimal
    orders: int


@dataclass(frozen=True)
class TrendSeries:
    daily: list[DailyPoint]
    hourly: list[HourlyPoint]


def build_daily_trend(rows: RowSet, window: ReportWindow, tz: tzinfo = timezone.utc) -> list[DailyPoint]:
    groups = aggregate(
        rows.orders,
        key=lambda order: local_day(order.created_at, tz),
        sums={'sales': lambda order: order.total},
        where=lambda order: order.is_paid and window.contains(order.created_at),
    )
    first_day = local_day(window.start, tz)
    last_day = local_day(window.end - timedelta(microseconds=1), tz) if window.end > window.start else first_day
    points = []
    day = first_day
    while day <= last_day:
        acc = groups.get(day, Accumulator())
        points.append(DailyPoint(day=day, sales=acc.total('sales'), orders=acc.count))
        day += timedelta(days=1)
    return points


def build_hourly_trend(rows: RowSet, tz: tzinfo = timezone.utc) -> list[HourlyPoint]:
    groups = aggregate(
        rows.orders,
        key=lambda order: order.created_at.astimezone(tz).hour,
        sums={'sales': lambda order: order.total},
        where=lambda order: order.is_paid and order.has_timestamp,
    )
    return [
        HourlyPoint(hour=hour, sales=groups.get(hour, Accumulator()).total('sales'), orders=groups.get(hour, Accumulator()).count)
        for hour in range(24)
    ]


def build_trends(rows: RowSet, window: ReportWindow, tz: tzinfo = timezone.utc) -> TrendSeries:
    return TrendSeries(daily=build_daily_trend(rows, window, tz), hourly=build_hourly_trend(rows, tz))


# ---------------------------------------------------------------- daily summary


@dataclass(frozen=True)
class NamedCount:
    name: str
    count: Decimal | int


@dataclass(frozen=True)
class DailySummary:
    day: date
    today_sales: Decimal
    yesterday_sales: Decimal
    sales_change_percent: Decimal | None
    paid_orders: int
    average_order_value: Decimal
    total_discounts: Decimal
    refund_count: int
    refund_total: Decimal
    void_count: int
    top_seller: NamedCount | None
    most_frequent_issue: NamedCount | None


def build_daily_summary(rows: RowSet, *, now: datetime, tz: tzinfo = timezone.utc) -> DailySummary:
    today = day_window(now, tz)
    yesterday = day_window(now, tz, days_ago=1)
    today_orders = [order for order in rows.orders if today.contains(order.created_at)]
    today_ids = {order.id for order in today_orders}
    today_paid = [order for order in today_orders if order.is_paid]
    paid_ids = {order.id for order in today_paid}
    today_sales = sum_decimal(order.total for order in today_paid)
    yesterday_sales = sum_decimal(
        order.total for order in rows.orders if order.is_paid and yesterday.contains(order.created_at)
    )
    refunds = [refund for refund in rows.refunds if today.contains(refund.created_at)]
    voids = sum(1 for item in rows.order_items if item.voided and item.order_id in today_ids)

    sold = aggregate(
        rows.order_items,
        key=lambda item: item.name,
        sums={'quantity': lambda item: item.quantity},
        where=lambda item: not item.voided and item.order_id in paid_ids,
    )
    top_seller = None
    if sold:
        name, acc = min(sold.items(), key=lambda pair: descending_metric_key(pair[1].total('quantity'), str(pair[0])))
        top_seller = NamedCount(name=str(name), count=acc.total('quantity'))

    holds = sum(1 for order in today_orders if order.status == OrderStatus.ON_HOLD)
    issues = [NamedCount('void', voids), NamedCount('refund', len(refunds)), NamedCount('hold', holds)]
    issues = [issue for issue in issues if issue.count > 0]
    most_frequent = max(issues, key=lambda issue: issue.count) if issues else None

    return DailySummary(
        day=local_day(now, tz),
        today_sales=today_sales,
        yesterday_sales=yesterday_sales,
        sales_change_percent=percent_change(today_sales, yesterday_sales),
        paid_orders=len(today_paid),
        average_order_value=average_order_value(today_sales, len(today_paid)),
        total_discounts=sum_decimal(order.discount_value for order in today_paid),
        refund_count=len(refunds),
        refund_total=sum_decimal(refund.amount for refund in refunds),
        void_count=voids,
        top_seller=top_seller,
        most_frequent_issue=most_frequent,
    )


# ---------------------------------------------------------------- refunds & voids


@dataclass(frozen=True)
class RefundVoidInsights:
    refund_count: int
    refund_total: Decimal
    refunds_by_cashier: list[CashierCountRow]
    voided_order_count: int
    top_void_reasons: list[NamedCount]


def build_refund_void_insights(
    rows: RowSet,
    *,
    now: datetime,
    tz: tzinfo = timezone.utc,
    joins: JoinMaps | None = None,
) -> RefundVoidInsights:
    joins = joins or build_join_maps(rows)
    today = day_window(now, tz)
    refunds = [refund for refund in rows.refunds if today.contains(refund.created_at)]
    by_cashier = count_by(refunds, key=lambda refund: joins.cashier_for_order(refund.order_id))
    refunds_by_cashier = [
        CashierCountRow(cashier_id=str(cashier_id), email=joins.email_for_cashier(str(cashier_id)), count=count)
        for cashier_id, count in by_cashier.items()
    ]
    refunds_by_cashier.sort(key=lambda row: descending_metric_key(row.count, row.email))

    voided_orders = [
        order
        for order in rows.orders
        if order.status in {OrderStatus.CANCELLED, OrderStatus.VOIDED} and today.contains(order.created_at)
    ]
    reasons = count_by(voided_orders, key=lambda order: order.cancelled_reason or NO_REASON)
    top_reasons = sorted(
        (NamedCount(name=str(reason), count=count) for reason, count in reasons.items()),
        key=lambda nc: descending_metric_key(nc.count, nc.name),
    )[:TOP_VOID_REASON_COUNT]
    return RefundVoidInsights(
        refund_count=len(refunds),
        refund_total=sum_decimal(refund.amount for refund in refunds),
        refunds_by_cashier=refunds_by_cashier,
        voided_order_count=len(voided_orders),
        top_void_reasons=top_reasons,
    )
