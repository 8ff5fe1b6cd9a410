from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from owner_analytics.services.rows import (
    CashMovementType,
    OrderRow,
    PaymentRow,
    RefundRow,
    ShiftRow,
    ShiftTransactionRow,
)

ZERO = Decimal('0')
HUNDRED = Decimal('100')

MARGIN_FAVORABLE_ABOVE = Decimal('30')
MARGIN_UNFAVORABLE_BELOW = Decimal('10')

TOTAL_TOLERANCE = Decimal('0.01')


class MarginBand(str, Enum):
    FAVORABLE = 'favorable'
    NEUTRAL = 'neutral'
    UNFAVORABLE = 'unfavorable'


class DurationUnit(str, Enum):
    SECONDS = 'seconds'
    MINUTES = 'minutes'
    HOURS = 'hours'


class CashBasis(str, Enum):
    SALES = 'sales'
    CASH_PAYMENTS = 'cash_payments'


def safe_ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= 0:
        return ZERO
    return numerator / denominator


def average_order_value(revenue: Decimal, order_count: int) -> Decimal:
    if order_count <= 0:
        return ZERO
    return revenue / Decimal(order_count)


def margin_percent(revenue: Decimal, cogs: Decimal) -> Decimal:
    if revenue <= 0:
        return ZERO
    return (revenue - cogs) / revenue * HUNDRED


def margin_band(margin: Decimal) -> MarginBand:
    if margin > MARGIN_FAVORABLE_ABOVE:
        return MarginBand.FAVORABLE
    if margin < MARGIN_UNFAVORABLE_BELOW:
        return MarginBand.UNFAVORABLE
    return MarginBand.NEUTRAL


def percent_change(current: Decimal, baseline: Decimal) -> Decimal | None:
    if baseline <= 0:
        return None
    return (current - baseline) / baseline * HUNDRED


def share_percent(part: Decimal, whole: Decimal) -> Decimal:
    return safe_ratio(part, whole) * HUNDRED


def sum_decimal(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def paid_sales(orders: Iterable[OrderRow]) -> Decimal:
    return sum_decimal(order.total for order in orders if order.is_paid)


def net_total_after_refunds(orders: Iterable[OrderRow], refunds: Iterable[RefundRow]) -> Decimal:
    # Refunds are netted in aggregate, not matched to their orders.
    return paid_sales(orders) - sum_decimal(refund.amount for refund in refunds)


def expected_order_total(order: OrderRow) -> Decimal:
    return order.subtotal - order.discount_value + order.tax_amount + order.service_charge


def order_total_is_consistent(order: OrderRow, tolerance: Decimal = TOTAL_TOLERANCE) -> bool:
    return abs(order.total - expected_order_total(order)) <= tolerance


def gross_sales(order: OrderRow) -> Decimal:
    # Assumes subtotal is already net of the discount.
    return order.subtotal + order.discount_value


def cash_movements(transactions: Iterable[ShiftTransactionRow], shift_id: str) -> tuple[Decimal, Decimal]:
    cash_in = ZERO
    cash_out = ZERO
    for txn in transactions:
        if txn.shift_id != shift_id:
            continue
        if txn.type == CashMovementType.CASH_IN:
            cash_in += txn.amount
        elif txn.type == CashMovementType.CASH_OUT:
            cash_out += txn.amount
    return cash_in, cash_out


def expected_cash(opening_cash: Decimal, shift_sales: Decimal, cash_in: Decimal, cash_out: Decimal) -> Decimal:
    return opening_cash + shift_sales + cash_in - cash_out


def cash_difference(closing_cash: Decimal | None, expected: Decimal) -> Decimal | None:
    if closing_cash is None:
        return None
    return closing_cash - expected


def net_cash_payments(
    shift_orders: Iterable[OrderRow],
    payments: Iterable[PaymentRow],
    refunds: Iterable[RefundRow],
    *,
    cash_method: str = 'cash',
) -> Decimal:
    """Cash taken for a shift's orders, less the cash share of their refunds.

    A refund is split in proportion to the cash share of its order's
    payments. Orders that carry no payment rows are treated as cash.
    """
    order_ids = {order.id for order in shift_orders}
    paid_by_order: dict[str, Decimal] = {}
    cash_by_order: dict[str, Decimal] = {}
    for payment in payments:
        if payment.order_id not in order_ids:
            continue
        paid_by_order[payment.order_id] = paid_by_order.get(payment.order_id, ZERO) + payment.amount
        if payment.method == cash_method:
            cash_by_order[payment.order_id] = cash_by_order.get(payment.order_id, ZERO) + payment.amount

    gross_cash = sum_decimal(cash_by_order.values())
    cash_refunds = ZERO
    for refund in refunds:
        if refund.order_id not in order_ids:
            continue
        if refund.order_id not in paid_by_order:
            cash_refunds += refund.amount
            continue
        total_paid = paid_by_order[refund.order_id]
        cash_paid = cash_by_order.get(refund.order_id, ZERO)
        if total_paid > 0 and cash_paid > 0:
            cash_refunds += refund.amount * (cash_paid / total_paid)
    return gross_cash - cash_refunds


def shift_sales(orders: Iterable[OrderRow], shift_id: str) -> Decimal:
    return sum_decimal(order.total for order in orders if order.is_paid and order.shift_id == shift_id)


def duration_minutes(start: datetime, end: datetime) -> int:
    return max(int((end - start).total_seconds() // 60), 0)


def duration_hours(start: datetime, end: datetime) -> Decimal:
    return Decimal(str(max((end - start).total_seconds(), 0))) / Decimal('3600')


def to_minutes(value: Decimal | int | float, unit: DurationUnit) -> Decimal:
    amount = Decimal(str(value))
    if unit == DurationUnit.SECONDS:
        return amount / Decimal('60')
    if unit == DurationUnit.HOURS:
        return amount * Decimal('60')
    return amount


def quantize_display(value: Decimal, decimals: int = 3) -> Decimal:
    exponent = Decimal(1).scaleb(-decimals)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def format_money(value: Decimal, *, decimals: int = 3, symbol: str = '') -> str:
    text = f'{quantize_display(value, decimals):f}'
    return f'{text} {symbol}'.strip()


def shift_is_closed(shift: ShiftRow) -> bool:
    return shift.closing_cash is not None
