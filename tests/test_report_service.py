from __future__ import annotations

import unittest
from datetime import date, timedelta, timezone
from decimal import Decimal

from owner_analytics.services.metrics_service import CashBasis, MarginBand
from owner_analytics.services.report_service import (
    OrderType,
    ReportFilters,
    ReportWindow,
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
    build_hourly_trend,
    build_trends,
    restrict_to_window,
)
from row_factories import NOW, days_ago, hours_ago, item, order, refund, rowset, shift


def sample_records() -> dict:
    return {
        'orders': [
            order('O1', total='100', shift_id='S1', branch_id='B1', table_id='T1', order_number=1,
                  created_at=hours_ago(5), updated_at=hours_ago(5) + timedelta(minutes=40)),
            order('O2', total='150', shift_id='S1', branch_id='B1', order_number=2, created_at=hours_ago(4)),
            order('O3', total='40', status='cancelled', shift_id='S1', branch_id='B1', order_number=3,
                  cancelled_reason='Customer left', created_at=hours_ago(4)),
            order('O4', total='30', shift_id='S2', branch_id='B2', source='qr', order_number=4, created_at=hours_ago(2)),
        ],
        'order_items': [
            item('I1', 'O1', price='5', quantity=4, cogs='8', menu_item_id='M1', name='Knafeh'),
            item('I2', 'O1', price='2', quantity=3, cogs='1', menu_item_id='M2', name='Tea'),
            item('I3', 'O2', price='10', quantity=1, cogs='4', name='Special'),
            item('I4', 'O2', price='5', quantity=1, cogs='2', menu_item_id='M1', name='Knafeh', voided=True,
                 void_reason='Mistake'),
            item('I5', 'O4', price='2', quantity=1, cogs='0.5', menu_item_id='M2', name='Tea'),
            item('I6', 'O3', price='5', quantity=1, cogs='2', menu_item_id='M1', name='Knafeh'),
        ],
        'shifts': [
            shift('S1', cashier_id='C1', branch_id='B1', opened_at=hours_ago(6), closed_at=hours_ago(1),
                  status='closed', opening_cash='100', closing_cash='355'),
            shift('S2', cashier_id='C2', branch_id='B2', opened_at=hours_ago(3), status='open'),
        ],
        'refunds': [refund('R1', 'O2', amount='15', reason='Cold food', created_at=hours_ago(1))],
        'payments': [
            {'id': 'P1', 'order_id': 'O1', 'method': 'Cash', 'amount': '100'},
            {'id': 'P2', 'order_id': 'O2', 'method': 'card', 'amount': '150'},
            {'id': 'P4', 'order_id': 'O4', 'method': 'cash', 'amount': '30'},
        ],
        'shift_transactions': [
            {'id': 'T1', 'shift_id': 'S1', 'type': 'cash_in', 'amount': '20'},
            {'id': 'T2', 'shift_id': 'S1', 'type': 'cash_out', 'amount': '10'},
        ],
        'menu_items': [
            {'id': 'M1', 'name': 'Knafeh', 'category_id': 'K1'},
            {'id': 'M2', 'name': 'Tea', 'category_id': 'K2'},
        ],
        'categories': [{'id': 'K1', 'name': 'Desserts'}, {'id': 'K2', 'name': 'Drinks'}],
        'branches': [{'id': 'B1', 'name': 'Downtown'}, {'id': 'B2', 'name': 'Airport'}],
        'profiles': [{'id': 'C1', 'email': 'lina@example.com'}, {'id': 'C2', 'email': 'omar@example.com'}],
        'tables': [{'id': 'T1', 'table_name': 'Table 1'}],
    }


class ReportFilterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rows = rowset(**sample_records())

    def test_no_filters_returns_rows_unchanged(self) -> None:
        self.assertIs(apply_filters(self.rows, ReportFilters()), self.rows)

    def test_branch_filter_narrows_dependent_rows(self) -> None:
        filtered = apply_filters(self.rows, ReportFilters(branch_id='B1'))
        self.assertEqual([o.id for o in filtered.orders], ['O1', 'O2', 'O3'])
        self.assertNotIn('I5', [i.id for i in filtered.order_items])
        self.assertEqual([s.id for s in filtered.shifts], ['S1'])
        self.assertEqual(len(filtered.shift_transactions), 2)
        self.assertEqual(len(filtered.refunds), 1)

    def test_cashier_and_order_type_filters(self) -> None:
        by_cashier = apply_filters(self.rows, ReportFilters(cashier_id='C2'))
        self.assertEqual([o.id for o in by_cashier.orders], ['O4'])
        dine_in = apply_filters(self.rows, ReportFilters(order_type=OrderType.DINE_IN))
        self.assertEqual([o.id for o in dine_in.orders], ['O1'])
        takeaway = apply_filters(self.rows, ReportFilters(order_type=OrderType.TAKEAWAY))
        self.assertEqual([o.id for o in takeaway.orders], ['O2', 'O3', 'O4'])

    def test_payment_method_filter_only_touches_payments(self) -> None:
        filtered = apply_filters(self.rows, ReportFilters(payment_method='CASH'))
        self.assertEqual(len(filtered.orders), 4)
        self.assertEqual(sorted(p.id for p in filtered.payments), ['P1', 'P4'])

    def test_window_rejects_inverted_dates(self) -> None:
        with self.assertRaises(ValueError):
            ReportWindow.for_dates(date(2026, 3, 10), date(2026, 3, 9))


class ReportServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rows = rowset(**sample_records())

    def test_sales_summary(self) -> None:
        summary = build_sales_summary(self.rows)
        self.assertEqual(summary.total_sales, Decimal('280'))
        self.assertEqual(summary.order_count, 3)
        self.assertEqual(summary.average_order_value, Decimal('280') / Decimal('3'))
        self.assertEqual(summary.refunds_total, Decimal('15'))
        self.assertEqual(summary.net_after_refunds, Decimal('265'))

    def test_staff_report(self) -> None:
        report = build_staff_report(self.rows)
        self.assertEqual([row.email for row in report.cashier_sales], ['lina@example.com', 'omar@example.com'])
        self.assertEqual(report.cashier_sales[0].total_sales, Decimal('250'))
        self.assertEqual(report.cashier_sales[0].average_order_value, Decimal('125'))
        self.assertEqual(len(report.cashier_activity), 1)
        self.assertEqual(report.cashier_activity[0].void_count, 1)
        self.assertEqual(report.cashier_activity[0].refund_count, 1)
        self.assertEqual(report.void_details[0].reason, 'Mistake')
        self.assertEqual(report.void_details[0].cashier, 'lina@example.com')
        self.assertEqual(report.void_details[0].order_number, 2)

    def test_staff_report_groups_orphan_orders_under_unknown(self) -> None:
        rows = rowset(orders=[order('O1', total='12', shift_id='S-missing')])
        report = build_staff_report(rows)
        self.assertEqual(report.cashier_sales[0].cashier_id, 'Unknown')
        self.assertEqual(report.cashier_sales[0].total_sales, Decimal('12'))

    def test_costing_report_dimensions_reconcile(self) -> None:
        report = build_costing_report(self.rows)
        self.assertEqual(report.gross_sales, Decimal('38'))
        self.assertEqual(report.total_cogs, Decimal('13.5'))
        self.assertEqual(report.gross_profit, Decimal('24.5'))
        self.assertEqual([row.name for row in report.profit_by_item], ['Knafeh', 'Tea', 'Special'])
        knafeh = report.profit_by_item[0]
        self.assertEqual((knafeh.revenue, knafeh.profit, knafeh.margin), (Decimal('20'), Decimal('12'), Decimal('60')))
        self.assertEqual(knafeh.band, MarginBand.FAVORABLE)
        for rows in (report.profit_by_item, report.profit_by_category, report.profit_by_branch):
            self.assertEqual(sum(row.revenue for row in rows), report.gross_sales)
        self.assertIn('Uncategorized', [row.name for row in report.profit_by_category])
        self.assertEqual([row.name for row in report.profit_by_branch], ['Downtown', 'Airport'])

    def test_costing_report_is_empty_without_sales(self) -> None:
        report = build_costing_report(rowset())
        self.assertEqual(report.gross_sales, Decimal('0'))
        self.assertEqual(report.profit_margin, Decimal('0'))
        self.assertEqual(report.profit_by_item, [])

    def test_financial_report(self) -> None:
        report = build_financial_report(self.rows)
        self.assertEqual(report.gross_sales, Decimal('280'))
        self.assertEqual(report.final_total, Decimal('280'))
        self.assertEqual(report.net_after_refunds, Decimal('265'))
        self.assertEqual([row.label for row in report.payments_by_method], ['card', 'cash'])
        self.assertEqual(report.payments_by_method[1].total, Decimal('130'))
        self.assertEqual(report.payments_by_method[1].count, 2)
        self.assertEqual(report.refunds_by_reason[0].label, 'Cold food')
        self.assertEqual(report.refunds_by_cashier[0].email, 'lina@example.com')

    def test_orders_report(self) -> None:
        report = build_orders_report(self.rows)
        self.assertEqual(report.total_orders, 4)
        self.assertEqual(report.status_counts, {'paid': 3, 'cancelled': 1})
        self.assertEqual((report.dine_in_count, report.takeaway_count), (1, 2))
        self.assertEqual(report.orders_by_source, {'pos': 3, 'qr': 1})
        self.assertEqual([hc.hour for hc in report.peak_hours], [10, 11, 13])
        self.assertEqual(report.inconsistent_order_ids, [])
        self.assertEqual(report.details[0].order_id, 'O4')
        self.assertEqual(report.details[-1].type, 'dine_in')

    def test_menu_report_top_and_least_sellers(self) -> None:
        report = build_menu_report(self.rows)
        self.assertEqual([row.name for row in report.top_sellers], ['Knafeh', 'Special', 'Tea'])
        self.assertEqual([row.name for row in report.least_sellers], ['Tea', 'Special', 'Knafeh'])
        self.assertEqual(report.item_performance[2].quantity, Decimal('4'))
        self.assertEqual([row.name for row in report.category_performance], ['Desserts', 'Uncategorized', 'Drinks'])

    def test_branch_report(self) -> None:
        report = build_branch_report(self.rows)
        downtown, airport = report.branches
        self.assertEqual(downtown.name, 'Downtown')
        self.assertEqual((downtown.order_count, downtown.shift_count), (2, 1))
        self.assertEqual(downtown.sales_percent + airport.sales_percent, Decimal('100'))
        self.assertEqual(report.total_orders, 3)

    def test_shift_report_on_sales_basis(self) -> None:
        report = build_shift_report(self.rows, now=NOW)
        open_shift, closed_shift = report.shifts
        self.assertEqual(closed_shift.shift_id, 'S1')
        self.assertEqual(closed_shift.expected_cash, Decimal('360'))
        self.assertEqual(closed_shift.difference, Decimal('-5'))
        self.assertEqual(closed_shift.duration_minutes, 300)
        self.assertIsNone(open_shift.difference)
        self.assertEqual(open_shift.duration_minutes, 180)
        self.assertEqual(report.total_difference, Decimal('-5'))
        self.assertEqual((report.open_shift_count, report.closed_shift_count), (1, 1))
        self.assertEqual(report.table_usage[0].table_name, 'Table 1')
        self.assertEqual(report.table_usage[0].avg_occupancy_minutes, 40)

    def test_shift_report_on_cash_payments_basis(self) -> None:
        report = build_shift_report(self.rows, now=NOW, basis=CashBasis.CASH_PAYMENTS)
        closed_shift = next(row for row in report.shifts if row.shift_id == 'S1')
        self.assertEqual(closed_shift.expected_cash, Decimal('210'))
        self.assertEqual(closed_shift.difference, Decimal('145'))

    def test_cash_differences_respects_window(self) -> None:
        today = ReportWindow.for_dates(NOW.date(), NOW.date())
        last_week = ReportWindow.for_dates(NOW.date() - timedelta(days=7), NOW.date() - timedelta(days=1))
        result = build_cash_differences(self.rows, window=today)
        self.assertEqual(result.closed_shift_count, 1)
        self.assertEqual(result.rows[0].actual_cash, Decimal('355'))
        self.assertEqual(result.total_difference, Decimal('-5'))
        self.assertEqual(build_cash_differences(self.rows, window=last_week).rows, [])

    def test_trends_are_zero_filled(self) -> None:
        window = ReportWindow.for_dates(date(2026, 3, 8), date(2026, 3, 10))
        trends = build_trends(self.rows, window)
        self.assertEqual([point.day for point in trends.daily], [date(2026, 3, 8), date(2026, 3, 9), date(2026, 3, 10)])
        self.assertEqual(trends.daily[0].sales, Decimal('0'))
        self.assertEqual((trends.daily[2].sales, trends.daily[2].orders), (Decimal('280'), 3))
        self.assertEqual(len(trends.hourly), 24)
        self.assertEqual(trends.hourly[10].sales, Decimal('100'))
        self.assertEqual(sum(point.sales for point in trends.hourly), Decimal('280'))


class DailyReportTests(unittest.TestCase):
    def setUp(self) -> None:
        records = sample_records()
        records['orders'].append(order('O5', total='200', created_at=days_ago(1)))
        records['orders'].append(order('O6', total='12', status='on_hold', created_at=hours_ago(1)))
        records['orders'].append(order('O7', total='8', status='voided', created_at=hours_ago(1)))
        self.rows = rowset(**records)

    def test_daily_summary(self) -> None:
        summary = build_daily_summary(self.rows, now=NOW)
        self.assertEqual(summary.today_sales, Decimal('280'))
        self.assertEqual(summary.yesterday_sales, Decimal('200'))
        self.assertEqual(summary.sales_change_percent, Decimal('40'))
        self.assertEqual(summary.refund_count, 1)
        self.assertEqual(summary.void_count, 1)
        self.assertEqual(summary.top_seller.name, 'Knafeh')
        self.assertEqual(summary.top_seller.count, Decimal('4'))
        self.assertIsNotNone(summary.most_frequent_issue)

    def test_daily_summary_suppresses_change_without_yesterday(self) -> None:
        summary = build_daily_summary(rowset(**sample_records()), now=NOW)
        self.assertIsNone(summary.sales_change_percent)

    def test_refund_void_insights(self) -> None:
        insights = build_refund_void_insights(self.rows, now=NOW)
        self.assertEqual(insights.refund_count, 1)
        self.assertEqual(insights.refund_total, Decimal('15'))
        self.assertEqual(insights.refunds_by_cashier[0].email, 'lina@example.com')
        self.assertEqual(insights.voided_order_count, 2)
        self.assertEqual([reason.name for reason in insights.top_void_reasons], ['Customer left', 'No reason'])


class WindowRestrictionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.window = ReportWindow(start=days_ago(1, hour=0), end=NOW)
        self.rows = rowset(
            orders=[
                order('OLD', status='open', created_at=days_ago(90)),
                order('O1', total='25', created_at=hours_ago(3)),
            ],
            order_items=[item('I0', 'OLD', price='9'), item('I1', 'O1', price='25')],
            payments=[
                {'id': 'P0', 'order_id': 'OLD', 'method': 'cash', 'amount': '9'},
                {'id': 'P1', 'order_id': 'O1', 'method': 'cash', 'amount': '25'},
            ],
            shifts=[
                shift('S0', status='open', opened_at=days_ago(30)),
                shift('S1', status='closed', opened_at=days_ago(3), closed_at=hours_ago(6)),
                shift('S2', status='open', opened_at=hours_ago(5)),
            ],
            refunds=[refund('R0', 'OLD', created_at=days_ago(40)), refund('R1', 'O1')],
        )

    def test_rows_outside_the_window_are_dropped(self) -> None:
        restricted = restrict_to_window(self.rows, self.window)
        self.assertEqual([order.id for order in restricted.orders], ['O1'])
        self.assertEqual([item.id for item in restricted.order_items], ['I1'])
        self.assertEqual([payment.id for payment in restricted.payments], ['P1'])
        self.assertEqual([shift.id for shift in restricted.shifts], ['S1', 'S2'])
        self.assertEqual([refund.id for refund in restricted.refunds], ['R1'])

    def test_orders_report_ignores_carried_over_pending_orders(self) -> None:
        report = build_orders_report(restrict_to_window(self.rows, self.window))
        self.assertEqual(report.total_orders, 1)
        self.assertEqual(report.open_count, 0)


class MissingTimestampTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rows = rowset(orders=[{'id': 'O1', 'status': 'paid', 'total': '5', 'subtotal': '5'}])
        self.tz = timezone(timedelta(hours=-5))

    def test_orders_report_skips_orders_without_a_timestamp_in_peak_hours(self) -> None:
        report = build_orders_report(self.rows, self.tz)
        self.assertEqual(report.total_orders, 1)
        self.assertEqual(report.paid_count, 1)
        self.assertEqual(report.peak_hours, [])

    def test_hourly_trend_skips_orders_without_a_timestamp(self) -> None:
        hourly = build_hourly_trend(self.rows, self.tz)
        self.assertEqual(len(hourly), 24)
        self.assertEqual(sum(point.sales for point in hourly), Decimal('0'))
        self.assertEqual(sum(point.orders for point in hourly), 0)


if __name__ == '__main__':
    unittest.main()
