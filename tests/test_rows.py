from __future__ import annotations

import unittest
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal

from owner_analytics.services.rows import (
    OrderItemRow,
    OrderRow,
    OrderStatus,
    ShiftRow,
    ShiftStatus,
    decimal_or_zero,
    parse_timestamp,
)
from row_factories import item, order, rowset, shift


class DecimalCoercionTests(unittest.TestCase):
    def test_valid_values_pass_through(self) -> None:
        self.assertEqual(decimal_or_zero('12.50'), Decimal('12.50'))
        self.assertEqual(decimal_or_zero(3), Decimal('3'))
        self.assertEqual(decimal_or_zero(Decimal('0.125')), Decimal('0.125'))

    def test_malformed_values_become_zero_and_are_counted(self) -> None:
        coercions: Counter = Counter()
        self.assertEqual(decimal_or_zero('abc', field_name='orders.total', coercions=coercions), Decimal('0'))
        self.assertEqual(decimal_or_zero('NaN', field_name='orders.total', coercions=coercions), Decimal('0'))
        self.assertEqual(decimal_or_zero(True, field_name='orders.total', coercions=coercions), Decimal('0'))
        self.assertEqual(coercions['orders.total'], 3)

    def test_missing_values_are_zero_without_being_counted(self) -> None:
        coercions: Counter = Counter()
        self.assertEqual(decimal_or_zero(None, field_name='orders.total', coercions=coercions), Decimal('0'))
        self.assertEqual(coercions, Counter())


class TimestampTests(unittest.TestCase):
    def test_zulu_suffix_is_utc(self) -> None:
        parsed = parse_timestamp('2026-03-10T09:30:00Z')
        self.assertEqual(parsed, datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc))

    def test_naive_values_are_treated_as_utc(self) -> None:
        parsed = parse_timestamp(datetime(2026, 3, 10, 9, 30))
        self.assertEqual(parsed.tzinfo, timezone.utc)

    def test_unparseable_value_is_none(self) -> None:
        self.assertIsNone(parse_timestamp('yesterday'))
        self.assertIsNone(parse_timestamp(''))


class RowRecordTests(unittest.TestCase):
    def test_order_from_record_normalizes_fields(self) -> None:
        row = OrderRow.from_record(order('O1', total='7.5', status='PAID', source='QR', order_number='12'))
        self.assertEqual(row.status, OrderStatus.PAID)
        self.assertTrue(row.is_paid)
        self.assertEqual(row.source, 'qr')
        self.assertEqual(row.order_number, 12)
        self.assertFalse(row.is_dine_in)

    def test_unknown_status_is_not_paid(self) -> None:
        row = OrderRow.from_record(order('O1', status='archived'))
        self.assertIsNone(row.status)
        self.assertFalse(row.is_paid)

    def test_item_accepts_unit_price_and_computes_revenue(self) -> None:
        row = OrderItemRow.from_record({'id': 'I1', 'order_id': 'O1', 'unit_price': '2.5', 'quantity': '4'})
        self.assertEqual(row.revenue, Decimal('10.0'))
        self.assertEqual(row.name, 'Unknown')

    def test_item_voided_flag_reads_text_values(self) -> None:
        for raw_value, expected in (
            ('false', False),
            ('f', False),
            ('0', False),
            ('', False),
            (None, False),
            (False, False),
            ('TRUE', True),
            (' true ', True),
            ('1', True),
            (True, True),
        ):
            with self.subTest(voided=raw_value):
                row = OrderItemRow.from_record(item('I1', 'O1', price='2', voided=raw_value))
                self.assertIs(row.voided, expected)

    def test_order_without_a_timestamp_is_flagged(self) -> None:
        row = OrderRow.from_record({'id': 'O1', 'status': 'paid', 'total': '5'})
        self.assertFalse(row.has_timestamp)
        self.assertTrue(OrderRow.from_record(order('O2')).has_timestamp)

    def test_shift_status_is_inferred_from_closed_at(self) -> None:
        closed = ShiftRow.from_record(shift('S1', closed_at='2026-03-10T10:00:00Z', closing_cash='5'))
        still_open = ShiftRow.from_record(shift('S2'))
        self.assertEqual(closed.status, ShiftStatus.CLOSED)
        self.assertEqual(closed.closing_cash, Decimal('5'))
        self.assertTrue(still_open.is_open)
        self.assertIsNone(still_open.closing_cash)

    def test_rowset_collects_coercions_across_collections(self) -> None:
        rows = rowset(
            orders=[order('O1', total='oops')],
            order_items=[item('I1', 'O1', price='x', quantity='2'), item('I2', 'O1', price='1', quantity='?')],
        )
        self.assertEqual(rows.orders[0].total, Decimal('0'))
        self.assertEqual(rows.coercions['orders.total'], 1)
        self.assertEqual(rows.coercions['order_items.price'], 1)
        self.assertEqual(rows.coercions['order_items.quantity'], 1)


if __name__ == '__main__':
    unittest.main()
