from __future__ import annotations

import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from owner_analytics.models import AuditLog, MenuItem, Order, OrderItem, Payment, Profile, Refund, Shift
from owner_analytics.services.audit_service import log_audit
from owner_analytics.services.database_row_provider import DatabaseRowProvider
from owner_analytics.services.rows import OrderStatus
from row_factories import NOW, hours_ago


class DatabaseRowProviderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.results = {
            Order: [
                Order(
                    id='O1',
                    restaurant_id='R1',
                    shift_id='S1',
                    status='paid',
                    source='pos',
                    subtotal=Decimal('12.000'),
                    total=Decimal('12.000'),
                    created_at=hours_ago(2),
                )
            ],
            Shift: [Shift(id='S1', restaurant_id='R1', cashier_id='C1', status='open', opened_at=hours_ago(5))],
            Refund: [Refund(id='R-1', restaurant_id='R1', order_id='O1', amount=Decimal('2.000'), created_at=hours_ago(1))],
            OrderItem: [
                OrderItem(
                    id='I1',
                    order_id='O1',
                    menu_item_id='M1',
                    name='Knafeh',
                    price=Decimal('3.000'),
                    quantity=Decimal('4'),
                    voided=False,
                )
            ],
            Payment: [Payment(id='P1', order_id='O1', method='CASH', amount=Decimal('12.000'))],
            MenuItem: [MenuItem(id='M1', restaurant_id='R1', name='Knafeh')],
            Profile: [Profile(id='C1', email='lina@example.com')],
        }
        self.statements = []
        self.db = MagicMock()
        self.db.__enter__.return_value = self.db
        self.db.__exit__.return_value = False
        self.db.execute.side_effect = self._execute
        self.provider = DatabaseRowProvider(lambda: self.db)

    def _execute(self, statement):
        self.statements.append(statement)
        model = statement.column_descriptions[0]['entity']
        result = MagicMock()
        result.scalars.return_value = list(self.results.get(model, []))
        return result

    def test_rows_are_loaded_into_a_row_set(self) -> None:
        rows = self.provider.fetch_rows(restaurant_id='R1', start=NOW - timedelta(days=1), end=NOW)

        self.assertEqual([order.id for order in rows.orders], ['O1'])
        self.assertEqual(rows.orders[0].status, OrderStatus.PAID)
        self.assertEqual(rows.order_items[0].revenue, Decimal('12.000'))
        self.assertEqual(rows.payments[0].method, 'cash')
        self.assertTrue(rows.shifts[0].is_open)
        self.assertEqual(rows.refunds[0].amount, Decimal('2.000'))
        self.assertEqual(rows.profiles[0].email, 'lina@example.com')
        self.assertEqual(rows.coercions, {})
        self.db.__exit__.assert_called_once()

    def test_child_rows_are_skipped_without_parents(self) -> None:
        self.results[Order] = []
        self.results[Shift] = []
        rows = self.provider.fetch_rows(restaurant_id='R1', start=NOW - timedelta(days=1), end=NOW)

        queried = {statement.column_descriptions[0]['entity'] for statement in self.statements}
        self.assertNotIn(OrderItem, queried)
        self.assertNotIn(Payment, queried)
        self.assertNotIn(Profile, queried)
        self.assertEqual(rows.order_items, [])


class AuditServiceTests(unittest.TestCase):
    def test_log_audit_adds_an_entry(self) -> None:
        db = MagicMock()
        log_audit(db, action='REPORT_EXPORTED_CSV', restaurant_id='R1', ip='10.0.0.1', metadata={'report': 'menu'})

        entry = db.add.call_args.args[0]
        self.assertIsInstance(entry, AuditLog)
        self.assertEqual(entry.action, 'REPORT_EXPORTED_CSV')
        self.assertEqual(entry.meta, {'report': 'menu'})
        db.commit.assert_not_called()


if __name__ == '__main__':
    unittest.main()
