from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from owner_analytics.services.rows import RowSet

TAX_RATE = Decimal('0.16')
DISCOUNT_RATE = Decimal('0.10')
MILLS = Decimal('0.001')


class MockRowProvider:
    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.branches = [('BR-1', 'Downtown'), ('BR-2', 'Airport')]
        self.categories = [('CAT-1', 'Hot Drinks'), ('CAT-2', 'Mains'), ('CAT-3', 'Desserts')]
        self.menu = [
            ('MI-1', 'Turkish Coffee', 'CAT-1', Decimal('1.500'), Decimal('0.400')),
            ('MI-2', 'Mint Tea', 'CAT-1', Decimal('1.000'), Decimal('0.150')),
            ('MI-3', 'Mansaf', 'CAT-2', Decimal('7.500'), Decimal('3.900')),
            ('MI-4', 'Chicken Shawarma', 'CAT-2', Decimal('3.250'), Decimal('1.300')),
            ('MI-5', 'Knafeh', 'CAT-3', Decimal('2.750'), Decimal('1.100')),
            ('MI-6', 'Rice Pudding', 'CAT-3', Decimal('1.750'), Decimal('0.500')),
        ]
        self.cashiers = [
            ('CSH-1', 'lina@example.com', 'BR-1'),
            ('CSH-2', 'omar@example.com', 'BR-1'),
            ('CSH-3', 'sara@example.com', 'BR-2'),
        ]
        self.tables = [('T-1', 'Table 1'), ('T-2', 'Table 2'), ('T-3', 'Patio 1'), ('T-4', 'Patio 2')]

    def _seed(self, restaurant_id: str, day: date) -> int:
        return sum(ord(char) for char in restaurant_id) + day.toordinal()

    def _day_rows(self, restaurant_id: str, day: date, now: datetime) -> dict[str, list[dict]]:
        seed = self._seed(restaurant_id, day)
        out: dict[str, list[dict]] = {
            'orders': [],
            'order_items': [],
            'shifts': [],
            'refunds': [],
            'payments': [],
            'shift_transactions': [],
        }
        stamp = day.strftime('%Y%m%d')
        for cashier_index, (cashier_id, _email, branch_id) in enumerate(self.cashiers):
            shift_id = f'SH-{stamp}-{cashier_index + 1}'
            opened_at = datetime.combine(day, time(8, 0), tzinfo=timezone.utc)
            if opened_at > now:
                continue
            closes_at = opened_at + timedelta(hours=8)
            cash_sales = Decimal('0')
            order_count = 3 + (seed + cashier_index) % 4

            for k in range(order_count):
                key = seed + cashier_index * 7 + k
                created_at = opened_at + timedelta(hours=1 + (k * 2) % 7, minutes=(key * 7) % 60)
                if created_at > now:
                    continue
                order_id = f'ORD-{stamp}-{cashier_index + 1}-{k + 1}'
                if key % 9 == 0:
                    status = 'cancelled'
                elif key % 13 == 0:
                    status = 'on_hold'
                elif created_at + timedelta(minutes=20) > now:
                    status = 'in_progress'
                else:
                    status = 'paid'

                subtotal = Decimal('0')
                for j in range(1 + key % 3):
                    item_id, name, _category_id, price, cost = self.menu[(key + j) % len(self.menu)]
                    quantity = Decimal(1 + (k + j) % 2)
                    voided = (key + j) % 17 == 0
                    if not voided:
                        subtotal += price * quantity
                    out['order_items'].append(
                        {
                            'id': f'{order_id}-L{j + 1}',
                            'order_id': order_id,
                            'menu_item_id': item_id,
                            'name': name,
                            'price': price,
                            'quantity': quantity,
                            'voided': voided,
                            'void_reason': 'Entered by mistake' if voided else None,
                            'cogs': cost * quantity,
                            'profit': (price - cost) * quantity,
                            'created_at': created_at,
                        }
                    )

                discount = (subtotal * DISCOUNT_RATE).quantize(MILLS) if key % 6 == 0 else Decimal('0')
                tax = ((subtotal - discount) * TAX_RATE).quantize(MILLS)
                total = subtotal - discount + tax
                out['orders'].append(
                    {
                        'id': order_id,
                        'restaurant_id': restaurant_id,
                        'branch_id': branch_id,
                        'shift_id': shift_id,
                        'order_number': cashier_index * 100 + k + 1,
                        'status': status,
                        'source': 'qr' if k % 5 == 4 else 'pos',
                        'table_id': self.tables[k % len(self.tables)][0] if k % 2 == 0 else None,
                        'subtotal': subtotal,
                        'discount_value': discount,
                        'tax_amount': tax,
                        'service_charge': Decimal('0'),
                        'total': total,
                        'cancelled_reason': 'Customer left' if status == 'cancelled' else None,
                        'created_at': created_at,
                        'updated_at': created_at + timedelta(minutes=25 + key % 40) if status == 'paid' else None,
                    }
                )
                if status != 'paid':
                    continue
                method = 'card' if key % 3 == 0 else 'cash'
                if method == 'cash':
                    cash_sales += total
                out['payments'].append(
                    {
                        'id': f'PAY-{order_id}',
                        'order_id': order_id,
                        'method': method,
                        'amount': total,
                        'created_at': created_at + timedelta(minutes=15),
                    }
                )
                refunded_at = created_at + timedelta(minutes=30)
                if key % 11 == 0 and refunded_at <= now:
                    out['refunds'].append(
                        {
                            'id': f'REF-{order_id}',
                            'order_id': order_id,
                            'amount': (total / 2).quantize(MILLS),
                            'reason': 'Wrong order',
                            'refund_type': 'partial',
                            'created_at': refunded_at,
                        }
                    )

            opening_cash = Decimal('50')
            cash_out = Decimal('5') if seed % 4 == 0 else Decimal('0')
            if cash_out:
                out['shift_transactions'].append(
                    {
                        'id': f'TX-{shift_id}',
                        'shift_id': shift_id,
                        'type': 'cash_out',
                        'amount': cash_out,
                        'reason': 'Supplies',
                        'created_at': opened_at + timedelta(hours=2),
                    }
                )
            closed = closes_at <= now
            variance = Decimal((seed + cashier_index) % 5 - 2)
            out['shifts'].append(
                {
                    'id': shift_id,
                    'cashier_id': cashier_id,
                    'branch_id': branch_id,
                    'status': 'closed' if closed else 'open',
                    'opening_cash': opening_cash,
                    'closing_cash': opening_cash + cash_sales - cash_out + variance if closed else None,
                    'opened_at': opened_at,
                    'closed_at': closes_at if closed else None,
                }
            )
        return out

    def fetch_rows(self, *, restaurant_id: str, start: datetime, end: datetime) -> RowSet:
        now = self.clock()
        collected: dict[str, list[dict]] = {}
        day = start.astimezone(timezone.utc).date()
        last_day = end.astimezone(timezone.utc).date()
        while day <= last_day:
            for name, records in self._day_rows(restaurant_id, day, now).items():
                collected.setdefault(name, []).extend(records)
            day += timedelta(days=1)

        orders = [order for order in collected.get('orders', []) if start <= order['created_at'] < end]
        order_ids = {order['id'] for order in orders}
        return RowSet.from_records(
            orders=orders,
            order_items=[item for item in collected.get('order_items', []) if item['order_id'] in order_ids],
            shifts=collected.get('shifts', []),
            refunds=[refund for refund in collected.get('refunds', []) if start <= refund['created_at'] < end],
            payments=[payment for payment in collected.get('payments', []) if payment['order_id'] in order_ids],
            shift_transactions=collected.get('shift_transactions', []),
            menu_items=[{'id': item_id, 'name': name, 'category_id': cat} for item_id, name, cat, _p, _c in self.menu],
            categories=[{'id': category_id, 'name': name} for category_id, name in self.categories],
            branches=[{'id': branch_id, 'name': name} for branch_id, name in self.branches],
            profiles=[{'id': cashier_id, 'email': email} for cashier_id, email, _branch in self.cashiers],
            tables=[{'id': table_id, 'table_name': name} for table_id, name in self.tables],
        )
