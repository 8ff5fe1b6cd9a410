from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum


class OrderStatus(str, Enum):
    OPEN = 'open'
    IN_PROGRESS = 'in_progress'
    CONFIRMED = 'confirmed'
    ON_HOLD = 'on_hold'
    PAID = 'paid'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'
    VOIDED = 'voided'


class ShiftStatus(str, Enum):
    OPEN = 'open'
    CLOSED = 'closed'


class CashMovementType(str, Enum):
    CASH_IN = 'cash_in'
    CASH_OUT = 'cash_out'


UNKNOWN = 'Unknown'
UNCATEGORIZED = 'Uncategorized'

PENDING_ORDER_STATUSES = frozenset({OrderStatus.OPEN, OrderStatus.IN_PROGRESS, OrderStatus.CONFIRMED})
ACTIVE_TABLE_STATUSES = PENDING_ORDER_STATUSES | {OrderStatus.ON_HOLD}

# Stand-in for rows whose timestamp is missing or unparseable.
MISSING_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)


def decimal_or_zero(raw_value: object, *, field_name: str | None = None, coercions: Counter | None = None) -> Decimal:
    if isinstance(raw_value, Decimal):
        if raw_value.is_finite():
            return raw_value
    elif raw_value is not None and not isinstance(raw_value, bool):
        try:
            value = Decimal(str(raw_value).strip())
        except (InvalidOperation, TypeError, ValueError):
            value = None
        if value is not None and value.is_finite():
            return value
    elif raw_value is None:
        return Decimal('0')

    if coercions is not None and field_name:
        coercions[field_name] += 1
    return Decimal('0')


def optional_decimal(raw_value: object, *, field_name: str | None = None, coercions: Counter | None = None) -> Decimal | None:
    if raw_value is None or raw_value == '':
        return None
    return decimal_or_zero(raw_value, field_name=field_name, coercions=coercions)


def parse_timestamp(raw_value: object) -> datetime | None:
    if raw_value is None or raw_value == '':
        return None
    if isinstance(raw_value, datetime):
        value = raw_value
    else:
        text = str(raw_value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _text(raw_value: object) -> str | None:
    if raw_value is None:
        return None
    value = str(raw_value).strip()
    return value or None


def _flag(raw_value: object) -> bool:
    if isinstance(raw_value, str):
        return raw_value.strip().lower() in {'true', 't', '1', 'yes'}
    return bool(raw_value)


def _order_status(raw_value: object) -> OrderStatus | None:
    try:
        return OrderStatus(str(raw_value).strip().lower())
    except ValueError:
        return None


@dataclass(frozen=True)
class OrderRow:
    id: str
    status: OrderStatus | None
    total: Decimal
    created_at: datetime
    restaurant_id: str | None = None
    branch_id: str | None = None
    shift_id: str | None = None
    subtotal: Decimal = Decimal('0')
    discount_value: Decimal = Decimal('0')
    tax_amount: Decimal = Decimal('0')
    service_charge: Decimal = Decimal('0')
    table_id: str | None = None
    source: str = 'pos'
    order_number: int | None = None
    cancelled_reason: str | None = None
    updated_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.PAID

    @property
    def is_dine_in(self) -> bool:
        return self.table_id is not None

    @property
    def has_timestamp(self) -> bool:
        return self.created_at != MISSING_TIMESTAMP

    @classmethod
    def from_record(cls, record: Mapping, coercions: Counter | None = None) -> OrderRow:
        number = record.get('order_number')
        return cls(
            id=str(record['id']),
            status=_order_status(record.get('status')),
            total=decimal_or_zero(record.get('total'), field_name='orders.total', coercions=coercions),
            created_at=parse_timestamp(record.get('created_at')) or MISSING_TIMESTAMP,
            restaurant_id=_text(record.get('restaurant_id')),
            branch_id=_text(record.get('branch_id')),
            shift_id=_text(record.get('shift_id')),
            subtotal=decimal_or_zero(record.get('subtotal'), field_name='orders.subtotal', coercions=coercions),
            discount_value=decimal_or_zero(
                record.get('discount_value'), field_name='orders.discount_value', coercions=coercions
            ),
            tax_amount=decimal_or_zero(record.get('tax_amount'), field_name='orders.tax_amount', coercions=coercions),
            service_charge=decimal_or_zero(
                record.get('service_charge'), field_name='orders.service_charge', coercions=coercions
            ),
            table_id=_text(record.get('table_id')),
            source=(_text(record.get('source')) or 'pos').lower(),
            order_number=int(number) if isinstance(number, int) or (isinstance(number, str) and number.isdigit()) else None,
            cancelled_reason=_text(record.get('cancelled_reason')),
            updated_at=parse_timestamp(record.get('updated_at')),
        )


@dataclass(frozen=True)
class OrderItemRow:
    id: str
    order_id: str
    name: str
    unit_price: Decimal
    quantity: Decimal
    menu_item_id: str | None = None
    voided: bool = False
    void_reason: str | None = None
    cogs: Decimal = Decimal('0')
    profit: Decimal = Decimal('0')
    created_at: datetime | None = None

    @property
    def revenue(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_record(cls, record: Mapping, coercions: Counter | None = None) -> OrderItemRow:
        return cls(
            id=str(record['id']),
            order_id=str(record['order_id']),
            name=_text(record.get('name')) or UNKNOWN,
            unit_price=decimal_or_zero(
                record.get('price', record.get('unit_price')), field_name='order_items.price', coercions=coercions
            ),
            quantity=decimal_or_zero(record.get('quantity'), field_name='order_items.quantity', coercions=coercions),
            menu_item_id=_text(record.get('menu_item_id')),
            voided=_flag(record.get('voided')),
            void_reason=_text(record.get('void_reason')),
            cogs=decimal_or_zero(record.get('cogs'), field_name='order_items.cogs', coercions=coercions),
            profit=decimal_or_zero(record.get('profit'), field_name='order_items.profit', coercions=coercions),
            created_at=parse_timestamp(record.get('created_at')),
        )


@dataclass(frozen=True)
class ShiftRow:
    id: str
    cashier_id: str | None
    opened_at: datetime
    status: ShiftStatus
    opening_cash: Decimal = Decimal('0')
    closing_cash: Decimal | None = None
    closed_at: datetime | None = None
    branch_id: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == ShiftStatus.OPEN and self.closed_at is None

    @classmethod
    def from_record(cls, record: Mapping, coercions: Counter | None = None) -> ShiftRow:
        closed_at = parse_timestamp(record.get('closed_at'))
        raw_status = str(record.get('status') or '').strip().lower()
        if raw_status in {ShiftStatus.OPEN.value, ShiftStatus.CLOSED.value}:
            status = ShiftStatus(raw_status)
        else:
            status = ShiftStatus.CLOSED if closed_at else ShiftStatus.OPEN
        return cls(
            id=str(record['id']),
            cashier_id=_text(record.get('cashier_id')),
            opened_at=parse_timestamp(record.get('opened_at')) or MISSING_TIMESTAMP,
            status=status,
            opening_cash=decimal_or_zero(record.get('opening_cash'), field_name='shifts.opening_cash', coercions=coercions),
            closing_cash=optional_decimal(record.get('closing_cash'), field_name='shifts.closing_cash', coercions=coercions),
            closed_at=closed_at,
            branch_id=_text(record.get('branch_id')),
        )


@dataclass(frozen=True)
class RefundRow:
    id: str
    order_id: str
    amount: Decimal
    created_at: datetime
    reason: str | None = None
    refund_type: str | None = None

    @classmethod
    def from_record(cls, record: Mapping, coercions: Counter | None = None) -> RefundRow:
        return cls(
            id=str(record['id']),
            order_id=str(record['order_id']),
            amount=decimal_or_zero(record.get('amount'), field_name='refunds.amount', coercions=coercions),
            created_at=parse_timestamp(record.get('created_at')) or MISSING_TIMESTAMP,
            reason=_text(record.get('reason')),
            refund_type=_text(record.get('refund_type')),
        )


@dataclass(frozen=True)
class PaymentRow:
    id: str
    order_id: str
    method: str
    amount: Decimal
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: Mapping, coercions: Counter | None = None) -> PaymentRow:
        return cls(
            id=str(record['id']),
            order_id=str(record['order_id']),
            method=(_text(record.get('method')) or UNKNOWN).lower(),
            amount=decimal_or_zero(record.get('amount'), field_name='payments.amount', coercions=coercions),
            created_at=parse_timestamp(record.get('created_at')),
        )


@dataclass(frozen=True)
class ShiftTransactionRow:
    id: str
    shift_id: str
    type: CashMovementType | None
    amount: Decimal
    reason: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: Mapping, coercions: Counter | None = None) -> ShiftTransactionRow:
        try:
            movement_type = CashMovementType(str(record.get('type') or '').strip().lower())
        except ValueError:
            movement_type = None
        return cls(
            id=str(record.get('id') or ''),
            shift_id=str(record['shift_id']),
            type=movement_type,
            amount=decimal_or_zero(record.get('amount'), field_name='shift_transactions.amount', coercions=coercions),
            reason=_text(record.get('reason')),
            created_at=parse_timestamp(record.get('created_at')),
        )


@dataclass(frozen=True)
class MenuItemRow:
    id: str
    name: str
    category_id: str | None = None


@dataclass(frozen=True)
class CategoryRow:
    id: str
    name: str


@dataclass(frozen=True)
class BranchRow:
    id: str
    name: str


@dataclass(frozen=True)
class ProfileRow:
    id: str
    email: str | None = None


@dataclass(frozen=True)
class TableRow:
    id: str
    table_name: str


@dataclass(frozen=True)
class RowSet:
    orders: list[OrderRow] = field(default_factory=list)
    order_items: list[OrderItemRow] = field(default_factory=list)
    shifts: list[ShiftRow] = field(default_factory=list)
    refunds: list[RefundRow] = field(default_factory=list)
    payments: list[PaymentRow] = field(default_factory=list)
    shift_transactions: list[ShiftTransactionRow] = field(default_factory=list)
    menu_items: list[MenuItemRow] = field(default_factory=list)
    categories: list[CategoryRow] = field(default_factory=list)
    branches: list[BranchRow] = field(default_factory=list)
    profiles: list[ProfileRow] = field(default_factory=list)
    tables: list[TableRow] = field(default_factory=list)
    coercions: Counter = field(default_factory=Counter)

    @classmethod
    def from_records(
        cls,
        *,
        orders: Iterable[Mapping] = (),
        order_items: Iterable[Mapping] = (),
        shifts: Iterable[Mapping] = (),
        refunds: Iterable[Mapping] = (),
        payments: Iterable[Mapping] = (),
        shift_transactions: Iterable[Mapping] = (),
        menu_items: Iterable[Mapping] = (),
        categories: Iterable[Mapping] = (),
        branches: Iterable[Mapping] = (),
        profiles: Iterable[Mapping] = (),
        tables: Iterable[Mapping] = (),
    ) -> RowSet:
        coercions: Counter = Counter()
        return cls(
            orders=[OrderRow.from_record(r, coercions) for r in orders],
            order_items=[OrderItemRow.from_record(r, coercions) for r in order_items],
            shifts=[ShiftRow.from_record(r, coercions) for r in shifts],
            refunds=[RefundRow.from_record(r, coercions) for r in refunds],
            payments=[PaymentRow.from_record(r, coercions) for r in payments],
            shift_transactions=[ShiftTransactionRow.from_record(r, coercions) for r in shift_transactions],
            menu_items=[
                MenuItemRow(id=str(r['id']), name=_text(r.get('name')) or UNKNOWN, category_id=_text(r.get('category_id')))
                for r in menu_items
            ],
            categories=[CategoryRow(id=str(r['id']), name=_text(r.get('name')) or UNCATEGORIZED) for r in categories],
            branches=[BranchRow(id=str(r['id']), name=_text(r.get('name')) or UNKNOWN) for r in branches],
            profiles=[ProfileRow(id=str(r['id']), email=_text(r.get('email'))) for r in profiles],
            tables=[TableRow(id=str(r['id']), table_name=_text(r.get('table_name')) or UNKNOWN) for r in tables],
            coercions=coercions,
        )
