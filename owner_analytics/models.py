from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import INET
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from owner_analytics.services.rows import CashMovementType, OrderStatus, ShiftStatus


class Base(DeclarativeBase):
    pass


def _id_column() -> Mapped[str]:
    return mapped_column(Uuid(as_uuid=False), primary_key=True)


def _restaurant_column() -> Mapped[str]:
    return mapped_column(Uuid(as_uuid=False), nullable=False, index=True)


class Branch(Base):
    __tablename__ = 'branches'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    name: Mapped[str] = mapped_column(Text, nullable=False)


class Category(Base):
    __tablename__ = 'menu_categories'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    name: Mapped[str] = mapped_column(Text, nullable=False)


class MenuItem(Base):
    __tablename__ = 'menu_items'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    category_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('menu_categories.id'))
    name: Mapped[str] = mapped_column(Text, nullable=False)


class Profile(Base):
    __tablename__ = 'profiles'

    id: Mapped[str] = _id_column()
    email: Mapped[str | None] = mapped_column(Text)


class RestaurantTable(Base):
    __tablename__ = 'restaurant_tables'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    branch_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('branches.id'))
    table_name: Mapped[str] = mapped_column(Text, nullable=False)


class Shift(Base):
    __tablename__ = 'shifts'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    branch_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('branches.id'))
    cashier_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('profiles.id'))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ShiftStatus.OPEN.value)
    opening_cash: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    closing_cash: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ShiftTransaction(Base):
    __tablename__ = 'shift_transactions'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    shift_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey('shifts.id'), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=CashMovementType.CASH_IN.value)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    branch_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('branches.id'))
    shift_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('shifts.id'), index=True)
    table_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('restaurant_tables.id'))
    order_number: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=OrderStatus.OPEN.value, index=True)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default='pos')
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    service_charge: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    cancelled_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())


class OrderItem(Base):
    __tablename__ = 'order_items'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    order_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey('orders.id'), nullable=False, index=True)
    menu_item_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey('menu_items.id'))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('1'))
    voided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    void_reason: Mapped[str | None] = mapped_column(Text)
    cogs: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    profit: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Payment(Base):
    __tablename__ = 'payments'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    order_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey('orders.id'), nullable=False, index=True)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Refund(Base):
    __tablename__ = 'refunds'

    id: Mapped[str] = _id_column()
    restaurant_id: Mapped[str] = _restaurant_column()
    order_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey('orders.id'), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    refund_type: Mapped[str | None] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    restaurant_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), index=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(INET)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
