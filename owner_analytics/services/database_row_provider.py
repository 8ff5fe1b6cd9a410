from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from owner_analytics.models import (
    Base,
    Branch,
    Category,
    MenuItem,
    Order,
    OrderItem,
    Payment,
    Profile,
    Refund,
    RestaurantTable,
    Shift,
    ShiftTransaction,
)
from owner_analytics.services.rows import PENDING_ORDER_STATUSES, RowSet, ShiftStatus

logger = logging.getLogger(__name__)


def _as_record(instance: Base) -> dict:
    return {column.key: getattr(instance, column.key) for column in instance.__table__.columns}


def _records(db: Session, statement) -> list[dict]:
    return [_as_record(instance) for instance in db.execute(statement).scalars()]


class DatabaseRowProvider:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def _orders(self, db: Session, *, restaurant_id: str, start: datetime, end: datetime) -> list[dict]:
        pending = [status.value for status in PENDING_ORDER_STATUSES]
        return _records(
            db,
            select(Order)
            .where(Order.restaurant_id == restaurant_id)
            .where(
                or_(
                    (Order.created_at >= start) & (Order.created_at < end),
                    Order.status.in_(pending),
                )
            )
            .order_by(Order.created_at.asc()),
        )

    def _shifts(self, db: Session, *, restaurant_id: str, start: datetime, end: datetime) -> list[dict]:
        return _records(
            db,
            select(Shift)
            .where(Shift.restaurant_id == restaurant_id)
            .where(
                or_(
                    (Shift.opened_at >= start) & (Shift.opened_at < end),
                    (Shift.closed_at >= start) & (Shift.closed_at < end),
                    Shift.status == ShiftStatus.OPEN.value,
                )
            )
            .order_by(Shift.opened_at.asc()),
        )

    def _by_ids(self, db: Session, model, column, ids: Iterable[str]) -> list[dict]:
        ids = sorted({value for value in ids if value})
        if not ids:
            return []
        return _records(db, select(model).where(column.in_(ids)))

    def fetch_rows(self, *, restaurant_id: str, start: datetime, end: datetime) -> RowSet:
        with self.session_factory() as db:
            orders = self._orders(db, restaurant_id=restaurant_id, start=start, end=end)
            shifts = self._shifts(db, restaurant_id=restaurant_id, start=start, end=end)
            order_ids = [order['id'] for order in orders]
            shift_ids = [shift['id'] for shift in shifts]

            refunds = _records(
                db,
                select(Refund)
                .where(Refund.restaurant_id == restaurant_id)
                .where(Refund.created_at >= start)
                .where(Refund.created_at < end),
            )
            rows = RowSet.from_records(
                orders=orders,
                order_items=self._by_ids(db, OrderItem, OrderItem.order_id, order_ids),
                shifts=shifts,
                refunds=refunds,
                payments=self._by_ids(db, Payment, Payment.order_id, order_ids),
                shift_transactions=self._by_ids(db, ShiftTransaction, ShiftTransaction.shift_id, shift_ids),
                menu_items=_records(db, select(MenuItem).where(MenuItem.restaurant_id == restaurant_id)),
                categories=_records(db, select(Category).where(Category.restaurant_id == restaurant_id)),
                branches=_records(db, select(Branch).where(Branch.restaurant_id == restaurant_id)),
                profiles=self._by_ids(db, Profile, Profile.id, (shift['cashier_id'] for shift in shifts)),
                tables=_records(db, select(RestaurantTable).where(RestaurantTable.restaurant_id == restaurant_id)),
            )
        logger.debug(
            'Fetched %s orders and %s shifts for restaurant %s between %s and %s',
            len(rows.orders),
            len(rows.shifts),
            restaurant_id,
            start.isoformat(),
            end.isoformat(),
        )
        return rows
