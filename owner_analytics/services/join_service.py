from __future__ import annotations

from dataclasses import dataclass, field

from owner_analytics.services.rows import UNCATEGORIZED, UNKNOWN, RowSet


@dataclass(frozen=True)
class MenuItemInfo:
    name: str
    category_id: str | None
    category_name: str


@dataclass(frozen=True)
class JoinMaps:
    """Lookup tables used to enrich primary rows without refetching.

    Every lookup is total: a missing or null key resolves to a sentinel
    instead of raising, so aggregation always covers every input row.
    """

    shift_to_cashier: dict[str, str | None] = field(default_factory=dict)
    cashier_email: dict[str, str] = field(default_factory=dict)
    menu_items: dict[str, MenuItemInfo] = field(default_factory=dict)
    category_names: dict[str, str] = field(default_factory=dict)
    branch_names: dict[str, str] = field(default_factory=dict)
    order_to_shift: dict[str, str | None] = field(default_factory=dict)
    order_to_branch: dict[str, str | None] = field(default_factory=dict)
    table_names: dict[str, str] = field(default_factory=dict)

    def cashier_for_shift(self, shift_id: str | None) -> str:
        if not shift_id:
            return UNKNOWN
        return self.shift_to_cashier.get(shift_id) or UNKNOWN

    def cashier_for_order(self, order_id: str) -> str:
        return self.cashier_for_shift(self.order_to_shift.get(order_id))

    def email_for_cashier(self, cashier_id: str | None) -> str:
        if not cashier_id:
            return UNKNOWN
        return self.cashier_email.get(cashier_id) or UNKNOWN

    def menu_item(self, menu_item_id: str | None) -> MenuItemInfo:
        if menu_item_id and menu_item_id in self.menu_items:
            return self.menu_items[menu_item_id]
        return MenuItemInfo(name=UNKNOWN, category_id=None, category_name=UNCATEGORIZED)

    def category_name(self, category_id: str | None) -> str:
        if not category_id:
            return UNCATEGORIZED
        return self.category_names.get(category_id) or UNCATEGORIZED

    def branch_name(self, branch_id: str | None) -> str:
        if not branch_id:
            return UNKNOWN
        return self.branch_names.get(branch_id) or UNKNOWN

    def branch_for_order(self, order_id: str) -> str | None:
        return self.order_to_branch.get(order_id)

    def table_name(self, table_id: str | None) -> str:
        if not table_id:
            return UNKNOWN
        return self.table_names.get(table_id) or UNKNOWN


def build_join_maps(rows: RowSet) -> JoinMaps:
    category_names = {category.id: category.name for category in rows.categories}
    menu_items = {
        item.id: MenuItemInfo(
            name=item.name,
            category_id=item.category_id,
            category_name=category_names.get(item.category_id or '') or UNCATEGORIZED,
        )
        for item in rows.menu_items
    }
    return JoinMaps(
        shift_to_cashier={shift.id: shift.cashier_id for shift in rows.shifts},
        cashier_email={profile.id: profile.email or UNKNOWN for profile in rows.profiles},
        menu_items=menu_items,
        category_names=category_names,
        branch_names={branch.id: branch.name for branch in rows.branches},
        order_to_shift={order.id: order.shift_id for order in rows.orders},
        order_to_branch={order.id: order.branch_id for order in rows.orders},
        table_names={table.id: table.table_name for table in rows.tables},
    )
