from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, TypeVar

from owner_analytics.services.rows import decimal_or_zero

RowT = TypeVar('RowT')
KeyFn = Callable[[Any], Hashable]
ValueFn = Callable[[Any], object]


@dataclass
class Accumulator:
    count: int = 0
    sums: dict[str, Decimal] = field(default_factory=dict)

    def add(self, name: str, value: object) -> None:
        self.sums[name] = self.sums.get(name, Decimal('0')) + decimal_or_zero(value)

    def total(self, name: str) -> Decimal:
        return self.sums.get(name, Decimal('0'))


def _fold(accumulator: Accumulator, row: object, sums: Mapping[str, ValueFn]) -> None:
    accumulator.count += 1
    for name, extractor in sums.items():
        accumulator.add(name, extractor(row))


def aggregate(
    rows: Iterable[RowT],
    *,
    key: KeyFn,
    sums: Mapping[str, ValueFn] | None = None,
    where: Callable[[RowT], bool] | None = None,
) -> dict[Hashable, Accumulator]:
    sums = sums or {}
    groups: dict[Hashable, Accumulator] = {}
    for row in rows:
        if where is not None and not where(row):
            continue
        _fold(groups.setdefault(key(row), Accumulator()), row, sums)
    return groups


def aggregate_many(
    rows: Iterable[RowT],
    *,
    keys: Mapping[str, KeyFn],
    sums: Mapping[str, ValueFn] | None = None,
    where: Callable[[RowT], bool] | None = None,
) -> tuple[Accumulator, dict[str, dict[Hashable, Accumulator]]]:
    """Fold several grouping dimensions in a single traversal.

    Returns the overall totals plus one group map per dimension. Every
    dimension sees exactly the same filtered rows, so per-dimension totals
    always reconcile with the overall totals.
    """
    sums = sums or {}
    overall = Accumulator()
    by_dimension: dict[str, dict[Hashable, Accumulator]] = {name: {} for name in keys}
    for row in rows:
        if where is not None and not where(row):
            continue
        _fold(overall, row, sums)
        for dimension, key in keys.items():
            _fold(by_dimension[dimension].setdefault(key(row), Accumulator()), row, sums)
    return overall, by_dimension


def totals(
    rows: Iterable[RowT],
    *,
    sums: Mapping[str, ValueFn],
    where: Callable[[RowT], bool] | None = None,
) -> Accumulator:
    overall, _ = aggregate_many(rows, keys={}, sums=sums, where=where)
    return overall


def count_by(rows: Iterable[RowT], *, key: KeyFn, where: Callable[[RowT], bool] | None = None) -> dict[Hashable, int]:
    return {group: acc.count for group, acc in aggregate(rows, key=key, where=where).items()}
