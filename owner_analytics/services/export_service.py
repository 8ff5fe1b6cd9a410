from __future__ import annotations

import csv
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from io import StringIO
from math import ceil
from typing import Any, Generic, TypeVar

from owner_analytics.services.metrics_service import quantize_display

T = TypeVar('T')

MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def paginate(items: Sequence[T], page: int, page_size: int) -> Page[T]:
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValueError(f'Page size must be between 1 and {MAX_PAGE_SIZE}')
    if page < 1:
        raise ValueError('Page must be at least 1')
    total_items = len(items)
    offset = (page - 1) * page_size
    return Page(
        items=list(items[offset : offset + page_size]),
        page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=ceil(total_items / page_size),
    )


@dataclass(frozen=True)
class ExportColumn:
    key: str
    label: str
    value: Callable[[Any], object] | None = None


def _field(record: object, key: str) -> object:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def format_cell(value: object, *, decimals: int | None = None) -> str:
    if value is None:
        return ''
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        if decimals is not None and value.is_finite():
            return f'{quantize_display(value, decimals):f}'
        return f'{value:f}'
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value):
        return ' '.join(format_cell(getattr(value, name), decimals=decimals) for name in value.__dataclass_fields__)
    return str(value)


def to_csv(
    records: Iterable[object],
    columns: Sequence[ExportColumn],
    *,
    decimals: int | None = None,
) -> str:
    """Serialize records to comma-separated text with a header row.

    Records may be dataclasses or mappings. Values holding a comma, a quote
    or a line break are quoted, and embedded quotes are doubled.
    """
    if not columns:
        raise ValueError('At least one export column is required')
    sio = StringIO()
    writer = csv.writer(sio, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')
    writer.writerow([column.label for column in columns])
    for record in records:
        writer.writerow(
            [
                format_cell(column.value(record) if column.value else _field(record, column.key), decimals=decimals)
                for column in columns
            ]
        )
    return sio.getvalue()


def columns_for(record_type: type) -> list[ExportColumn]:
    if not is_dataclass(record_type):
        raise ValueError(f'{record_type.__name__} is not a dataclass')
    return [
        ExportColumn(key=name, label=name.replace('_', ' ').title())
        for name in record_type.__dataclass_fields__
    ]
