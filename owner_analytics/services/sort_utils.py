from __future__ import annotations

from decimal import Decimal


def normalize_sort_text(value: str | None) -> str:
    return (value or '').strip().lower()


def descending_metric_key(metric: Decimal | int, label: str | None) -> tuple[Decimal, str]:
    return (-Decimal(metric), normalize_sort_text(label))


def ascending_metric_key(metric: Decimal | int, label: str | None) -> tuple[Decimal, str]:
    return (Decimal(metric), normalize_sort_text(label))
