from __future__ import annotations

from datetime import datetime
from typing import Protocol

from owner_analytics.services.rows import RowSet


class RowProvider(Protocol):
    def fetch_rows(self, *, restaurant_id: str, start: datetime, end: datetime) -> RowSet:
        """Rows for one restaurant whose activity falls in ``[start, end)``.

        Open shifts and orders still waiting to be paid are included even when
        they started before ``start``.
        """
        ...
