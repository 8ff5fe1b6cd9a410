from __future__ import annotations

from functools import lru_cache

from owner_analytics.config import settings
from owner_analytics.db import SessionLocal
from owner_analytics.services.database_row_provider import DatabaseRowProvider
from owner_analytics.services.mock_row_provider import MockRowProvider
from owner_analytics.services.row_provider import RowProvider


@lru_cache(maxsize=1)
def get_row_provider() -> RowProvider:
    provider = settings.row_provider.strip().lower()
    if provider == 'database':
        return DatabaseRowProvider(SessionLocal)
    return MockRowProvider()
