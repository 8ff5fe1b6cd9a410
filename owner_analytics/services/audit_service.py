from __future__ import annotations

from sqlalchemy.orm import Session

from owner_analytics.models import AuditLog


def log_audit(
    db: Session,
    *,
    action: str,
    restaurant_id: str | None,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            action=action,
            restaurant_id=restaurant_id,
            ip=ip,
            meta=metadata or {},
        )
    )
