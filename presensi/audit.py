from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from presensi.models import AuditActorType, AuditLog

logger = logging.getLogger("presensi.audit")


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: int | str,
    action: str,
    success: bool = True,
    entity_type: str | None = None,
    entity_id: int | str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Persist an audit row in its own commit; a failed write is only logged."""
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=actor_type,
        actor_id=str(actor_id),
        action=action,
        entity_type=entity_type,
        entity_id=None if entity_id is None else str(entity_id),
        success=success,
        details=details or {},
    )
    db.add(audit)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={"action": action, "actor_type": actor_type.value, "actor_id": str(actor_id)},
        )
        return

    logger.info(
        "audit_event",
        extra={
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": str(actor_id),
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "details": details or {},
        },
    )
