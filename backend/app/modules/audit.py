"""Audit trail helper shared by the API routes and the CLI."""
from __future__ import annotations

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog


def record_audit(db: Session, action: str, entity_type: str, entity_id: int = None,
                 details: dict = None, request=None) -> AuditLog:
    """Add an audit row to the session; it is committed with the mutation itself."""
    log = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        user_agent=request.headers.get("user-agent") if request else None,
        ip_address=request.client.host if request and request.client else None,
    )
    db.add(log)
    return log
