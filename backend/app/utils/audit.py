"""Lightweight helper for recording audit log entries.

Usage:
    await log_audit(
        db, user, action="role_changed", entity_type="user",
        entity_id=target.id, summary="Changed role of Jane to manager",
        details={"old": "user", "new": "manager"},
    )

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.public.audit_log import AuditLog
from app.models.public.user import User


async def log_audit(
    db: AsyncSession,
    user: User,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    summary: str | None = None,
    reason: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an audit log entry to the current DB session."""
    entry = AuditLog(
        organization_id=user.organization_id,
        user_id=user.id,
        user_name=user.full_name,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        reason=reason,
        details=details,
    )
    db.add(entry)
