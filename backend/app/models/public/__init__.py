"""Public-schema models."""

from app.models.public.audit_log import AuditLog
from app.models.public.organization import Organization
from app.models.public.user import User

__all__ = ["AuditLog", "Organization", "User"]
