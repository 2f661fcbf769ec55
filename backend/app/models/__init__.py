"""Aggregate model imports for Alembic auto-detection."""

from app.models.public.organization import Organization  # noqa: F401
from app.models.public.user import User  # noqa: F401
from app.models.public.audit_log import AuditLog  # noqa: F401
