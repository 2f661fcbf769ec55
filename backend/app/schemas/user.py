"""Pydantic schemas for user role management."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.permissions import UserRole


class UserSummary(BaseModel):
    id: str
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    organization_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RoleUpdate(BaseModel):
    role: UserRole
    reason: str | None = None


class BulkRoleUpdate(BaseModel):
    user_ids: list[str] = Field(min_length=1)
    role: UserRole
    reason: str | None = None


class AssignableRoles(BaseModel):
    max_assignable_role: UserRole
    assignable_roles: list[UserRole]
