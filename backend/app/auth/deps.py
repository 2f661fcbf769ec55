"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user                 → decode JWT, load user from DB, return User
  get_current_permissions          → the user's organization permission document
  require_organization_member      → path organization must be the user's own
  require_module_permission(m, a)  → module/action check via the permission engine
  require_special_permission(p)    → role's own special permission
  require_feature(f)               → organization feature flag
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.auth.permissions import has_permission, has_special_permission, is_feature_enabled
from app.database import get_db
from app.middleware.exceptions import PermissionDeniedError
from app.models.public.user import User
from app.schemas.permissions import (
    FeatureFlag,
    ModuleName,
    OrganizationPermissions,
    PermissionAction,
)
from app.services.organization_permissions import get_organization_permissions

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT, load the user, and return it."""
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


# ── Organization context ────────────────────────────────────

async def get_current_permissions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrganizationPermissions:
    """Load the permission document of the user's organization.

    Raises 403 if the user doesn't belong to an organization.
    """
    if not user.organization_id:
        raise PermissionDeniedError("No organization context")
    return await get_organization_permissions(db, user.organization_id)


async def require_organization_member(
    organization_id: str,
    user: User = Depends(get_current_user),
) -> User:
    """Reject access to any organization other than the user's own."""
    if user.organization_id != organization_id:
        logger.warning(
            f"User {user.id} denied access to organization {organization_id}"
        )
        raise PermissionDeniedError("Not a member of this organization")
    return user


# ── Permission-document access control ──────────────────────

def require_module_permission(module: ModuleName, action: PermissionAction):
    """Dependency factory: user's role must hold `action` on `module`.

    Usage:
        @router.get("/reports")
        async def list_reports(
            user: User = Depends(require_module_permission(ModuleName.REPORTS, PermissionAction.READ)),
        ):
            ...

    A misconfigured document raises PermissionConfigurationError, which
    the exception handler turns into a 403.
    """
    async def _check(
        user: User = Depends(get_current_user),
        permissions: OrganizationPermissions = Depends(get_current_permissions),
    ) -> User:
        if not has_permission(permissions, user.role, module, action):
            logger.debug(f"Denied {module.value}.{action.value} to {user.id} ({user.role.value})")
            raise PermissionDeniedError(
                f"Missing permission: {module.value}.{action.value}"
            )
        return user

    return _check


def require_special_permission(permission: str):
    """Dependency factory: user's role must list `permission` itself."""
    async def _check(
        user: User = Depends(get_current_user),
        permissions: OrganizationPermissions = Depends(get_current_permissions),
    ) -> User:
        if not has_special_permission(permissions, user.role, permission):
            raise PermissionDeniedError(f"Missing special permission: {permission}")
        return user

    return _check


def require_feature(feature: FeatureFlag):
    """Dependency factory: organization must have `feature` enabled."""
    async def _check(
        user: User = Depends(get_current_user),
        permissions: OrganizationPermissions = Depends(get_current_permissions),
    ) -> User:
        if not is_feature_enabled(permissions, feature):
            raise PermissionDeniedError(f"Feature not enabled: {feature.value}")
        return user

    return _check
