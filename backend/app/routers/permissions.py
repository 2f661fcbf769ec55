"""Organization permissions router.

Endpoints:
    GET   /api/organizations/{organization_id}/permissions                   Current document (or defaults)
    PATCH /api/organizations/{organization_id}/permissions                   Merge, validate, persist
    POST  /api/organizations/{organization_id}/permissions/validate          Dry-run a PATCH body
    POST  /api/organizations/{organization_id}/permissions/reset             Replace with defaults
    GET   /api/organizations/{organization_id}/roles/{role}/permissions      Effective permissions for a role
    GET   /api/organizations/{organization_id}/roles/{role}/summary          Permission summary for a role
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import (
    require_module_permission,
    require_organization_member,
    require_special_permission,
)
from app.auth.permission_editing import validate_permissions
from app.auth.permissions import create_permission_summary, get_user_permissions
from app.database import get_db
from app.middleware.exceptions import PermissionsValidationError, ResourceNotFoundError
from app.models.public.user import User
from app.schemas.permissions import (
    ModuleName,
    OrganizationPermissions,
    PermissionAction,
    PermissionsPatch,
    PermissionsReset,
    PermissionSummary,
    PermissionValidationResult,
    UserPermissions,
    UserRole,
)
from app.services.organization_permissions import (
    get_organization,
    get_organization_permissions,
    plan_permissions_update,
    reset_organization_permissions,
    stored_permissions,
    update_organization_permissions,
)

router = APIRouter()

MANAGE_ORGANIZATION = "manage_organization"

can_view_settings = require_module_permission(ModuleName.SETTINGS, PermissionAction.READ)
can_manage_organization = require_special_permission(MANAGE_ORGANIZATION)


@router.get(
    "/{organization_id}/permissions",
    response_model=OrganizationPermissions,
    response_model_exclude_none=True,
)
async def get_permissions(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    _member: User = Depends(require_organization_member),
    _user: User = Depends(can_view_settings),
):
    """Return the organization's permission document."""
    return await get_organization_permissions(db, organization_id)


@router.patch(
    "/{organization_id}/permissions",
    response_model=OrganizationPermissions,
    response_model_exclude_none=True,
)
async def patch_permissions(
    organization_id: str,
    payload: PermissionsPatch,
    db: AsyncSession = Depends(get_db),
    _member: User = Depends(require_organization_member),
    user: User = Depends(can_manage_organization),
):
    """Merge a partial document into the current one and save it.

    Each top-level key under `modules`, `roles`, `features` and `policies`
    replaces the stored key wholesale.
    """
    return await update_organization_permissions(
        db, organization_id, payload.permissions, actor=user, reason=payload.reason
    )


@router.post(
    "/{organization_id}/permissions/validate",
    response_model=PermissionValidationResult,
)
async def validate_permissions_patch(
    organization_id: str,
    payload: PermissionsPatch,
    db: AsyncSession = Depends(get_db),
    _member: User = Depends(require_organization_member),
    _user: User = Depends(can_manage_organization),
):
    """Report whether a PATCH body would be accepted, without saving."""
    result = validate_permissions(payload.permissions)
    if not result.is_valid:
        return result

    organization = await get_organization(db, organization_id)
    try:
        merged = plan_permissions_update(stored_permissions(organization), payload.permissions)
    except PermissionsValidationError as exc:
        return PermissionValidationResult(is_valid=False, errors=exc.errors)
    return validate_permissions(merged)


@router.post(
    "/{organization_id}/permissions/reset",
    response_model=OrganizationPermissions,
    response_model_exclude_none=True,
)
async def reset_permissions(
    organization_id: str,
    payload: PermissionsReset | None = None,
    db: AsyncSession = Depends(get_db),
    _member: User = Depends(require_organization_member),
    user: User = Depends(can_manage_organization),
):
    """Replace the organization's permissions with the default template."""
    reason = payload.reason if payload else None
    return await reset_organization_permissions(db, organization_id, actor=user, reason=reason)


@router.get(
    "/{organization_id}/roles/{role}/permissions",
    response_model=UserPermissions,
    response_model_exclude_none=True,
)
async def get_role_permissions(
    organization_id: str,
    role: UserRole,
    db: AsyncSession = Depends(get_db),
    _member: User = Depends(require_organization_member),
    _user: User = Depends(can_view_settings),
):
    """Effective modules, special permissions and limits for one role."""
    permissions = await get_organization_permissions(db, organization_id)
    result = get_user_permissions(permissions, role)
    if result is None:
        raise ResourceNotFoundError("Role", role.value)
    return result


@router.get(
    "/{organization_id}/roles/{role}/summary",
    response_model=PermissionSummary,
)
async def get_role_summary(
    organization_id: str,
    role: UserRole,
    db: AsyncSession = Depends(get_db),
    _member: User = Depends(require_organization_member),
    _user: User = Depends(can_view_settings),
):
    """Enabled modules, granted action count and limits for one role."""
    permissions = await get_organization_permissions(db, organization_id)
    if role not in permissions.roles:
        raise ResourceNotFoundError("Role", role.value)
    return create_permission_summary(permissions, role)
