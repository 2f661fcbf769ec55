"""User permissions and role assignment router.

Endpoints:
    GET   /api/users/me/permissions         Effective permissions of the caller's role
    GET   /api/users/me/assignable-roles    Roles the caller may hand out
    PATCH /api/users/{user_id}/role          Change one user's role
    POST  /api/users/bulk-role               Change several users' role (feature: bulk_operations)
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_permissions, get_current_user, require_feature
from app.auth.permissions import can_assign_role, get_max_assignable_role, get_user_permissions
from app.database import get_db
from app.middleware.exceptions import (
    PermissionDeniedError,
    ResourceNotFoundError,
    RoleNotConfiguredError,
)
from app.models.public.user import User
from app.schemas.permissions import (
    ROLE_HIERARCHY,
    FeatureFlag,
    OrganizationPermissions,
    UserPermissions,
    UserRole,
)
from app.schemas.user import AssignableRoles, BulkRoleUpdate, RoleUpdate, UserSummary
from app.utils.audit import log_audit

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_assignment(
    permissions: OrganizationPermissions, actor: User, target: User, role: UserRole
) -> None:
    if target.id == actor.id:
        raise PermissionDeniedError("Cannot change your own role")
    if ROLE_HIERARCHY[target.role] > ROLE_HIERARCHY[actor.role]:
        raise PermissionDeniedError("Cannot change the role of a higher-ranked user")
    if not can_assign_role(permissions, actor.role, role):
        logger.warning(
            f"User {actor.id} ({actor.role.value}) may not assign role {role.value}"
        )
        raise PermissionDeniedError(f"Not allowed to assign role: {role.value}")


async def _organization_users(
    db: AsyncSession, organization_id: str, user_ids: list[str]
) -> list[User]:
    result = await db.execute(
        select(User).where(
            User.id.in_(user_ids),
            User.organization_id == organization_id,
        )
    )
    users = {u.id: u for u in result.scalars().all()}
    missing = [uid for uid in user_ids if uid not in users]
    if missing:
        raise ResourceNotFoundError("User", missing[0])
    return [users[uid] for uid in dict.fromkeys(user_ids)]


@router.get(
    "/me/permissions",
    response_model=UserPermissions,
    response_model_exclude_none=True,
)
async def my_permissions(
    user: User = Depends(get_current_user),
    permissions: OrganizationPermissions = Depends(get_current_permissions),
):
    """Effective permissions of the authenticated user's role."""
    result = get_user_permissions(permissions, user.role)
    if result is None:
        raise RoleNotConfiguredError(user.role.value)
    return result


@router.get("/me/assignable-roles", response_model=AssignableRoles)
async def my_assignable_roles(
    user: User = Depends(get_current_user),
    permissions: OrganizationPermissions = Depends(get_current_permissions),
):
    """Roles the caller may assign, highest first."""
    roles = sorted(ROLE_HIERARCHY, key=ROLE_HIERARCHY.get, reverse=True)
    return AssignableRoles(
        max_assignable_role=get_max_assignable_role(user.role),
        assignable_roles=[r for r in roles if can_assign_role(permissions, user.role, r)],
    )


@router.patch("/{user_id}/role", response_model=UserSummary)
async def update_user_role(
    user_id: str,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    actor: User = Depends(get_current_user),
    permissions: OrganizationPermissions = Depends(get_current_permissions),
):
    """Assign a new role to a user of the caller's organization."""
    (target,) = await _organization_users(db, actor.organization_id, [user_id])
    _check_assignment(permissions, actor, target, payload.role)

    old_role = target.role
    target.role = payload.role
    await db.flush()

    await log_audit(
        db, actor,
        action="role_changed",
        entity_type="user",
        entity_id=target.id,
        summary=f"Changed role of {target.full_name} to {payload.role.value}",
        reason=payload.reason,
        details={"role": {"from": old_role.value, "to": payload.role.value}},
    )
    logger.info(f"User {actor.id} changed role of {target.id} to {payload.role.value}")

    return UserSummary.model_validate(target)


@router.post("/bulk-role", response_model=list[UserSummary])
async def bulk_update_role(
    payload: BulkRoleUpdate,
    db: AsyncSession = Depends(get_db),
    actor: User = Depends(require_feature(FeatureFlag.BULK_OPERATIONS)),
    permissions: OrganizationPermissions = Depends(get_current_permissions),
):
    """Assign one role to several users; all-or-nothing."""
    targets = await _organization_users(db, actor.organization_id, payload.user_ids)
    for target in targets:
        _check_assignment(permissions, actor, target, payload.role)

    changes = {}
    for target in targets:
        changes[target.id] = {"from": target.role.value, "to": payload.role.value}
        target.role = payload.role
    await db.flush()

    await log_audit(
        db, actor,
        action="role_changed_bulk",
        entity_type="user",
        summary=f"Changed role of {len(targets)} user(s) to {payload.role.value}",
        reason=payload.reason,
        details=changes,
    )

    return [UserSummary.model_validate(t) for t in targets]
