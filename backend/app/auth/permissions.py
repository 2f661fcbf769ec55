"""Organization-scoped permission engine for POS Admin RBAC.

Design:
  - Each organization owns one permission document (see
    `app.schemas.permissions.OrganizationPermissions`): base module
    permissions, per-role overrides, feature flags and policies.
  - A role's overrides replace the base module field by field; a role
    with `inherits_from` takes its parent's resolved module for every
    module it does not override itself.
  - `calculate_effective_permissions(org, role)` materializes that view;
    the query helpers below answer yes/no questions on top of it.
  - Everything here is pure: inputs are never mutated, no I/O.

A role missing from the document (or a cyclic inheritance chain) raises
`PermissionConfigurationError`; a plain denial is always `False`.
"""

from __future__ import annotations

import logging

from app.middleware.exceptions import CyclicInheritanceError, RoleNotConfiguredError
from app.schemas.permissions import (
    ROLE_HIERARCHY,
    FeatureFlag,
    ModuleName,
    ModuleOverride,
    ModulePermission,
    OrganizationPermissions,
    PermissionAction,
    PermissionSummary,
    UserPermissions,
    UserRole,
    module_key,
)

logger = logging.getLogger(__name__)


# Fixed table, deliberately not derived from ROLE_HIERARCHY.
MAX_ASSIGNABLE_ROLE: dict[UserRole, UserRole] = {
    UserRole.ADMIN: UserRole.ADMIN,
    UserRole.MANAGER: UserRole.MANAGER,
    UserRole.COUNTER: UserRole.USER,
    UserRole.USER: UserRole.CUSTOMER,
    UserRole.CUSTOMER: UserRole.RESTRICTED,
}


def _as_role(role: UserRole | str) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise RoleNotConfiguredError(str(role)) from None


# ── Resolution ──────────────────────────────────────────────

def apply_module_override(
    module: ModulePermission, override: ModuleOverride
) -> ModulePermission:
    """Layer a role override onto a module permission.

    `enabled` wins when given, `actions` merge key by key, `restrictions`
    are replaced wholesale when given.
    """
    return ModulePermission(
        enabled=module.enabled if override.enabled is None else override.enabled,
        actions={**module.actions, **override.actions},
        restrictions=(
            override.restrictions.model_copy(deep=True)
            if override.restrictions is not None
            else module.restrictions
        ),
    )


def _resolve(
    org: OrganizationPermissions,
    role: UserRole,
    chain: tuple[UserRole, ...],
) -> OrganizationPermissions:
    if role in chain:
        raise CyclicInheritanceError([r.value for r in (*chain, role)])

    role_permissions = org.roles.get(role)
    if role_permissions is None:
        raise RoleNotConfiguredError(role.value)

    effective = org.model_copy(deep=True)
    overrides = role_permissions.module_overrides

    for name, override in overrides.items():
        base = effective.modules.get(name)
        if base is None:
            logger.warning(
                f"Role {role.value} overrides unknown module {name!r}; skipped"
            )
            continue
        effective.modules[name] = apply_module_override(base, override)

    if role_permissions.inherits_from is not None:
        parent = _resolve(org, role_permissions.inherits_from, (*chain, role))
        for name in effective.modules:
            if name not in overrides:
                effective.modules[name] = parent.modules[name]

    return effective


def calculate_effective_permissions(
    org: OrganizationPermissions,
    role: UserRole | str,
) -> OrganizationPermissions:
    """Resolve overrides and inheritance for `role`.

    Returns a new document whose `modules` are specialized for the role;
    `roles`, `features` and `policies` are copied through unchanged.

    Raises:
        RoleNotConfiguredError: role (or an ancestor) missing from `org.roles`
        CyclicInheritanceError: `inherits_from` loops back on itself
    """
    return _resolve(org, _as_role(role), ())


# ── Queries ─────────────────────────────────────────────────

def has_permission(
    org: OrganizationPermissions,
    role: UserRole | str,
    module: ModuleName | str,
    action: PermissionAction | str,
) -> bool:
    """Check whether `role` may perform `action` on `module`.

    Disabled or missing modules deny every action.
    """
    try:
        action = PermissionAction(action)
    except ValueError:
        return False

    effective = calculate_effective_permissions(org, role)
    module_permission = effective.modules.get(module_key(module))

    if module_permission is None or not module_permission.enabled:
        return False

    return module_permission.actions.get(action, False)


def has_special_permission(
    org: OrganizationPermissions,
    role: UserRole | str,
    permission: str,
) -> bool:
    """Check the role's own special permissions (not inherited)."""
    role = _as_role(role)
    role_permissions = org.roles.get(role)
    if role_permissions is None:
        raise RoleNotConfiguredError(role.value)
    return permission in role_permissions.special_permissions


def is_feature_enabled(
    org: OrganizationPermissions,
    feature: FeatureFlag | str,
) -> bool:
    """Organization-wide feature flag; unknown flags are off."""
    try:
        feature = FeatureFlag(feature)
    except ValueError:
        return False
    return org.features.get(feature, False)


def can_assign_role(
    org: OrganizationPermissions,
    assigner_role: UserRole | str,
    target_role: UserRole | str,
) -> bool:
    """Admins assign anything, managers up to their own rank, others nothing.

    `org` is accepted for call-site symmetry and not consulted.
    """
    assigner = _as_role(assigner_role)
    target = _as_role(target_role)

    if assigner == UserRole.ADMIN:
        return True

    if assigner == UserRole.MANAGER:
        return ROLE_HIERARCHY[target] <= ROLE_HIERARCHY[UserRole.MANAGER]

    return False


def get_max_assignable_role(role: UserRole | str) -> UserRole:
    """Highest role `role` is nominally allowed to hand out."""
    try:
        role = UserRole(role)
    except ValueError:
        return UserRole.RESTRICTED
    return MAX_ASSIGNABLE_ROLE.get(role, UserRole.RESTRICTED)


def get_user_permissions(
    org: OrganizationPermissions,
    role: UserRole | str,
) -> UserPermissions | None:
    """Effective modules plus the role's own special permissions and limits.

    Returns None when the role is not configured for the organization.
    """
    try:
        role = _as_role(role)
    except RoleNotConfiguredError:
        return None

    role_permissions = org.roles.get(role)
    if role_permissions is None:
        return None

    effective = calculate_effective_permissions(org, role)
    return UserPermissions(
        modules=effective.modules,
        special_permissions=list(role_permissions.special_permissions),
        restrictions=role_permissions.restrictions.model_copy(),
    )


def create_permission_summary(
    org: OrganizationPermissions,
    role: UserRole | str,
) -> PermissionSummary:
    """Human-oriented overview of a role's access, for previews."""
    role = _as_role(role)
    effective = calculate_effective_permissions(org, role)
    role_permissions = org.roles[role]

    enabled = {
        name: module for name, module in effective.modules.items() if module.enabled
    }
    total = sum(
        sum(1 for granted in module.actions.values() if granted)
        for module in enabled.values()
    )

    limits = role_permissions.restrictions
    return PermissionSummary(
        enabled_modules=list(enabled),
        total_permissions=total,
        special_permissions=list(role_permissions.special_permissions),
        restrictions=[
            f"Max {limits.max_records_per_query} records per query",
            f"{limits.rate_limit_per_hour} requests per hour",
            "Sensitive data access" if limits.sensitive_data_access else "No sensitive data access",
        ],
    )
