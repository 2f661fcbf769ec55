"""Default organization permission template.

Used when an organization is created and when an admin resets its
permissions. `default_organization_permissions()` builds a new document
on every call, so callers own the result and may mutate it freely.

Role chain:
    admin → manager → user
    counter → user
    customer → restricted
"""

from __future__ import annotations

from app.schemas.permissions import (
    FeatureFlag,
    ModuleName,
    ModuleOverride,
    ModulePermission,
    ModuleRestrictions,
    OrganizationPermissions,
    OrganizationPolicies,
    PermissionAction,
    RolePermissions,
    RoleRestrictions,
    UserRole,
)

C = PermissionAction.CREATE
R = PermissionAction.READ
U = PermissionAction.UPDATE
D = PermissionAction.DELETE
E = PermissionAction.EXPORT
I = PermissionAction.IMPORT  # noqa: E741


# ── Builders ────────────────────────────────────────────────

def _actions(*granted: PermissionAction) -> dict[PermissionAction, bool]:
    """Full action map: every action present, only `granted` True."""
    return {action: action in granted for action in PermissionAction}


def _module(
    *granted: PermissionAction,
    enabled: bool = True,
    restrictions: ModuleRestrictions | None = None,
) -> ModulePermission:
    return ModulePermission(
        enabled=enabled, actions=_actions(*granted), restrictions=restrictions
    )


def _override(
    *granted: PermissionAction,
    restrictions: ModuleRestrictions | None = None,
) -> ModuleOverride:
    return ModuleOverride(
        enabled=True, actions=_actions(*granted), restrictions=restrictions
    )


def _role(
    *,
    special: list[str],
    overrides: dict[ModuleName, ModuleOverride],
    max_records: int,
    rate_limit: int,
    sensitive: bool = False,
    inherits_from: UserRole | None = None,
) -> RolePermissions:
    return RolePermissions(
        inherits_from=inherits_from,
        special_permissions=special,
        module_overrides={name.value: o for name, o in overrides.items()},
        restrictions=RoleRestrictions(
            max_records_per_query=max_records,
            rate_limit_per_hour=rate_limit,
            sensitive_data_access=sensitive,
        ),
    )


# ── Template ────────────────────────────────────────────────

def _default_modules() -> dict[str, ModulePermission]:
    # Base users module denies read: restricted/customer see no user data,
    # every other role brings its own users override.
    return {
        ModuleName.DASHBOARD.value: _module(R),
        ModuleName.USERS.value: _module(
            restrictions=ModuleRestrictions(
                own_data_only=True,
                department_data_only=False,
                approval_required=[C, D],
            ),
        ),
        ModuleName.INVENTORY.value: _module(R),
        ModuleName.SALES.value: _module(C, R),
        ModuleName.REPORTS.value: _module(R),
        ModuleName.SETTINGS.value: _module(enabled=False),
        ModuleName.BILLING.value: _module(enabled=False),
    }


def _default_roles() -> dict[UserRole, RolePermissions]:
    return {
        UserRole.RESTRICTED: _role(
            special=[],
            overrides={ModuleName.DASHBOARD: _override(R)},
            max_records=10,
            rate_limit=100,
        ),
        UserRole.USER: _role(
            special=["basic_access"],
            overrides={
                ModuleName.USERS: _override(
                    R,
                    restrictions=ModuleRestrictions(own_data_only=True),
                ),
                ModuleName.INVENTORY: _override(R, U),
            },
            max_records=100,
            rate_limit=500,
        ),
        UserRole.COUNTER: _role(
            inherits_from=UserRole.USER,
            special=["pos_access", "process_sales"],
            overrides={
                ModuleName.SALES: _override(C, R, U),
                ModuleName.INVENTORY: _override(R, U),
                ModuleName.REPORTS: _override(R),
            },
            max_records=500,
            rate_limit=1000,
        ),
        UserRole.CUSTOMER: _role(
            inherits_from=UserRole.RESTRICTED,
            special=["view_own_orders", "place_orders"],
            overrides={
                ModuleName.SALES: _override(R),
                ModuleName.INVENTORY: _override(R),
                ModuleName.REPORTS: _override(),
            },
            max_records=50,
            rate_limit=500,
        ),
        UserRole.MANAGER: _role(
            inherits_from=UserRole.USER,
            special=["manage_team", "approve_transactions"],
            overrides={
                ModuleName.USERS: _override(
                    C, R, U, E,
                    restrictions=ModuleRestrictions(
                        department_data_only=True, approval_required=[D]
                    ),
                ),
                ModuleName.REPORTS: _override(C, R, U, E),
                ModuleName.SETTINGS: _override(R, U),
            },
            max_records=1000,
            rate_limit=2000,
            sensitive=True,
        ),
        UserRole.ADMIN: _role(
            inherits_from=UserRole.MANAGER,
            special=["full_access", "system_admin", "manage_organization"],
            overrides={
                ModuleName.USERS: _override(
                    C, R, U, D, E, I,
                    restrictions=ModuleRestrictions(),
                ),
                ModuleName.SETTINGS: _override(C, R, U, D, E, I),
                ModuleName.BILLING: _override(C, R, U, E),
            },
            max_records=10000,
            rate_limit=10000,
            sensitive=True,
        ),
    }


def default_organization_permissions() -> OrganizationPermissions:
    """Return a fresh, fully populated default permission document."""
    return OrganizationPermissions(
        modules=_default_modules(),
        roles=_default_roles(),
        features={flag: False for flag in FeatureFlag},
        policies=OrganizationPolicies(
            session_timeout=480,  # 8 hours
            max_concurrent_sessions=3,
            ip_restrictions=[],
            time_restrictions=[],
            data_retention_days=365,
        ),
    )
