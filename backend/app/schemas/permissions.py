"""Pydantic schemas for the organization permission document.

Wire shape (one document per organization, stored as JSON):

    {
        "modules":  {module: {enabled, actions, restrictions?}},
        "roles":    {role: {inherits_from?, special_permissions,
                            module_overrides, restrictions}},
        "features": {flag: bool},
        "policies": {session_timeout, max_concurrent_sessions,
                     ip_restrictions, time_restrictions, data_retention_days}
    }

Module maps are keyed by plain strings so documents can carry modules
beyond `ModuleName`. Roles, actions and feature flags are closed enums.
"""

import enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator


class ModuleName(str, enum.Enum):
    DASHBOARD = "dashboard"
    USERS = "users"
    INVENTORY = "inventory"
    SALES = "sales"
    REPORTS = "reports"
    SETTINGS = "settings"
    BILLING = "billing"


class PermissionAction(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    IMPORT = "import"


class UserRole(str, enum.Enum):
    RESTRICTED = "restricted"
    CUSTOMER = "customer"
    USER = "user"
    COUNTER = "counter"
    MANAGER = "manager"
    ADMIN = "admin"


class FeatureFlag(str, enum.Enum):
    ADVANCED_ANALYTICS = "advanced_analytics"
    MULTI_LOCATION = "multi_location"
    API_ACCESS = "api_access"
    CUSTOM_REPORTS = "custom_reports"
    BULK_OPERATIONS = "bulk_operations"


# Rank used for role-assignment gating. Ties are intentional.
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.RESTRICTED: 1,
    UserRole.CUSTOMER: 1,
    UserRole.USER: 2,
    UserRole.COUNTER: 2,
    UserRole.MANAGER: 3,
    UserRole.ADMIN: 4,
}


def module_key(module: "ModuleName | str") -> str:
    """Plain string key for a module name (enum members hash by name)."""
    if isinstance(module, enum.Enum):
        return module.value
    return str(module)


def _plain_module_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {module_key(k): v for k, v in value.items()}
    return value


# ── Modules ──────────────────────────────────────────────────

class ModuleRestrictions(BaseModel):
    own_data_only: bool = False
    department_data_only: bool = False
    approval_required: list[PermissionAction] = Field(default_factory=list)


class ModulePermission(BaseModel):
    enabled: bool
    actions: dict[PermissionAction, bool]
    restrictions: ModuleRestrictions | None = None


class ModulePermissionUpdate(ModulePermission):
    """Module entry in a partial update. A missing `enabled` means disabled."""
    enabled: bool = False


class ModuleOverride(BaseModel):
    """Role-level partial module permission. Unset fields fall through."""
    enabled: bool | None = None
    actions: dict[PermissionAction, bool] = Field(default_factory=dict)
    restrictions: ModuleRestrictions | None = None


# ── Roles ────────────────────────────────────────────────────

class RoleRestrictions(BaseModel):
    max_records_per_query: int = Field(ge=0)
    rate_limit_per_hour: int = Field(ge=0)
    sensitive_data_access: bool = False


class RolePermissions(BaseModel):
    inherits_from: UserRole | None = None
    special_permissions: list[str] = Field(default_factory=list)
    module_overrides: dict[str, ModuleOverride] = Field(default_factory=dict)
    restrictions: RoleRestrictions

    @field_validator("module_overrides", mode="before")
    @classmethod
    def normalize_module_keys(cls, value: Any) -> Any:
        return _plain_module_keys(value)


# ── Policies ─────────────────────────────────────────────────

DayOfWeek = Annotated[int, Field(ge=0, le=6)]


class TimeRestriction(BaseModel):
    start_time: str
    end_time: str
    days_of_week: list[DayOfWeek] = Field(default_factory=list)
    timezone: str = "UTC"


class OrganizationPolicies(BaseModel):
    session_timeout: int = Field(default=480, ge=0)  # minutes
    max_concurrent_sessions: int = Field(default=3, ge=0)
    ip_restrictions: list[str] = Field(default_factory=list)
    time_restrictions: list[TimeRestriction] = Field(default_factory=list)
    data_retention_days: int = Field(default=365, ge=0)


class OrganizationPoliciesUpdate(BaseModel):
    session_timeout: int | None = Field(default=None, ge=0)
    max_concurrent_sessions: int | None = Field(default=None, ge=0)
    ip_restrictions: list[str] | None = None
    time_restrictions: list[TimeRestriction] | None = None
    data_retention_days: int | None = Field(default=None, ge=0)


# ── Aggregate ────────────────────────────────────────────────

class OrganizationPermissions(BaseModel):
    modules: dict[str, ModulePermission] = Field(default_factory=dict)
    roles: dict[UserRole, RolePermissions] = Field(default_factory=dict)
    features: dict[FeatureFlag, bool] = Field(default_factory=dict)
    policies: OrganizationPolicies = Field(default_factory=OrganizationPolicies)

    @field_validator("modules", mode="before")
    @classmethod
    def normalize_module_keys(cls, value: Any) -> Any:
        return _plain_module_keys(value)

    def to_document(self) -> dict:
        """JSON-ready dict in the persisted wire shape."""
        return self.model_dump(mode="json", exclude_none=True)


class OrganizationPermissionsUpdate(BaseModel):
    """Partial document for PATCH. Each present key replaces the base key."""
    modules: dict[str, ModulePermissionUpdate] | None = None
    roles: dict[UserRole, RolePermissions] | None = None
    features: dict[FeatureFlag, bool] | None = None
    policies: OrganizationPoliciesUpdate | None = None

    @field_validator("modules", mode="before")
    @classmethod
    def normalize_module_keys(cls, value: Any) -> Any:
        return _plain_module_keys(value)


# ── Results ──────────────────────────────────────────────────

class PermissionValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)


class UserPermissions(BaseModel):
    modules: dict[str, ModulePermission]
    special_permissions: list[str]
    restrictions: RoleRestrictions


class PermissionSummary(BaseModel):
    enabled_modules: list[str]
    total_permissions: int
    special_permissions: list[str]
    restrictions: list[str]


# ── Request bodies ───────────────────────────────────────────

class PermissionsPatch(BaseModel):
    permissions: dict[str, Any]
    reason: str | None = None


class PermissionsReset(BaseModel):
    reason: str | None = None
