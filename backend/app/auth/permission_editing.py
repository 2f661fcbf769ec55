"""Merge and structural validation for permission document edits.

Edit workflow (see `app.services.organization_permissions`):

    1. validate_permissions(incoming partial)   → reject on shape errors
    2. merge_permissions(current, partial)      → new document
    3. validate_permissions(merged)             → final gate before persist

The merge is one level deep on purpose. A key present in the update
replaces the base key wholesale, so editors must send whole module and
role objects, not a single changed action. A module sent with one action
loses its other actions, and one sent without `enabled` is disabled.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from app.schemas.permissions import (
    ModulePermission,
    OrganizationPermissions,
    OrganizationPermissionsUpdate,
    OrganizationPolicies,
    PermissionValidationResult,
)


def merge_permissions(
    base: OrganizationPermissions,
    updates: OrganizationPermissionsUpdate | Mapping[str, Any],
) -> OrganizationPermissions:
    """Shallow-merge `updates` into a copy of `base`.

    `modules`, `roles`, `features` and `policies` are merged key by key.
    Neither argument is mutated.
    """
    if not isinstance(updates, OrganizationPermissionsUpdate):
        updates = OrganizationPermissionsUpdate.model_validate(updates)
    updates = updates.model_copy(deep=True)

    merged = base.model_copy(deep=True)

    if updates.modules:
        merged.modules.update({
            name: ModulePermission.model_validate(module.model_dump())
            for name, module in updates.modules.items()
        })
    if updates.roles:
        merged.roles.update(updates.roles)
    if updates.features:
        merged.features.update(updates.features)
    if updates.policies is not None:
        merged.policies = OrganizationPolicies.model_validate({
            **merged.policies.model_dump(),
            **updates.policies.model_dump(exclude_unset=True),
        })

    return merged


def validate_permissions(
    permissions: OrganizationPermissions | OrganizationPermissionsUpdate | Mapping[str, Any],
) -> PermissionValidationResult:
    """Check the shape of a (partial) permission document.

    Only structure is checked: modules need `actions`, roles need
    `restrictions` and a list of `special_permissions`. Never raises.
    """
    if isinstance(permissions, BaseModel):
        permissions = permissions.model_dump(mode="json", exclude_none=True)

    errors: list[str] = []

    modules = permissions.get("modules")
    if modules is not None:
        if not isinstance(modules, Mapping):
            errors.append("modules must be an object")
        else:
            for name, module in modules.items():
                if not isinstance(module, Mapping) or module.get("actions") is None:
                    errors.append(f"Module {name} is missing actions")

    roles = permissions.get("roles")
    if roles is not None:
        if not isinstance(roles, Mapping):
            errors.append("roles must be an object")
        else:
            for name, role in roles.items():
                if not isinstance(role, Mapping):
                    role = {}
                if role.get("restrictions") is None:
                    errors.append(f"Role {name} is missing restrictions")
                if not isinstance(role.get("special_permissions"), (list, tuple)):
                    errors.append(f"Role {name} special_permissions must be an array")

    return PermissionValidationResult(is_valid=not errors, errors=errors)
