"""Tests for the default organization permission template."""

import pytest

from app.auth.permission_defaults import default_organization_permissions
from app.auth.permission_editing import validate_permissions
from app.schemas.permissions import (
    FeatureFlag,
    ModuleName,
    OrganizationPermissions,
    PermissionAction,
    UserRole,
)


@pytest.mark.unit
@pytest.mark.permissions
class TestDefaultTemplate:

    def test_template_validates(self):
        result = validate_permissions(default_organization_permissions())

        assert result.is_valid is True
        assert result.errors == []

    def test_factory_returns_independent_documents(self):
        first = default_organization_permissions()
        second = default_organization_permissions()

        first.modules["sales"].enabled = False
        first.roles[UserRole.USER].special_permissions.append("extra")
        first.features[FeatureFlag.API_ACCESS] = True

        assert second.modules["sales"].enabled is True
        assert second.roles[UserRole.USER].special_permissions == ["basic_access"]
        assert second.features[FeatureFlag.API_ACCESS] is False
        assert default_organization_permissions() == second

    def test_every_module_and_role_present(self):
        permissions = default_organization_permissions()

        assert set(permissions.modules) == {m.value for m in ModuleName}
        assert set(permissions.roles) == set(UserRole)
        assert set(permissions.features) == set(FeatureFlag)

    def test_every_module_lists_every_action(self):
        permissions = default_organization_permissions()

        for module in permissions.modules.values():
            assert set(module.actions) == set(PermissionAction)

    def test_inheritance_chains(self):
        roles = default_organization_permissions().roles

        assert roles[UserRole.ADMIN].inherits_from == UserRole.MANAGER
        assert roles[UserRole.MANAGER].inherits_from == UserRole.USER
        assert roles[UserRole.COUNTER].inherits_from == UserRole.USER
        assert roles[UserRole.CUSTOMER].inherits_from == UserRole.RESTRICTED
        assert roles[UserRole.USER].inherits_from is None
        assert roles[UserRole.RESTRICTED].inherits_from is None

    def test_admin_billing_override_withholds_delete(self):
        billing = default_organization_permissions().roles[UserRole.ADMIN].module_overrides["billing"]

        assert billing.actions[PermissionAction.DELETE] is False
        assert billing.actions[PermissionAction.READ] is True

    def test_policies(self):
        policies = default_organization_permissions().policies

        assert policies.session_timeout == 480
        assert policies.max_concurrent_sessions == 3
        assert policies.ip_restrictions == []
        assert policies.time_restrictions == []
        assert policies.data_retention_days == 365

    def test_document_round_trips_through_wire_shape(self):
        permissions = default_organization_permissions()
        document = permissions.to_document()

        assert document["roles"]["admin"]["inherits_from"] == "manager"
        assert document["modules"]["sales"]["actions"]["create"] is True
        assert "inherits_from" not in document["roles"]["user"]
        assert OrganizationPermissions.model_validate(document) == permissions
