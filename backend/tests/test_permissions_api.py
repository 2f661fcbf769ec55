"""Tests for the organization permissions endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.permission_defaults import default_organization_permissions
from app.models.public.audit_log import AuditLog
from app.models.public.organization import Organization
from app.schemas.permissions import UserRole

SALES_OFF = {
    "enabled": False,
    "actions": {
        "create": False, "read": True, "update": False,
        "delete": False, "export": False, "import": False,
    },
}


def _url(organization: Organization, suffix: str = "permissions") -> str:
    return f"/api/organizations/{organization.id}/{suffix}"


@pytest.mark.integration
@pytest.mark.asyncio
class TestReadPermissions:

    async def test_get_default_document(self, client: AsyncClient, organization, auth_headers):
        response = await client.get(_url(organization), headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == default_organization_permissions().to_document()

    async def test_unset_document_falls_back_to_defaults(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        organization.permissions = None
        await db_session.flush()

        response = await client.get(_url(organization), headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["roles"]["admin"]["inherits_from"] == "manager"

    async def test_manager_can_read(self, client: AsyncClient, organization, manager_user, auth_headers_for):
        response = await client.get(_url(organization), headers=auth_headers_for(manager_user))

        assert response.status_code == 200

    async def test_user_without_settings_access(
        self, client: AsyncClient, organization, basic_user, auth_headers_for
    ):
        response = await client.get(_url(organization), headers=auth_headers_for(basic_user))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    async def test_requires_token(self, client: AsyncClient, organization):
        response = await client.get(_url(organization))

        assert response.status_code == 401

    async def test_invalid_token(self, client: AsyncClient, organization):
        response = await client.get(
            _url(organization), headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401

    async def test_cross_organization_denied(
        self, client: AsyncClient, other_organization, auth_headers
    ):
        response = await client.get(_url(other_organization), headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    async def test_role_permissions(self, client: AsyncClient, organization, auth_headers):
        counter = await client.get(_url(organization, "roles/counter/permissions"), headers=auth_headers)
        user = await client.get(_url(organization, "roles/user/permissions"), headers=auth_headers)

        assert counter.status_code == 200
        data = counter.json()
        assert data["special_permissions"] == ["pos_access", "process_sales"]
        assert data["restrictions"]["max_records_per_query"] == 500
        assert data["modules"]["users"] == user.json()["modules"]["users"]
        assert data["modules"]["sales"]["actions"]["update"] is True

    async def test_role_summary(self, client: AsyncClient, organization, auth_headers):
        response = await client.get(_url(organization, "roles/restricted/summary"), headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_permissions"] == 5
        assert "settings" not in data["enabled_modules"]
        assert data["restrictions"][0] == "Max 10 records per query"

    async def test_unconfigured_role_is_not_found(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        document = default_organization_permissions().to_document()
        del document["roles"]["customer"]
        organization.permissions = document
        await db_session.flush()

        permissions = await client.get(_url(organization, "roles/customer/permissions"), headers=auth_headers)
        summary = await client.get(_url(organization, "roles/customer/summary"), headers=auth_headers)

        assert permissions.status_code == 404
        assert summary.status_code == 404

    async def test_unknown_role_is_rejected(self, client: AsyncClient, organization, auth_headers):
        response = await client.get(_url(organization, "roles/superuser/permissions"), headers=auth_headers)

        assert response.status_code == 422

    async def test_cyclic_document_fails_closed(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        document = default_organization_permissions().to_document()
        document["roles"]["restricted"]["inherits_from"] = "customer"
        organization.permissions = document
        await db_session.flush()

        response = await client.get(_url(organization, "roles/customer/permissions"), headers=auth_headers)

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "PERMISSION_CONFIGURATION_ERROR"
        assert "customer" not in error["message"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestEditPermissions:

    async def test_patch_persists_and_audits(
        self, client: AsyncClient, db_session: AsyncSession, organization, admin_user, auth_headers
    ):
        response = await client.patch(
            _url(organization),
            headers=auth_headers,
            json={
                "permissions": {"modules": {"sales": SALES_OFF}, "features": {"bulk_operations": True}},
                "reason": "Seasonal lockdown",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["modules"]["sales"]["enabled"] is False
        assert data["features"]["bulk_operations"] is True
        assert data["modules"]["reports"] == default_organization_permissions().to_document()["modules"]["reports"]

        await db_session.refresh(organization)
        assert organization.permissions["modules"]["sales"]["enabled"] is False

        entries = (await db_session.execute(select(AuditLog))).scalars().all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == "permissions_updated"
        assert entry.user_id == admin_user.id
        assert entry.entity_id == organization.id
        assert entry.reason == "Seasonal lockdown"
        assert entry.details["old"]["modules"]["sales"]["enabled"] is True
        assert entry.details["new"]["modules"]["sales"]["enabled"] is False

    async def test_patch_is_visible_to_next_read(self, client: AsyncClient, organization, auth_headers):
        await client.patch(
            _url(organization),
            headers=auth_headers,
            json={"permissions": {"policies": {"session_timeout": 60}}},
        )

        response = await client.get(_url(organization), headers=auth_headers)

        assert response.json()["policies"]["session_timeout"] == 60
        assert response.json()["policies"]["data_retention_days"] == 365

    async def test_patch_invalid_partial(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        response = await client.patch(
            _url(organization),
            headers=auth_headers,
            json={"permissions": {"modules": {"sales": {"enabled": False}}}},
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "INVALID_PERMISSIONS"
        assert error["details"]["errors"] == ["Module sales is missing actions"]

        await db_session.refresh(organization)
        assert organization.permissions["modules"]["sales"]["enabled"] is True
        assert (await db_session.execute(select(AuditLog))).scalars().all() == []

    async def test_patch_single_action_module(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        response = await client.patch(
            _url(organization),
            headers=auth_headers,
            json={"permissions": {"modules": {"sales": {"actions": {"update": True}}}}},
        )

        assert response.status_code == 200
        assert response.json()["modules"]["sales"] == {"enabled": False, "actions": {"update": True}}

        await db_session.refresh(organization)
        assert organization.permissions["modules"]["sales"]["actions"] == {"update": True}

    async def test_patch_unparsable_role(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        response = await client.patch(
            _url(organization),
            headers=auth_headers,
            json={"permissions": {"roles": {"user": {"special_permissions": [], "restrictions": {}}}}},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_PERMISSIONS"
        assert (await db_session.execute(select(AuditLog))).scalars().all() == []

    async def test_patch_requires_manage_organization(
        self, client: AsyncClient, organization, manager_user, auth_headers_for
    ):
        response = await client.patch(
            _url(organization),
            headers=auth_headers_for(manager_user),
            json={"permissions": {"features": {"api_access": True}}},
        )

        assert response.status_code == 403

    async def test_validate_dry_run(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        valid = await client.post(
            _url(organization, "permissions/validate"),
            headers=auth_headers,
            json={"permissions": {"modules": {"sales": SALES_OFF}}},
        )
        invalid = await client.post(
            _url(organization, "permissions/validate"),
            headers=auth_headers,
            json={"permissions": {"roles": {"user": {"special_permissions": []}}}},
        )

        assert valid.status_code == 200
        assert valid.json() == {"is_valid": True, "errors": []}
        assert invalid.json() == {"is_valid": False, "errors": ["Role user is missing restrictions"]}

        await db_session.refresh(organization)
        assert organization.permissions["modules"]["sales"]["enabled"] is True

    async def test_validate_single_action_module(self, client: AsyncClient, organization, auth_headers):
        response = await client.post(
            _url(organization, "permissions/validate"),
            headers=auth_headers,
            json={"permissions": {"modules": {"sales": {"actions": {"update": True}}}}},
        )

        assert response.status_code == 200
        assert response.json() == {"is_valid": True, "errors": []}

    async def test_validate_unparsable_role(self, client: AsyncClient, organization, auth_headers):
        response = await client.post(
            _url(organization, "permissions/validate"),
            headers=auth_headers,
            json={"permissions": {"roles": {"user": {"special_permissions": [], "restrictions": {}}}}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["is_valid"] is False
        assert any("max_records_per_query" in error for error in data["errors"])

    async def test_reset(
        self, client: AsyncClient, db_session: AsyncSession, organization, auth_headers
    ):
        await client.patch(
            _url(organization),
            headers=auth_headers,
            json={"permissions": {"features": {"api_access": True}}},
        )

        response = await client.post(
            _url(organization, "permissions/reset"),
            headers=auth_headers,
            json={"reason": "Start over"},
        )

        assert response.status_code == 200
        assert response.json() == default_organization_permissions().to_document()

        actions = (await db_session.execute(
            select(AuditLog.action)
        )).scalars().all()
        assert sorted(actions) == ["permissions_reset", "permissions_updated"]

    async def test_reset_without_body(self, client: AsyncClient, organization, auth_headers):
        response = await client.post(_url(organization, "permissions/reset"), headers=auth_headers)

        assert response.status_code == 200

    async def test_reset_requires_manage_organization(
        self, client: AsyncClient, make_user, organization, auth_headers_for
    ):
        counter = await make_user(UserRole.COUNTER)

        response = await client.post(
            _url(organization, "permissions/reset"), headers=auth_headers_for(counter)
        )

        assert response.status_code == 403
