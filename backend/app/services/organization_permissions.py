"""Organization permission document lifecycle.

    created (default) → edited (validate + merge + validate) → persisted
    [reset → default] → edited → ...

The pure engine lives in `app.auth.permissions` / `app.auth.permission_editing`;
this module adds the database, cache and audit trail around it. Writes are
last-writer-wins: the whole document is overwritten, no version check.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.permission_defaults import default_organization_permissions
from app.auth.permission_editing import merge_permissions, validate_permissions
from app.config import settings
from app.middleware.exceptions import PermissionsValidationError, ResourceNotFoundError
from app.models.public.organization import Organization
from app.models.public.user import User
from app.schemas.permissions import OrganizationPermissions
from app.utils.audit import log_audit
from app.utils.cache import cached, invalidate_after_commit, invalidate_cache

logger = logging.getLogger(__name__)

CACHE_PREFIX = "org_permissions"


def _document_cache_key(*_args, organization_id: str, **_kwargs) -> str:
    return f"{CACHE_PREFIX}:{organization_id}"


async def get_organization(db: AsyncSession, organization_id: str) -> Organization:
    result = await db.execute(
        select(Organization).where(Organization.id == organization_id)
    )
    organization = result.scalar_one_or_none()
    if organization is None:
        raise ResourceNotFoundError("Organization", organization_id)
    return organization


def stored_permissions(organization: Organization) -> OrganizationPermissions:
    """Document persisted on the row, or the default template if unset."""
    if organization.permissions is None:
        return default_organization_permissions()
    return OrganizationPermissions.model_validate(organization.permissions)


@cached(ttl=settings.permissions_cache_ttl, prefix=CACHE_PREFIX, key_builder=_document_cache_key)
async def load_permissions_document(db: AsyncSession, *, organization_id: str) -> dict:
    """Wire-shape document for read paths (time-bounded cache)."""
    organization = await get_organization(db, organization_id)
    return stored_permissions(organization).to_document()


async def get_organization_permissions(
    db: AsyncSession, organization_id: str
) -> OrganizationPermissions:
    document = await load_permissions_document(db, organization_id=organization_id)
    return OrganizationPermissions.model_validate(document)


async def _store(
    db: AsyncSession,
    organization: Organization,
    permissions: OrganizationPermissions,
) -> None:
    # Assign a new dict so the JSON column is flagged dirty.
    organization.permissions = permissions.to_document()
    await db.flush()
    # A read between flush and commit can re-cache the old row, so the key
    # is dropped again once the request transaction commits.
    key = _document_cache_key(organization_id=organization.id)
    await invalidate_cache(key)
    invalidate_after_commit(db, key)


async def create_organization(
    db: AsyncSession,
    name: str,
    permissions: OrganizationPermissions | None = None,
) -> Organization:
    """Create an organization seeded with the default permission template."""
    document = permissions or default_organization_permissions()
    organization = Organization(name=name, permissions=document.to_document())
    db.add(organization)
    await db.flush()
    await db.refresh(organization)
    logger.info(f"Created organization {organization.id} ({name})")
    return organization


def plan_permissions_update(
    current: OrganizationPermissions,
    updates: Mapping[str, Any],
) -> OrganizationPermissions:
    """Validate and merge `updates` onto `current` without saving.

    Raises PermissionsValidationError when the partial or the merged
    document fails structural validation, or when a section of the
    partial cannot be parsed into the document types.
    """
    result = validate_permissions(updates)
    if not result.is_valid:
        raise PermissionsValidationError(result.errors)

    try:
        merged = merge_permissions(current, updates)
    except ValidationError as exc:
        raise PermissionsValidationError([
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]) from exc

    result = validate_permissions(merged)
    if not result.is_valid:
        raise PermissionsValidationError(result.errors)

    return merged


async def update_organization_permissions(
    db: AsyncSession,
    organization_id: str,
    updates: Mapping[str, Any],
    actor: User,
    reason: str | None = None,
) -> OrganizationPermissions:
    """Merge a partial update into the organization's document and persist it."""
    organization = await get_organization(db, organization_id)
    current = stored_permissions(organization)
    merged = plan_permissions_update(current, updates)

    await _store(db, organization, merged)
    await log_audit(
        db, actor,
        action="permissions_updated",
        entity_type="organization",
        entity_id=organization.id,
        summary=f"Updated permissions ({', '.join(sorted(updates)) or 'no sections'})",
        reason=reason,
        details={"old": current.to_document(), "new": merged.to_document()},
    )
    logger.info(f"Permissions updated for organization {organization.id} by {actor.id}")
    return merged


async def reset_organization_permissions(
    db: AsyncSession,
    organization_id: str,
    actor: User,
    reason: str | None = None,
) -> OrganizationPermissions:
    """Replace the organization's document with the default template."""
    organization = await get_organization(db, organization_id)
    old_document = organization.permissions
    defaults = default_organization_permissions()

    await _store(db, organization, defaults)
    await log_audit(
        db, actor,
        action="permissions_reset",
        entity_type="organization",
        entity_id=organization.id,
        summary="Reset permissions to defaults",
        reason=reason,
        details={"old": old_document, "new": defaults.to_document()},
    )
    logger.info(f"Permissions reset for organization {organization.id} by {actor.id}")
    return defaults
