"""Management CLI for organization permissions.

Usage:
    python -m app.cli show-defaults                # Print the default permission template
    python -m app.cli effective ROLE               # Effective modules of ROLE in the template
    python -m app.cli summary ROLE                 # Permission summary of ROLE in the template
    python -m app.cli create-organization NAME     # New organization seeded with defaults
    python -m app.cli reset-permissions ORG_ID     # Overwrite an organization's document with defaults
"""

import json
import sys

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from app.auth.permission_defaults import default_organization_permissions
from app.auth.permissions import calculate_effective_permissions, create_permission_summary
from app.config import settings
from app.middleware.exceptions import PermissionConfigurationError
from app.models import AuditLog, Organization


def _sync_session() -> Session:
    engine = create_engine(settings.database_url_sync)
    return Session(engine)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def show_defaults():
    _print_json(default_organization_permissions().to_document())


def show_effective(role: str):
    try:
        effective = calculate_effective_permissions(default_organization_permissions(), role)
    except PermissionConfigurationError as e:
        print(f"  FAILED: {e.message}")
        sys.exit(1)
    _print_json(effective.to_document()["modules"])


def show_summary(role: str):
    try:
        summary = create_permission_summary(default_organization_permissions(), role)
    except PermissionConfigurationError as e:
        print(f"  FAILED: {e.message}")
        sys.exit(1)
    _print_json(summary.model_dump(mode="json"))


def create_organization(name: str):
    with _sync_session() as session:
        organization = Organization(
            name=name, permissions=default_organization_permissions().to_document()
        )
        session.add(organization)
        session.commit()
        print(f"  Created {organization.id} ({name})")


def reset_permissions(organization_id: str):
    with _sync_session() as session:
        organization = session.execute(
            select(Organization).where(Organization.id == organization_id)
        ).scalar_one_or_none()
        if organization is None:
            print(f"  Organization {organization_id} not found")
            sys.exit(1)

        old_document = organization.permissions
        organization.permissions = default_organization_permissions().to_document()
        session.add(AuditLog(
            organization_id=organization.id,
            user_id="cli",
            user_name="cli",
            action="permissions_reset",
            entity_type="organization",
            entity_id=organization.id,
            summary="Reset permissions to defaults (CLI)",
            details={"old": old_document, "new": organization.permissions},
        ))
        session.commit()
        print("  OK")
    print("  Cached documents expire within "
          f"{settings.permissions_cache_ttl}s")


COMMANDS = {
    "show-defaults": (show_defaults, 0),
    "effective": (show_effective, 1),
    "summary": (show_summary, 1),
    "create-organization": (create_organization, 1),
    "reset-permissions": (reset_permissions, 1),
}


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    args = sys.argv[2:]
    if cmd in COMMANDS and len(args) == COMMANDS[cmd][1]:
        func, _ = COMMANDS[cmd]
        func(*args)
    else:
        print("Usage: python -m app.cli "
              "[show-defaults|effective ROLE|summary ROLE|"
              "create-organization NAME|reset-permissions ORG_ID]")
        sys.exit(1)
