"""Unit tests for the database init script."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoicing.database.models import Organization, OrganizationMember
from scripts.init_db import seed_organization


def memberships(session: Session, organization_id: str) -> list[tuple[str, str]]:
    rows = session.scalars(
        select(OrganizationMember).where(OrganizationMember.organization_id == organization_id)
    )
    return [(m.user_id, m.role) for m in rows]


def test_seed_creates_organization_with_owner(session: Session) -> None:
    org = seed_organization(session, "Demo d.o.o.", "user-1")

    assert session.get(Organization, org.id).name == "Demo d.o.o."
    assert memberships(session, org.id) == [("user-1", "owner")]


def test_seed_is_idempotent(session: Session) -> None:
    first = seed_organization(session, "Demo d.o.o.", "user-1", organization_id="org-demo")
    second = seed_organization(session, "Renamed", "user-1", organization_id="org-demo")

    assert first.id == second.id == "org-demo"
    assert second.name == "Demo d.o.o."
    assert memberships(session, "org-demo") == [("user-1", "owner")]


def test_seed_promotes_existing_employee(session: Session) -> None:
    seed_organization(session, "Demo d.o.o.", "user-1", organization_id="org-demo")
    session.add(OrganizationMember(organization_id="org-demo", user_id="user-2", role="employee"))
    session.commit()

    seed_organization(session, "Demo d.o.o.", "user-2", organization_id="org-demo")

    assert sorted(memberships(session, "org-demo")) == [("user-1", "owner"), ("user-2", "owner")]
