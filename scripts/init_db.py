"""Create the database schema and optionally seed an organization.

Usage:
    python -m scripts.init_db
    python -m scripts.init_db --organization "Acme d.o.o." --owner-id <user-id>

Seeding is idempotent: an existing organization (matched by id) keeps its
data, and the owner membership is only added if missing.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoicing.auth.permissions import OrgRole
from invoicing.database.models import Organization, OrganizationMember
from invoicing.database.session import SessionLocal, engine, init_db

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def seed_organization(
    session: Session,
    name: str,
    owner_id: str,
    organization_id: str | None = None,
) -> Organization:
    """Ensure an organization exists with ``owner_id`` as an owner.

    Args:
        session: Open database session
        name: Organization name (used only when creating it)
        owner_id: User id of the owner, as forwarded by the auth proxy
        organization_id: Fixed id to use; a new id is generated if omitted

    Returns:
        The existing or newly created organization
    """
    organization = session.get(Organization, organization_id) if organization_id else None
    if organization is None:
        organization = Organization(name=name)
        if organization_id:
            organization.id = organization_id
        session.add(organization)
        session.flush()
        logger.info(f"Created organization {organization.id} ({name})")

    membership = session.scalars(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization.id,
            OrganizationMember.user_id == owner_id,
        )
    ).first()
    if membership is None:
        session.add(
            OrganizationMember(
                organization_id=organization.id, user_id=owner_id, role=OrgRole.OWNER.value
            )
        )
        logger.info(f"Added {owner_id} as owner of {organization.id}")
    elif membership.role != OrgRole.OWNER.value:
        membership.role = OrgRole.OWNER.value
        logger.info(f"Promoted {owner_id} to owner of {organization.id}")

    session.commit()
    return organization


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize the invoice database")
    parser.add_argument(
        "--organization",
        type=str,
        default=None,
        help="Name of an organization to seed",
    )
    parser.add_argument(
        "--organization-id",
        type=str,
        default=None,
        help="Fixed id for the seeded organization",
    )
    parser.add_argument(
        "--owner-id",
        type=str,
        default=None,
        help="User id to register as the organization owner",
    )

    args = parser.parse_args()

    init_db(engine)

    if args.organization:
        if not args.owner_id:
            parser.error("--owner-id is required when seeding an organization")
        with SessionLocal() as session:
            org = seed_organization(session, args.organization, args.owner_id, args.organization_id)
        print(f"Organization ready: {org.id}")
