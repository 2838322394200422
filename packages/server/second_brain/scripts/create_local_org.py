"""
Script to create an organization and add a user to it for local testing.

Creates the user (with a password) if it does not exist yet.

    python -m second_brain.scripts.create_local_org --email a@b.dev --password secret123 \
        --org-name "Acme" --org-slug acme --role OWNER
"""

import argparse
import asyncio
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import select

from second_brain.core.auth import hash_password
from second_brain.core.config import get_settings
from second_brain.core.database import Database
from second_brain.models.membership import Membership
from second_brain.models.organization import Organization
from second_brain.models.user import User
from second_brain_shared.schemas.common import MembershipRole


async def create_local_org(
    email: str,
    password: str,
    org_name: str,
    org_slug: str,
    role: MembershipRole,
    name: Optional[str] = None,
) -> None:
    settings = get_settings()
    db = Database(settings.database_url)
    await db.create_all()

    async with db.session() as session:
        # 1. Ensure the organization exists
        result = await session.execute(select(Organization).where(Organization.slug == org_slug))
        org = result.scalar_one_or_none()
        if not org:
            org = Organization(name=org_name, slug=org_slug)
            session.add(org)
            print(f"Created organization: {org_slug}")

        # 2. Ensure the user exists
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if not user:
            user = User(
                email=email,
                name=name or email.split("@")[0],
                password_hash=hash_password(password),
                email_verified=datetime.now(timezone.utc),
            )
            session.add(user)
            print(f"Created user: {email}")
        else:
            print(f"User {email} already exists.")

        await session.flush()  # Get IDs

        # 3. Ensure membership exists
        membership = await session.get(Membership, (user.id, org.id))
        if not membership:
            session.add(Membership(user_id=user.id, organization_id=org.id, role=role.value))
            print(f"Added {email} as {role.value} to {org_slug}.")

    await db.dispose()
    print("Done.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a local organization and member.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for a new user")
    parser.add_argument("--name", help="Display name for a new user")
    parser.add_argument("--org-name", required=True, help="Organization display name")
    parser.add_argument("--org-slug", required=True, help="Organization slug")
    parser.add_argument(
        "--role",
        default=MembershipRole.OWNER.value,
        choices=[r.value for r in MembershipRole],
        help="Role of the user in the organization",
    )

    args = parser.parse_args()
    asyncio.run(
        create_local_org(
            args.email,
            args.password,
            args.org_name,
            args.org_slug,
            MembershipRole(args.role),
            name=args.name,
        )
    )


if __name__ == "__main__":
    main()
