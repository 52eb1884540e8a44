"""
Database seeding script for organization memberships.

Creates a demo organization with a SUPER_ADMIN and a PROPERTY_MANAGER member
and prints bearer tokens for both, for local development against the API.
"""

import asyncio
import uuid

from sqlalchemy import select

from hud_ledger.app.core.jwt import create_access_token
from hud_ledger.app.db.session import AsyncSessionLocal, create_tables
from hud_ledger.app.models.enums import MemberRole
from hud_ledger.app.models.organization_member import OrganizationMember

DEMO_ORGANIZATION_ID = "11111111-1111-4111-8111-111111111111"
DEMO_MEMBERS = {
    MemberRole.SUPER_ADMIN: "22222222-2222-4222-8222-222222222222",
    MemberRole.PROPERTY_MANAGER: "33333333-3333-4333-8333-333333333333",
}


async def seed_members(organization_id: str = DEMO_ORGANIZATION_ID) -> dict:
    """
    Seed demo memberships (idempotent).

    Returns:
        Mapping of role value -> bearer token
    """
    await create_tables()

    tokens = {}
    async with AsyncSessionLocal() as db:
        for role, user_id in DEMO_MEMBERS.items():
            result = await db.execute(
                select(OrganizationMember).where(
                    OrganizationMember.organization_id == organization_id,
                    OrganizationMember.user_id == user_id,
                )
            )
            if result.scalar_one_or_none() is None:
                db.add(OrganizationMember(organization_id=organization_id, user_id=user_id, role=role))
                print(f"✅ Created {role.value} member {user_id}")
            else:
                print(f"ℹ️  {role.value} member {user_id} already exists")

            tokens[role.value] = create_access_token(
                data={"sub": f"{role.value.lower()}@{organization_id}", "user_id": user_id, "jti": str(uuid.uuid4())}
            )
        await db.commit()

    return tokens


if __name__ == "__main__":
    issued = asyncio.run(seed_members())
    print(f"\nOrganization: {DEMO_ORGANIZATION_ID}")
    for role_name, token in issued.items():
        print(f"  - {role_name}: {token}")
