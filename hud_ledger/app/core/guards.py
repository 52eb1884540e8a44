"""
Organization membership guards.

The ledger engine trusts its caller; these guards are what the HTTP layer runs
before invoking it.
"""

from typing import Iterable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from hud_ledger.app.core.exceptions import AuthorizationError
from hud_ledger.app.models.enums import MemberRole
from hud_ledger.app.models.organization_member import OrganizationMember


async def require_org_member(
    db: AsyncSession,
    organization_id: str,
    current_user: dict,
    allowed_roles: Optional[Iterable[MemberRole]] = None,
) -> OrganizationMember:
    """
    Verify that the current user belongs to the organization.

    Usage:
        membership = await require_org_member(db, payload.organization_id, current_user)

    Args:
        db: Database session
        organization_id: Organization being accessed
        current_user: Authenticated JWT payload
        allowed_roles: If given, the membership role must be one of these

    Returns:
        The membership row

    Raises:
        AuthorizationError: 403 if not a member or the role is not allowed
    """
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == current_user["user_id"],
        )
    )
    membership = result.scalar_one_or_none()

    if membership is None:
        raise AuthorizationError(
            "Not a member of this organization",
            details={"organization_id": organization_id},
        )

    if allowed_roles is not None:
        allowed = list(allowed_roles)
        if membership.role not in allowed:
            raise AuthorizationError(
                f"Access denied. Required role: {', '.join(r.value for r in allowed)}",
                details={"organization_id": organization_id, "role": membership.role.value},
            )

    return membership
