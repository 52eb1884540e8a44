"""
Organization membership model.

Backs the authorization collaborator: a principal may only touch the ledger of
organizations it is a member of.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from hud_ledger.app.db.session import Base
from hud_ledger.app.models.enums import MemberRole


class OrganizationMember(Base):
    """Membership of a user in an organization, with a role."""
    __tablename__ = "organization_members"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    role = Column(Enum(MemberRole), default=MemberRole.PROPERTY_MANAGER, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_members_org_user"),
    )

    def __repr__(self):
        return f"<OrganizationMember(org={self.organization_id}, user={self.user_id}, role='{self.role.value}')>"
