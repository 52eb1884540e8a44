"""
Audit Log Database Model.

Records ledger operations performed through the HTTP surface for compliance review.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from hud_ledger.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for ledger operations.

    Events logged:
    - LEDGER_ENTRY_CREATED
    - LEDGER_VERIFICATION
    - LEDGER_PERIOD_CLOSED
    - LEDGER_EXPORTED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action
    actor_id = Column(String(36), index=True, nullable=True)

    # Scope
    organization_id = Column(String(36), index=True, nullable=True)

    # What action was performed, and on what
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(36), nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, org={self.organization_id})>"
