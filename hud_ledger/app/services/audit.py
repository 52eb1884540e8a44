"""
Audit logging service for ledger operations.

Called by the HTTP layer after a successful ledger operation; the ledger
engine itself never writes audit records.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from hud_ledger.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    LEDGER_ENTRY_CREATED = "LEDGER_ENTRY_CREATED"
    LEDGER_VERIFICATION = "LEDGER_VERIFICATION"
    LEDGER_PERIOD_CLOSED = "LEDGER_PERIOD_CLOSED"
    LEDGER_EXPORTED = "LEDGER_EXPORTED"


LEDGER_RESOURCE = "hud_append_ledger"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    resource_type: Optional[str] = LEDGER_RESOURCE,
    resource_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an audit event.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: Principal performing the action
        organization_id: Organization whose ledger was touched
        resource_type: Table or resource kind
        resource_id: Specific row, e.g. the appended entry id
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        organization_id=organization_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    organization_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if organization_id:
        query = query.where(AuditLog.organization_id == organization_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
