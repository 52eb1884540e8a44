"""
Ledger API Endpoints.

Append, list, verify, close-period, compliance-health and export routes for
an organization's hash-chained ledger.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from hud_ledger.app.db.session import get_db
from hud_ledger.app.core.dependencies import get_current_user
from hud_ledger.app.core.guards import require_org_member
from hud_ledger.app.core.observability import get_correlation_id
from hud_ledger.app.domain.ledger.hashing import format_amount
from hud_ledger.app.domain.ledger.periods import current_accounting_period
from hud_ledger.app.models.enums import MemberRole
from hud_ledger.app.schemas.ledger import (
    LedgerEntryCreate,
    LedgerEntryCreatedResponse,
    LedgerEntryListResponse,
    LedgerEntryResponse,
    VerifyLedgerRequest,
    LedgerVerificationResponse,
    ClosePeriodRequest,
    ComplianceHealthReport,
)
from hud_ledger.app.services import ledger_engine
from hud_ledger.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.post("/entries", response_model=LedgerEntryCreatedResponse, status_code=status.HTTP_201_CREATED)
async def append_ledger_entry(
    payload: LedgerEntryCreate,
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Append an entry to the organization's ledger.

    Returns 400 on validation errors or a closed period, 403 for non-members,
    409 when a concurrent append won the chain tail (retry), 500 on storage failure.
    """
    await require_org_member(db, payload.organization_id, current_user)

    entry = await ledger_engine.append_entry(db, payload, created_by=current_user["user_id"])

    await log_event(
        db,
        action=AuditAction.LEDGER_ENTRY_CREATED,
        actor_id=current_user["user_id"],
        organization_id=entry.organization_id,
        resource_id=entry.id,
        metadata={
            "transaction_type": entry.transaction_type.value,
            "amount": format_amount(entry.amount),
            "chain_position": entry.chain_position,
            "correlation_id": get_correlation_id(request),
        },
    )

    return LedgerEntryCreatedResponse(
        data=LedgerEntryResponse.model_validate(entry),
        message="Ledger entry created successfully",
    )


@router.get("/entries", response_model=LedgerEntryListResponse)
async def list_ledger_entries(
    organization_id: str = Query(..., alias="organizationId", min_length=1),
    accounting_period: Optional[str] = Query(None, alias="accountingPeriod"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List entries for an accounting period (defaults to the current one)."""
    await require_org_member(db, organization_id, current_user)

    period = accounting_period or current_accounting_period()
    entries = await ledger_engine.get_entries_for_period(db, organization_id, period)

    return LedgerEntryListResponse(
        data=[LedgerEntryResponse.model_validate(e) for e in entries],
        accounting_period=period,
        count=len(entries),
    )


@router.post("/verify", response_model=LedgerVerificationResponse)
async def verify_ledger(
    payload: VerifyLedgerRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Verify the organization's hash chain. Tampering is reported, not raised."""
    await require_org_member(db, payload.organization_id, current_user)

    report = await ledger_engine.verify_ledger_integrity(db, payload.organization_id)

    await log_event(
        db,
        action=AuditAction.LEDGER_VERIFICATION,
        actor_id=current_user["user_id"],
        organization_id=payload.organization_id,
        metadata={
            "is_valid": report.is_valid,
            "total_entries": report.total_entries,
            "broken_chain_at": report.broken_chain_at,
            "invalid_hashes_count": len(report.invalid_hashes),
            "correlation_id": get_correlation_id(request),
        },
    )

    return LedgerVerificationResponse(verification=report)


@router.post("/periods/close", response_model=LedgerEntryCreatedResponse, status_code=status.HTTP_201_CREATED)
async def close_accounting_period(
    payload: ClosePeriodRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Close an accounting period. Super Admin only."""
    await require_org_member(
        db, payload.organization_id, current_user, allowed_roles=[MemberRole.SUPER_ADMIN]
    )

    marker = await ledger_engine.close_period(
        db, payload.organization_id, payload.accounting_period, closed_by=current_user["user_id"]
    )

    await log_event(
        db,
        action=AuditAction.LEDGER_PERIOD_CLOSED,
        actor_id=current_user["user_id"],
        organization_id=payload.organization_id,
        resource_id=marker.id,
        metadata={
            "accounting_period": marker.accounting_period,
            "correlation_id": get_correlation_id(request),
        },
    )

    return LedgerEntryCreatedResponse(
        data=LedgerEntryResponse.model_validate(marker),
        message=f"Accounting period {marker.accounting_period} closed",
    )


@router.get("/compliance-health", response_model=ComplianceHealthReport)
async def compliance_health(
    organization_id: str = Query(..., alias="organizationId", min_length=1),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Closed vs open accounting periods and recent activity."""
    await require_org_member(db, organization_id, current_user)
    return await ledger_engine.get_compliance_health(db, organization_id)


@router.get("/export")
async def export_ledger(
    request: Request,
    organization_id: str = Query(..., alias="organizationId", min_length=1),
    property_id: Optional[str] = Query(None, alias="propertyId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Export the chain as CSV for auditors."""
    await require_org_member(db, organization_id, current_user)

    content = await ledger_engine.export_ledger_csv(
        db, organization_id, property_id=property_id, start=start_date, end=end_date
    )

    await log_event(
        db,
        action=AuditAction.LEDGER_EXPORTED,
        actor_id=current_user["user_id"],
        organization_id=organization_id,
        metadata={
            "format": "csv",
            "property_id": property_id,
            "correlation_id": get_correlation_id(request),
        },
    )

    filename = f"ledger-{organization_id}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
