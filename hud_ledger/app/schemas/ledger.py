"""
Ledger Schemas.

Wire format is camelCase (organizationId, accountingPeriod, ...); Python code
uses the snake_case field names.
"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from hud_ledger.app.models.ledger_enums import TransactionType


class CamelModel(BaseModel):
    """Base schema accepting both camelCase aliases and field names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class LedgerEntryCreate(CamelModel):
    """
    Schema for appending a ledger entry.

    Business rules (amount >= 0, description length, period format) are
    enforced by the ledger engine so that every caller gets the same checks.
    """
    organization_id: str = Field(..., min_length=1, max_length=36)
    property_id: str = Field(..., min_length=1, max_length=36)
    unit_id: str = Field(..., min_length=1, max_length=36)
    tenant_id: Optional[str] = Field(None, max_length=36)
    transaction_type: TransactionType
    amount: Decimal
    description: str
    accounting_period: str


class LedgerEntryResponse(CamelModel):
    """Schema for displaying a persisted ledger entry."""
    id: str
    organization_id: str
    property_id: str
    unit_id: str
    tenant_id: Optional[str]
    transaction_type: TransactionType
    amount: Decimal
    description: str
    accounting_period: str
    is_period_closed: bool
    created_by: str
    created_at: datetime
    chain_position: int
    previous_hash: str
    entry_hash: str


class LedgerEntryCreatedResponse(CamelModel):
    success: bool = True
    data: LedgerEntryResponse
    message: str


class LedgerEntryListResponse(CamelModel):
    success: bool = True
    data: List[LedgerEntryResponse]
    accounting_period: str
    count: int


class VerifyLedgerRequest(CamelModel):
    organization_id: str = Field(..., min_length=1, max_length=36)


class LedgerVerificationReport(CamelModel):
    """
    Result of walking an organization's chain.

    Tampering is reported here (is_valid = False), never raised.
    """
    is_valid: bool
    total_entries: int
    broken_chain_at: Optional[int] = None
    invalid_hashes: List[str] = Field(default_factory=list)
    message: str = ""


class LedgerVerificationResponse(CamelModel):
    success: bool = True
    verification: LedgerVerificationReport


class ClosePeriodRequest(CamelModel):
    organization_id: str = Field(..., min_length=1, max_length=36)
    accounting_period: str


class ComplianceHealthReport(CamelModel):
    """Closed vs open periods and recent activity for an organization."""
    health_score: int
    total_entries: int
    closed_periods: int
    open_periods: int
    last_entry_at: Optional[datetime] = None
