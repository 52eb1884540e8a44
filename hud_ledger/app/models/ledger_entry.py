"""
Ledger Entry database model.

Append-only, hash-chained HUD compliance records.
"""

from sqlalchemy import (
    Column, Integer, Numeric, DateTime, Enum, String, Boolean, Text,
    UniqueConstraint, Index, event,
)
from hud_ledger.app.db.session import Base
from hud_ledger.app.core.exceptions import ImmutableEntryError
from hud_ledger.app.models.ledger_enums import TransactionType


class LedgerEntry(Base):
    """
    Ledger Entry model.

    Immutable record of a financial or compliance event. Each row is chained to
    the previous row of the same organization through `previous_hash`.
    NO updates or deletions allowed; corrections are new ADJUSTMENT rows.
    """
    __tablename__ = "hud_append_ledger"

    id = Column(String(36), primary_key=True)

    # Scope
    organization_id = Column(String(36), nullable=False, index=True)
    property_id = Column(String(36), nullable=False, index=True)
    unit_id = Column(String(36), nullable=False)
    tenant_id = Column(String(36), nullable=True)

    # Entry details
    # Non-native backends (SQLite) get a CHECK constraint on the type names
    transaction_type = Column(
        Enum(TransactionType, create_constraint=True, validate_strings=True),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    description = Column(Text, nullable=False)
    accounting_period = Column(String(7), nullable=False)
    is_period_closed = Column(Boolean, default=False, nullable=False)

    # Provenance (Immutable - no updated_at)
    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    # Chain
    chain_position = Column(Integer, nullable=False)
    previous_hash = Column(String(64), nullable=False)
    entry_hash = Column(String(64), nullable=False, unique=True)

    # Linearization: one successor per tail, one row per position
    __table_args__ = (
        UniqueConstraint("organization_id", "previous_hash", name="uq_hud_ledger_org_previous_hash"),
        UniqueConstraint("organization_id", "chain_position", name="uq_hud_ledger_org_position"),
        Index("ix_hud_ledger_org_period", "organization_id", "accounting_period"),
    )

    def __repr__(self):
        return (
            f"<LedgerEntry(id={self.id}, position={self.chain_position}, "
            f"type='{self.transaction_type.value}', amount={self.amount})>"
        )


@event.listens_for(LedgerEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableEntryError(f"Ledger entry {target.id} is append-only; UPDATE is not allowed")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableEntryError(f"Ledger entry {target.id} is append-only; DELETE is not allowed")
