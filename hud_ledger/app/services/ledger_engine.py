"""
Ledger engine.

Append-only, SHA-256 chained ledger of HUD compliance records, one chain per
organization. The engine is stateless: every call re-derives the chain tail
from the store, and linearization of concurrent appends is left to the
store's unique constraints on (organization_id, previous_hash) and
(organization_id, chain_position).
"""

import csv
import io
import logging
import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import AsyncIterator, Dict, List, Optional, Any, Sequence

from sqlalchemy import select, func, distinct, type_coerce, String
from sqlalchemy.engine import Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hud_ledger.app.core.config import settings
from hud_ledger.app.core.exceptions import (
    ValidationError,
    PeriodClosedError,
    ConflictError,
    StorageError,
    ResourceNotFoundError,
)
from hud_ledger.app.domain.ledger.hashing import (
    GENESIS_HASH,
    CENTS,
    compute_entry_hash,
    format_amount,
)
from hud_ledger.app.domain.ledger.periods import (
    current_accounting_period,
    is_valid_accounting_period,
)
from hud_ledger.app.models.ledger_entry import LedgerEntry
from hud_ledger.app.models.ledger_enums import TransactionType
from hud_ledger.app.schemas.ledger import (
    LedgerEntryCreate,
    LedgerVerificationReport,
    ComplianceHealthReport,
)

logger = logging.getLogger("hud_ledger.ledger")

# Property/unit marker used on period-close entries
NIL_UUID = "00000000-0000-0000-0000-000000000000"

MAX_AMOUNT = Decimal("1000000000000")  # Numeric(14, 2)

EXPORT_COLUMNS = [
    "Timestamp",
    "Transaction Type",
    "Amount",
    "Description",
    "Accounting Period",
    "Period Closed",
    "Property ID",
    "Unit ID",
    "Tenant ID",
    "Entry Hash",
    "Previous Hash",
]

# Columns read by verification and export; transaction_type is the raw stored string
CHAIN_COLUMNS = [
    column for column in LedgerEntry.__table__.c if column.key != "transaction_type"
] + [type_coerce(LedgerEntry.__table__.c.transaction_type, String).label("transaction_type")]


def _utc_now() -> datetime:
    """Current UTC time truncated to the millisecond precision that is hashed."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _require_period(accounting_period: Optional[str]) -> str:
    if not is_valid_accounting_period(accounting_period):
        raise ValidationError(
            field="accountingPeriod",
            message="Invalid accounting period format. Must be YYYY-MM",
        )
    return accounting_period


def validate_entry(entry: LedgerEntryCreate) -> Dict[str, Any]:
    """
    Check an append payload and return the normalized column values.

    Raises:
        ValidationError: naming the first offending field
    """
    for field, value in (
        ("organizationId", entry.organization_id),
        ("propertyId", entry.property_id),
        ("unitId", entry.unit_id),
    ):
        if not value or not str(value).strip():
            raise ValidationError(field=field, message=f"{field} is required")

    try:
        amount = Decimal(str(entry.amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(field="amount", message="Amount must be a decimal number")
    if not amount.is_finite():
        raise ValidationError(field="amount", message="Amount must be a finite number")
    if amount < 0:
        raise ValidationError(field="amount", message="Amount must be greater than or equal to 0")
    if amount != amount.quantize(CENTS):
        raise ValidationError(field="amount", message="Amount must have at most 2 decimal places")
    if amount >= MAX_AMOUNT:
        raise ValidationError(field="amount", message="Amount exceeds the maximum ledger amount")

    description = (entry.description or "").strip()
    if not description:
        raise ValidationError(field="description", message="Description must not be empty")
    if len(description) > settings.ledger_description_max_length:
        raise ValidationError(
            field="description",
            message=f"Description must be at most {settings.ledger_description_max_length} characters",
        )

    try:
        transaction_type = TransactionType(entry.transaction_type)
    except ValueError:
        raise ValidationError(
            field="transactionType",
            message=f"Unknown transaction type: {entry.transaction_type}",
        )

    return {
        "property_id": str(entry.property_id),
        "unit_id": str(entry.unit_id),
        "tenant_id": str(entry.tenant_id) if entry.tenant_id else None,
        "transaction_type": transaction_type,
        "amount": amount.quantize(CENTS),
        "description": description,
        "accounting_period": _require_period(entry.accounting_period),
    }


async def get_chain_tail(db: AsyncSession, organization_id: str) -> Optional[Row]:
    """
    Hash, position and timestamp of the organization's latest entry.

    Returns None for an empty chain.
    """
    result = await db.execute(
        select(LedgerEntry.entry_hash, LedgerEntry.chain_position, LedgerEntry.created_at)
        .where(LedgerEntry.organization_id == organization_id)
        .order_by(LedgerEntry.chain_position.desc())
        .limit(1)
    )
    return result.first()


async def is_period_closed(db: AsyncSession, organization_id: str, accounting_period: str) -> bool:
    result = await db.execute(
        select(LedgerEntry.id).where(
            LedgerEntry.organization_id == organization_id,
            LedgerEntry.accounting_period == accounting_period,
            LedgerEntry.is_period_closed.is_(True),
        ).limit(1)
    )
    return result.first() is not None


async def _append_to_chain(
    db: AsyncSession,
    organization_id: str,
    values: Dict[str, Any],
    created_by: str,
    operation: str,
) -> LedgerEntry:
    """
    Chain and persist one row in a single transaction.

    The tail is read before the closed-period check: a close committed after
    the tail read makes our insert collide on previous_hash instead of
    slipping in behind the close marker.
    """
    try:
        tail = await get_chain_tail(db, organization_id)
        period_closed = await is_period_closed(db, organization_id, values["accounting_period"])
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Failed to read chain tail for organization %s", organization_id)
        raise StorageError(operation) from exc

    if period_closed:
        raise PeriodClosedError(values["accounting_period"])

    previous_hash = tail.entry_hash if tail is not None else GENESIS_HASH
    position = tail.chain_position + 1 if tail is not None else 0

    columns = dict(values)
    columns.setdefault("is_period_closed", False)

    entry = LedgerEntry(
        id=str(uuid.uuid4()),
        organization_id=organization_id,
        created_by=str(created_by),
        created_at=_utc_now(),
        chain_position=position,
        previous_hash=previous_hash,
        **columns,
    )
    entry.entry_hash = compute_entry_hash(entry, previous_hash)

    db.add(entry)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning(
            "Append conflict for organization %s at position %s (tail %s)",
            organization_id, position, previous_hash,
        )
        raise ConflictError(organization_id, previous_hash) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Failed to persist ledger entry for organization %s", organization_id)
        raise StorageError(operation) from exc

    return entry


async def append_entry(db: AsyncSession, entry: LedgerEntryCreate, created_by: str) -> LedgerEntry:
    """
    Append a new entry to the organization's chain.

    Args:
        db: Database session (the engine commits or rolls back itself)
        entry: Validated request payload
        created_by: Principal id supplied by the authentication collaborator

    Returns:
        The persisted entry, including previous_hash and entry_hash

    Raises:
        ValidationError: malformed payload
        PeriodClosedError: the accounting period is closed
        ConflictError: a concurrent append took the tail; safe to retry
        StorageError: the store failed; nothing was written
    """
    values = validate_entry(entry)
    organization_id = str(entry.organization_id)

    persisted = await _append_to_chain(db, organization_id, values, created_by, "append")
    logger.info(
        "Appended %s entry %s to organization %s at position %s",
        persisted.transaction_type.value, persisted.id, organization_id, persisted.chain_position,
    )
    return persisted


async def get_entries_for_period(
    db: AsyncSession,
    organization_id: str,
    accounting_period: Optional[str] = None,
) -> List[LedgerEntry]:
    """Entries of one accounting period in append order; empty list if none."""
    period = _require_period(accounting_period or current_accounting_period())

    try:
        result = await db.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.organization_id == organization_id,
                LedgerEntry.accounting_period == period,
            )
            .order_by(LedgerEntry.chain_position)
            .execution_options(populate_existing=True)
        )
    except SQLAlchemyError as exc:
        logger.exception("Failed to fetch ledger entries for organization %s", organization_id)
        raise StorageError("retrieve") from exc

    return list(result.scalars().all())


async def iter_chain(
    db: AsyncSession,
    organization_id: str,
    upto_position: Optional[int] = None,
    batch_size: Optional[int] = None,
    criteria: Sequence[Any] = (),
) -> AsyncIterator[Row]:
    """
    Yield the chain's rows (CHAIN_COLUMNS) in append order, one keyset page
    at a time. `criteria` are extra WHERE clauses, e.g. an export filter.
    """
    batch_size = batch_size or settings.verify_batch_size
    after = -1

    while True:
        stmt = select(*CHAIN_COLUMNS).where(
            LedgerEntry.organization_id == organization_id,
            LedgerEntry.chain_position > after,
            *criteria,
        )
        if upto_position is not None:
            stmt = stmt.where(LedgerEntry.chain_position <= upto_position)
        stmt = stmt.order_by(LedgerEntry.chain_position).limit(batch_size)

        rows = (await db.execute(stmt)).all()
        for row in rows:
            yield row

        if len(rows) < batch_size:
            return
        after = rows[-1].chain_position


async def verify_ledger_integrity(db: AsyncSession, organization_id: str) -> LedgerVerificationReport:
    """
    Walk the organization's chain and check every link and self-hash.

    Only entries up to the tail seen at the start are examined, so appends
    running concurrently do not change the result.
    """
    invalid_hashes: List[str] = []
    broken_chain_at: Optional[int] = None
    total = 0

    try:
        tail = await get_chain_tail(db, organization_id)
        if tail is None:
            return LedgerVerificationReport(
                is_valid=True,
                total_entries=0,
                message="No ledger entries found for this organization",
            )

        expected_previous = GENESIS_HASH
        async for entry in iter_chain(db, organization_id, upto_position=tail.chain_position):
            link_ok = entry.previous_hash == expected_previous
            hash_ok = compute_entry_hash(entry, entry.previous_hash) == entry.entry_hash

            if not hash_ok:
                invalid_hashes.append(entry.id)
            if broken_chain_at is None and not (link_ok and hash_ok):
                broken_chain_at = total

            expected_previous = entry.entry_hash
            total += 1
    except SQLAlchemyError as exc:
        logger.exception("Failed to read ledger chain for organization %s", organization_id)
        raise StorageError("verify") from exc

    is_valid = broken_chain_at is None and not invalid_hashes
    if is_valid:
        message = f"Ledger integrity verified. {total} entries validated."
        logger.info("Ledger for organization %s verified (%s entries)", organization_id, total)
    else:
        message = (
            f"Ledger integrity compromised. Chain broken at entry {broken_chain_at}; "
            f"{len(invalid_hashes)} invalid hashes detected."
        )
        logger.warning(
            "Ledger for organization %s failed verification at entry %s (%s invalid hashes)",
            organization_id, broken_chain_at, len(invalid_hashes),
        )

    return LedgerVerificationReport(
        is_valid=is_valid,
        total_entries=total,
        broken_chain_at=broken_chain_at,
        invalid_hashes=invalid_hashes,
        message=message,
    )


async def close_period(
    db: AsyncSession,
    organization_id: str,
    accounting_period: str,
    closed_by: str,
) -> LedgerEntry:
    """
    Close an accounting period by chaining a PERIOD CLOSED marker entry.

    Later appends to the period are rejected with PeriodClosedError.
    """
    period = _require_period(accounting_period)
    values = {
        "property_id": NIL_UUID,
        "unit_id": NIL_UUID,
        "tenant_id": None,
        "transaction_type": TransactionType.ADJUSTMENT,
        "amount": Decimal("0.00"),
        "description": f"PERIOD CLOSED: {period}",
        "accounting_period": period,
        "is_period_closed": True,
    }

    marker = await _append_to_chain(db, str(organization_id), values, closed_by, "close_period")
    logger.info("Closed accounting period %s for organization %s", period, organization_id)
    return marker


async def get_compliance_health(db: AsyncSession, organization_id: str) -> ComplianceHealthReport:
    """
    Score closed vs open periods for an organization.

    health = min(100, closed / max(periods - 1, 1) * 70 + (30 if any entries))
    The current period is expected to be open, hence `periods - 1`.
    """
    try:
        total = (await db.execute(
            select(func.count(LedgerEntry.id)).where(LedgerEntry.organization_id == organization_id)
        )).scalar() or 0

        periods = set((await db.execute(
            select(distinct(LedgerEntry.accounting_period))
            .where(LedgerEntry.organization_id == organization_id)
        )).scalars().all())

        closed = set((await db.execute(
            select(distinct(LedgerEntry.accounting_period)).where(
                LedgerEntry.organization_id == organization_id,
                LedgerEntry.is_period_closed.is_(True),
            )
        )).scalars().all())

        tail = await get_chain_tail(db, organization_id) if total else None
    except SQLAlchemyError as exc:
        logger.exception("Failed to compute compliance health for organization %s", organization_id)
        raise StorageError("compliance_health") from exc

    if not total:
        return ComplianceHealthReport(health_score=0, total_entries=0, closed_periods=0, open_periods=0)

    score = min(100.0, len(closed) / max(len(periods) - 1, 1) * 70 + 30)

    return ComplianceHealthReport(
        health_score=math.floor(score + 0.5),
        total_entries=total,
        closed_periods=len(closed),
        open_periods=len(periods - closed),
        last_entry_at=tail.created_at if tail is not None else None,
    )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values are read as UTC, like created_at."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


async def export_ledger_csv(
    db: AsyncSession,
    organization_id: str,
    property_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> str:
    """
    Render the organization's chain (append order) as an auditor CSV.

    Rows are read in keyset pages up to the tail seen at the start, so the
    header count and the rows describe the same snapshot.

    Raises:
        ResourceNotFoundError: no entries match the filters
    """
    criteria = []
    if property_id:
        criteria.append(LedgerEntry.property_id == property_id)
    if start is not None:
        criteria.append(LedgerEntry.created_at >= _as_utc(start))
    if end is not None:
        criteria.append(LedgerEntry.created_at <= _as_utc(end))

    try:
        tail = await get_chain_tail(db, organization_id)
        total = 0
        if tail is not None:
            total = (await db.execute(
                select(func.count(LedgerEntry.id)).where(
                    LedgerEntry.organization_id == organization_id,
                    LedgerEntry.chain_position <= tail.chain_position,
                    *criteria,
                )
            )).scalar() or 0
    except SQLAlchemyError as exc:
        logger.exception("Failed to export ledger for organization %s", organization_id)
        raise StorageError("export") from exc

    if not total:
        raise ResourceNotFoundError("Ledger entries")

    buffer = io.StringIO()
    buffer.write("# =====================================================\n")
    buffer.write("# HUD LEDGER EXPORT\n")
    buffer.write(f"# Generated: {_iso(datetime.now(timezone.utc))}\n")
    buffer.write(f"# Organization: {organization_id}\n")
    if property_id:
        buffer.write(f"# Property: {property_id}\n")
    buffer.write(f"# Total Entries: {total}\n")
    buffer.write("# =====================================================\n")

    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)

    first_hash = last_hash = None
    try:
        async for row in iter_chain(db, organization_id, upto_position=tail.chain_position, criteria=criteria):
            writer.writerow([
                _iso(row.created_at),
                row.transaction_type,
                format_amount(row.amount),
                row.description,
                row.accounting_period,
                "YES" if row.is_period_closed else "NO",
                row.property_id,
                row.unit_id,
                row.tenant_id or "N/A",
                row.entry_hash,
                row.previous_hash,
            ])
            if first_hash is None:
                first_hash = row.entry_hash
            last_hash = row.entry_hash
    except SQLAlchemyError as exc:
        logger.exception("Failed to export ledger for organization %s", organization_id)
        raise StorageError("export") from exc

    buffer.write("# =====================================================\n")
    buffer.write("# HASH CHAIN VERIFICATION\n")
    buffer.write(f"# First Entry Hash: {first_hash}\n")
    buffer.write(f"# Last Entry Hash: {last_hash}\n")
    buffer.write("# =====================================================\n")

    logger.info("Exported %s ledger entries for organization %s", total, organization_id)
    return buffer.getvalue()
