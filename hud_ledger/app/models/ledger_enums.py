"""
Ledger enumerations.
"""

import enum


class TransactionType(str, enum.Enum):
    """Closed set of HUD ledger transaction types."""
    CHARGE = "CHARGE"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"  # Also used for corrections and period-close markers
    FEE = "FEE"
    RECERTIFICATION_LOG = "RECERTIFICATION_LOG"
    MAINTENANCE_REQUEST = "MAINTENANCE_REQUEST"
    MAINTENANCE_APPROVAL = "MAINTENANCE_APPROVAL"
