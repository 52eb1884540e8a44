"""
Accounting period helpers (YYYY-MM tokens).
"""

import re
from datetime import datetime
from typing import Optional

PERIOD_PATTERN = re.compile(r"\d{4}-\d{2}", re.ASCII)


def current_accounting_period(now: Optional[datetime] = None) -> str:
    """Accounting period of the caller's clock, e.g. "2026-02"."""
    now = now or datetime.now()
    return f"{now.year:04d}-{now.month:02d}"


def is_valid_accounting_period(period: Optional[str]) -> bool:
    """
    True if `period` is a YYYY-MM token with a real month.

    "2026-02" is valid; "2026-13", "2026-2" and "2026-02-01" are not.
    """
    if not isinstance(period, str) or not PERIOD_PATTERN.fullmatch(period):
        return False
    return 1 <= int(period[5:]) <= 12
