"""
Unit tests for accounting period helpers.
"""

from datetime import datetime

import pytest

from hud_ledger.app.domain.ledger.periods import (
    current_accounting_period,
    is_valid_accounting_period,
)


def test_current_period_uses_given_clock():
    assert current_accounting_period(datetime(2026, 2, 14, 9, 30)) == "2026-02"
    assert current_accounting_period(datetime(2025, 12, 31, 23, 59)) == "2025-12"


def test_current_period_defaults_to_now():
    now = datetime.now()
    assert current_accounting_period() in {
        f"{now.year:04d}-{now.month:02d}",
        current_accounting_period(datetime.now()),
    }


@pytest.mark.parametrize("period", ["2026-02", "2026-01", "2026-12", "1999-07"])
def test_valid_periods(period):
    assert is_valid_accounting_period(period)


@pytest.mark.parametrize("period", [
    "2026-13",
    "2026-00",
    "2026-2",
    "26-02",
    "2026/02",
    "2026-02-01",
    "2026-02\n",
    " 2026-02",
    "",
    None,
])
def test_invalid_periods(period):
    assert not is_valid_accounting_period(period)
