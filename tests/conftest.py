"""Pytest configuration and fixtures."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from portfolio_sync.analytics.models import PortfolioSnapshot


@pytest.fixture
def sample_wallet_id() -> str:
    """Sample wallet address for testing."""
    return "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture
def make_series():
    """Build an ascending daily snapshot series from a list of values."""

    def _make(
        values: list[float],
        *,
        wallet_id: str = "0x1234567890abcdef1234567890abcdef12345678",
        start: date = date(2026, 1, 1),
    ) -> list[PortfolioSnapshot]:
        return [
            PortfolioSnapshot(
                wallet_id=wallet_id,
                date=start + timedelta(days=i),
                total_value=Decimal(str(v)),
            )
            for i, v in enumerate(values)
        ]

    return _make
