"""Analytics layer - Portfolio risk/return metrics over snapshot series."""

from portfolio_sync.analytics.metrics import MetricsInputError, compute_metrics
from portfolio_sync.analytics.models import (
    ChartPoint,
    PeriodComparison,
    PortfolioMetrics,
    PortfolioSnapshot,
    Timeframe,
    WalletReport,
)
from portfolio_sync.analytics.service import PortfolioAnalytics

__all__ = [
    "ChartPoint",
    "MetricsInputError",
    "PeriodComparison",
    "PortfolioAnalytics",
    "PortfolioMetrics",
    "PortfolioSnapshot",
    "Timeframe",
    "WalletReport",
    "compute_metrics",
]
