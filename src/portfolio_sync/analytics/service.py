"""Query surface for portfolio analytics.

PortfolioAnalytics reads a wallet's snapshot series from the store for the
requested window and hands it to the metrics engine. Store failures are
reported to the error sink and answered with empty metrics, so a dashboard
query never raises because the database is unavailable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

from portfolio_sync.analytics.metrics import DEFAULT_RISK_FREE_RATE, compute_metrics
from portfolio_sync.analytics.models import (
    ChartPoint,
    PeriodComparison,
    PortfolioMetrics,
    PortfolioSnapshot,
    Timeframe,
    WalletReport,
)

if TYPE_CHECKING:
    from portfolio_sync.errors import ErrorSink
    from portfolio_sync.storage.store import SnapshotStore

logger = logging.getLogger(__name__)


def window_start(today: date, timeframe: Timeframe) -> date:
    """First calendar day included in the timeframe ending today."""
    return today - timedelta(days=timeframe.days)


class PortfolioAnalytics:
    """Computes metrics and reports for one wallet at a time.

    Args:
        store: Source of snapshot series.
        error_sink: Receives store read failures.
        risk_free_rate: Annual risk-free rate for the Sharpe ratio.
        today: Clock returning the current calendar day (UTC by default).
    """

    def __init__(
        self,
        store: SnapshotStore,
        error_sink: ErrorSink,
        *,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._store = store
        self._error_sink = error_sink
        self._risk_free_rate = risk_free_rate
        self._today = today or (lambda: datetime.now(UTC).date())

    async def compute_metrics(
        self, wallet_id: str, timeframe: str | Timeframe | None = None
    ) -> PortfolioMetrics:
        """Metrics for the wallet over the timeframe (unknown values mean 30d)."""
        resolved = Timeframe.parse(timeframe)
        series = await self._read_series(wallet_id, resolved)
        if series is None:
            return PortfolioMetrics.empty(resolved)
        return compute_metrics(series, resolved, risk_free_rate=self._risk_free_rate)

    async def wallet_report(
        self, wallet_id: str, timeframe: str | Timeframe | None = None
    ) -> WalletReport:
        """Metrics plus chart points and a comparison with the previous window."""
        resolved = Timeframe.parse(timeframe)
        series = await self._read_series(wallet_id, resolved)
        if series is None:
            return WalletReport(
                wallet_id=wallet_id,
                metrics=PortfolioMetrics.empty(resolved),
                chart=[],
                comparison=None,
            )

        metrics = compute_metrics(series, resolved, risk_free_rate=self._risk_free_rate)
        chart = [ChartPoint.from_snapshot(s) for s in series]
        comparison = await self._compare_previous(wallet_id, resolved, metrics)
        return WalletReport(
            wallet_id=wallet_id, metrics=metrics, chart=chart, comparison=comparison
        )

    async def _read_series(
        self, wallet_id: str, timeframe: Timeframe
    ) -> list[PortfolioSnapshot] | None:
        since = window_start(self._today(), timeframe)
        try:
            return await self._store.read_series(wallet_id, since)
        except Exception as e:
            self._error_sink.report(e, f"PortfolioAnalytics.compute_metrics.{wallet_id}")
            return None

    async def _compare_previous(
        self, wallet_id: str, timeframe: Timeframe, metrics: PortfolioMetrics
    ) -> PeriodComparison | None:
        if metrics.data_points == 0:
            return None
        current_start = window_start(self._today(), timeframe)
        previous_start = current_start - timedelta(days=timeframe.days)
        try:
            previous = await self._store.read_latest_value(
                wallet_id, previous_start, current_start
            )
        except Exception as e:
            self._error_sink.report(e, f"PortfolioAnalytics.wallet_report.{wallet_id}")
            return None
        if previous is None or previous <= 0:
            logger.debug("No valued snapshot before %s for %s", current_start, wallet_id)
            return None

        previous_value = float(previous)
        change = metrics.current_value - previous_value
        return PeriodComparison(
            previous_value=previous_value,
            current_value=metrics.current_value,
            change=change,
            change_percent=change / previous_value * 100.0,
        )
