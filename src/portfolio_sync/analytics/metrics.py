"""Risk/return metrics over a portfolio snapshot series.

Everything here is a pure function of its inputs. Callers pass a series that
is already restricted to the requested window and sorted by date; the engine
validates that ordering but never re-sorts or re-filters.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from portfolio_sync.analytics.models import (
    PortfolioMetrics,
    PortfolioSnapshot,
    Timeframe,
)

DEFAULT_RISK_FREE_RATE = 0.02
DAYS_PER_YEAR = 365


class MetricsInputError(ValueError):
    """Raised when a snapshot series violates the ordering contract."""


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _check_series(series: Sequence[PortfolioSnapshot]) -> None:
    for previous, current in zip(series, series[1:]):
        if current.date <= previous.date:
            raise MetricsInputError(
                f"snapshot series must be strictly ascending by date "
                f"(got {previous.date} then {current.date})"
            )


def annualize_return(total_return_percent: float, days: int) -> float:
    """Compound a period return to a yearly fraction."""
    base = 1.0 + total_return_percent / 100.0
    try:
        return math.pow(base, DAYS_PER_YEAR / days) - 1.0
    except (OverflowError, ValueError):
        return 0.0


def annualize_volatility(relative_volatility: float, days: int) -> float:
    """Scale a fractional volatility to a yearly horizon."""
    return relative_volatility * math.sqrt(DAYS_PER_YEAR / days)


def win_rate(values: Sequence[float]) -> float:
    """Percentage of consecutive pairs where the value strictly increased."""
    if len(values) < 2:
        return 0.0
    wins = sum(1 for previous, current in zip(values, values[1:]) if current > previous)
    return wins / (len(values) - 1) * 100.0


def max_drawdown(values: Sequence[float]) -> float:
    """Largest percentage decline from a running peak to a later value."""
    if not values:
        return 0.0
    worst = 0.0
    peak = values[0]
    for value in values:
        if value > peak:
            peak = value
        elif peak > 0:
            worst = max(worst, (peak - value) / peak * 100.0)
    return worst


def compute_metrics(
    series: Sequence[PortfolioSnapshot],
    timeframe: str | Timeframe | None,
    *,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> PortfolioMetrics:
    """Compute portfolio metrics for an ordered snapshot series.

    Args:
        series: Snapshots with ``date >= timeframe start``, ascending by date.
        timeframe: Timeframe label; unknown values are treated as 30 days.
        risk_free_rate: Annual risk-free rate for the Sharpe ratio.

    Returns:
        Metrics record. An empty series yields all zeros with
        ``data_points == 0``.

    Raises:
        MetricsInputError: If dates are not strictly ascending.
    """
    resolved = Timeframe.parse(timeframe)
    if not series:
        return PortfolioMetrics.empty(resolved)
    _check_series(series)

    values = [float(s.total_value) for s in series]
    n = len(values)
    earliest = values[0]
    latest = values[-1]

    total_return = latest - earliest
    total_return_percent = total_return / earliest * 100.0 if earliest > 0 else 0.0

    avg_value = sum(values) / n
    variance = sum((v - avg_value) ** 2 for v in values) / n
    stddev = math.sqrt(variance)
    relative_volatility = stddev / avg_value if avg_value > 0 else 0.0
    volatility_percent = relative_volatility * 100.0

    days = resolved.days
    annualized_return = annualize_return(total_return_percent, days)
    annualized_volatility = annualize_volatility(relative_volatility, days)
    sharpe_ratio = (
        (annualized_return - risk_free_rate) / annualized_volatility
        if annualized_volatility > 0
        else 0.0
    )

    return PortfolioMetrics(
        current_value=_finite(latest),
        total_return=_finite(total_return),
        total_return_percent=_finite(total_return_percent),
        avg_value=_finite(avg_value),
        max_value=_finite(max(values)),
        min_value=_finite(min(values)),
        volatility_percent=_finite(volatility_percent),
        sharpe_ratio=_finite(sharpe_ratio),
        win_rate=_finite(win_rate(values)),
        max_drawdown_percent=_finite(max_drawdown(values)),
        timeframe=resolved,
        data_points=n,
    )
