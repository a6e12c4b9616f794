"""Data models for the analytics module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

TIMEFRAME_DAYS: dict[str, int] = {
    "1d": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}


class Timeframe(str, Enum):
    """Lookback window used to slice a snapshot series."""

    ONE_DAY = "1d"
    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"
    NINETY_DAYS = "90d"
    ONE_YEAR = "1y"

    @property
    def days(self) -> int:
        return TIMEFRAME_DAYS[self.value]

    @classmethod
    def parse(cls, value: str | Timeframe | None) -> Timeframe:
        """Parse a caller-supplied timeframe, defaulting to 30d."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.THIRTY_DAYS


@dataclass(frozen=True)
class PortfolioSnapshot:
    """One dated record of a wallet's total value and composition.

    Attributes:
        wallet_id: Wallet the snapshot belongs to.
        date: Calendar day of the snapshot (one per wallet per day).
        total_value: Portfolio value in quote currency (non-negative).
        day_change: Absolute change versus the previous snapshot.
        day_change_percent: Percent change versus the previous snapshot.
        positions_count: Number of open positions.
        chains_count: Number of chains holding positions.
    """

    wallet_id: str
    date: date
    total_value: Decimal
    day_change: Decimal | None = None
    day_change_percent: Decimal | None = None
    positions_count: int = 0
    chains_count: int = 0


@dataclass(frozen=True)
class PortfolioMetrics:
    """Risk/return metrics derived from a snapshot series."""

    current_value: float
    total_return: float
    total_return_percent: float
    avg_value: float
    max_value: float
    min_value: float
    volatility_percent: float
    sharpe_ratio: float
    win_rate: float
    max_drawdown_percent: float
    timeframe: Timeframe
    data_points: int

    @classmethod
    def empty(cls, timeframe: Timeframe = Timeframe.THIRTY_DAYS) -> PortfolioMetrics:
        return cls(
            current_value=0.0,
            total_return=0.0,
            total_return_percent=0.0,
            avg_value=0.0,
            max_value=0.0,
            min_value=0.0,
            volatility_percent=0.0,
            sharpe_ratio=0.0,
            win_rate=0.0,
            max_drawdown_percent=0.0,
            timeframe=timeframe,
            data_points=0,
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize for the query API."""
        return {
            "currentValue": self.current_value,
            "totalReturn": self.total_return,
            "totalReturnPercent": self.total_return_percent,
            "avgValue": self.avg_value,
            "maxValue": self.max_value,
            "minValue": self.min_value,
            "volatility": self.volatility_percent,
            "sharpeRatio": self.sharpe_ratio,
            "winRate": self.win_rate,
            "maxDrawdown": self.max_drawdown_percent,
            "timeframe": self.timeframe.value,
            "dataPoints": self.data_points,
        }


@dataclass(frozen=True)
class ChartPoint:
    """Single point of the portfolio value chart."""

    date: date
    value: float
    change: float
    change_percent: float
    positions: int
    chains: int

    @classmethod
    def from_snapshot(cls, snapshot: PortfolioSnapshot) -> ChartPoint:
        return cls(
            date=snapshot.date,
            value=float(snapshot.total_value),
            change=float(snapshot.day_change or 0),
            change_percent=float(snapshot.day_change_percent or 0),
            positions=snapshot.positions_count,
            chains=snapshot.chains_count,
        )


@dataclass(frozen=True)
class PeriodComparison:
    """Current value compared with the end of the previous window."""

    previous_value: float
    current_value: float
    change: float
    change_percent: float


@dataclass(frozen=True)
class WalletReport:
    """Metrics plus chart series and previous-period comparison."""

    wallet_id: str
    metrics: PortfolioMetrics
    chart: list[ChartPoint]
    comparison: PeriodComparison | None
