"""Portfolio Sync - Wallet sync scheduling and portfolio analytics."""

__version__ = "0.1.0"
